"""Initial schema: locations, supervision hierarchy, rights, roles, assignments.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Run with:
    alembic upgrade head
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


RIGHT_TYPES = ("GENERAL_ADMIN", "SUPERVISION", "ORDER_FULFILLMENT", "REPORTING")
ASSIGNMENT_TYPES = ("DIRECT", "SUPERVISION", "FULFILLMENT")


def upgrade() -> None:
    # ── Programs and facilities ──────────────────────────────

    op.create_table(
        "programs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("active", sa.Boolean(), server_default="true"),
    )
    op.create_index("ix_programs_code", "programs", ["code"], unique=True)

    op.create_table(
        "facilities",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("active", sa.Boolean(), server_default="true"),
    )
    op.create_index("ix_facilities_code", "facilities", ["code"], unique=True)

    # ── Supervision hierarchy ────────────────────────────────

    op.create_table(
        "supervisory_nodes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("facility_id", sa.String(36), sa.ForeignKey("facilities.id")),
        sa.Column("parent_id", sa.String(36), sa.ForeignKey("supervisory_nodes.id")),
    )
    op.create_index("ix_supervisory_nodes_code", "supervisory_nodes", ["code"], unique=True)
    op.create_index("ix_supervisory_nodes_parent_id", "supervisory_nodes", ["parent_id"])

    op.create_table(
        "requisition_groups",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "supervisory_node_id",
            sa.String(36),
            sa.ForeignKey("supervisory_nodes.id"),
            nullable=False,
            unique=True,
        ),
    )
    op.create_index("ix_requisition_groups_code", "requisition_groups", ["code"], unique=True)

    op.create_table(
        "requisition_group_members",
        sa.Column(
            "requisition_group_id",
            sa.String(36),
            sa.ForeignKey("requisition_groups.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "facility_id",
            sa.String(36),
            sa.ForeignKey("facilities.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "requisition_group_programs",
        sa.Column(
            "requisition_group_id",
            sa.String(36),
            sa.ForeignKey("requisition_groups.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "program_id",
            sa.String(36),
            sa.ForeignKey("programs.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    # ── Rights and roles ─────────────────────────────────────

    op.create_table(
        "rights",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.Enum(*RIGHT_TYPES, name="righttype"), nullable=False),
        sa.Column("description", sa.Text()),
    )
    op.create_index("ix_rights_name", "rights", ["name"], unique=True)

    op.create_table(
        "right_attachments",
        sa.Column(
            "right_id",
            sa.String(36),
            sa.ForeignKey("rights.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "attachment_id",
            sa.String(36),
            sa.ForeignKey("rights.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "roles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_roles_name", "roles", ["name"], unique=True)

    op.create_table(
        "role_rights",
        sa.Column(
            "role_id",
            sa.String(36),
            sa.ForeignKey("roles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("right_id", sa.String(36), sa.ForeignKey("rights.id"), primary_key=True),
    )

    # ── Users and assignments ────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("home_facility_id", sa.String(36), sa.ForeignKey("facilities.id")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "role_assignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role_id", sa.String(36), sa.ForeignKey("roles.id"), nullable=False),
        sa.Column(
            "assignment_type",
            sa.Enum(*ASSIGNMENT_TYPES, name="assignmenttype"),
            nullable=False,
        ),
        sa.Column("program_id", sa.String(36), sa.ForeignKey("programs.id")),
        sa.Column("supervisory_node_id", sa.String(36), sa.ForeignKey("supervisory_nodes.id")),
        sa.Column("warehouse_id", sa.String(36), sa.ForeignKey("facilities.id")),
    )
    op.create_index("ix_role_assignments_user_id", "role_assignments", ["user_id"])
    op.create_index("ix_role_assignments_role_id", "role_assignments", ["role_id"])

    op.create_table(
        "right_assignments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("right_name", sa.String(255), nullable=False),
        sa.Column("facility_id", sa.String(36)),
        sa.Column("program_id", sa.String(36)),
        sa.UniqueConstraint(
            "user_id", "right_name", "facility_id", "program_id",
            name="uq_right_assignment",
        ),
    )
    op.create_index("ix_right_assignments_user_id", "right_assignments", ["user_id"])
    op.create_index("ix_right_assignments_right_name", "right_assignments", ["right_name"])


def downgrade() -> None:
    op.drop_table("right_assignments")
    op.drop_table("role_assignments")
    op.drop_table("users")
    op.drop_table("role_rights")
    op.drop_table("roles")
    op.drop_table("right_attachments")
    op.drop_table("rights")
    op.drop_table("requisition_group_programs")
    op.drop_table("requisition_group_members")
    op.drop_table("requisition_groups")
    op.drop_table("supervisory_nodes")
    op.drop_table("facilities")
    op.drop_table("programs")
    sa.Enum(name="assignmenttype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="righttype").drop(op.get_bind(), checkfirst=True)
