import uuid

from sqlalchemy import Column, ForeignKey, String, Table
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


requisition_group_members = Table(
    "requisition_group_members",
    Base.metadata,
    Column(
        "requisition_group_id",
        String(36),
        ForeignKey("requisition_groups.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "facility_id",
        String(36),
        ForeignKey("facilities.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

# Programs the group supports. A group with no rows here supports every program.
requisition_group_programs = Table(
    "requisition_group_programs",
    Base.metadata,
    Column(
        "requisition_group_id",
        String(36),
        ForeignKey("requisition_groups.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "program_id",
        String(36),
        ForeignKey("programs.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class RequisitionGroup(Base):
    __tablename__ = "requisition_groups"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    supervisory_node_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("supervisory_nodes.id"), unique=True, nullable=False
    )
