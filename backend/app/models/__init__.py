"""Aggregate model imports for Alembic auto-detection."""

# Locations and programs
from app.models.facility import Facility  # noqa: F401
from app.models.program import Program  # noqa: F401
from app.models.supervisory_node import SupervisoryNode  # noqa: F401
from app.models.requisition_group import (  # noqa: F401
    RequisitionGroup,
    requisition_group_members,
    requisition_group_programs,
)

# Rights and roles
from app.models.right import Right, RightType, right_attachments  # noqa: F401
from app.models.role import Role, role_rights  # noqa: F401

# Users and their grants
from app.models.user import User  # noqa: F401
from app.models.role_assignment import AssignmentType, RoleAssignment  # noqa: F401
from app.models.right_assignment import RightAssignment  # noqa: F401
