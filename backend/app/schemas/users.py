"""Pydantic schemas for role assignments and right checks."""

from pydantic import BaseModel

from app.models.role_assignment import AssignmentType


class RoleAssignmentIn(BaseModel):
    role_id: str
    type: AssignmentType
    program_id: str | None = None
    supervisory_node_id: str | None = None
    warehouse_id: str | None = None


class ResultOut(BaseModel):
    """Answer to a yes/no right check."""
    result: bool
