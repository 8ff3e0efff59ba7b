"""Pydantic schemas for rights and roles."""

from pydantic import BaseModel, Field

from app.models.right import RightType

class RightIn(BaseModel):
    """Saved by name: an existing right with the same name is updated."""
    name: str = Field(..., max_length=255)
    type: RightType
    description: str | None = None
    attachments: list[str] = Field(default_factory=list)  # right names


class RoleIn(BaseModel):
    name: str = Field(..., max_length=255)
    description: str | None = None
    right_ids: list[str] = Field(default_factory=list)
