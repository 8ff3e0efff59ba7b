import enum
import uuid

from sqlalchemy import Enum as SAEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class AssignmentType(str, enum.Enum):
    DIRECT = "direct"
    SUPERVISION = "supervision"
    FULFILLMENT = "fulfillment"


class RoleAssignment(Base):
    """Grant of a role to a user.

    One table for all three variants; `assignment_type` says which of the
    scope columns are meaningful:
      direct       → none
      supervision  → program_id, optional supervisory_node_id
      fulfillment  → warehouse_id
    """

    __tablename__ = "role_assignments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("roles.id"), nullable=False, index=True
    )
    assignment_type: Mapped[AssignmentType] = mapped_column(
        SAEnum(AssignmentType), nullable=False
    )

    program_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("programs.id"))
    supervisory_node_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("supervisory_nodes.id")
    )
    warehouse_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("facilities.id"))

    user = relationship("User", back_populates="role_assignments")
    role = relationship("Role", lazy="selectin")
