import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class RightAssignment(Base):
    """Flattened (user, right, facility, program) grant.

    Derived from role assignments and rebuilt from scratch whenever they
    change; never edited directly.
    """

    __tablename__ = "right_assignments"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "right_name", "facility_id", "program_id",
            name="uq_right_assignment",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    right_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    facility_id: Mapped[str | None] = mapped_column(String(36))
    program_id: Mapped[str | None] = mapped_column(String(36))

    user = relationship("User", back_populates="right_assignments")
