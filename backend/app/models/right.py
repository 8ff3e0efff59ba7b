import enum
import uuid

from sqlalchemy import Column, Enum as SAEnum, ForeignKey, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class RightType(str, enum.Enum):
    GENERAL_ADMIN = "GENERAL_ADMIN"
    SUPERVISION = "SUPERVISION"
    ORDER_FULFILLMENT = "ORDER_FULFILLMENT"
    REPORTING = "REPORTING"


right_attachments = Table(
    "right_attachments",
    Base.metadata,
    Column(
        "right_id",
        String(36),
        ForeignKey("rights.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "attachment_id",
        String(36),
        ForeignKey("rights.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Right(Base):
    __tablename__ = "rights"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Case-sensitive identity
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    type: Mapped[RightType] = mapped_column(SAEnum(RightType), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    # Rights implied by holding this one (same type only)
    attachments = relationship(
        "Right",
        secondary=right_attachments,
        primaryjoin=lambda: Right.id == right_attachments.c.right_id,
        secondaryjoin=lambda: Right.id == right_attachments.c.attachment_id,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Right {self.name} ({self.type.value})>"
