import uuid

from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class SupervisoryNode(Base):
    __tablename__ = "supervisory_nodes"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    facility_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("facilities.id")
    )
    # Tree via parent pointers; nothing at write time prevents a cycle.
    parent_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("supervisory_nodes.id"), index=True
    )

    parent = relationship("SupervisoryNode", remote_side=[id], back_populates="children")
    children = relationship("SupervisoryNode", back_populates="parent")
