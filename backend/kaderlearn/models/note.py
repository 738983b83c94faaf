"""
Personal notes taken by learners while reading.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import Boolean, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kaderlearn.core.database import Base, generate_uuid


class UserNote(Base):
    __tablename__ = "user_notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    module_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("modules.id", ondelete="SET NULL"), nullable=True)
    sub_material_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("sub_materis.id", ondelete="SET NULL"),
        nullable=True
    )

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(100), default="Umum", nullable=False)
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    user = relationship("Profile", back_populates="notes")

    __table_args__ = (
        Index("idx_note_user_updated", "user_id", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<UserNote(id={self.id}, user_id={self.user_id})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "is_pinned": self.is_pinned,
            "module_id": self.module_id,
            "sub_material_id": self.sub_material_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
