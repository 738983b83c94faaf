"""
Admin audit model for Kader Learn.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Boolean, String, DateTime, Text, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kaderlearn.core.database import Base, generate_uuid


class AdminAction(str, Enum):
    """Types of admin actions to log."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ROLE_CHANGE = "role_change"
    RESET_PROGRESS = "reset_progress"


class AdminLog(Base):
    """
    Audit log for admin actions.
    """
    __tablename__ = "admin_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    # Admin who performed the action
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)  # module, sub_materi, quiz, user
    entity_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    details: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # Supports IPv6
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("Profile", back_populates="admin_logs")

    __table_args__ = (
        Index("idx_admin_log_user_action", "user_id", "action"),
        Index("idx_admin_log_entity", "entity_type", "entity_id"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog(id={self.id}, user_id={self.user_id}, action='{self.action}', entity='{self.entity_type}')>"

    @classmethod
    def log_action(
        cls,
        user_id: str,
        action: str,
        entity_type: str,
        entity_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        success: bool = True,
        error_message: Optional[str] = None
    ) -> "AdminLog":
        """Factory method to create admin log entries."""
        return cls(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            error_message=error_message
        )
