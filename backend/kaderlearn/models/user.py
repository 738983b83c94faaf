"""
Profile model for Kader Learn.

Accounts live with the hosted auth provider; this table holds the profile
and role keyed by the provider's user id.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import Boolean, String, DateTime, Index, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kaderlearn.core.database import Base, generate_uuid


class UserRole(str, Enum):
    """Roles carried in the bearer token and stored on the profile."""
    PENGGUNA = "pengguna"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


ADMIN_ROLES = (UserRole.ADMIN.value, UserRole.SUPERADMIN.value)


class Profile(Base):
    """
    Learner or administrator profile.
    """
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, index=True, nullable=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    profil_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    role: Mapped[str] = mapped_column(String(20), default=UserRole.PENGGUNA.value, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    # Relationships
    quiz_attempts = relationship("QuizAttempt", back_populates="user", cascade="all, delete-orphan")
    module_progress = relationship("UserModuleProgress", back_populates="user", cascade="all, delete-orphan")
    sub_material_progress = relationship("UserSubMaterialProgress", back_populates="user", cascade="all, delete-orphan")
    poin_progress = relationship("UserPoinProgress", back_populates="user", cascade="all, delete-orphan")
    notes = relationship("UserNote", back_populates="user", cascade="all, delete-orphan")
    admin_logs = relationship("AdminLog", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("role IN ('pengguna', 'admin', 'superadmin')", name="check_role_valid"),
        Index("idx_profile_role_active", "role", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, full_name='{self.full_name}', role='{self.role}')>"

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN.value

    def to_dict(self) -> dict:
        """Convert profile to dictionary representation."""
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "phone": self.phone,
            "address": self.address,
            "profil_url": self.profil_url,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
