"""
Database models for Kader Learn.

This module contains all SQLAlchemy models for the application:
- Profile for learners and administrators
- Content models (module, sub-materi, poin, quiz)
- Progress models and quiz attempts
- Notes and the admin audit log
"""

from kaderlearn.core.database import Base

# Import all models to ensure they're registered with SQLAlchemy
from .user import Profile, UserRole, ADMIN_ROLES
from .content import Module, SubMaterial, PoinDetail, Quiz, QuizQuestion, QuizType
from .progress import (
    QuizAttempt,
    UserModuleProgress,
    UserSubMaterialProgress,
    UserPoinProgress,
    ModuleStatus,
)
from .note import UserNote
from .admin import AdminLog, AdminAction

__all__ = [
    "Base",
    "Profile",
    "UserRole",
    "ADMIN_ROLES",
    "Module",
    "SubMaterial",
    "PoinDetail",
    "Quiz",
    "QuizQuestion",
    "QuizType",
    "QuizAttempt",
    "UserModuleProgress",
    "UserSubMaterialProgress",
    "UserPoinProgress",
    "ModuleStatus",
    "UserNote",
    "AdminLog",
    "AdminAction",
]
