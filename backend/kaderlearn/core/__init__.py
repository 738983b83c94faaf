"""
Core module for the Kader Learn backend.

This module contains core functionality including:
- Configuration management
- Database connections
- Token verification
- Application errors and the response envelope
"""

from .config import settings
from .database import get_db, engine, SessionLocal
from .security import create_access_token, verify_token
from .exceptions import (
    AppError,
    NotFoundError,
    ConflictError,
    ValidationError,
    ForbiddenError,
    UnauthorizedError,
)

__all__ = [
    "settings",
    "get_db",
    "engine",
    "SessionLocal",
    "create_access_token",
    "verify_token",
    "AppError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "ForbiddenError",
    "UnauthorizedError",
]
