"""
API routers for Kader Learn.

This package contains all API endpoint routers:
- auth: current profile and role dependencies
- modules: learner-facing module catalogue
- quizzes: quiz start/submit and attempt history
- progress: reading progress, completion and unlock checks
- notes: personal notes
- admin: content management, user management and progress monitoring
"""

from fastapi import APIRouter

# Import individual routers
from .auth import router as auth_router
from .modules import router as modules_router
from .quizzes import router as quizzes_router
from .progress import router as progress_router
from .notes import router as notes_router

# Import admin sub-routers
from .admin import admin_router

# Create main API router
api_router = APIRouter()

# Include all routers with their prefixes
api_router.include_router(
    auth_router,
    prefix="/auth",
    tags=["authentication"]
)

api_router.include_router(
    modules_router,
    prefix="/modules",
    tags=["modules"]
)

api_router.include_router(
    quizzes_router,
    prefix="/quizzes",
    tags=["quizzes"]
)

api_router.include_router(
    progress_router,
    prefix="/progress",
    tags=["progress"]
)

api_router.include_router(
    notes_router,
    prefix="/notes",
    tags=["notes"]
)

api_router.include_router(
    admin_router,
    prefix="/admin",
    tags=["admin"]
)

# Export all routers
__all__ = [
    "api_router",
    "auth_router",
    "modules_router",
    "quizzes_router",
    "progress_router",
    "notes_router",
    "admin_router"
]
