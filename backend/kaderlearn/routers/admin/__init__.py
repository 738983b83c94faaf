"""
Admin routers for Kader Learn.

This package contains all admin-specific API endpoints:
- modules: module CRUD
- sub_materials: sub-materi and poin CRUD
- quizzes: quiz and question CRUD
- users: user listing, role changes and progress resets
- progress_monitoring: learner classification and progress views
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from kaderlearn.core.config import settings
from kaderlearn.core.database import get_db
from kaderlearn.core.responses import success_response
from kaderlearn.models import AdminLog
from kaderlearn.routers.auth import get_current_admin_user

# Import admin sub-routers
from .modules import router as modules_router
from .sub_materials import router as sub_materials_router
from .quizzes import router as quizzes_router
from .users import router as users_router
from .progress_monitoring import router as progress_monitoring_router


# Create admin router
admin_router = APIRouter(dependencies=[Depends(get_current_admin_user)])

# Include all admin sub-routers
admin_router.include_router(
    modules_router,
    prefix="/modules",
    tags=["admin-modules"]
)

admin_router.include_router(
    sub_materials_router,
    prefix="/sub-materis",
    tags=["admin-sub-materis"]
)

admin_router.include_router(
    quizzes_router,
    prefix="/quizzes",
    tags=["admin-quizzes"]
)

admin_router.include_router(
    users_router,
    prefix="/users",
    tags=["admin-users"]
)

admin_router.include_router(
    progress_monitoring_router,
    prefix="/progress-monitoring",
    tags=["admin-progress-monitoring"]
)


# Admin logs endpoint
@admin_router.get("/logs")
async def get_admin_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Get admin action logs with filtering.
    """
    query = db.query(AdminLog)

    # Apply filters
    if action:
        query = query.filter(AdminLog.action == action)
    if entity_type:
        query = query.filter(AdminLog.entity_type == entity_type)
    if user_id:
        query = query.filter(AdminLog.user_id == user_id)

    total = query.count()
    logs = query.order_by(AdminLog.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    return success_response("ADMIN_LOGS_FETCHED", "Admin logs fetched", {
        "items": [
            {
                "id": log.id,
                "user_id": log.user_id,
                "action": log.action,
                "entity_type": log.entity_type,
                "entity_id": log.entity_id,
                "details": log.details,
                "success": log.success,
                "error_message": log.error_message,
                "ip_address": log.ip_address,
                "created_at": log.created_at.isoformat()
            }
            for log in logs
        ],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": -(-total // limit),
        },
    })


# Export all routers
__all__ = ["admin_router"]
