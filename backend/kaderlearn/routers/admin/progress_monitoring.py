"""
Admin progress monitoring router for Kader Learn.

Read-only views over learner classification, module completion and
reading progress.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from kaderlearn.core.config import settings
from kaderlearn.core.database import get_db
from kaderlearn.core.responses import success_response
from kaderlearn.services.monitoring import MonitoringService


router = APIRouter()


@router.get("/stats")
async def get_monitoring_stats(db: Session = Depends(get_db)):
    """
    Learner counts per status: active, struggling and inactive.
    """
    data = MonitoringService(db).monitoring_stats()
    return success_response("MONITORING_STATS_FETCHED", "Monitoring stats fetched", data)


@router.get("/users")
async def get_user_progress_list(
    search: str = "",
    status: str = "all",
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db)
):
    data = MonitoringService(db).user_progress_list(search=search, status=status, page=page, limit=limit)
    return success_response("USER_PROGRESS_FETCHED", "User progress fetched", data)


@router.get("/users/{user_id}")
async def get_user_detail_progress(user_id: str, db: Session = Depends(get_db)):
    """
    Per-module quiz history and reading progress of one learner.
    """
    data = MonitoringService(db).user_detail_progress(user_id)
    return success_response("USER_DETAIL_FETCHED", "User detail fetched", data)


@router.get("/module-stats")
async def get_module_completion_stats(db: Session = Depends(get_db)):
    data = MonitoringService(db).module_completion_stats()
    return success_response("MODULE_STATS_FETCHED", "Module stats fetched", data)


@router.get("/stuck-users/{module_id}")
async def get_stuck_users(module_id: str, db: Session = Depends(get_db)):
    """
    Learners with repeated failed attempts in a module, most failures first.
    """
    data = MonitoringService(db).stuck_users_by_module(module_id)
    return success_response("STUCK_USERS_FETCHED", "Stuck users fetched", data)


@router.get("/reading-progress")
async def get_reading_progress(db: Session = Depends(get_db)):
    data = MonitoringService(db).reading_progress_stats()
    return success_response("READING_PROGRESS_FETCHED", "Reading progress fetched", data)
