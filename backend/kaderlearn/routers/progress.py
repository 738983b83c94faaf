"""
Progress router for Kader Learn.

Handles reading progress, sub-materi completion and unlock checks for the
current learner.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kaderlearn.core.database import get_db
from kaderlearn.core.responses import success_response
from kaderlearn.models import Profile
from kaderlearn.routers.auth import get_current_user
from kaderlearn.services.learner_progress import LearnerProgressService


router = APIRouter()


@router.get("/modules")
async def get_modules_progress(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    All module progress rows for the caller plus overall completion.
    """
    data = LearnerProgressService(db).modules_progress(current_user.id)
    return success_response("PROGRESS_FETCHED", "Modules progress fetched", data)


@router.get("/modules/{module_id}")
async def get_module_progress(
    module_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Module progress with the lock state of every sub-materi. Lock state is
    re-evaluated on each read.
    """
    data = LearnerProgressService(db).module_progress(current_user.id, module_id)
    return success_response("PROGRESS_FETCHED", "Module progress fetched", data)


@router.get("/sub-materis/{sub_material_id}")
async def get_sub_material_progress(
    sub_material_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = LearnerProgressService(db).sub_material_progress(current_user.id, sub_material_id)
    return success_response("PROGRESS_FETCHED", "Sub-materi progress fetched", data)


@router.post("/sub-materis/{sub_material_id}/complete")
async def complete_sub_material(
    sub_material_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Mark a sub-materi completed and unlock the next one.
    """
    data = LearnerProgressService(db).complete_sub_material(current_user.id, sub_material_id)
    return success_response("SUB_MATERI_COMPLETED", "Sub-materi completed", data)


@router.get("/materials/{sub_material_id}/access")
async def check_material_access(
    sub_material_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = LearnerProgressService(db).check_access(current_user.id, sub_material_id)
    return success_response("ACCESS_CHECKED", data["reason"], data)


@router.post("/poins/{poin_id}/complete")
async def complete_poin(
    poin_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Mark a poin read and recompute its sub-materi percentage.
    """
    data = LearnerProgressService(db).complete_poin(current_user.id, poin_id)
    return success_response("POIN_COMPLETED", "Poin completed", data)


@router.post("/poins/{poin_id}/scroll-complete")
async def mark_poin_scroll_complete(
    poin_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = LearnerProgressService(db).mark_scroll_completed(current_user.id, poin_id)
    message = "Poin already marked as scrolled" if data["already_completed"] else "Poin marked as scrolled"
    return success_response("POIN_SCROLL_COMPLETED", message, data)


@router.get("/poins/{poin_id}/scroll-status")
async def get_poin_scroll_status(
    poin_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = LearnerProgressService(db).scroll_status(current_user.id, poin_id)
    return success_response("POIN_SCROLL_STATUS", "Scroll status fetched", data)


@router.get("/quiz/{quiz_id}")
async def get_quiz_progress(
    quiz_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Best score and recent attempts for one quiz.
    """
    data = LearnerProgressService(db).quiz_progress(current_user.id, quiz_id)
    return success_response("PROGRESS_FETCHED", "Quiz progress fetched", data)


@router.get("/stats")
async def get_user_stats(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = LearnerProgressService(db).user_stats(current_user.id)
    return success_response("STATS_FETCHED", "Statistics fetched", data)
