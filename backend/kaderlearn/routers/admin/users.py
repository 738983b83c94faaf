"""
Admin users router for Kader Learn.

Lists profiles, changes roles (superadmin only) and resets a learner's
progress in one module.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import or_
from sqlalchemy.orm import Session

from kaderlearn.core.config import settings
from kaderlearn.core.database import get_db
from kaderlearn.core.exceptions import NotFoundError, ValidationError
from kaderlearn.core.responses import success_response
from kaderlearn.models import (
    AdminAction,
    Module,
    Profile,
    Quiz,
    QuizAttempt,
    SubMaterial,
    UserModuleProgress,
    UserRole,
    UserSubMaterialProgress,
)
from kaderlearn.routers.admin.audit import record_admin_action
from kaderlearn.routers.auth import get_current_admin_user, get_current_superadmin_user
from kaderlearn.schemas.admin import ProgressReset, RoleUpdate


logger = logging.getLogger(__name__)

router = APIRouter()


def phone_variants(search: str) -> List[str]:
    """
    Local (08...) and international (+62...) spellings of a phone search.
    """
    variants = [search]
    if search.startswith("08"):
        variants.append("+62" + search[1:])
    elif search.startswith("+62"):
        variants.append("0" + search[3:])
    elif search.startswith("62") and not search.startswith("620"):
        variants.extend(["0" + search[2:], "+" + search])
    return variants


def _get_user(db: Session, user_id: str) -> Profile:
    user = db.get(Profile, user_id)
    if user is None:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return user


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    List profiles filtered by role and by name, email or phone.
    """
    query = db.query(Profile)

    if role:
        query = query.filter(Profile.role == role.value)

    if search:
        conditions = [
            Profile.full_name.ilike(f"%{search}%"),
            Profile.email.ilike(f"%{search}%"),
        ]
        conditions.extend(Profile.phone.contains(variant) for variant in phone_variants(search))
        query = query.filter(or_(*conditions))

    total = query.count()
    users = query.order_by(Profile.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    return success_response("USERS_FETCHED", "Users fetched", {
        "items": [user.to_dict() for user in users],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": -(-total // limit),
        },
    })


@router.put("/{user_id}/role")
async def update_user_role(
    user_id: str,
    payload: RoleUpdate,
    request: Request,
    current_admin: Profile = Depends(get_current_superadmin_user),
    db: Session = Depends(get_db)
):
    """
    Change a user's role. Superadmins cannot demote themselves.
    """
    user = _get_user(db, user_id)

    if user.id == current_admin.id and payload.role != UserRole.SUPERADMIN:
        raise ValidationError("You cannot change your own role", code="CANNOT_CHANGE_OWN_ROLE")

    old_role = user.role
    if old_role != payload.role.value:
        user.role = payload.role.value
        record_admin_action(
            db, request, current_admin,
            action=AdminAction.ROLE_CHANGE.value,
            entity_type="user",
            entity_id=user.id,
            details={"old": old_role, "new": payload.role.value}
        )
        logger.info("Role of user %s changed from %s to %s", user.id, old_role, payload.role.value)

    db.commit()
    db.refresh(user)
    return success_response("ROLE_UPDATED", "User role updated", user.to_dict())


@router.post("/{user_id}/reset-progress")
async def reset_user_progress(
    user_id: str,
    payload: ProgressReset,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Delete a user's module progress, sub-materi progress and quiz attempts
    for one module.
    """
    user = _get_user(db, user_id)
    if db.get(Module, payload.module_id) is None:
        raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")

    sub_material_ids = db.query(SubMaterial.id).filter(SubMaterial.module_id == payload.module_id)
    quiz_ids = db.query(Quiz.id).filter(Quiz.module_id == payload.module_id)

    deleted = {
        "module_progress": db.query(UserModuleProgress).filter(
            UserModuleProgress.user_id == user.id,
            UserModuleProgress.module_id == payload.module_id
        ).delete(synchronize_session=False),
        "sub_materi_progress": db.query(UserSubMaterialProgress).filter(
            UserSubMaterialProgress.user_id == user.id,
            UserSubMaterialProgress.sub_material_id.in_(sub_material_ids.scalar_subquery())
        ).delete(synchronize_session=False),
        "quiz_attempts": db.query(QuizAttempt).filter(
            QuizAttempt.user_id == user.id,
            QuizAttempt.quiz_id.in_(quiz_ids.scalar_subquery())
        ).delete(synchronize_session=False),
    }

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.RESET_PROGRESS.value,
        entity_type="user",
        entity_id=user.id,
        details={"module_id": payload.module_id, "deleted": deleted}
    )
    db.commit()
    db.expire_all()

    logger.info("Progress of user %s in module %s reset: %s", user.id, payload.module_id, deleted)
    return success_response("PROGRESS_RESET", "User progress reset", {
        "user_id": user.id,
        "module_id": payload.module_id,
        "deleted": deleted,
    })
