"""
Modules router for Kader Learn.

Learner-facing catalogue of published modules.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from kaderlearn.core.config import settings
from kaderlearn.core.database import get_db
from kaderlearn.core.exceptions import NotFoundError
from kaderlearn.core.responses import success_response
from kaderlearn.models import Module, Profile, SubMaterial, UserModuleProgress
from kaderlearn.routers.auth import get_current_user


router = APIRouter()


@router.get("")
async def list_modules(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    category: Optional[str] = None,
    search: Optional[str] = None,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List published modules with the caller's progress.
    """
    query = db.query(Module).filter(Module.published.is_(True))

    if category:
        query = query.filter(Module.category == category)

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Module.title.ilike(search_term),
                Module.description.ilike(search_term)
            )
        )

    total = query.count()
    modules = (
        query.options(selectinload(Module.sub_materials), selectinload(Module.quizzes))
        .order_by(Module.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    progress = {
        row.module_id: row.to_dict()
        for row in db.query(UserModuleProgress).filter(
            UserModuleProgress.user_id == current_user.id,
            UserModuleProgress.module_id.in_([module.id for module in modules])
        )
    }

    items = [
        {
            **module.to_dict(),
            "sub_materi_count": len(module.sub_materials),
            "quiz_count": len(module.quizzes),
            "user_progress": progress.get(module.id),
        }
        for module in modules
    ]

    return success_response("MODULES_FETCHED", "Modules fetched", {
        "items": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": -(-total // limit),
        },
    })


@router.get("/{slug}")
async def get_module(
    slug: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Module detail with its sub-materi, poin and quizzes.
    """
    module = (
        db.query(Module)
        .options(
            selectinload(Module.sub_materials).selectinload(SubMaterial.poin_details),
            selectinload(Module.quizzes),
        )
        .filter(Module.slug == slug)
        .first()
    )
    if module is None or (not module.published and not current_user.is_admin):
        raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")

    progress = db.query(UserModuleProgress).filter_by(
        user_id=current_user.id, module_id=module.id
    ).one_or_none()

    data = {
        **module.to_dict(),
        "sub_materis": [
            {
                **sub_material.to_dict(),
                "poin_details": [poin.to_dict() for poin in sub_material.poin_details],
            }
            for sub_material in module.sub_materials
            if sub_material.published or current_user.is_admin
        ],
        "quizzes": [
            quiz.to_dict() for quiz in module.quizzes
            if quiz.published or current_user.is_admin
        ],
        "user_progress": progress.to_dict() if progress else None,
    }
    return success_response("MODULE_FETCHED", "Module fetched", data)
