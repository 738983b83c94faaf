"""
Admin modules router for Kader Learn.

CRUD for modules. Every mutation is recorded in the admin audit log.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from kaderlearn.core.config import settings
from kaderlearn.core.database import get_db
from kaderlearn.core.exceptions import ConflictError, NotFoundError
from kaderlearn.core.responses import success_response
from kaderlearn.models import AdminAction, Module, Profile, Quiz, SubMaterial
from kaderlearn.routers.admin.audit import apply_changes, record_admin_action
from kaderlearn.routers.auth import get_current_admin_user
from kaderlearn.schemas.admin import ModuleCreate, ModuleUpdate


router = APIRouter()


def _get_module(db: Session, module_id: str) -> Module:
    module = db.get(Module, module_id)
    if module is None:
        raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")
    return module


def _ensure_slug_free(db: Session, slug: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(Module).filter(Module.slug == slug)
    if exclude_id:
        query = query.filter(Module.id != exclude_id)
    if query.first():
        raise ConflictError("Module with this slug already exists", code="SLUG_TAKEN")


@router.get("")
async def list_modules(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    published: Optional[bool] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    List all modules, drafts included, with content counts.
    """
    query = db.query(Module)

    if published is not None:
        query = query.filter(Module.published.is_(published))

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Module.title.ilike(search_term),
                Module.slug.ilike(search_term)
            )
        )

    total = query.count()
    modules = query.order_by(Module.created_at.desc()).offset((page - 1) * limit).limit(limit).all()

    module_ids = [module.id for module in modules]
    sub_counts = dict(
        db.query(SubMaterial.module_id, func.count(SubMaterial.id))
        .filter(SubMaterial.module_id.in_(module_ids))
        .group_by(SubMaterial.module_id)
        .all()
    )
    quiz_counts = dict(
        db.query(Quiz.module_id, func.count(Quiz.id))
        .filter(Quiz.module_id.in_(module_ids))
        .group_by(Quiz.module_id)
        .all()
    )

    items = [
        {
            **module.to_dict(),
            "sub_materi_count": sub_counts.get(module.id, 0),
            "quiz_count": quiz_counts.get(module.id, 0),
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


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_module(
    payload: ModuleCreate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    _ensure_slug_free(db, payload.slug)

    module = Module(**payload.model_dump(), created_by=current_admin.id)
    db.add(module)
    db.flush()

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.CREATE.value,
        entity_type="module",
        entity_id=module.id,
        details={"title": module.title, "slug": module.slug}
    )
    db.commit()
    db.refresh(module)

    return success_response("MODULE_CREATED", "Module created", module.to_dict(), status.HTTP_201_CREATED)


@router.get("/{module_id}")
async def get_module(module_id: str, db: Session = Depends(get_db)):
    module = _get_module(db, module_id)
    data = {
        **module.to_dict(),
        "sub_materis": [sub_material.to_dict() for sub_material in module.sub_materials],
        "quizzes": [quiz.to_dict() for quiz in module.quizzes],
    }
    return success_response("MODULE_FETCHED", "Module fetched", data)


@router.put("/{module_id}")
async def update_module(
    module_id: str,
    payload: ModuleUpdate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    module = _get_module(db, module_id)
    update_data = payload.model_dump(exclude_unset=True, exclude_none=True)

    if update_data.get("slug"):
        _ensure_slug_free(db, update_data["slug"], exclude_id=module.id)

    changes = apply_changes(module, update_data)
    if changes:
        record_admin_action(
            db, request, current_admin,
            action=AdminAction.UPDATE.value,
            entity_type="module",
            entity_id=module.id,
            details={"changes": changes}
        )

    db.commit()
    db.refresh(module)
    return success_response("MODULE_UPDATED", "Module updated", module.to_dict())


@router.delete("/{module_id}")
async def delete_module(
    module_id: str,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Delete a module together with its sub-materi, quizzes and progress rows.
    """
    module = _get_module(db, module_id)

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.DELETE.value,
        entity_type="module",
        entity_id=module.id,
        details={"title": module.title, "slug": module.slug}
    )
    db.delete(module)
    db.commit()

    return success_response("MODULE_DELETED", "Module deleted", {"id": module_id})
