"""
Admin sub-materi router for Kader Learn.

Handles sub-materi CRUD and the poin (reading units) inside each
sub-materi. Order indexes are unique per module.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from kaderlearn.core.database import get_db
from kaderlearn.core.exceptions import ConflictError, NotFoundError
from kaderlearn.core.responses import success_response
from kaderlearn.models import AdminAction, Module, PoinDetail, Profile, SubMaterial
from kaderlearn.routers.admin.audit import apply_changes, record_admin_action
from kaderlearn.routers.auth import get_current_admin_user
from kaderlearn.schemas.admin import PoinCreate, PoinUpdate, SubMaterialCreate, SubMaterialUpdate


router = APIRouter()


def _get_sub_material(db: Session, sub_material_id: str) -> SubMaterial:
    sub_material = db.get(SubMaterial, sub_material_id)
    if sub_material is None:
        raise NotFoundError("Sub-materi not found", code="SUB_MATERI_NOT_FOUND")
    return sub_material


def _get_poin(db: Session, sub_material_id: str, poin_id: str) -> PoinDetail:
    poin = db.query(PoinDetail).filter(
        PoinDetail.id == poin_id,
        PoinDetail.sub_material_id == sub_material_id
    ).first()
    if poin is None:
        raise NotFoundError("Poin not found", code="POIN_NOT_FOUND")
    return poin


def _ensure_order_free(db: Session, module_id: str, order_index: int, exclude_id: Optional[str] = None) -> None:
    query = db.query(SubMaterial).filter(
        SubMaterial.module_id == module_id,
        SubMaterial.order_index == order_index
    )
    if exclude_id:
        query = query.filter(SubMaterial.id != exclude_id)
    if query.first():
        raise ConflictError(
            f"Order index {order_index} is already used in this module",
            code="ORDER_INDEX_TAKEN"
        )


@router.get("")
async def list_sub_materials(module_id: str, db: Session = Depends(get_db)):
    if db.get(Module, module_id) is None:
        raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")

    sub_materials = (
        db.query(SubMaterial)
        .filter(SubMaterial.module_id == module_id)
        .order_by(SubMaterial.order_index)
        .all()
    )
    data = [
        {**sub_material.to_dict(), "poin_count": len(sub_material.poin_details)}
        for sub_material in sub_materials
    ]
    return success_response("SUB_MATERIS_FETCHED", "Sub-materi fetched", data)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_sub_material(
    payload: SubMaterialCreate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    if db.get(Module, payload.module_id) is None:
        raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")

    _ensure_order_free(db, payload.module_id, payload.order_index)

    sub_material = SubMaterial(**payload.model_dump())
    db.add(sub_material)
    db.flush()

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.CREATE.value,
        entity_type="sub_materi",
        entity_id=sub_material.id,
        details={"title": sub_material.title, "module_id": sub_material.module_id}
    )
    db.commit()
    db.refresh(sub_material)

    return success_response(
        "SUB_MATERI_CREATED", "Sub-materi created", sub_material.to_dict(), status.HTTP_201_CREATED
    )


@router.get("/{sub_material_id}")
async def get_sub_material(sub_material_id: str, db: Session = Depends(get_db)):
    sub_material = _get_sub_material(db, sub_material_id)
    data = {
        **sub_material.to_dict(),
        "poin_details": [poin.to_dict() for poin in sub_material.poin_details],
    }
    return success_response("SUB_MATERI_FETCHED", "Sub-materi fetched", data)


@router.put("/{sub_material_id}")
async def update_sub_material(
    sub_material_id: str,
    payload: SubMaterialUpdate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    sub_material = _get_sub_material(db, sub_material_id)
    update_data = payload.model_dump(exclude_unset=True, exclude_none=True)

    if update_data.get("order_index") is not None:
        _ensure_order_free(db, sub_material.module_id, update_data["order_index"], exclude_id=sub_material.id)

    changes = apply_changes(sub_material, update_data)
    if changes:
        record_admin_action(
            db, request, current_admin,
            action=AdminAction.UPDATE.value,
            entity_type="sub_materi",
            entity_id=sub_material.id,
            details={"changes": changes}
        )

    db.commit()
    db.refresh(sub_material)
    return success_response("SUB_MATERI_UPDATED", "Sub-materi updated", sub_material.to_dict())


@router.delete("/{sub_material_id}")
async def delete_sub_material(
    sub_material_id: str,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    sub_material = _get_sub_material(db, sub_material_id)

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.DELETE.value,
        entity_type="sub_materi",
        entity_id=sub_material.id,
        details={"title": sub_material.title, "module_id": sub_material.module_id}
    )
    db.delete(sub_material)
    db.commit()

    return success_response("SUB_MATERI_DELETED", "Sub-materi deleted", {"id": sub_material_id})


# Poin endpoints
@router.post("/{sub_material_id}/poins", status_code=status.HTTP_201_CREATED)
async def create_poin(
    sub_material_id: str,
    payload: PoinCreate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    sub_material = _get_sub_material(db, sub_material_id)

    poin = PoinDetail(sub_material_id=sub_material.id, **payload.model_dump())
    db.add(poin)
    db.flush()

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.CREATE.value,
        entity_type="poin",
        entity_id=poin.id,
        details={"title": poin.title, "sub_material_id": sub_material.id}
    )
    db.commit()
    db.refresh(poin)

    return success_response("POIN_CREATED", "Poin created", poin.to_dict(), status.HTTP_201_CREATED)


@router.put("/{sub_material_id}/poins/{poin_id}")
async def update_poin(
    sub_material_id: str,
    poin_id: str,
    payload: PoinUpdate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    poin = _get_poin(db, sub_material_id, poin_id)

    changes = apply_changes(poin, payload.model_dump(exclude_unset=True, exclude_none=True))
    if changes:
        record_admin_action(
            db, request, current_admin,
            action=AdminAction.UPDATE.value,
            entity_type="poin",
            entity_id=poin.id,
            details={"changes": changes}
        )

    db.commit()
    db.refresh(poin)
    return success_response("POIN_UPDATED", "Poin updated", poin.to_dict())


@router.delete("/{sub_material_id}/poins/{poin_id}")
async def delete_poin(
    sub_material_id: str,
    poin_id: str,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    poin = _get_poin(db, sub_material_id, poin_id)

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.DELETE.value,
        entity_type="poin",
        entity_id=poin.id,
        details={"title": poin.title, "sub_material_id": sub_material_id}
    )
    db.delete(poin)
    db.commit()

    return success_response("POIN_DELETED", "Poin deleted", {"id": poin_id})
