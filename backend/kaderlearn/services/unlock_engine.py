"""
Sequential unlocking of sub-materi within a module.

A sub-materi becomes available once the one before it is completed. The
first sub-materi of a module is always reported unlocked, whatever is stored.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from kaderlearn.core.exceptions import NotFoundError
from kaderlearn.models import Module, SubMaterial, UserSubMaterialProgress
from kaderlearn.services.store import upsert


logger = logging.getLogger(__name__)


def is_first_in_module(sub_material: SubMaterial) -> bool:
    """True for the lowest order_index of the sub-materi's module."""
    return sub_material.order_index == min(
        (sibling.order_index for sibling in sub_material.module.sub_materials),
        default=sub_material.order_index,
    )


def is_unlocked(sub_material: SubMaterial, progress: Optional[UserSubMaterialProgress]) -> bool:
    """Read-time unlock rule."""
    if is_first_in_module(sub_material):
        return True
    return bool(progress and progress.is_unlocked)


class UnlockEngine:
    """Computes and persists lock state. Flushes, never commits."""

    def __init__(self, db: Session):
        self.db = db

    def _progress(self, user_id: str, sub_material_id: str) -> Optional[UserSubMaterialProgress]:
        return (
            self.db.query(UserSubMaterialProgress)
            .filter_by(user_id=user_id, sub_material_id=sub_material_id)
            .one_or_none()
        )

    def _unlock(self, user_id: str, sub_material_id: str) -> UserSubMaterialProgress:
        return upsert(
            self.db,
            UserSubMaterialProgress,
            keys={"user_id": user_id, "sub_material_id": sub_material_id},
            update={"is_unlocked": True, "updated_at": datetime.utcnow()},
            create={"is_completed": False, "progress_percent": 0, "current_poin_index": 0},
        )

    def _ordered_sub_materials(self, module_id: str) -> List[SubMaterial]:
        if self.db.get(Module, module_id) is None:
            raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")
        return (
            self.db.query(SubMaterial)
            .filter(SubMaterial.module_id == module_id)
            .order_by(SubMaterial.order_index)
            .all()
        )

    def evaluate_unlock_state(self, user_id: str, module_id: str) -> List[dict]:
        """
        Walk adjacent sub-materi pairs, unlocking the next one after a
        completed one and re-locking it otherwise. A completed next
        sub-materi is never re-locked.

        Returns the module's sub-materi in order with their effective state.
        """
        sub_materials = self._ordered_sub_materials(module_id)

        for current, following in zip(sub_materials, sub_materials[1:]):
            current_progress = self._progress(user_id, current.id)
            if current_progress and current_progress.is_completed:
                self._unlock(user_id, following.id)
                continue

            next_progress = self._progress(user_id, following.id)
            if next_progress and not next_progress.is_completed and next_progress.is_unlocked:
                next_progress.is_unlocked = False
                logger.info(
                    "Locked sub-materi %s for user %s: %s is not completed",
                    following.id, user_id, current.id
                )
        self.db.flush()

        state = []
        for sub_material in sub_materials:
            progress = self._progress(user_id, sub_material.id)
            state.append({
                "id": sub_material.id,
                "title": sub_material.title,
                "order_index": sub_material.order_index,
                "is_unlocked": is_unlocked(sub_material, progress),
                "is_completed": bool(progress and progress.is_completed),
                "progress_percent": progress.progress_percent if progress else 0,
                "current_poin_index": progress.current_poin_index if progress else 0,
                "total_poins": len(sub_material.poin_details),
            })
        return state

    def unlock_next(self, user_id: str, module_id: str, completed_sub_material_id: str) -> Optional[UserSubMaterialProgress]:
        """Unlock the sub-materi right after the completed one; no-op for the last."""
        completed = self.db.get(SubMaterial, completed_sub_material_id)
        if completed is None:
            raise NotFoundError("Sub-materi not found", code="SUB_MATERI_NOT_FOUND")

        following = (
            self.db.query(SubMaterial)
            .filter(
                SubMaterial.module_id == module_id,
                SubMaterial.order_index > completed.order_index,
            )
            .order_by(SubMaterial.order_index)
            .first()
        )
        if following is None:
            return None

        logger.info("Unlocked sub-materi %s for user %s", following.id, user_id)
        return self._unlock(user_id, following.id)

    def ensure_first_unlocked(self, user_id: str, module_id: str) -> Optional[UserSubMaterialProgress]:
        """Persist the unlock of a module's first sub-materi."""
        sub_materials = self._ordered_sub_materials(module_id)
        if not sub_materials:
            return None
        return self._unlock(user_id, sub_materials[0].id)
