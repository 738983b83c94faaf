"""
Bottom-up progress rollups: poin -> sub-materi -> module.
"""

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from kaderlearn.core.exceptions import NotFoundError
from kaderlearn.core.responses import percent
from kaderlearn.models import (
    Module,
    ModuleStatus,
    PoinDetail,
    SubMaterial,
    UserModuleProgress,
    UserPoinProgress,
    UserSubMaterialProgress,
)
from kaderlearn.services.store import upsert


logger = logging.getLogger(__name__)


class ProgressAggregator:
    """
    Recomputes percentages from child rows. Both operations only read the
    current store state, so re-running them is always safe. Flushes, never
    commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def update_sub_material_progress(self, user_id: str, sub_material_id: str) -> UserSubMaterialProgress:
        if self.db.get(SubMaterial, sub_material_id) is None:
            raise NotFoundError("Sub-materi not found", code="SUB_MATERI_NOT_FOUND")

        total = (
            self.db.query(func.count(PoinDetail.id))
            .filter(PoinDetail.sub_material_id == sub_material_id)
            .scalar()
        )
        completed = (
            self.db.query(func.count(UserPoinProgress.id))
            .join(PoinDetail, PoinDetail.id == UserPoinProgress.poin_id)
            .filter(
                PoinDetail.sub_material_id == sub_material_id,
                UserPoinProgress.user_id == user_id,
                UserPoinProgress.is_completed.is_(True),
            )
            .scalar()
        )

        return upsert(
            self.db,
            UserSubMaterialProgress,
            keys={"user_id": user_id, "sub_material_id": sub_material_id},
            update={
                "progress_percent": percent(completed, total),
                "current_poin_index": completed,
                "updated_at": datetime.utcnow(),
            },
            create={"is_unlocked": True, "is_completed": False},
        )

    def update_module_progress(self, user_id: str, module_id: str) -> UserModuleProgress:
        if self.db.get(Module, module_id) is None:
            raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")

        total = (
            self.db.query(func.count(SubMaterial.id))
            .filter(SubMaterial.module_id == module_id)
            .scalar()
        )
        completed = (
            self.db.query(func.count(UserSubMaterialProgress.id))
            .join(SubMaterial, SubMaterial.id == UserSubMaterialProgress.sub_material_id)
            .filter(
                SubMaterial.module_id == module_id,
                UserSubMaterialProgress.user_id == user_id,
                UserSubMaterialProgress.is_completed.is_(True),
            )
            .scalar()
        )

        progress_percent = percent(completed, total)
        status = ModuleStatus.from_percent(progress_percent)
        now = datetime.utcnow()

        progress = upsert(
            self.db,
            UserModuleProgress,
            keys={"user_id": user_id, "module_id": module_id},
            update={
                "status": status.value,
                "progress_percent": progress_percent,
                "completed_at": now if status is ModuleStatus.COMPLETED else None,
                "last_accessed_at": now,
            },
        )
        logger.info(
            "Module %s progress for user %s: %s%% (%s)",
            module_id, user_id, progress_percent, status.value
        )
        return progress
