"""
Learner-facing progress operations behind the ``/progress`` routes.

Each public method is one unit of work and commits on success.
"""

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from kaderlearn.core.exceptions import NotFoundError
from kaderlearn.core.responses import percent, round_half_up
from kaderlearn.models import (
    Module,
    ModuleStatus,
    PoinDetail,
    Quiz,
    QuizAttempt,
    SubMaterial,
    UserModuleProgress,
    UserPoinProgress,
    UserSubMaterialProgress,
)
from kaderlearn.services.progress_aggregator import ProgressAggregator
from kaderlearn.services.store import upsert
from kaderlearn.services.unlock_engine import UnlockEngine, is_first_in_module, is_unlocked


logger = logging.getLogger(__name__)


class LearnerProgressService:

    def __init__(self, db: Session):
        self.db = db
        self.aggregator = ProgressAggregator(db)
        self.unlock = UnlockEngine(db)

    def _module(self, module_id: str) -> Module:
        module = self.db.get(Module, module_id)
        if module is None:
            raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")
        return module

    def _sub_material(self, sub_material_id: str) -> SubMaterial:
        sub_material = self.db.get(SubMaterial, sub_material_id)
        if sub_material is None:
            raise NotFoundError("Sub-materi not found", code="SUB_MATERI_NOT_FOUND")
        return sub_material

    def _poin(self, poin_id: str) -> PoinDetail:
        poin = self.db.get(PoinDetail, poin_id)
        if poin is None:
            raise NotFoundError("Poin not found", code="POIN_NOT_FOUND")
        return poin

    def _sub_material_progress(self, user_id: str, sub_material_id: str):
        return (
            self.db.query(UserSubMaterialProgress)
            .filter_by(user_id=user_id, sub_material_id=sub_material_id)
            .one_or_none()
        )

    def modules_progress(self, user_id: str) -> dict:
        rows = (
            self.db.query(UserModuleProgress)
            .filter(UserModuleProgress.user_id == user_id)
            .order_by(UserModuleProgress.last_accessed_at.desc())
            .all()
        )
        total_modules = self.db.query(func.count(Module.id)).filter(Module.published.is_(True)).scalar()
        completed = sum(1 for row in rows if row.status == ModuleStatus.COMPLETED.value)

        return {
            "modules": [
                {
                    **row.to_dict(),
                    "module_title": row.module.title,
                    "module_slug": row.module.slug,
                    "completed": row.status == ModuleStatus.COMPLETED.value,
                }
                for row in rows
            ],
            "overall_progress": {
                "total_modules": total_modules,
                "completed_modules": completed,
                "percentage": percent(completed, total_modules),
            },
        }

    def module_progress(self, user_id: str, module_id: str) -> dict:
        """
        Module detail with per sub-materi state. Opening a module the first
        time creates its progress row and unlocks its first sub-materi; every
        read re-evaluates lock state.
        """
        module = self._module(module_id)

        progress = (
            self.db.query(UserModuleProgress)
            .filter_by(user_id=user_id, module_id=module_id)
            .one_or_none()
        )
        if progress is None:
            progress = upsert(
                self.db,
                UserModuleProgress,
                keys={"user_id": user_id, "module_id": module_id},
                update={},
                create={"status": ModuleStatus.NOT_STARTED.value, "progress_percent": 0},
            )
            self.unlock.ensure_first_unlocked(user_id, module_id)

        sub_materials = self.unlock.evaluate_unlock_state(user_id, module_id)
        self.db.commit()

        return {
            "module": {
                "id": module.id,
                "title": module.title,
                "slug": module.slug,
                "description": module.description,
            },
            "progress": progress.to_dict(),
            "sub_materis": sub_materials,
        }

    def sub_material_progress(self, user_id: str, sub_material_id: str) -> dict:
        sub_material = self._sub_material(sub_material_id)
        progress = self._sub_material_progress(user_id, sub_material_id)
        if progress is None:
            progress = upsert(
                self.db,
                UserSubMaterialProgress,
                keys={"user_id": user_id, "sub_material_id": sub_material_id},
                update={},
                create={
                    "is_unlocked": is_first_in_module(sub_material),
                    "is_completed": False,
                    "progress_percent": 0,
                    "current_poin_index": 0,
                },
            )
            self.db.commit()

        completed_poins = {
            row.poin_id
            for row in self.db.query(UserPoinProgress)
            .join(PoinDetail, PoinDetail.id == UserPoinProgress.poin_id)
            .filter(
                PoinDetail.sub_material_id == sub_material_id,
                UserPoinProgress.user_id == user_id,
                UserPoinProgress.is_completed.is_(True),
            )
        }

        return {
            **progress.to_dict(),
            "is_unlocked": is_unlocked(sub_material, progress),
            "poin_details": [
                {
                    "id": poin.id,
                    "title": poin.title,
                    "order_index": poin.order_index,
                    "duration_minutes": poin.duration_minutes,
                    "is_completed": poin.id in completed_poins,
                }
                for poin in sub_material.poin_details
            ],
        }

    def complete_sub_material(self, user_id: str, sub_material_id: str) -> dict:
        """Force a sub-materi complete, then roll up the module and unlock the next one."""
        sub_material = self._sub_material(sub_material_id)
        now = datetime.utcnow()

        progress = upsert(
            self.db,
            UserSubMaterialProgress,
            keys={"user_id": user_id, "sub_material_id": sub_material_id},
            update={
                "is_completed": True,
                "progress_percent": 100,
                "completed_at": now,
                "updated_at": now,
            },
            create={"is_unlocked": True},
        )
        module_progress = self.aggregator.update_module_progress(user_id, sub_material.module_id)
        self.unlock.unlock_next(user_id, sub_material.module_id, sub_material_id)
        self.db.commit()

        logger.info("User %s completed sub-materi %s", user_id, sub_material_id)
        return {
            "sub_materi": progress.to_dict(),
            "module_progress": module_progress.to_dict(),
        }

    def check_access(self, user_id: str, sub_material_id: str) -> dict:
        sub_material = self._sub_material(sub_material_id)
        unlocked = is_unlocked(sub_material, self._sub_material_progress(user_id, sub_material_id))
        return {
            "sub_materi_id": sub_material_id,
            "can_access": unlocked,
            "is_unlocked": unlocked,
            "reason": "Access granted" if unlocked else "Complete previous sub-materi to unlock",
        }

    def complete_poin(self, user_id: str, poin_id: str) -> dict:
        poin = self._poin(poin_id)
        now = datetime.utcnow()

        poin_progress = upsert(
            self.db,
            UserPoinProgress,
            keys={"user_id": user_id, "poin_id": poin_id},
            update={"is_completed": True, "completed_at": now},
        )
        sub_material_progress = self.aggregator.update_sub_material_progress(user_id, poin.sub_material_id)
        self.db.commit()

        return {
            "poin": poin_progress.to_dict(),
            "sub_materi": sub_material_progress.to_dict(),
        }

    def mark_scroll_completed(self, user_id: str, poin_id: str) -> dict:
        """Record that the learner scrolled to the end of a poin. Set once, never cleared."""
        self._poin(poin_id)
        existing = (
            self.db.query(UserPoinProgress)
            .filter_by(user_id=user_id, poin_id=poin_id)
            .one_or_none()
        )
        if existing is not None and existing.scroll_completed:
            return {
                "already_completed": True,
                "scroll_completed_at": existing.scroll_completed_at,
            }

        progress = upsert(
            self.db,
            UserPoinProgress,
            keys={"user_id": user_id, "poin_id": poin_id},
            update={"scroll_completed": True, "scroll_completed_at": datetime.utcnow()},
            create={"is_completed": False},
        )
        self.db.commit()
        logger.info("User %s finished scrolling poin %s", user_id, poin_id)
        return {
            "already_completed": False,
            "scroll_completed_at": progress.scroll_completed_at,
        }

    def scroll_status(self, user_id: str, poin_id: str) -> dict:
        progress = (
            self.db.query(UserPoinProgress)
            .filter_by(user_id=user_id, poin_id=poin_id)
            .one_or_none()
        )
        return {
            "scroll_completed": bool(progress and progress.scroll_completed),
            "scroll_completed_at": progress.scroll_completed_at if progress else None,
        }

    def quiz_progress(self, user_id: str, quiz_id: str) -> dict:
        if self.db.get(Quiz, quiz_id) is None:
            raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")

        attempts = (
            self.db.query(QuizAttempt)
            .filter(
                QuizAttempt.user_id == user_id,
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.completed_at.isnot(None),
            )
            .order_by(QuizAttempt.completed_at.desc())
            .limit(10)
            .all()
        )
        return {
            "quiz_id": quiz_id,
            "attempts_count": len(attempts),
            "best_score": round_half_up(max((a.score for a in attempts), default=0), 2),
            "passed": any(a.passed for a in attempts),
            "last_attempt": attempts[0].to_dict(include_answers=False) if attempts else None,
            "recent_attempts": [a.to_dict(include_answers=False) for a in attempts[:5]],
        }

    def user_stats(self, user_id: str) -> dict:
        total_modules = self.db.query(func.count(Module.id)).filter(Module.published.is_(True)).scalar()
        completed_modules = (
            self.db.query(func.count(UserModuleProgress.id))
            .filter_by(user_id=user_id, status=ModuleStatus.COMPLETED.value)
            .scalar()
        )
        total_materials = (
            self.db.query(func.count(SubMaterial.id)).filter(SubMaterial.published.is_(True)).scalar()
        )
        completed_materials = (
            self.db.query(func.count(UserSubMaterialProgress.id))
            .filter_by(user_id=user_id, is_completed=True)
            .scalar()
        )
        scores = [
            score for (score,) in
            self.db.query(QuizAttempt.score).filter(
                QuizAttempt.user_id == user_id,
                QuizAttempt.completed_at.isnot(None),
            )
        ]
        passed = (
            self.db.query(func.count(QuizAttempt.id))
            .filter(QuizAttempt.user_id == user_id, QuizAttempt.passed.is_(True))
            .scalar()
        )

        return {
            "total_modules": total_modules,
            "completed_modules": completed_modules,
            "module_completion_rate": percent(completed_modules, total_modules),
            "total_materials": total_materials,
            "completed_materials": completed_materials,
            "material_completion_rate": percent(completed_materials, total_materials),
            "total_quiz_attempts": len(scores),
            "passed_quizzes": passed,
            "average_quiz_score": int(round_half_up(sum(scores) / len(scores))) if scores else 0,
        }
