"""
Admin progress monitoring.

Read-only views over learners (role ``pengguna``), their completed quiz
attempts and reading progress. Filtering, sorting and pagination of the
user list happen in memory after every learner has been classified.
"""

import logging
import math
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from kaderlearn.core.exceptions import NotFoundError, ValidationError
from kaderlearn.core.responses import percent, round_half_up
from kaderlearn.models import (
    Module,
    PoinDetail,
    Profile,
    Quiz,
    QuizAttempt,
    SubMaterial,
    UserPoinProgress,
    UserRole,
)
from kaderlearn.services.classification import (
    STATUS_ORDER,
    STRUGGLING_FAILURE_THRESHOLD,
    AttemptView,
    UserStatus,
    classify,
)


logger = logging.getLogger(__name__)

STATUS_FILTERS = ("all",) + tuple(status.value for status in UserStatus)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class MonitoringService:
    """Builds the admin monitoring views."""

    def __init__(self, db: Session):
        self.db = db

    # Loading helpers

    def _learners(self, search: str = "") -> List[Profile]:
        query = self.db.query(Profile).filter(Profile.role == UserRole.PENGGUNA.value)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Profile.full_name.ilike(pattern), Profile.email.ilike(pattern)))
        return query.order_by(Profile.created_at.desc()).all()

    def _published_modules(self) -> List[Module]:
        return (
            self.db.query(Module)
            .options(
                selectinload(Module.quizzes).selectinload(Quiz.sub_material),
                selectinload(Module.sub_materials).selectinload(SubMaterial.poin_details),
            )
            .filter(Module.published.is_(True))
            .order_by(Module.created_at)
            .all()
        )

    def _completed_attempts(self, user_ids: Optional[List[str]] = None) -> Dict[str, List[QuizAttempt]]:
        """Completed attempts per user, most recent first."""
        query = (
            self.db.query(QuizAttempt)
            .options(selectinload(QuizAttempt.quiz))
            .filter(QuizAttempt.completed_at.isnot(None))
        )
        if user_ids is not None:
            query = query.filter(QuizAttempt.user_id.in_(user_ids))

        grouped: Dict[str, List[QuizAttempt]] = defaultdict(list)
        for attempt in query.order_by(QuizAttempt.completed_at.desc()).all():
            grouped[attempt.user_id].append(attempt)
        return grouped

    @staticmethod
    def _views(attempts: List[QuizAttempt]) -> List[AttemptView]:
        return [
            AttemptView(
                quiz_id=attempt.quiz_id,
                module_id=attempt.quiz.module_id if attempt.quiz else None,
                score=float(attempt.score),
                passed=attempt.passed,
                completed_at=attempt.completed_at,
            )
            for attempt in attempts
        ]

    @staticmethod
    def _quiz_totals(attempts: List[QuizAttempt]) -> dict:
        unique = {attempt.quiz_id for attempt in attempts}
        passed = {attempt.quiz_id for attempt in attempts if attempt.passed}
        average = (
            sum(float(attempt.score) for attempt in attempts) / len(attempts)
            if attempts else 0
        )
        return {
            "total_quiz_attempts": len(attempts),
            "unique_quizzes_attempted": len(unique),
            "total_quiz_passed": len(passed),
            "total_quiz_failed": len(unique) - len(passed),
            "pass_rate": percent(len(passed), len(unique)),
            "average_quiz_score": int(round_half_up(average)),
            "last_activity": _iso(attempts[0].completed_at) if attempts else None,
        }

    @staticmethod
    def _module_quiz_state(module: Module, attempts: List[QuizAttempt]) -> dict:
        quiz_ids = {quiz.id for quiz in module.quizzes}
        module_attempts = [attempt for attempt in attempts if attempt.quiz_id in quiz_ids]
        answered = {attempt.quiz_id for attempt in module_attempts}
        passed = {attempt.quiz_id for attempt in module_attempts if attempt.passed}

        total = len(quiz_ids)
        if total and len(answered) == total:
            status = "completed"
        elif answered:
            status = "in-progress"
        else:
            status = "not-started"

        return {
            "attempts": module_attempts,
            "answered": len(answered),
            "passed": len(passed),
            "total": total,
            "status": status,
        }

    # Views

    def monitoring_stats(self) -> dict:
        learners = self._learners()
        attempts = self._completed_attempts()

        counts = {status: 0 for status in UserStatus}
        for learner in learners:
            counts[classify(self._views(attempts.get(learner.id, [])))] += 1

        result = {
            "total_users": len(learners),
            "active_users": counts[UserStatus.ACTIVE],
            "struggling_users": counts[UserStatus.STRUGGLING],
            "inactive_users": counts[UserStatus.INACTIVE],
        }
        logger.info("Monitoring stats: %s", result)
        return result

    def module_completion_stats(self) -> List[dict]:
        modules = self._published_modules()
        learner_ids = {learner.id for learner in self._learners()}
        attempts = self._completed_attempts()

        stats = []
        for module in modules:
            started = completed = stuck = 0
            for user_id in learner_ids:
                state = self._module_quiz_state(module, attempts.get(user_id, []))
                if not state["attempts"]:
                    continue
                started += 1
                if state["total"] and state["answered"] == state["total"]:
                    completed += 1
                failures = sum(1 for attempt in state["attempts"] if not attempt.passed)
                if failures >= STRUGGLING_FAILURE_THRESHOLD:
                    stuck += 1

            stats.append({
                "module_id": module.id,
                "module_title": module.title,
                "total_started": started,
                "total_completions": completed,
                "total_stuck": stuck,
                "completion_rate": percent(completed, started),
            })

        logger.info("Module completion stats computed for %s modules", len(stats))
        return stats

    def stuck_users_by_module(self, module_id: str) -> List[dict]:
        module = self.db.get(Module, module_id)
        if module is None:
            raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")

        learners = {learner.id: learner for learner in self._learners()}
        attempts = self._completed_attempts(list(learners))

        stuck = []
        for user_id, learner in learners.items():
            state = self._module_quiz_state(module, attempts.get(user_id, []))
            failures = sum(1 for attempt in state["attempts"] if not attempt.passed)
            if failures < STRUGGLING_FAILURE_THRESHOLD:
                continue
            stuck.append({
                "user_id": learner.id,
                "user_name": learner.full_name,
                "user_email": learner.email or "",
                "failure_count": failures,
                "last_attempt": _iso(state["attempts"][0].completed_at),
            })

        stuck.sort(key=lambda item: item["failure_count"], reverse=True)
        logger.info("Module %s has %s stuck users", module_id, len(stuck))
        return stuck

    def user_progress_list(
        self,
        search: str = "",
        status: str = "all",
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        if status not in STATUS_FILTERS:
            raise ValidationError(
                f"status must be one of {', '.join(STATUS_FILTERS)}",
                code="INVALID_STATUS",
            )

        learners = self._learners(search)
        modules = self._published_modules()
        attempts = self._completed_attempts([learner.id for learner in learners])

        rows = []
        for learner in learners:
            user_attempts = attempts.get(learner.id, [])
            states = [(module, self._module_quiz_state(module, user_attempts)) for module in modules]
            completed = sum(1 for _, state in states if state["status"] == "completed")
            in_progress = sum(1 for _, state in states if state["status"] == "in-progress")

            rows.append({
                "user_id": learner.id,
                "user_name": learner.full_name,
                "user_email": learner.email or "",
                "user_profil_url": learner.profil_url,
                "total_modules": len(modules),
                "completed_modules": completed,
                "in_progress_modules": in_progress,
                "not_started_modules": len(modules) - completed - in_progress,
                **self._quiz_totals(user_attempts),
                "module_quiz_summary": [
                    {
                        "module_id": module.id,
                        "module_title": module.title,
                        "quizzes_passed": state["passed"],
                        "total_quizzes": state["total"],
                    }
                    for module, state in states
                ],
                "status": classify(self._views(user_attempts)).value,
            })

        if status != "all":
            rows = [row for row in rows if row["status"] == status]
        rows.sort(key=lambda row: STATUS_ORDER[UserStatus(row["status"])])

        total = len(rows)
        start = (page - 1) * limit
        return {
            "items": rows[start:start + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if limit else 0,
            },
        }

    def _reading_by_sub_material(self, user_id: str) -> Dict[str, dict]:
        rows = (
            self.db.query(UserPoinProgress, PoinDetail.sub_material_id)
            .join(PoinDetail, PoinDetail.id == UserPoinProgress.poin_id)
            .filter(UserPoinProgress.user_id == user_id)
            .all()
        )
        reading: Dict[str, dict] = defaultdict(lambda: {"read_poins": 0, "scroll_completed_poins": 0})
        for progress, sub_material_id in rows:
            if progress.is_completed:
                reading[sub_material_id]["read_poins"] += 1
            if progress.scroll_completed:
                reading[sub_material_id]["scroll_completed_poins"] += 1
        return reading

    @staticmethod
    def _answer_detail(attempt: QuizAttempt) -> List[dict]:
        questions = {question.id: question for question in attempt.quiz.questions} if attempt.quiz else {}
        detail = []
        for answer in attempt.answers or []:
            question = questions.get(answer.get("question_id"))
            if question is None:
                detail.append({
                    "question_id": answer.get("question_id"),
                    "question_text": None,
                    "user_answer": None,
                    "correct_answer": None,
                    "is_correct": False,
                })
                continue

            options = question.options or []
            selected = answer.get("selected_option_index")
            detail.append({
                "question_id": question.id,
                "question_text": question.question_text,
                "user_answer": options[selected] if isinstance(selected, int) and 0 <= selected < len(options) else None,
                "correct_answer": (
                    options[question.correct_answer_index]
                    if 0 <= question.correct_answer_index < len(options) else None
                ),
                "is_correct": bool(answer.get("is_correct")),
            })
        return detail

    def user_detail_progress(self, user_id: str) -> dict:
        learner = self.db.get(Profile, user_id)
        if learner is None:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        modules = self._published_modules()
        user_attempts = self._completed_attempts([user_id]).get(user_id, [])
        reading = self._reading_by_sub_material(user_id)

        modules_progress = []
        for module in modules:
            state = self._module_quiz_state(module, user_attempts)

            sub_materials = []
            for sub_material in module.sub_materials:
                total_poins = len(sub_material.poin_details)
                counts = reading.get(sub_material.id, {"read_poins": 0, "scroll_completed_poins": 0})
                sub_materials.append({
                    "sub_material_id": sub_material.id,
                    "title": sub_material.title,
                    "total_poins": total_poins,
                    "read_poins": counts["read_poins"],
                    "scroll_completed_poins": counts["scroll_completed_poins"],
                    "reading_percentage": percent(counts["scroll_completed_poins"], total_poins),
                })
            reading_by_id = {item["sub_material_id"]: item for item in sub_materials}

            quiz_attempts = []
            for quiz in module.quizzes:
                reading_state = reading_by_id.get(quiz.sub_material_id) if quiz.sub_material_id else None
                reading_fields = {
                    "reading_percentage": reading_state["reading_percentage"] if reading_state else 0,
                    "reading_completed": bool(
                        reading_state
                        and reading_state["total_poins"]
                        and reading_state["scroll_completed_poins"] == reading_state["total_poins"]
                    ),
                }
                base = {
                    "quiz_id": quiz.id,
                    "quiz_title": quiz.title or "Untitled Quiz",
                    "sub_material_title": quiz.sub_material.title if quiz.sub_material else None,
                }

                attempts_for_quiz = [attempt for attempt in state["attempts"] if attempt.quiz_id == quiz.id]
                if not attempts_for_quiz:
                    quiz_attempts.append({
                        **base,
                        **reading_fields,
                        "is_attempted": False,
                        "score": 0,
                        "passed": False,
                        "attempted_at": None,
                        "total_questions": 0,
                        "correct_answers": 0,
                        "answers": [],
                    })
                    continue

                for attempt in attempts_for_quiz:
                    quiz_attempts.append({
                        **base,
                        **reading_fields,
                        "is_attempted": True,
                        "attempt_id": attempt.id,
                        "score": round_half_up(attempt.score, 2),
                        "passed": attempt.passed,
                        "attempted_at": _iso(attempt.completed_at),
                        "total_questions": attempt.total_questions,
                        "correct_answers": attempt.correct_answers,
                        "answers": self._answer_detail(attempt),
                    })

            modules_progress.append({
                "module_id": module.id,
                "module_title": module.title,
                "status": state["status"],
                "overall_progress": percent(state["answered"], state["total"]),
                "quizzes_passed": state["passed"],
                "total_quizzes": state["total"],
                "total_materials": len(module.sub_materials),
                "last_accessed": _iso(state["attempts"][0].completed_at) if state["attempts"] else None,
                "sub_materials": sub_materials,
                "quiz_attempts": quiz_attempts,
            })

        completed = sum(1 for item in modules_progress if item["status"] == "completed")
        in_progress = sum(1 for item in modules_progress if item["status"] == "in-progress")

        return {
            "user_id": learner.id,
            "user_name": learner.full_name,
            "user_email": learner.email or "",
            "user_profil_url": learner.profil_url,
            "status": classify(self._views(user_attempts)).value,
            "total_modules": len(modules_progress),
            "completed_modules": completed,
            "in_progress_modules": in_progress,
            "not_started_modules": len(modules_progress) - completed - in_progress,
            **self._quiz_totals(user_attempts),
            "modules_progress": modules_progress,
        }

    def reading_progress_stats(self) -> List[dict]:
        """Per learner and module scroll-reading statistics; only modules with some reading are listed."""
        modules = [
            module for module in self._published_modules()
            if any(sub_material.poin_details for sub_material in module.sub_materials)
        ]

        records = []
        for learner in self._learners():
            reading = self._reading_by_sub_material(learner.id)
            if not reading:
                continue

            for module in modules:
                sub_materials = []
                for sub_material in module.sub_materials:
                    total = len(sub_material.poin_details)
                    counts = reading.get(sub_material.id, {"read_poins": 0, "scroll_completed_poins": 0})
                    sub_materials.append({
                        "sub_material_id": sub_material.id,
                        "sub_material_title": sub_material.title,
                        "total_poins": total,
                        "read_poins": counts["read_poins"],
                        "scroll_completed_poins": counts["scroll_completed_poins"],
                        "read_percentage": percent(counts["scroll_completed_poins"], total),
                    })

                scrolled = sum(item["scroll_completed_poins"] for item in sub_materials)
                if not scrolled:
                    continue
                total_poins = sum(item["total_poins"] for item in sub_materials)
                records.append({
                    "user_id": learner.id,
                    "user_name": learner.full_name,
                    "user_email": learner.email or "",
                    "module_id": module.id,
                    "module_title": module.title,
                    "sub_materials": sub_materials,
                    "total_poins": total_poins,
                    "read_poins": sum(item["read_poins"] for item in sub_materials),
                    "scroll_completed_poins": scrolled,
                    "read_percentage": percent(scrolled, total_poins),
                })

        logger.info("Reading progress computed: %s records", len(records))
        return records
