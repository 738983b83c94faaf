"""
Quiz scoring engine.

Grades submissions against the stored answer key and, when a sub-materi quiz
is passed, cascades completion into poin, sub-materi and module progress.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kaderlearn.core.exceptions import ConflictError, NotFoundError
from kaderlearn.core.responses import round_half_up, score as compute_score
from kaderlearn.models import (
    PoinDetail,
    Quiz,
    QuizAttempt,
    UserPoinProgress,
    UserSubMaterialProgress,
)
from kaderlearn.services.progress_aggregator import ProgressAggregator
from kaderlearn.services.store import upsert
from kaderlearn.services.unlock_engine import UnlockEngine


logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    attempt_id: str
    quiz_id: str
    total_questions: int
    time_limit_seconds: int
    started_at: datetime
    is_existing: bool


@dataclass
class SubmitResult:
    attempt_id: str
    score: float
    total_questions: int
    correct_answers: int
    passed: bool
    passing_score: int
    answers: List[Dict[str, Any]] = field(default_factory=list)


def grade(quiz: Quiz, answers: List[Dict[str, Any]]) -> tuple:
    """
    Grade submitted answers.

    Unknown question ids count as wrong and carry no correct answer. Only
    the first answer to a question is graded; repeats are dropped. The
    score is taken over every question of the quiz, so unanswered ones
    count as wrong too.

    Returns:
        (detailed answers, correct count, raw score)
    """
    questions = {question.id: question for question in quiz.questions}
    detailed = []
    correct = 0
    seen = set()

    for answer in answers:
        if answer["question_id"] in seen:
            continue
        seen.add(answer["question_id"])

        question = questions.get(answer["question_id"])
        if question is None:
            detailed.append({
                "question_id": answer["question_id"],
                "selected_option_index": answer["selected_option_index"],
                "correct_answer_index": None,
                "is_correct": False,
                "explanation": None,
            })
            continue

        is_correct = question.correct_answer_index == answer["selected_option_index"]
        if is_correct:
            correct += 1
        detailed.append({
            "question_id": question.id,
            "selected_option_index": answer["selected_option_index"],
            "correct_answer_index": question.correct_answer_index,
            "is_correct": is_correct,
            "explanation": question.explanation,
        })

    return detailed, correct, compute_score(correct, len(quiz.questions))


class QuizEngine:
    """Starts and submits quiz attempts."""

    def __init__(self, db: Session):
        self.db = db
        self.aggregator = ProgressAggregator(db)
        self.unlock = UnlockEngine(db)

    def _get_quiz(self, quiz_id: str) -> Quiz:
        quiz = self.db.get(Quiz, quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")
        return quiz

    def _open_attempt(self, user_id: str, quiz_id: str) -> Optional[QuizAttempt]:
        return (
            self.db.query(QuizAttempt)
            .filter(
                QuizAttempt.user_id == user_id,
                QuizAttempt.quiz_id == quiz_id,
                QuizAttempt.completed_at.is_(None),
            )
            .one_or_none()
        )

    def _start_result(self, quiz: Quiz, attempt: QuizAttempt, is_existing: bool) -> StartResult:
        return StartResult(
            attempt_id=attempt.id,
            quiz_id=quiz.id,
            total_questions=attempt.total_questions,
            time_limit_seconds=quiz.time_limit_seconds,
            started_at=attempt.started_at,
            is_existing=is_existing,
        )

    def start(self, user_id: str, quiz_id: str) -> StartResult:
        """
        Open an attempt, or return the one already open for this user.

        Two concurrent starts race on the ``uq_open_quiz_attempt`` partial
        index; the loser rolls back and resumes the winner's attempt.
        """
        quiz = self._get_quiz(quiz_id)
        if not quiz.published:
            raise ConflictError("Quiz is not published", code="QUIZ_NOT_PUBLISHED")

        existing = self._open_attempt(user_id, quiz_id)
        if existing is not None:
            return self._start_result(quiz, existing, is_existing=True)

        attempt = QuizAttempt(
            quiz_id=quiz_id,
            user_id=user_id,
            total_questions=len(quiz.questions),
            started_at=datetime.utcnow(),
        )
        try:
            self.db.add(attempt)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self._open_attempt(user_id, quiz_id)
            if existing is None:
                raise
            logger.info("Concurrent start for user %s quiz %s resolved to %s", user_id, quiz_id, existing.id)
            return self._start_result(quiz, existing, is_existing=True)

        self.db.refresh(attempt)
        logger.info("User %s started quiz %s (attempt %s)", user_id, quiz_id, attempt.id)
        return self._start_result(quiz, attempt, is_existing=False)

    def submit(self, user_id: str, quiz_id: str, answers: List[Dict[str, Any]]) -> SubmitResult:
        """
        Grade and record a completed attempt.

        A new completed attempt row is always inserted; an attempt opened
        by ``start`` stays open.
        """
        quiz = self._get_quiz(quiz_id)
        detailed, correct, raw_score = grade(quiz, answers)
        passed = raw_score >= quiz.passing_score
        now = datetime.utcnow()

        attempt = QuizAttempt(
            quiz_id=quiz.id,
            user_id=user_id,
            score=raw_score,
            total_questions=len(quiz.questions),
            correct_answers=correct,
            passed=passed,
            answers=detailed,
            started_at=now,
            completed_at=now,
        )
        self.db.add(attempt)
        self.db.commit()
        self.db.refresh(attempt)
        logger.info(
            "User %s submitted quiz %s: %s/%s correct, passed=%s",
            user_id, quiz.id, correct, len(quiz.questions), passed
        )

        if passed and quiz.sub_material_id:
            self._cascade_completion(user_id, quiz)

        return SubmitResult(
            attempt_id=attempt.id,
            score=round_half_up(raw_score, 2),
            total_questions=len(quiz.questions),
            correct_answers=correct,
            passed=passed,
            passing_score=quiz.passing_score,
            answers=detailed,
        )

    def _cascade_completion(self, user_id: str, quiz: Quiz) -> bool:
        """
        Mark the quiz's sub-materi read and completed, then roll up the module
        and unlock the next sub-materi, all in one savepoint. A failure rolls
        the whole cascade back and leaves the recorded attempt untouched.
        """
        sub_material_id = quiz.sub_material_id
        try:
            with self.db.begin_nested():
                now = datetime.utcnow()
                poin_ids = [
                    poin_id for (poin_id,) in
                    self.db.query(PoinDetail.id).filter(PoinDetail.sub_material_id == sub_material_id)
                ]
                for poin_id in poin_ids:
                    upsert(
                        self.db,
                        UserPoinProgress,
                        keys={"user_id": user_id, "poin_id": poin_id},
                        update={"is_completed": True, "completed_at": now},
                    )

                upsert(
                    self.db,
                    UserSubMaterialProgress,
                    keys={"user_id": user_id, "sub_material_id": sub_material_id},
                    update={
                        "is_completed": True,
                        "progress_percent": 100,
                        "current_poin_index": len(poin_ids),
                        "completed_at": now,
                        "updated_at": now,
                    },
                    create={"is_unlocked": True},
                )
                self.aggregator.update_module_progress(user_id, quiz.module_id)
                self.unlock.unlock_next(user_id, quiz.module_id, sub_material_id)
            self.db.commit()
        except Exception:
            logger.exception(
                "Progress cascade failed for user %s quiz %s sub-materi %s",
                user_id, quiz.id, sub_material_id
            )
            self.db.rollback()
            return False

        logger.info("Cascaded completion of sub-materi %s for user %s", sub_material_id, user_id)
        return True
