"""
Quizzes router for Kader Learn.

Starting and submitting attempts goes through the quiz engine; the read
endpoints query the store directly.
"""

from collections import OrderedDict
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, selectinload

from kaderlearn.core.database import get_db
from kaderlearn.core.exceptions import NotFoundError
from kaderlearn.core.responses import round_half_up, success_response
from kaderlearn.models import Module, Profile, Quiz, QuizAttempt
from kaderlearn.routers.auth import get_current_user
from kaderlearn.schemas.quiz import QuizStart, QuizSubmit
from kaderlearn.services.quiz_engine import QuizEngine


router = APIRouter()


def _attempt_summary(attempt: QuizAttempt) -> dict:
    data = attempt.to_dict()
    data["score"] = round_half_up(attempt.score, 2)
    if attempt.quiz is not None:
        data["quiz"] = {
            "id": attempt.quiz.id,
            "title": attempt.quiz.title,
            "module_id": attempt.quiz.module_id,
            "module_title": attempt.quiz.module.title if attempt.quiz.module else None,
        }
    return data


@router.post("/start", status_code=status.HTTP_201_CREATED)
async def start_quiz(
    payload: QuizStart,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Start a quiz, or resume the attempt already open for the caller.
    """
    result = QuizEngine(db).start(current_user.id, payload.quiz_id)
    if result.is_existing:
        return success_response("QUIZ_RESUMED", "Existing attempt resumed", asdict(result))
    return success_response("QUIZ_STARTED", "Quiz started", asdict(result), status.HTTP_201_CREATED)


@router.post("/submit")
async def submit_quiz(
    payload: QuizSubmit,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Grade a submission and record it as a completed attempt.
    """
    result = QuizEngine(db).submit(
        current_user.id,
        payload.quiz_id,
        [answer.model_dump() for answer in payload.answers],
    )
    message = "Quiz passed" if result.passed else "Quiz failed"
    return success_response("QUIZ_SUBMITTED", message, asdict(result))


@router.get("/attempts/me")
async def my_attempts(
    quiz_id: Optional[str] = None,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    The caller's completed attempts, most recent first.
    """
    query = (
        db.query(QuizAttempt)
        .options(selectinload(QuizAttempt.quiz).selectinload(Quiz.module))
        .filter(QuizAttempt.user_id == current_user.id, QuizAttempt.completed_at.isnot(None))
    )
    if quiz_id:
        query = query.filter(QuizAttempt.quiz_id == quiz_id)

    attempts = query.order_by(QuizAttempt.completed_at.desc()).all()
    return success_response("ATTEMPTS_FETCHED", "Attempts fetched", [_attempt_summary(a) for a in attempts])


@router.get("/attempts/my")
async def my_attempts_by_module(
    module_id: str = Query(...),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    The caller's completed attempts in one module, grouped by quiz.
    """
    if db.get(Module, module_id) is None:
        raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")

    attempts = (
        db.query(QuizAttempt)
        .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
        .filter(
            Quiz.module_id == module_id,
            QuizAttempt.user_id == current_user.id,
            QuizAttempt.completed_at.isnot(None),
        )
        .order_by(QuizAttempt.completed_at.desc())
        .all()
    )

    grouped = OrderedDict()
    for attempt in attempts:
        entry = grouped.setdefault(attempt.quiz_id, {
            "quiz_id": attempt.quiz_id,
            "quiz_title": attempt.quiz.title,
            "best_score": 0,
            "passed": False,
            "attempts": [],
        })
        entry["best_score"] = max(entry["best_score"], round_half_up(attempt.score, 2))
        entry["passed"] = entry["passed"] or attempt.passed
        entry["attempts"].append(attempt.to_dict(include_answers=False))

    return success_response("ATTEMPTS_FETCHED", "Attempts fetched", list(grouped.values()))


@router.get("/module/{module_id}")
async def quizzes_by_module(
    module_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Published quizzes of a module.
    """
    if db.get(Module, module_id) is None:
        raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")

    quizzes = (
        db.query(Quiz)
        .options(selectinload(Quiz.questions), selectinload(Quiz.sub_material))
        .filter(Quiz.module_id == module_id, Quiz.published.is_(True))
        .order_by(Quiz.created_at.desc())
        .all()
    )
    data = [
        {
            **quiz.to_dict(),
            "question_count": len(quiz.questions),
            "sub_material_title": quiz.sub_material.title if quiz.sub_material else None,
        }
        for quiz in quizzes
    ]
    return success_response("QUIZZES_FETCHED", "Quizzes fetched", data)


@router.get("/{quiz_id}")
async def get_quiz(
    quiz_id: str,
    include_answers: bool = False,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Quiz with its questions. Answer keys are only shown to admins who ask
    for them.
    """
    quiz = db.get(Quiz, quiz_id)
    if quiz is None or (not quiz.published and not current_user.is_admin):
        raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")

    show_answers = include_answers and current_user.is_admin
    data = {
        **quiz.to_dict(),
        "module": {"id": quiz.module.id, "title": quiz.module.title, "slug": quiz.module.slug},
        "questions": [question.to_dict(include_answer=show_answers) for question in quiz.questions],
    }
    return success_response("QUIZ_FETCHED", "Quiz fetched", data)
