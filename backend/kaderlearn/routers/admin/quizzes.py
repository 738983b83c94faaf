"""
Admin quizzes router for Kader Learn.

Handles quiz CRUD and question management. A quiz tied to a sub-materi
must belong to the same module.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from kaderlearn.core.database import get_db
from kaderlearn.core.exceptions import NotFoundError, ValidationError
from kaderlearn.core.responses import success_response
from kaderlearn.models import AdminAction, Module, Profile, Quiz, QuizQuestion, SubMaterial
from kaderlearn.routers.admin.audit import apply_changes, record_admin_action
from kaderlearn.routers.auth import get_current_admin_user
from kaderlearn.schemas.admin import QuestionCreate, QuestionUpdate, QuizCreate, QuizUpdate


router = APIRouter()

NULLABLE_QUIZ_FIELDS = {"sub_material_id", "title", "description"}


def _get_quiz(db: Session, quiz_id: str) -> Quiz:
    quiz = db.get(Quiz, quiz_id)
    if quiz is None:
        raise NotFoundError("Quiz not found", code="QUIZ_NOT_FOUND")
    return quiz


def _get_question(db: Session, quiz_id: str, question_id: str) -> QuizQuestion:
    question = db.query(QuizQuestion).filter(
        QuizQuestion.id == question_id,
        QuizQuestion.quiz_id == quiz_id
    ).first()
    if question is None:
        raise NotFoundError("Question not found", code="QUESTION_NOT_FOUND")
    return question


def _check_sub_material(db: Session, module_id: str, sub_material_id: Optional[str]) -> None:
    if sub_material_id is None:
        return
    sub_material = db.get(SubMaterial, sub_material_id)
    if sub_material is None:
        raise NotFoundError("Sub-materi not found", code="SUB_MATERI_NOT_FOUND")
    if sub_material.module_id != module_id:
        raise ValidationError(
            "Sub-materi does not belong to the quiz module",
            code="SUB_MATERI_MODULE_MISMATCH"
        )


def _quiz_detail(quiz: Quiz) -> dict:
    return {
        **quiz.to_dict(),
        "questions": [question.to_dict(include_answer=True) for question in quiz.questions],
    }


@router.get("")
async def list_quizzes(
    module_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    query = db.query(Quiz)
    if module_id:
        query = query.filter(Quiz.module_id == module_id)

    quizzes = query.order_by(Quiz.created_at.desc()).all()
    data = [{**quiz.to_dict(), "question_count": len(quiz.questions)} for quiz in quizzes]
    return success_response("QUIZZES_FETCHED", "Quizzes fetched", data)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_quiz(
    payload: QuizCreate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    if db.get(Module, payload.module_id) is None:
        raise NotFoundError("Module not found", code="MODULE_NOT_FOUND")
    _check_sub_material(db, payload.module_id, payload.sub_material_id)

    quiz = Quiz(**payload.model_dump(exclude={"quiz_type"}), quiz_type=payload.quiz_type.value)
    db.add(quiz)
    db.flush()

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.CREATE.value,
        entity_type="quiz",
        entity_id=quiz.id,
        details={"title": quiz.title, "module_id": quiz.module_id}
    )
    db.commit()
    db.refresh(quiz)

    return success_response("QUIZ_CREATED", "Quiz created", _quiz_detail(quiz), status.HTTP_201_CREATED)


@router.get("/{quiz_id}")
async def get_quiz(quiz_id: str, db: Session = Depends(get_db)):
    """
    Quiz with questions and answer keys.
    """
    quiz = _get_quiz(db, quiz_id)
    return success_response("QUIZ_FETCHED", "Quiz fetched", _quiz_detail(quiz))


@router.put("/{quiz_id}")
async def update_quiz(
    quiz_id: str,
    payload: QuizUpdate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    quiz = _get_quiz(db, quiz_id)
    update_data = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True, mode="json").items()
        if value is not None or field in NULLABLE_QUIZ_FIELDS
    }

    if "sub_material_id" in update_data:
        _check_sub_material(db, quiz.module_id, update_data["sub_material_id"])

    changes = apply_changes(quiz, update_data)
    if changes:
        record_admin_action(
            db, request, current_admin,
            action=AdminAction.UPDATE.value,
            entity_type="quiz",
            entity_id=quiz.id,
            details={"changes": changes}
        )

    db.commit()
    db.refresh(quiz)
    return success_response("QUIZ_UPDATED", "Quiz updated", _quiz_detail(quiz))


@router.delete("/{quiz_id}")
async def delete_quiz(
    quiz_id: str,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    """
    Delete a quiz with its questions and attempts.
    """
    quiz = _get_quiz(db, quiz_id)

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.DELETE.value,
        entity_type="quiz",
        entity_id=quiz.id,
        details={"title": quiz.title, "module_id": quiz.module_id}
    )
    db.delete(quiz)
    db.commit()

    return success_response("QUIZ_DELETED", "Quiz deleted", {"id": quiz_id})


# Question endpoints
@router.post("/{quiz_id}/questions", status_code=status.HTTP_201_CREATED)
async def create_question(
    quiz_id: str,
    payload: QuestionCreate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    quiz = _get_quiz(db, quiz_id)

    question = QuizQuestion(quiz_id=quiz.id, **payload.model_dump())
    db.add(question)
    db.flush()

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.CREATE.value,
        entity_type="quiz_question",
        entity_id=question.id,
        details={"quiz_id": quiz.id}
    )
    db.commit()
    db.refresh(question)

    return success_response(
        "QUESTION_CREATED", "Question created", question.to_dict(include_answer=True), status.HTTP_201_CREATED
    )


@router.put("/{quiz_id}/questions/{question_id}")
async def update_question(
    quiz_id: str,
    question_id: str,
    payload: QuestionUpdate,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    question = _get_question(db, quiz_id, question_id)
    update_data = payload.model_dump(exclude_unset=True, exclude_none=True)

    options = update_data.get("options", question.options)
    answer_index = update_data.get("correct_answer_index", question.correct_answer_index)
    if answer_index >= len(options):
        raise ValidationError(
            "correct_answer_index must point at one of the options",
            code="INVALID_ANSWER_INDEX"
        )

    changes = apply_changes(question, update_data)
    if changes:
        record_admin_action(
            db, request, current_admin,
            action=AdminAction.UPDATE.value,
            entity_type="quiz_question",
            entity_id=question.id,
            details={"changes": changes}
        )

    db.commit()
    db.refresh(question)
    return success_response("QUESTION_UPDATED", "Question updated", question.to_dict(include_answer=True))


@router.delete("/{quiz_id}/questions/{question_id}")
async def delete_question(
    quiz_id: str,
    question_id: str,
    request: Request,
    current_admin: Profile = Depends(get_current_admin_user),
    db: Session = Depends(get_db)
):
    question = _get_question(db, quiz_id, question_id)

    record_admin_action(
        db, request, current_admin,
        action=AdminAction.DELETE.value,
        entity_type="quiz_question",
        entity_id=question.id,
        details={"quiz_id": quiz_id}
    )
    db.delete(question)
    db.commit()

    return success_response("QUESTION_DELETED", "Question deleted", {"id": question_id})
