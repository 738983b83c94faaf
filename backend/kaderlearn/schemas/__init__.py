"""
Pydantic request schemas for Kader Learn.
"""

from .quiz import QuizStart, QuizSubmit, AnswerSubmit
from .note import NoteCreate, NoteUpdate
from .admin import (
    ModuleCreate,
    ModuleUpdate,
    SubMaterialCreate,
    SubMaterialUpdate,
    PoinCreate,
    PoinUpdate,
    QuizCreate,
    QuizUpdate,
    QuestionCreate,
    QuestionUpdate,
    RoleUpdate,
    ProgressReset,
)

__all__ = [
    "QuizStart",
    "QuizSubmit",
    "AnswerSubmit",
    "NoteCreate",
    "NoteUpdate",
    "ModuleCreate",
    "ModuleUpdate",
    "SubMaterialCreate",
    "SubMaterialUpdate",
    "PoinCreate",
    "PoinUpdate",
    "QuizCreate",
    "QuizUpdate",
    "QuestionCreate",
    "QuestionUpdate",
    "RoleUpdate",
    "ProgressReset",
]
