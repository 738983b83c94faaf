"""
Admin request schemas for content and user management.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from kaderlearn.models import QuizType, UserRole


SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class ModuleCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    duration_label: Optional[str] = Field(None, max_length=50)
    duration_minutes: Optional[int] = Field(None, ge=0)
    published: bool = False


class ModuleUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    slug: Optional[str] = Field(None, min_length=1, max_length=255, pattern=SLUG_PATTERN)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    duration_label: Optional[str] = Field(None, max_length=50)
    duration_minutes: Optional[int] = Field(None, ge=0)
    published: Optional[bool] = None


class SubMaterialCreate(BaseModel):
    module_id: str
    title: str = Field(..., min_length=1, max_length=255)
    content: Optional[str] = None
    order_index: int = Field(..., ge=0)
    published: bool = True


class SubMaterialUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content: Optional[str] = None
    order_index: Optional[int] = Field(None, ge=0)
    published: Optional[bool] = None


class PoinCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    content_html: Optional[str] = None
    duration_label: Optional[str] = Field(None, max_length=50)
    duration_minutes: Optional[int] = Field(None, ge=0)
    order_index: int = Field(0, ge=0)


class PoinUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    content_html: Optional[str] = None
    duration_label: Optional[str] = Field(None, max_length=50)
    duration_minutes: Optional[int] = Field(None, ge=0)
    order_index: Optional[int] = Field(None, ge=0)


class QuizCreate(BaseModel):
    module_id: str
    sub_material_id: Optional[str] = None
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    quiz_type: QuizType = QuizType.SUB
    time_limit_seconds: int = Field(600, gt=0)
    passing_score: int = Field(70, ge=0, le=100)
    published: bool = False


class QuizUpdate(BaseModel):
    sub_material_id: Optional[str] = None
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    quiz_type: Optional[QuizType] = None
    time_limit_seconds: Optional[int] = Field(None, gt=0)
    passing_score: Optional[int] = Field(None, ge=0, le=100)
    published: Optional[bool] = None


class QuestionCreate(BaseModel):
    question_text: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=2)
    correct_answer_index: int = Field(..., ge=0)
    explanation: Optional[str] = None
    order_index: int = Field(0, ge=0)

    @model_validator(mode="after")
    def check_answer_in_options(self):
        if self.correct_answer_index >= len(self.options):
            raise ValueError("correct_answer_index must point at one of the options")
        return self


class QuestionUpdate(BaseModel):
    question_text: Optional[str] = Field(None, min_length=1)
    options: Optional[List[str]] = Field(None, min_length=2)
    correct_answer_index: Optional[int] = Field(None, ge=0)
    explanation: Optional[str] = None
    order_index: Optional[int] = Field(None, ge=0)


class RoleUpdate(BaseModel):
    role: UserRole


class ProgressReset(BaseModel):
    module_id: str
