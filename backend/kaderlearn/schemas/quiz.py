"""
Quiz request schemas.
"""

from typing import List

from pydantic import BaseModel, Field, field_validator


class QuizStart(BaseModel):
    quiz_id: str = Field(..., min_length=1)


class AnswerSubmit(BaseModel):
    question_id: str
    selected_option_index: int = Field(..., ge=0)


class QuizSubmit(BaseModel):
    quiz_id: str = Field(..., min_length=1)
    answers: List[AnswerSubmit] = Field(default_factory=list)

    @field_validator("answers")
    @classmethod
    def one_answer_per_question(cls, answers: List[AnswerSubmit]) -> List[AnswerSubmit]:
        seen = set()
        for answer in answers:
            if answer.question_id in seen:
                raise ValueError(f"question {answer.question_id} is answered more than once")
            seen.add(answer.question_id)
        return answers
