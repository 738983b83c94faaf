"""
Learning content models for Kader Learn.

Defines Module, SubMaterial, PoinDetail, Quiz and QuizQuestion: a module
holds ordered sub-materials (each made of reading units called poin) and
quizzes, optionally tied to one sub-material.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List
from sqlalchemy import (
    Boolean, Integer, String, DateTime, Text,
    ForeignKey, UniqueConstraint, Index, CheckConstraint, JSON
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kaderlearn.core.database import Base, generate_uuid


class QuizType(str, Enum):
    """Whether a quiz closes one sub-material or the whole module."""
    SUB = "sub"
    FINAL = "final"


class Module(Base):
    """
    Top-level learning unit.
    """
    __tablename__ = "modules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    duration_label: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    # Relationships
    sub_materials = relationship(
        "SubMaterial",
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="SubMaterial.order_index"
    )
    quizzes = relationship(
        "Quiz",
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="Quiz.created_at"
    )
    user_progress = relationship("UserModuleProgress", back_populates="module", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_module_published", "published"),
    )

    def __repr__(self) -> str:
        return f"<Module(id={self.id}, slug='{self.slug}')>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "slug": self.slug,
            "description": self.description,
            "category": self.category,
            "duration_label": self.duration_label,
            "duration_minutes": self.duration_minutes,
            "published": self.published,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class SubMaterial(Base):
    """
    Ordered content unit within a module. ``order_index`` defines the unlock
    sequence and is unique per module.
    """
    __tablename__ = "sub_materis"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    module_id: Mapped[str] = mapped_column(String(36), ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    # Relationships
    module = relationship("Module", back_populates="sub_materials")
    poin_details = relationship(
        "PoinDetail",
        back_populates="sub_material",
        cascade="all, delete-orphan",
        order_by="PoinDetail.order_index"
    )
    quizzes = relationship("Quiz", back_populates="sub_material")
    user_progress = relationship("UserSubMaterialProgress", back_populates="sub_material", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("module_id", "order_index", name="uq_sub_materi_module_order"),
        CheckConstraint("order_index >= 0", name="check_sub_materi_order_positive"),
        Index("idx_sub_materi_module", "module_id", "order_index"),
    )

    def __repr__(self) -> str:
        return f"<SubMaterial(id={self.id}, module_id={self.module_id}, order={self.order_index})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "module_id": self.module_id,
            "title": self.title,
            "content": self.content,
            "order_index": self.order_index,
            "published": self.published,
        }


class PoinDetail(Base):
    """
    Smallest reading unit within a sub-material.
    """
    __tablename__ = "poin_details"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    sub_material_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("sub_materis.id", ondelete="CASCADE"),
        nullable=False
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    duration_label: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    # Relationships
    sub_material = relationship("SubMaterial", back_populates="poin_details")
    user_progress = relationship("UserPoinProgress", back_populates="poin", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_poin_sub_materi", "sub_material_id", "order_index"),
    )

    def __repr__(self) -> str:
        return f"<PoinDetail(id={self.id}, sub_material_id={self.sub_material_id})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sub_material_id": self.sub_material_id,
            "title": self.title,
            "content_html": self.content_html,
            "duration_label": self.duration_label,
            "duration_minutes": self.duration_minutes,
            "order_index": self.order_index,
        }


class Quiz(Base):
    """
    Quiz belonging to a module, optionally closing one sub-material.
    """
    __tablename__ = "quizzes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    module_id: Mapped[str] = mapped_column(String(36), ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)
    sub_material_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("sub_materis.id", ondelete="SET NULL"),
        nullable=True
    )

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quiz_type: Mapped[str] = mapped_column(String(10), default=QuizType.SUB.value, nullable=False)
    time_limit_seconds: Mapped[int] = mapped_column(Integer, default=600, nullable=False)
    passing_score: Mapped[int] = mapped_column(Integer, default=70, nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    # Relationships
    module = relationship("Module", back_populates="quizzes")
    sub_material = relationship("SubMaterial", back_populates="quizzes")
    questions = relationship(
        "QuizQuestion",
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="QuizQuestion.order_index"
    )
    attempts = relationship("QuizAttempt", back_populates="quiz", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("passing_score >= 0 AND passing_score <= 100", name="check_passing_score_range"),
        CheckConstraint("time_limit_seconds > 0", name="check_time_limit_positive"),
        Index("idx_quiz_module", "module_id", "published"),
    )

    def __repr__(self) -> str:
        return f"<Quiz(id={self.id}, module_id={self.module_id}, passing_score={self.passing_score})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "module_id": self.module_id,
            "sub_material_id": self.sub_material_id,
            "title": self.title,
            "description": self.description,
            "quiz_type": self.quiz_type,
            "time_limit_seconds": self.time_limit_seconds,
            "passing_score": self.passing_score,
            "published": self.published,
        }


class QuizQuestion(Base):
    """
    Multiple-choice question. ``options`` is a JSON list of answer labels.
    """
    __tablename__ = "quiz_questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    quiz_id: Mapped[str] = mapped_column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)

    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    correct_answer_index: Mapped[int] = mapped_column(Integer, nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    # Relationships
    quiz = relationship("Quiz", back_populates="questions")

    __table_args__ = (
        CheckConstraint("correct_answer_index >= 0", name="check_correct_answer_positive"),
        Index("idx_question_quiz", "quiz_id", "order_index"),
    )

    def __repr__(self) -> str:
        return f"<QuizQuestion(id={self.id}, quiz_id={self.quiz_id})>"

    def to_dict(self, include_answer: bool = False) -> dict:
        data = {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "question_text": self.question_text,
            "options": self.options,
            "order_index": self.order_index,
        }
        if include_answer:
            data["correct_answer_index"] = self.correct_answer_index
            data["explanation"] = self.explanation
        return data
