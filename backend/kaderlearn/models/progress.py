"""
Progress tracking models for Kader Learn.

Defines QuizAttempt and the per-user progress rows for modules,
sub-materials and poin. Progress rows are keyed by (user, entity) and
upserted, never duplicated.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from sqlalchemy import (
    Boolean, Integer, String, DateTime, Float,
    ForeignKey, UniqueConstraint, Index, CheckConstraint, JSON, text
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from kaderlearn.core.database import Base, generate_uuid


class ModuleStatus(str, Enum):
    """Status of a learner in a module."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

    @classmethod
    def from_percent(cls, percent: int) -> "ModuleStatus":
        if percent >= 100:
            return cls.COMPLETED
        if percent > 0:
            return cls.IN_PROGRESS
        return cls.NOT_STARTED


class QuizAttempt(Base):
    """
    One instance of a user taking a quiz. ``completed_at`` is null while the
    attempt is open; at most one open attempt exists per (user, quiz).
    """
    __tablename__ = "quiz_attempts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    quiz_id: Mapped[str] = mapped_column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    correct_answers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # [{question_id, selected_option_index, correct_answer_index, is_correct, explanation}]
    answers: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    # Relationships
    quiz = relationship("Quiz", back_populates="attempts")
    user = relationship("Profile", back_populates="quiz_attempts")

    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 100", name="check_attempt_score_range"),
        CheckConstraint("correct_answers >= 0", name="check_attempt_correct_positive"),
        Index(
            "uq_open_quiz_attempt",
            "user_id",
            "quiz_id",
            unique=True,
            sqlite_where=text("completed_at IS NULL"),
            postgresql_where=text("completed_at IS NULL"),
        ),
        Index("idx_attempt_user_quiz", "user_id", "quiz_id", "completed_at"),
    )

    def __repr__(self) -> str:
        return f"<QuizAttempt(id={self.id}, user_id={self.user_id}, quiz_id={self.quiz_id}, score={self.score})>"

    def to_dict(self, include_answers: bool = True) -> dict:
        data = {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "user_id": self.user_id,
            "score": self.score,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "passed": self.passed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
        if include_answers:
            data["answers"] = self.answers or []
        return data


class UserModuleProgress(Base):
    """
    Per (user, module) rollup written by the progress aggregator.
    """
    __tablename__ = "user_module_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    module_id: Mapped[str] = mapped_column(String(36), ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)

    status: Mapped[str] = mapped_column(String(20), default=ModuleStatus.NOT_STARTED.value, nullable=False)
    progress_percent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    # Relationships
    user = relationship("Profile", back_populates="module_progress")
    module = relationship("Module", back_populates="user_progress")

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", name="uq_user_module_progress"),
        CheckConstraint("progress_percent >= 0 AND progress_percent <= 100", name="check_module_progress_percent"),
        Index("idx_module_progress_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<UserModuleProgress(user_id={self.user_id}, module_id={self.module_id}, progress={self.progress_percent}%)>"

    def to_dict(self) -> dict:
        return {
            "module_id": self.module_id,
            "status": self.status,
            "progress_percent": self.progress_percent,
            "last_accessed_at": self.last_accessed_at.isoformat() if self.last_accessed_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class UserSubMaterialProgress(Base):
    """
    Per (user, sub-material) unlock and completion state.
    """
    __tablename__ = "user_sub_materi_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    sub_material_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("sub_materis.id", ondelete="CASCADE"),
        nullable=False
    )

    is_unlocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    progress_percent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_poin_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False
    )

    # Relationships
    user = relationship("Profile", back_populates="sub_material_progress")
    sub_material = relationship("SubMaterial", back_populates="user_progress")

    __table_args__ = (
        UniqueConstraint("user_id", "sub_material_id", name="uq_user_sub_materi_progress"),
        CheckConstraint("progress_percent >= 0 AND progress_percent <= 100", name="check_sub_materi_progress_percent"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserSubMaterialProgress(user_id={self.user_id}, sub_material_id={self.sub_material_id}, "
            f"unlocked={self.is_unlocked}, completed={self.is_completed})>"
        )

    def to_dict(self) -> dict:
        return {
            "sub_material_id": self.sub_material_id,
            "is_unlocked": self.is_unlocked,
            "is_completed": self.is_completed,
            "progress_percent": self.progress_percent,
            "current_poin_index": self.current_poin_index,
            "last_accessed_at": self.last_accessed_at.isoformat() if self.last_accessed_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class UserPoinProgress(Base):
    """
    Per (user, poin) reading state. ``scroll_completed`` is a weaker
    "viewed" signal and never goes back to false.
    """
    __tablename__ = "user_poin_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    poin_id: Mapped[str] = mapped_column(String(36), ForeignKey("poin_details.id", ondelete="CASCADE"), nullable=False)

    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    scroll_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    scroll_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("Profile", back_populates="poin_progress")
    poin = relationship("PoinDetail", back_populates="user_progress")

    __table_args__ = (
        UniqueConstraint("user_id", "poin_id", name="uq_user_poin_progress"),
    )

    def __repr__(self) -> str:
        return f"<UserPoinProgress(user_id={self.user_id}, poin_id={self.poin_id}, completed={self.is_completed})>"

    def to_dict(self) -> dict:
        return {
            "poin_id": self.poin_id,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "scroll_completed": self.scroll_completed,
            "scroll_completed_at": self.scroll_completed_at.isoformat() if self.scroll_completed_at else None,
        }
