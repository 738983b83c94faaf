"""
Domain services for Kader Learn.

The quiz engine depends on the progress aggregator and the unlock engine,
never the other way round. Classification reads the store independently.
"""

from .unlock_engine import UnlockEngine, is_unlocked
from .progress_aggregator import ProgressAggregator
from .quiz_engine import QuizEngine
from .classification import (
    ACTIVE_SCORE_THRESHOLD,
    STRUGGLING_FAILURE_THRESHOLD,
    AttemptView,
    UserStatus,
    classify,
)
from .monitoring import MonitoringService
from .learner_progress import LearnerProgressService

__all__ = [
    "UnlockEngine",
    "is_unlocked",
    "ProgressAggregator",
    "QuizEngine",
    "ACTIVE_SCORE_THRESHOLD",
    "STRUGGLING_FAILURE_THRESHOLD",
    "AttemptView",
    "UserStatus",
    "classify",
    "MonitoringService",
    "LearnerProgressService",
]
