"""
Learner classification from quiz history.

Every monitoring view labels learners through ``classify`` so the rules live
in exactly one place. Labels are computed on read and never stored.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional


STRUGGLING_FAILURE_THRESHOLD = 5
ACTIVE_SCORE_THRESHOLD = 85


class UserStatus(str, Enum):
    ACTIVE = "active"
    STRUGGLING = "struggling"
    INACTIVE = "inactive"


# Listing order for monitoring views
STATUS_ORDER = {
    UserStatus.STRUGGLING: 0,
    UserStatus.ACTIVE: 1,
    UserStatus.INACTIVE: 2,
}


@dataclass(frozen=True)
class AttemptView:
    """The slice of a completed quiz attempt that classification reads."""
    quiz_id: str
    module_id: Optional[str]
    score: float
    passed: bool
    completed_at: Optional[datetime] = None


def failures_by_module(attempts: Iterable[AttemptView]) -> Dict[str, int]:
    failures: Dict[str, int] = defaultdict(int)
    for attempt in attempts:
        if not attempt.passed and attempt.module_id:
            failures[attempt.module_id] += 1
    return dict(failures)


def mean_score_by_module(attempts: Iterable[AttemptView]) -> Dict[str, float]:
    scores: Dict[str, List[float]] = defaultdict(list)
    for attempt in attempts:
        if attempt.module_id:
            scores[attempt.module_id].append(float(attempt.score))
    return {module_id: sum(values) / len(values) for module_id, values in scores.items()}


def is_struggling(attempts: Iterable[AttemptView]) -> bool:
    """Some single module holds at least five failed attempts."""
    return any(
        count >= STRUGGLING_FAILURE_THRESHOLD
        for count in failures_by_module(attempts).values()
    )


def meets_active_threshold(attempts: Iterable[AttemptView]) -> bool:
    """Every touched module averages at least 85."""
    means = mean_score_by_module(attempts)
    if not means:
        return False
    return all(mean >= ACTIVE_SCORE_THRESHOLD for mean in means.values())


def classify(attempts: Iterable[AttemptView]) -> UserStatus:
    """
    Label a learner from their completed attempts.

    Rules, first match wins:
    1. no attempts -> inactive
    2. five or more failures in one module -> struggling
    3. every touched module averages >= 85 -> active
    4. anyone else with attempts -> active

    Attempts without a module link only count toward rule 1.
    """
    attempts = list(attempts)
    if not attempts:
        return UserStatus.INACTIVE
    if is_struggling(attempts):
        return UserStatus.STRUGGLING
    if meets_active_threshold(attempts):
        return UserStatus.ACTIVE
    return UserStatus.ACTIVE
