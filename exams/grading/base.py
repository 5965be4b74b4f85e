import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ScoringResult:
    score: float
    comment: str
    grading_method: str
    degraded: bool = False


class NotApplicable:
    """Returned by a scorer that cannot handle the question's shape."""

    def __bool__(self):
        return False

    def __repr__(self):
        return 'NOT_APPLICABLE'


NOT_APPLICABLE = NotApplicable()


def finite_or_zero(value) -> float:
    """Coerce ``value`` to a float, mapping anything non-numeric or non-finite to 0."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def clamp_score(value, max_score) -> float:
    """Bring a score into ``[0, max_score]``; negative and non-finite scores become 0."""
    score = finite_or_zero(value)
    ceiling = finite_or_zero(max_score)
    if score < 0:
        return 0.0
    return min(score, ceiling) if ceiling >= 0 else 0.0


class Scorer(ABC):
    @abstractmethod
    def score(self, question, answer_text: str):
        pass

    @abstractmethod
    def get_service_name(self) -> str:
        pass
