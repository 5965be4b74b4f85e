import math
from dataclasses import dataclass, field
from typing import List

from exams.models import Question
from .base import finite_or_zero


@dataclass
class CategoryScore:
    category_id: str
    score: float = 0.0
    max_score: float = 0.0

    def as_dict(self) -> dict:
        return {'categoryId': self.category_id, 'score': self.score, 'maxScore': self.max_score}


@dataclass
class AggregateScore:
    score: float = 0.0
    scores_by_category: List[CategoryScore] = field(default_factory=list)

    def categories_as_list(self) -> list:
        return [category.as_dict() for category in self.scores_by_category]


def compute_percentage(score, max_score) -> int:
    """
    ceil(score / max_score * 100). A zero-weight test yields 100 for any positive
    score and 0 otherwise; non-finite inputs yield 0.
    """
    score = finite_or_zero(score)
    max_score = finite_or_zero(max_score)

    if max_score > 0:
        ratio = score * 100 / max_score
        if not math.isfinite(ratio):
            # score * 100 overflowed
            ratio = score / max_score * 100
        percentage = math.ceil(ratio) if math.isfinite(ratio) else 0
    else:
        percentage = 100 if score > 0 else 0
    return max(0, int(percentage))


class ScoreAggregator:
    """Sums answer scores into a total and per-category subtotals."""

    def aggregate(self, test, result, answers=None, questions=None) -> AggregateScore:
        if test is None:
            return AggregateScore()

        if answers is None:
            answers = list(result.answers.all())
        if questions is None:
            questions = Question.objects.in_bulk([answer.question_id for answer in answers])

        total = 0.0
        buckets = {}
        for answer in answers:
            question = questions.get(answer.question_id)
            if question is None:
                continue

            answer_score = finite_or_zero(answer.score)
            total += answer_score

            if question.category_id is None:
                continue
            key = str(question.category_id)
            bucket = buckets.setdefault(key, CategoryScore(category_id=key))
            bucket.score += answer_score
            bucket.max_score += finite_or_zero(question.max_score)

        return AggregateScore(score=total, scores_by_category=list(buckets.values()))
