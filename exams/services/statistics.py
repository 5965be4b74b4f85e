"""Read-side statistics for corrected results."""
import math

from exams.grading.base import finite_or_zero
from exams.models import TestCategory

UNKNOWN_CATEGORY = 'Unknown category'


def round_half_up(value) -> int:
    return int(math.floor(value + 0.5))


def ratio_percentage(score, max_score) -> int:
    return round_half_up(score / max_score * 100) if max_score > 0 else 0


def get_max_score(test) -> float:
    """Sum of the max scores of every question currently in the test."""
    return sum(finite_or_zero(question.max_score) for question in test.questions.all())


def get_category_stats(result) -> dict:
    """
    Per-category breakdown of a result, with category names and percentages.

    Every question of the test is counted, answered or not; an unanswered
    question contributes its max score with a score of 0. Questions without
    a category are left out of the breakdown and of its total.
    """
    questions = list(result.test.questions.all())
    scores = {answer.question_id: answer.score for answer in result.answers.all()}

    stats = {}
    for question in questions:
        if question.category_id is None:
            continue
        entry = stats.setdefault(question.category_id, {'score': 0.0, 'maxScore': 0.0, 'questionCount': 0})
        entry['score'] += finite_or_zero(scores.get(question.pk, 0))
        entry['maxScore'] += finite_or_zero(question.max_score)
        entry['questionCount'] += 1

    names = TestCategory.objects.in_bulk(list(stats.keys()))
    by_category = []
    for category_id, entry in stats.items():
        category = names.get(category_id)
        by_category.append({
            'categoryId': str(category_id),
            'categoryName': category.name if category else UNKNOWN_CATEGORY,
            'score': entry['score'],
            'maxScore': entry['maxScore'],
            'percentage': ratio_percentage(entry['score'], entry['maxScore']),
            'questionCount': entry['questionCount'],
            'totalQuestions': len(questions),
        })

    total_score = sum(entry['score'] for entry in stats.values())
    total_max = sum(entry['maxScore'] for entry in stats.values())
    return {
        'total': {
            'score': total_score,
            'maxScore': total_max,
            'percentage': ratio_percentage(total_score, total_max),
        },
        'byCategory': by_category,
    }
