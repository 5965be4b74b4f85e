import logging

from django.db import transaction
from django.utils import timezone

from exams.exceptions import ResultNotFound
from exams.models import Answer, TestResult

logger = logging.getLogger(__name__)


class ResultStore:
    """Loads test results and writes corrected results back in one transaction."""

    def load(self, result_id) -> TestResult:
        try:
            return TestResult.objects.select_related('test', 'candidate__contact').get(pk=result_id)
        except (TestResult.DoesNotExist, ValueError, TypeError):
            raise ResultNotFound(result_id)

    def load_answers(self, result) -> list:
        return list(result.answers.all())

    def persist(self, result, answers, score, scores_by_category) -> TestResult:
        """Write answers' score/comment, totals and the finished state atomically."""
        now = timezone.now()
        with transaction.atomic():
            try:
                locked = TestResult.objects.select_for_update().get(pk=result.pk)
            except TestResult.DoesNotExist:
                raise ResultNotFound(result.pk)

            Answer.objects.bulk_update(answers, ['score', 'comment'])

            locked.score = score
            locked.scores_by_category = scores_by_category
            locked.state = TestResult.State.FINISH
            locked.corrected_at = now
            locked.end_time = locked.end_time or now
            locked.save(update_fields=['score', 'scores_by_category', 'state', 'corrected_at', 'end_time'])

        logger.info(f"Persisted correction of result {locked.pk}: score={score}")
        return locked
