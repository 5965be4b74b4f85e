import logging

from django.db import transaction
from django.utils import timezone

from exams.exceptions import QuestionAlreadyAnswered, QuestionNotInTest, ResultAlreadyFinished, ResultNotFound
from exams.models import Answer, TestResult
from exams.signals import correction_requested

logger = logging.getLogger(__name__)


def record_answer(result_id, question_id, text):
    """
    Append a candidate's answer to a result.

    Only questions of the result's test are accepted, each at most once. The
    first answer moves the result from pending to in progress; once every
    question of the test is answered, correction of the result is requested.
    """
    with transaction.atomic():
        result = (
            TestResult.objects.select_for_update()
            .select_related('test')
            .filter(pk=result_id)
            .first()
        )
        if result is None:
            raise ResultNotFound(result_id)
        if result.is_finished:
            raise ResultAlreadyFinished(result_id)

        try:
            in_test = result.test.questions.filter(pk=question_id).exists()
        except (TypeError, ValueError):
            in_test = False
        if not in_test:
            raise QuestionNotInTest(result_id, question_id)
        if result.answers.filter(question_id=question_id).exists():
            raise QuestionAlreadyAnswered(result_id, question_id)

        answer = Answer.objects.create(
            result=result,
            question_id=question_id,
            position=result.answers.count(),
            text=text or '',
            score=0,
            comment=' '
        )

        if result.state == TestResult.State.PENDING:
            result.state = TestResult.State.IN_PROGRESS
            result.start_time = result.start_time or timezone.now()
            result.save(update_fields=['state', 'start_time'])

        answered = result.answers.values('question_id').distinct().count()
        total = result.test.get_question_count()

    if answered >= total:
        logger.info(f"All {total} question(s) answered on result {result.pk}, requesting correction")
        correction_requested.send(sender=TestResult, result_id=result.pk)

    return answer
