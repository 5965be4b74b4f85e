"""
Correction pipeline: scores the stored answers of a test result, aggregates the
totals, persists the finished result and notifies the candidate.
"""
import logging
from dataclasses import dataclass, field
from typing import List

from exams.api.serializers import CorrectionRequest
from exams.exceptions import CorrectionRequestError
from exams.grading import RuleScorer, ScoreAggregator, ScoringResult, compute_percentage, get_ai_scorer
from exams.grading.base import clamp_score, finite_or_zero
from exams.models import Question
from .notification import NotificationGateway
from .result_store import ResultStore
from .worker import result_lock

logger = logging.getLogger(__name__)

COMMENT_SCORING_FAILED = 'scoring failed'


@dataclass
class CorrectionOutcome:
    result_id: int
    score: float
    max_score: float
    percentage: int
    scores_by_category: List[dict] = field(default_factory=list)
    corrected: int = 0
    skipped: int = 0


class CorrectionOrchestrator:
    def __init__(self, rule_scorer=None, ai_scorer=None, aggregator=None, store=None, notifier=None):
        self.rule_scorer = rule_scorer or RuleScorer()
        self._ai_scorer = ai_scorer
        self.aggregator = aggregator or ScoreAggregator()
        self.store = store or ResultStore()
        self.notifier = notifier or NotificationGateway

    @property
    def ai_scorer(self):
        if self._ai_scorer is None:
            self._ai_scorer = get_ai_scorer()
        return self._ai_scorer

    def correct_result(self, result_id, payload=None) -> CorrectionOutcome:
        """
        Correct a stored result. Without ``payload`` every stored answer is
        (re-)corrected; otherwise ``payload`` is validated as a correction request.
        """
        with result_lock(result_id):
            result = self.store.load(result_id)
            if payload is None:
                request = CorrectionRequest.for_result(result, self.store.load_answers(result))
            else:
                request = CorrectionRequest.from_payload(payload)
            return self._correct(request, result)

    def correct(self, request: CorrectionRequest) -> CorrectionOutcome:
        with result_lock(request.result_id):
            result = self.store.load(request.result_id)
            return self._correct(request, result)

    def _correct(self, request: CorrectionRequest, result) -> CorrectionOutcome:
        if str(result.pk) != str(request.result_id):
            raise CorrectionRequestError(
                "resultId does not match the loaded result",
                errors={'result_id': [f"expected {result.pk}, got {request.result_id}"]}
            )
        if str(result.test_id) != request.test_id:
            raise CorrectionRequestError(
                "testId does not match the stored result",
                errors={'test_id': [f"expected {result.test_id}, got {request.test_id}"]}
            )

        test = result.test
        requested = request.question_ids
        answers = self.store.load_answers(result)
        logger.info(f"Correcting result {result.pk} of test '{test.title}' ({len(requested)} question(s) requested)")

        final_score = 0.0
        max_score = 0.0
        corrected = 0
        skipped = 0

        for answer in answers:
            if str(answer.question_id) not in requested:
                continue

            question = Question.objects.filter(pk=answer.question_id).first()
            if question is None:
                logger.warning(
                    f"Question {answer.question_id} not found, skipping answer #{answer.position} of result {result.pk}"
                )
                skipped += 1
                continue

            question_max = finite_or_zero(question.max_score)
            max_score += question_max

            scoring = self._score_answer(question, answer.text)
            points = clamp_score(scoring.score, question_max)
            if points != scoring.score:
                logger.warning(
                    f"Score {scoring.score!r} for question {question.pk} outside [0, {question_max}], stored {points}"
                )

            final_score += points
            answer.score = points
            answer.comment = scoring.comment
            corrected += 1

        final_score = finite_or_zero(final_score)
        max_score = finite_or_zero(max_score)

        aggregate = self.aggregator.aggregate(test, result, answers=answers)
        percentage = compute_percentage(final_score, max_score)
        scores_by_category = aggregate.categories_as_list()

        self.store.persist(result, answers, finite_or_zero(aggregate.score), scores_by_category)
        logger.info(
            f"Result {result.pk} corrected: {final_score}/{max_score} ({percentage}%), "
            f"{corrected} corrected, {skipped} skipped"
        )

        self._notify(result, test, percentage, final_score, max_score)

        return CorrectionOutcome(
            result_id=result.pk,
            score=finite_or_zero(aggregate.score),
            max_score=max_score,
            percentage=percentage,
            scores_by_category=scores_by_category,
            corrected=corrected,
            skipped=skipped
        )

    def _score_answer(self, question, answer_text) -> ScoringResult:
        try:
            if question.is_multiple_choice and self.rule_scorer.is_applicable(question):
                return self.rule_scorer.score(question, answer_text)
            return self.ai_scorer.score(question, answer_text)
        except Exception:
            logger.exception(f"Scoring failed for question {question.pk}")
            return ScoringResult(score=0.0, comment=COMMENT_SCORING_FAILED, grading_method='failed')

    def _resolve_contact(self, result):
        candidate = result.candidate
        if candidate is None or candidate.contact is None:
            return None
        return candidate.contact

    def _notify(self, result, test, percentage, score, max_score):
        contact = self._resolve_contact(result)
        if contact is None:
            logger.info(f"No contact for result {result.pk}, result email not sent")
            who = f"Candidate #{result.candidate_id}" if result.candidate_id else "Unknown candidate"
        else:
            event = self.notifier.build_test_result_event(contact, test, percentage)
            try:
                self.notifier.notify(event['kind'], event)
            except Exception:
                logger.exception(f"Result notification failed for result {result.pk}")
            who = f"{contact.firstname} {contact.lastname}"

        try:
            self.notifier.send_side_channel(
                f"{who} finished \"{test.title}\": {percentage}% ({score:g}/{max_score:g})"
            )
        except Exception:
            logger.exception(f"Side-channel summary failed for result {result.pk}")
