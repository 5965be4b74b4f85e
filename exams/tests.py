"""
Test cases for the Exam Correction engine.
Covers scoring, retries, aggregation, the correction pipeline and answer recording.
"""
import math
from io import StringIO
from unittest.mock import MagicMock, Mock, patch

import requests
from django.conf import settings
from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from .api.serializers import CorrectionRequest
from .exceptions import (
    CorrectionError, CorrectionInProgress, CorrectionRequestError, QuestionAlreadyAnswered,
    QuestionNotInTest, ResultAlreadyFinished, ResultNotFound, ScoringError, ScoringTimeout
)
from .grading import (
    AiScorerClient, LiveMessageClient, NOT_APPLICABLE, RuleScorer, SENTINEL,
    ScoreAggregator, compute_percentage, is_sentinel
)
from .grading.ai_scorer import DEGRADED_COMMENT, sanitize_ai_score
from .grading.backends import (
    OpenAIAssistantBackend, OpenAIChatBackend, RunHandle, RunProtocolBackend, TextGenerationBackend
)
from .grading.base import finite_or_zero
from .grading.prompts import render_correction_prompt, render_options
from .models import Answer, Candidate, Contact, Question, Test, TestCategory, TestResult
from .services import (
    CorrectionOrchestrator, enqueue_correction, get_category_stats, get_max_score,
    process_correction, record_answer, result_lock, run_worker
)
from .services.correction import COMMENT_SCORING_FAILED
from .signals import correction_requested


class FakeBackend(TextGenerationBackend):
    """Replays canned replies; an Exception instance in the list is raised instead."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def get_service_name(self):
        return "fake"

    def complete(self, instructions, json_output=True):
        self.calls.append(instructions)
        reply = self.replies.pop(0) if self.replies else ''
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeRunBackend(RunProtocolBackend):
    def __init__(self, statuses, message='{"score": 1, "comment": "fine"}', tick=1.0, **kwargs):
        self.now = 0.0
        self.sleeps = []
        super().__init__(sleep=self._sleep_for, clock=lambda: self.now, **kwargs)
        self.statuses = list(statuses)
        self.message = message
        self.tick = tick

    def _sleep_for(self, seconds):
        self.sleeps.append(seconds)
        self.now += self.tick

    def get_service_name(self):
        return "fake_run"

    def create_run(self, instructions, json_output):
        return RunHandle(thread_id='thread_1', run_id='run_1')

    def get_run_status(self, handle):
        return self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]

    def read_first_message(self, handle):
        return self.message


def mcq(max_score=2.0, options=None):
    if options is None:
        options = [{'text': 'London', 'valid': False}, {'text': 'Paris', 'valid': True}]
    return Question(
        question_type=Question.QuestionType.MULTIPLE_CHOICE,
        instruction='What is the capital of France?',
        max_score=max_score,
        options=options
    )


def ai_scorer(*replies):
    return AiScorerClient(backend=FakeBackend(replies))


class RuleScorerTests(TestCase):
    """Tests for the deterministic multiple-choice scorer."""

    def setUp(self):
        self.scorer = RuleScorer()

    def test_valid_option_text(self):
        result = self.scorer.score(mcq(), 'Paris')
        self.assertEqual(result.score, 2.0)
        self.assertEqual(result.comment, '')

    def test_answer_is_trimmed(self):
        self.assertEqual(self.scorer.score(mcq(), '  Paris \n').score, 2.0)

    def test_zero_based_index(self):
        self.assertEqual(self.scorer.score(mcq(), '1').score, 2.0)
        self.assertEqual(self.scorer.score(mcq(), '0').score, 0)

    def test_match_is_case_sensitive(self):
        self.assertEqual(self.scorer.score(mcq(), 'paris').score, 0)

    def test_wrong_answer(self):
        self.assertEqual(self.scorer.score(mcq(), 'London').score, 0)

    def test_same_input_same_output(self):
        question = mcq()
        self.assertEqual(self.scorer.score(question, 'Paris'), self.scorer.score(question, 'Paris'))

    def test_not_applicable_without_options(self):
        self.assertIs(self.scorer.score(mcq(options=[]), 'Paris'), NOT_APPLICABLE)

    def test_not_applicable_with_two_valid_options(self):
        question = mcq(options=[{'text': 'A', 'valid': True}, {'text': 'B', 'valid': True}])
        self.assertIs(self.scorer.score(question, 'A'), NOT_APPLICABLE)
        self.assertFalse(NOT_APPLICABLE)


class ComputePercentageTests(TestCase):
    def test_examples(self):
        self.assertEqual(compute_percentage(67, 100), 67)
        self.assertEqual(compute_percentage(4, 5), 80)
        self.assertEqual(compute_percentage(1, 3), 34)

    def test_zero_max_score(self):
        self.assertEqual(compute_percentage(0, 0), 0)
        self.assertEqual(compute_percentage(5, 0), 100)

    def test_non_finite_inputs(self):
        self.assertEqual(compute_percentage(math.nan, 10), 0)
        self.assertEqual(compute_percentage(math.inf, 10), 0)
        self.assertEqual(compute_percentage(3, math.nan), 100)

    def test_large_scores_do_not_overflow(self):
        self.assertEqual(compute_percentage(1e307, 1e307), 100)
        self.assertEqual(compute_percentage(1e307, 2e307), 50)
        self.assertEqual(compute_percentage(1e308, 1e-10), 0)

    def test_huge_integers_are_sanitized(self):
        self.assertEqual(finite_or_zero(10 ** 400), 0)
        self.assertEqual(sanitize_ai_score(10 ** 400), 0)


class LiveMessageClientTests(TestCase):
    """Tests for the bounded retry envelope around the text-generation backend."""

    def test_two_failures_then_success(self):
        backend = FakeBackend([RuntimeError('boom'), '', '{"score": 1}'])
        generation = LiveMessageClient(backend).generate('prompt')
        self.assertTrue(generation.ok)
        self.assertEqual(generation.attempts, 3)
        self.assertEqual(len(backend.calls), 3)

    def test_exhaustion_returns_sentinel(self):
        backend = FakeBackend([RuntimeError('a'), RuntimeError('b'), RuntimeError('c'), 'never read'])
        text = LiveMessageClient(backend).generate_live_message('prompt')
        self.assertEqual(text, SENTINEL)
        self.assertTrue(is_sentinel(text))
        self.assertEqual(len(backend.calls), 3)

    def test_invalid_json_counts_as_failed_attempt(self):
        backend = FakeBackend(['not json', '{"score": 2, "comment": "ok"}'])
        text = LiveMessageClient(backend).generate_live_message('prompt', json_output=True)
        self.assertEqual(text, '{"score": 2, "comment": "ok"}')
        self.assertEqual(len(backend.calls), 2)

    def test_reply_cleanup(self):
        backend = FakeBackend(['"Good luck!"', '```json\n{"score": 1}\n```'])
        client = LiveMessageClient(backend)
        self.assertEqual(client.generate_live_message('prompt'), 'Good luck!')
        self.assertEqual(client.generate_live_message('prompt', json_output=True), '```json\n{"score": 1}\n```')

    def test_configurable_attempts(self):
        backend = FakeBackend([RuntimeError('x')] * 5)
        generation = LiveMessageClient(backend, max_attempts=5).generate('prompt')
        self.assertFalse(generation.ok)
        self.assertEqual(generation.attempts, 5)
        self.assertIn('x', generation.reason)


class RunProtocolTests(TestCase):
    def test_polls_until_completed(self):
        backend = FakeRunBackend(['queued', 'in_progress', 'completed'], poll_interval=1)
        self.assertEqual(backend.complete('prompt'), '{"score": 1, "comment": "fine"}')
        self.assertEqual(backend.sleeps, [1, 1])

    def test_failed_run_raises(self):
        backend = FakeRunBackend(['queued', 'failed'])
        with self.assertRaises(ScoringError):
            backend.complete('prompt')

    def test_timeout(self):
        backend = FakeRunBackend(['in_progress'], timeout=5, tick=2.0)
        with self.assertRaises(ScoringTimeout):
            backend.complete('prompt')
        self.assertEqual(len(backend.sleeps), 3)

    def test_run_failure_is_retried(self):
        backend = FakeRunBackend(['expired'])
        generation = LiveMessageClient(backend).generate('prompt')
        self.assertFalse(generation.ok)
        self.assertEqual(generation.attempts, 3)


class OpenAIBackendTests(TestCase):
    """Tests for the request shapes sent to the OpenAI SDK."""

    @patch('exams.grading.backends.OpenAI')
    def test_chat_completion_request(self, mock_openai):
        client = mock_openai.return_value
        client.chat.completions.create.return_value = Mock(
            choices=[Mock(message=Mock(content='{"score": 1, "comment": "ok"}'))]
        )
        backend = OpenAIChatBackend(api_key='sk-test', model='gpt-test', temperature=0.2, timeout=30)

        self.assertEqual(backend.complete('grade this'), '{"score": 1, "comment": "ok"}')
        mock_openai.assert_called_once_with(api_key='sk-test', timeout=30, max_retries=0)
        client.chat.completions.create.assert_called_once_with(
            model='gpt-test',
            temperature=0.2,
            messages=[{"role": "system", "content": "grade this"}],
            response_format={"type": "json_object"}
        )

    @patch('exams.grading.backends.OpenAI')
    def test_chat_completion_without_json_output(self, mock_openai):
        client = mock_openai.return_value
        client.chat.completions.create.return_value = Mock(choices=[Mock(message=Mock(content=None))])

        self.assertEqual(OpenAIChatBackend(api_key='k', model='m').complete('hello', json_output=False), '')
        self.assertNotIn('response_format', client.chat.completions.create.call_args.kwargs)

    @patch('exams.grading.backends.OpenAI')
    def test_assistant_run(self, mock_openai):
        client = mock_openai.return_value
        client.beta.threads.create_and_run.return_value = Mock(id='run_1', thread_id='thread_1')
        client.beta.threads.runs.retrieve.side_effect = [Mock(status='queued'), Mock(status='completed')]
        client.beta.threads.messages.list.return_value = Mock(data=[
            Mock(content=[Mock(type='text', text=Mock(value='{"score": 2}'))])
        ])
        sleeps = []
        backend = OpenAIAssistantBackend(
            api_key='sk-test', assistant_id='asst_1', poll_interval=1, timeout=60, sleep=sleeps.append
        )

        self.assertEqual(backend.complete('grade this'), '{"score": 2}')
        mock_openai.assert_called_once_with(api_key='sk-test', timeout=60, max_retries=0)
        client.beta.threads.create_and_run.assert_called_once_with(
            assistant_id='asst_1',
            thread={"messages": [{"role": "user", "content": "grade this"}]},
            response_format={"type": "json_object"}
        )
        client.beta.threads.runs.retrieve.assert_called_with('run_1', thread_id='thread_1')
        client.beta.threads.messages.list.assert_called_once_with(thread_id='thread_1')
        self.assertEqual(sleeps, [1])

    @patch('exams.grading.backends.OpenAI')
    def test_assistant_run_without_messages(self, mock_openai):
        client = mock_openai.return_value
        client.beta.threads.create_and_run.return_value = Mock(id='run_1', thread_id='thread_1')
        client.beta.threads.runs.retrieve.return_value = Mock(status='completed')
        client.beta.threads.messages.list.return_value = Mock(data=[])

        backend = OpenAIAssistantBackend(api_key='k', assistant_id='asst_1')
        self.assertEqual(backend.complete('grade this'), '')


class AiScorerClientTests(TestCase):
    def setUp(self):
        self.question = Question(
            question_type=Question.QuestionType.FREE_TEXT,
            instruction='Explain what a closure is.',
            max_score=3.0
        )

    def test_verdict(self):
        result = ai_scorer('{"score": 2, "comment": "ok"}').score(self.question, 'some answer')
        self.assertEqual(result.score, 2.0)
        self.assertEqual(result.comment, 'ok')
        self.assertFalse(result.degraded)

    def test_commentaire_field(self):
        result = ai_scorer('{"score": 1, "commentaire": "moyen"}').score(self.question, 'x')
        self.assertEqual(result.comment, 'moyen')

    def test_negative_and_nan_scores_become_zero(self):
        self.assertEqual(ai_scorer('{"score": -4, "comment": "bad"}').score(self.question, 'x').score, 0)
        self.assertEqual(ai_scorer('{"score": "NaN"}').score(self.question, 'x').score, 0)
        self.assertEqual(ai_scorer('{"comment": "no score"}').score(self.question, 'x').score, 0)

    def test_degraded_after_exhaustion(self):
        result = ai_scorer('', '', '').score(self.question, 'x')
        self.assertTrue(result.degraded)
        self.assertEqual(result.score, 0)
        self.assertEqual(result.comment, DEGRADED_COMMENT)

    def test_prompt(self):
        prompt = render_correction_prompt(mcq(max_score=3), 'Paris')
        self.assertIn('What is the capital of France?', prompt)
        self.assertIn('response 2 = Paris (correct)', prompt)
        self.assertIn('Maximum score: 3', prompt)
        self.assertIn('Paris', prompt.split("Candidate's answer:")[1])

    def test_render_options(self):
        self.assertEqual(
            render_options([{'text': 'A', 'valid': False}, {'text': 'B', 'valid': True}]),
            'response 1 = A (incorrect)\nresponse 2 = B (correct)'
        )


class CorrectionFixtureMixin:
    """A test with an MCQ (max 2) and a free question (max 3), answered by a candidate."""

    def setUp(self):
        patcher = patch('exams.services.worker.get_redis_connection')
        self.redis = patcher.start().return_value
        self.addCleanup(patcher.stop)

        self.geography = TestCategory.objects.create(name='Geography')
        self.writing = TestCategory.objects.create(name='Writing')
        self.test = Test.objects.create(title='General knowledge', state=Test.State.PUBLISHED)
        self.q1 = Question.objects.create(
            test=self.test, category=self.geography, order=1,
            question_type=Question.QuestionType.MULTIPLE_CHOICE,
            instruction='What is the capital of France?', max_score=2,
            options=[{'text': 'London', 'valid': False}, {'text': 'Paris', 'valid': True}]
        )
        self.q2 = Question.objects.create(
            test=self.test, category=self.writing, order=2,
            question_type=Question.QuestionType.FREE_TEXT,
            instruction='Describe your last project.', max_score=3
        )
        self.contact = Contact.objects.create(firstname='Ada', lastname='Lovelace', email='ada@example.com')
        self.candidate = Candidate.objects.create(contact=self.contact)
        self.result = TestResult.objects.create(
            test=self.test, candidate=self.candidate, state=TestResult.State.IN_PROGRESS
        )
        self.a1 = Answer.objects.create(result=self.result, question=self.q1, position=0, text='Paris', comment=' ')
        self.a2 = Answer.objects.create(result=self.result, question=self.q2, position=1, text='some answer', comment=' ')

    def orchestrator(self, *replies):
        self.backend = FakeBackend(replies or ['{"score": 2, "comment": "ok"}'])
        return CorrectionOrchestrator(ai_scorer=AiScorerClient(backend=self.backend))

    def payload(self, answers=None, **overrides):
        payload = {
            'resultId': self.result.pk,
            'testId': self.test.pk,
            'answers': answers if answers is not None else [
                {'questionId': self.q1.pk, 'text': 'Paris'},
                {'questionId': self.q2.pk, 'text': 'some answer'},
            ],
            'state': 'finish',
        }
        payload.update(overrides)
        return payload


class CorrectionOrchestratorTests(CorrectionFixtureMixin, TestCase):
    def test_full_correction(self):
        outcome = self.orchestrator().correct_result(self.result.pk, self.payload())

        self.assertEqual(outcome.score, 4)
        self.assertEqual(outcome.max_score, 5)
        self.assertEqual(outcome.percentage, 80)
        self.assertEqual(outcome.corrected, 2)

        self.result.refresh_from_db()
        self.assertEqual(self.result.state, TestResult.State.FINISH)
        self.assertEqual(self.result.score, 4)
        self.assertIsNotNone(self.result.corrected_at)

        self.a1.refresh_from_db()
        self.a2.refresh_from_db()
        self.assertEqual((self.a1.score, self.a1.comment), (2, ''))
        self.assertEqual((self.a2.score, self.a2.comment), (2, 'ok'))
        self.assertEqual(len(self.backend.calls), 1)

    def test_category_scores(self):
        self.orchestrator().correct_result(self.result.pk, self.payload())
        self.result.refresh_from_db()
        self.assertEqual(self.result.scores_by_category, [
            {'categoryId': str(self.geography.pk), 'score': 2.0, 'maxScore': 2.0},
            {'categoryId': str(self.writing.pk), 'score': 2.0, 'maxScore': 3.0},
        ])
        self.assertEqual(
            self.result.score,
            sum(category['score'] for category in self.result.scores_by_category)
        )

    def test_result_email(self):
        self.orchestrator().correct_result(self.result.pk, self.payload())
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['ada@example.com'])
        self.assertIn('Score: 80%', mail.outbox[0].body)
        self.assertIn('https://tests.example.com/invitation?email=ada@example.com', mail.outbox[0].body)

    def test_deleted_question_is_skipped(self):
        payload = self.payload()
        self.q1.delete()
        outcome = self.orchestrator().correct_result(self.result.pk, payload)

        self.assertEqual(outcome.skipped, 1)
        self.assertEqual(outcome.score, 2)
        self.assertEqual(outcome.max_score, 3)
        self.result.refresh_from_db()
        self.assertEqual(self.result.state, TestResult.State.FINISH)
        self.assertEqual(self.result.score, 2)

    def test_correct_with_validated_request(self):
        request = CorrectionRequest.from_payload(self.payload())
        outcome = self.orchestrator().correct(request)
        self.assertEqual((outcome.score, outcome.percentage), (4, 80))

    def test_correction_holds_the_result_lock(self):
        self.orchestrator().correct_result(self.result.pk, self.payload())
        self.redis.lock.assert_called_once_with(f'correction:{self.result.pk}', timeout=3600, blocking_timeout=600)
        self.redis.lock.return_value.release.assert_called_once()

    def test_locked_result_is_not_corrected(self):
        self.redis.lock.return_value.acquire.return_value = False
        with self.assertRaises(CorrectionInProgress):
            self.orchestrator().correct_result(self.result.pk, self.payload())

        self.result.refresh_from_db()
        self.assertEqual(self.result.state, TestResult.State.IN_PROGRESS)
        self.assertEqual(len(mail.outbox), 0)

    def test_negative_ai_score_stored_as_zero(self):
        self.orchestrator('{"score": -4, "comment": "bad"}').correct_result(self.result.pk, self.payload())
        self.a2.refresh_from_db()
        self.assertEqual(self.a2.score, 0)

    def test_ai_score_above_max_is_clamped(self):
        self.orchestrator('{"score": 10, "comment": "great"}').correct_result(self.result.pk, self.payload())
        self.a2.refresh_from_db()
        self.assertEqual(self.a2.score, 3)

    def test_scorer_exception_does_not_abort(self):
        failing = Mock()
        failing.score.side_effect = RuntimeError('backend exploded')
        outcome = CorrectionOrchestrator(ai_scorer=failing).correct_result(self.result.pk, self.payload())

        self.assertEqual(outcome.score, 2)
        self.a2.refresh_from_db()
        self.assertEqual((self.a2.score, self.a2.comment), (0, COMMENT_SCORING_FAILED))
        self.result.refresh_from_db()
        self.assertEqual(self.result.state, TestResult.State.FINISH)

    def test_ai_exhaustion_still_finishes(self):
        outcome = self.orchestrator(RuntimeError('1'), RuntimeError('2'), RuntimeError('3')).correct_result(
            self.result.pk, self.payload()
        )
        self.assertEqual(outcome.score, 2)
        self.assertEqual(len(self.backend.calls), 3)
        self.a2.refresh_from_db()
        self.assertEqual(self.a2.comment, DEGRADED_COMMENT)

    def test_partial_correction(self):
        Answer.objects.filter(pk=self.a2.pk).update(score=1, comment='earlier')
        orchestrator = self.orchestrator()
        outcome = orchestrator.correct_result(
            self.result.pk, self.payload(answers=[{'questionId': self.q1.pk, 'text': 'Paris'}])
        )

        self.assertEqual(self.backend.calls, [])
        self.assertEqual(outcome.score, 3)
        self.a2.refresh_from_db()
        self.assertEqual((self.a2.score, self.a2.comment), (1, 'earlier'))

    def test_correct_without_payload_covers_every_answer(self):
        outcome = self.orchestrator().correct_result(self.result.pk)
        self.assertEqual(outcome.corrected, 2)
        self.assertEqual(outcome.percentage, 80)

    def test_missing_result(self):
        with self.assertRaises(ResultNotFound):
            self.orchestrator().correct_result(999999, self.payload(resultId=999999))

    def test_test_id_mismatch_writes_nothing(self):
        other = Test.objects.create(title='Other')
        with self.assertRaises(CorrectionRequestError):
            self.orchestrator().correct_result(self.result.pk, self.payload(testId=other.pk))

        self.result.refresh_from_db()
        self.assertEqual(self.result.state, TestResult.State.IN_PROGRESS)
        self.assertIsNone(self.result.score)
        self.assertEqual(len(mail.outbox), 0)

    def test_empty_answer_list_is_rejected(self):
        with self.assertRaises(CorrectionRequestError) as ctx:
            self.orchestrator().correct_result(self.result.pk, self.payload(answers=[]))
        self.assertIn('answers', ctx.exception.errors)

    def test_no_contact_skips_email(self):
        TestResult.objects.filter(pk=self.result.pk).update(candidate=None)
        self.orchestrator().correct_result(self.result.pk, self.payload())
        self.assertEqual(len(mail.outbox), 0)
        self.result.refresh_from_db()
        self.assertEqual(self.result.state, TestResult.State.FINISH)

    def test_email_failure_is_not_raised(self):
        with patch('exams.services.notification.send_mail', side_effect=Exception('smtp down')):
            outcome = self.orchestrator().correct_result(self.result.pk, self.payload())
        self.assertEqual(outcome.percentage, 80)

    def test_webhook_failure_is_not_raised(self):
        correction = {**settings.CORRECTION, 'CHAT_WEBHOOK_URL': 'https://chat.example.com/hook'}
        with self.settings(CORRECTION=correction), \
                patch('exams.services.notification.requests.post',
                      side_effect=requests.ConnectionError('offline')) as post:
            self.orchestrator().correct_result(self.result.pk, self.payload())

        post.assert_called_once()
        self.assertIn('Ada Lovelace', post.call_args.kwargs['json']['text'])
        self.result.refresh_from_db()
        self.assertEqual(self.result.state, TestResult.State.FINISH)


class ScoreAggregatorTests(CorrectionFixtureMixin, TestCase):
    def test_uncategorised_questions_only_count_in_total(self):
        q3 = Question.objects.create(
            test=self.test, order=3, question_type=Question.QuestionType.EXERCISE,
            instruction='Reverse a list.', max_score=4
        )
        Answer.objects.filter(pk=self.a1.pk).update(score=2)
        Answer.objects.filter(pk=self.a2.pk).update(score=1.5)
        Answer.objects.create(result=self.result, question=q3, position=2, text='[::-1]', score=4)

        aggregate = ScoreAggregator().aggregate(self.test, self.result)
        self.assertEqual(aggregate.score, 7.5)
        self.assertEqual(aggregate.categories_as_list(), [
            {'categoryId': str(self.geography.pk), 'score': 2.0, 'maxScore': 2.0},
            {'categoryId': str(self.writing.pk), 'score': 1.5, 'maxScore': 3.0},
        ])

    def test_missing_test(self):
        self.assertEqual(ScoreAggregator().aggregate(None, self.result).score, 0)


class CorrectionRequestTests(TestCase):
    def test_aliases(self):
        request = CorrectionRequest.from_payload({
            '_id': 5, 'testId': 3, 'state': 'finish',
            'responses': [{'questionId': 1, 'response': ' x '}],
        })
        self.assertEqual(request.result_id, '5')
        self.assertEqual(request.test_id, '3')
        self.assertEqual(request.question_ids, {'1'})
        self.assertEqual(request.answers[0].text, ' x ')

    def test_invalid_state(self):
        with self.assertRaises(CorrectionRequestError) as ctx:
            CorrectionRequest.from_payload({
                'result_id': 1, 'test_id': 1, 'state': 'done', 'answers': [{'question_id': 1}]
            })
        self.assertIn('state', ctx.exception.errors)

    def test_not_an_object(self):
        with self.assertRaises(CorrectionRequestError):
            CorrectionRequest.from_payload(['result', 1])


class RecordAnswerTests(CorrectionFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.pending = TestResult.objects.create(test=self.test, candidate=self.candidate)

    def test_first_answer_starts_the_result(self):
        answer = record_answer(self.pending.pk, self.q1.pk, 'Paris')
        self.assertEqual(answer.position, 0)
        self.assertEqual(answer.score, 0)

        self.pending.refresh_from_db()
        self.assertEqual(self.pending.state, TestResult.State.IN_PROGRESS)
        self.assertIsNotNone(self.pending.start_time)

    def test_last_answer_triggers_correction(self):
        with patch('exams.services.correction.get_ai_scorer', return_value=ai_scorer('{"score": 3, "comment": "good"}')):
            record_answer(self.pending.pk, self.q1.pk, 'Paris')
            second = record_answer(self.pending.pk, self.q2.pk, 'a long story')

        self.assertEqual(second.position, 1)
        self.pending.refresh_from_db()
        self.assertEqual(self.pending.state, TestResult.State.FINISH)
        self.assertEqual(self.pending.score, 5)
        self.assertEqual(len(mail.outbox), 1)

    def test_finished_result_is_refused(self):
        TestResult.objects.filter(pk=self.pending.pk).update(state=TestResult.State.FINISH)
        with self.assertRaises(ResultAlreadyFinished):
            record_answer(self.pending.pk, self.q1.pk, 'Paris')

    def test_missing_result(self):
        with self.assertRaises(ResultNotFound):
            record_answer(999999, self.q1.pk, 'Paris')

    def test_answering_only_the_last_question_does_not_trigger_correction(self):
        record_answer(self.pending.pk, self.q2.pk, 'a long story')

        self.pending.refresh_from_db()
        self.assertEqual(self.pending.state, TestResult.State.IN_PROGRESS)
        self.assertIsNone(self.pending.score)

    def test_answers_in_any_order_trigger_correction_when_complete(self):
        with patch('exams.services.correction.get_ai_scorer', return_value=ai_scorer('{"score": 1, "comment": "meh"}')):
            record_answer(self.pending.pk, self.q2.pk, 'a long story')
            record_answer(self.pending.pk, self.q1.pk, 'Paris')

        self.pending.refresh_from_db()
        self.assertEqual(self.pending.state, TestResult.State.FINISH)
        self.assertEqual(self.pending.score, 3)

    def test_duplicate_answer_is_refused(self):
        record_answer(self.pending.pk, self.q1.pk, 'Paris')
        with self.assertRaises(QuestionAlreadyAnswered):
            record_answer(self.pending.pk, self.q1.pk, 'London')
        self.assertEqual(self.pending.answers.count(), 1)

    def test_question_from_another_test_is_refused(self):
        other = Test.objects.create(title='Other')
        foreign = Question.objects.create(
            test=other, question_type=Question.QuestionType.FREE_TEXT, instruction='Elsewhere', max_score=1
        )
        with self.assertRaises(QuestionNotInTest):
            record_answer(self.pending.pk, foreign.pk, 'x')
        with self.assertRaises(QuestionNotInTest):
            record_answer(self.pending.pk, 'not-an-id', 'x')
        self.assertEqual(self.pending.answers.count(), 0)

    def test_signal_is_queued_when_not_eager(self):
        correction = {**settings.CORRECTION, 'EAGER': False}
        with self.settings(CORRECTION=correction), \
                patch('exams.services.worker.enqueue_correction') as enqueue:
            correction_requested.send(sender=TestResult, result_id=self.pending.pk)
        enqueue.assert_called_once_with(self.pending.pk, None)


class CorrectionWorkerTests(TestCase):
    """Tests for the RQ task, enqueueing and worker start-up."""

    def setUp(self):
        patcher = patch('exams.services.worker.close_old_connections')
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_enqueue(self):
        queue = Mock()
        queue.enqueue.return_value = Mock(id='job-1')
        job = enqueue_correction(7, {'a': 1}, queue=queue)

        self.assertEqual(job.id, 'job-1')
        self.assertEqual(queue.enqueue.call_args.args, (process_correction, 7, {'a': 1}))
        self.assertEqual(queue.enqueue.call_args.kwargs['job_timeout'], 3600)

    @patch('exams.services.correction.CorrectionOrchestrator')
    def test_process_correction(self, orchestrator_class):
        orchestrator_class.return_value.correct_result.return_value = Mock(result_id=7, score=4.0, percentage=80)
        self.assertEqual(
            process_correction(7, {'a': 1}),
            {'result_id': 7, 'score': 4.0, 'percentage': 80}
        )
        orchestrator_class.return_value.correct_result.assert_called_once_with(7, {'a': 1})

    @patch('exams.services.correction.CorrectionOrchestrator')
    def test_process_correction_logs_and_fails_the_job(self, orchestrator_class):
        orchestrator_class.return_value.correct_result.side_effect = ResultNotFound(7)
        with self.assertLogs('exams.services.worker', level='ERROR'), self.assertRaises(ResultNotFound):
            process_correction(7)

    @patch('exams.services.worker.Worker')
    @patch('exams.services.worker.Queue')
    def test_run_worker(self, queue_class, worker_class):
        connection = Mock()
        run_worker(burst=True, connection=connection)

        queue_class.assert_called_once_with('corrections', connection=connection)
        worker_class.assert_called_once_with([queue_class.return_value], connection=connection)
        worker_class.return_value.work.assert_called_once_with(burst=True)

    def test_result_lock_releases_on_error(self):
        connection = MagicMock()
        with self.assertRaises(RuntimeError):
            with result_lock(7, connection=connection):
                raise RuntimeError('boom')
        connection.lock.return_value.release.assert_called_once()


class StatisticsTests(CorrectionFixtureMixin, TestCase):
    def test_max_score(self):
        self.assertEqual(get_max_score(self.test), 5)

    def test_category_stats(self):
        Answer.objects.filter(pk=self.a1.pk).update(score=2)
        Answer.objects.filter(pk=self.a2.pk).update(score=2)

        stats = get_category_stats(self.result)
        self.assertEqual(stats['total'], {'score': 4.0, 'maxScore': 5.0, 'percentage': 80})
        by_name = {entry['categoryName']: entry for entry in stats['byCategory']}
        self.assertEqual(by_name['Geography']['percentage'], 100)
        self.assertEqual(by_name['Writing']['percentage'], 67)
        self.assertEqual(by_name['Writing']['totalQuestions'], 2)


class CorrectResultCommandTests(CorrectionFixtureMixin, TestCase):
    def test_inline_correction(self):
        out = StringIO()
        with patch('exams.services.correction.get_ai_scorer', return_value=ai_scorer('{"score": 2, "comment": "ok"}')):
            call_command('correct_result', self.result.pk, stdout=out)
        self.assertIn('(80%)', out.getvalue())

    def test_unknown_result(self):
        with self.assertRaises(CommandError):
            call_command('correct_result', 999999, stdout=StringIO())

    def test_correction_errors_are_domain_errors(self):
        self.assertTrue(issubclass(CorrectionRequestError, CorrectionError))
        self.assertFalse(issubclass(ScoringError, CorrectionError))
