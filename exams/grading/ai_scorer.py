import logging
import math

from .base import Scorer, ScoringResult
from .live_message import LiveMessageClient, parse_json_object, DEFAULT_MAX_ATTEMPTS
from .prompts import render_correction_prompt

logger = logging.getLogger(__name__)

DEGRADED_COMMENT = "Automatic correction is unavailable for this answer; it was scored 0 and can be reviewed manually."


def sanitize_ai_score(value) -> float:
    """Numeric coercion of the AI's score; NaN, negative or non-finite values become 0."""
    try:
        score = float(value)
    except (TypeError, ValueError, OverflowError):
        score = math.nan

    if not math.isfinite(score) or score < 0:
        logger.warning(f"AI returned an unusable score {value!r}; using 0")
        return 0.0
    return score


def extract_comment(verdict: dict) -> str:
    """Accept both ``comment`` and the legacy ``commentaire`` field."""
    comment = verdict.get('comment') or verdict.get('commentaire') or ''
    return str(comment)


class AiScorerClient(Scorer):
    """Delegates scoring of open-ended answers to an external text-generation backend."""

    def __init__(self, backend=None, live_client: LiveMessageClient = None, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        if live_client is None:
            live_client = LiveMessageClient(backend, max_attempts=max_attempts)
        self.live_client = live_client

    def get_service_name(self) -> str:
        return self.live_client.backend.get_service_name()

    def score(self, question, answer_text: str) -> ScoringResult:
        prompt = render_correction_prompt(question, answer_text)
        generation = self.live_client.generate(prompt, json_output=True, parse=parse_json_object)

        if not generation.ok:
            logger.warning(
                f"AI scoring degraded for question {question.pk} after "
                f"{generation.attempts} attempt(s): {generation.reason}"
            )
            return ScoringResult(
                score=0.0,
                comment=DEGRADED_COMMENT,
                grading_method=f"{self.get_service_name()}_degraded",
                degraded=True
            )

        verdict = generation.data
        return ScoringResult(
            score=sanitize_ai_score(verdict.get('score')),
            comment=extract_comment(verdict),
            grading_method=self.get_service_name()
        )
