import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from exams.exceptions import InvalidVerdict
from .backends import TextGenerationBackend
from .retry import bounded_retry

logger = logging.getLogger(__name__)

SENTINEL = "Brain freezed, I cannot generate a live message right now."
DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class Generation:
    """Outcome of a generation: ``ok`` with text (and parsed data), or a failure reason."""
    ok: bool
    text: str = ''
    data: Any = None
    reason: str = ''
    attempts: int = 0


def is_sentinel(text: str) -> bool:
    return text == SENTINEL


def strip_quotes(text: str) -> str:
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        return text[1:-1]
    return text


def parse_json_object(text: str) -> dict:
    """Parse a reply expected to hold a single JSON object, unwrapping code fences."""
    content = text.strip()
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise InvalidVerdict(f"Reply is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidVerdict(f"Expected a JSON object, got {type(data).__name__}")
    return data


class LiveMessageClient:
    """
    Submits prompts to a text-generation backend inside a bounded retry envelope.

    An attempt fails when the backend raises, returns empty content, or when the
    optional ``parse`` callable rejects the reply. After ``max_attempts`` failures
    the client degrades instead of raising.
    """

    def __init__(self, backend: TextGenerationBackend, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self.backend = backend
        self.max_attempts = max_attempts

    def generate(self, instructions: str, json_output: bool = True,
                 parse: Optional[Callable[[str], Any]] = None) -> Generation:
        attempts = 0

        def _attempt() -> Generation:
            nonlocal attempts
            attempts += 1
            content = self.backend.complete(instructions, json_output=json_output)
            if not content or not content.strip():
                raise InvalidVerdict("No content in response")
            text = strip_quotes(content.strip())
            data = parse(text) if parse else None
            return Generation(ok=True, text=text, data=data, attempts=attempts)

        def _exhausted(exc) -> Generation:
            return Generation(ok=False, reason=str(exc) or type(exc).__name__, attempts=attempts)

        return bounded_retry(
            _attempt,
            attempts=self.max_attempts,
            fallback=_exhausted,
            label=self.backend.get_service_name()
        )

    def generate_live_message(self, instructions: str, json_output: bool = False) -> str:
        """
        String-returning variant: the reply text, or ``SENTINEL`` once retries are exhausted.

        With ``json_output`` the reply must parse as a JSON object to count as a success.
        Callers must check ``is_sentinel()`` before parsing the returned text.
        """
        generation = self.generate(
            instructions,
            json_output=json_output,
            parse=parse_json_object if json_output else None
        )
        if not generation.ok:
            logger.warning(f"Live message degraded after {generation.attempts} attempt(s): {generation.reason}")
            return SENTINEL
        return generation.text
