import logging
from tenacity import Retrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_none

logger = logging.getLogger(__name__)


def bounded_retry(func, attempts: int, fallback, label: str = "call"):
    """
    Call ``func`` up to ``attempts`` times in a row, without delay between attempts.

    Any ``Exception`` raised by ``func`` counts as a failed attempt. When every
    attempt failed, ``fallback(last_exception)`` is returned instead of raising.
    """
    attempts = max(1, int(attempts))

    def _log_failure(retry_state: RetryCallState) -> None:
        logger.warning(
            f"{label}: attempt {retry_state.attempt_number}/{attempts} failed: "
            f"{retry_state.outcome.exception()!r}"
        )

    def _give_up(retry_state: RetryCallState):
        logger.error(f"{label}: giving up after {retry_state.attempt_number} attempt(s)")
        return fallback(retry_state.outcome.exception())

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_none(),
        retry=retry_if_exception_type(Exception),
        after=_log_failure,
        retry_error_callback=_give_up,
    )
    return retrying(func)
