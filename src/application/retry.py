"""
Optimistic-lock retry policy.

ConcurrentModificationError is the only error retried automatically: the
whole read-modify-write is re-run against the latest version with
exponential backoff. Every other error propagates on the first attempt.
"""

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import get_logger, get_settings
from src.config.settings import MovementSettings
from src.core.exceptions import ConcurrentModificationError

logger = get_logger(__name__)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log retry attempts."""
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "concurrent_modification_retry",
        attempt=retry_state.attempt_number,
        movement_id=getattr(error, "details", {}).get("movement_id"),
    )


def conflict_retrying(settings: MovementSettings | None = None) -> AsyncRetrying:
    """Retry controller configured from MovementSettings."""
    settings = settings or get_settings().movement
    return AsyncRetrying(
        stop=stop_after_attempt(settings.conflict_max_attempts),
        wait=wait_exponential(
            multiplier=settings.conflict_retry_delay,
            min=settings.conflict_retry_delay,
            max=settings.conflict_retry_delay * (settings.conflict_retry_multiplier**3),
        ),
        retry=retry_if_exception_type(ConcurrentModificationError),
        before_sleep=_log_retry,
        reraise=True,
    )
