"""Retry of role writes that fail with transient store errors."""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ....config.constants import (
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY_SECONDS,
    DEFAULT_RETRY_JITTER_RATIO,
    TRANSIENT_ERROR_MARKERS,
)
from ....config.settings import RoleSettings
from ....core.exceptions import DatabaseError, NeoRolesError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_TYPES = (TimeoutError, asyncio.TimeoutError, asyncio.CancelledError)


def _error_chain(error: BaseException):
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def is_transient_error(error: Optional[BaseException]) -> bool:
    """Check if an error, or any error it was raised from, is worth retrying.

    Timeouts and cancellations are transient, as is any error whose text
    mentions one of TRANSIENT_ERROR_MARKERS. Validation, authorization and
    assignment-state errors never are.
    """
    if error is None:
        return False

    # Domain errors other than store failures are permanent
    if isinstance(error, NeoRolesError) and not isinstance(error, DatabaseError):
        return False

    for current in _error_chain(error):
        if isinstance(current, _TRANSIENT_TYPES):
            return True
        message = str(current).lower()
        if any(marker in message for marker in TRANSIENT_ERROR_MARKERS):
            return True
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter for transient failures."""

    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    base_delay_seconds: float = DEFAULT_RETRY_BASE_DELAY_SECONDS
    jitter_ratio: float = DEFAULT_RETRY_JITTER_RATIO

    def __post_init__(self):
        """Validate retry policy parameters."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be non-negative")
        if not 0 <= self.jitter_ratio <= 1:
            raise ValueError("jitter_ratio must be between 0 and 1")

    @classmethod
    def from_settings(cls, settings: RoleSettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay_seconds=settings.retry_base_delay_seconds,
            jitter_ratio=settings.retry_jitter_ratio,
        )

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate the sleep after a failed attempt.

        Args:
            attempt: Failed attempt number (0-based)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay_seconds * (2 ** attempt)

        # Add jitter to prevent thundering herd
        if self.jitter_ratio and delay > 0:
            delay *= 1 + random.uniform(-self.jitter_ratio, self.jitter_ratio)

        return max(0.0, delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation_name: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, fails permanently or attempts run out.

    Non-transient errors are raised immediately. After the last attempt the
    last error is raised. Cancellation is never retried.
    """
    for attempt in range(policy.max_attempts):
        try:
            return await operation()
        except Exception as e:
            if not is_transient_error(e):
                raise
            if attempt == policy.max_attempts - 1:
                logger.error(f"{operation_name} failed after {policy.max_attempts} attempts: {e}")
                raise

            delay = policy.calculate_delay(attempt)
            logger.warning(
                f"{operation_name} attempt {attempt + 1}/{policy.max_attempts} failed "
                f"with transient error, retrying in {delay:.2f}s: {e}"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")  # pragma: no cover
