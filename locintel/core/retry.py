"""
Retry policy with exponential backoff for provider requests.

Provides the retry loop used by every provider client:
- Error classification (transient, rate limited, auth, client error, unknown)
- Exponential backoff with additive jitter
- Honors Retry-After hints on rate limit errors, capped at max_retry_after
- Re-raises the last error with the attempt count when exhausted
"""

import asyncio
import enum
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx

from locintel.core.api_errors import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    FatalError,
    NotFoundError,
    RateLimitError,
    RetryableError,
    UnsupportedCapabilityError,
    ValidationError,
    parse_retry_after,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorClass(str, enum.Enum):
    """How the retry loop treats a failure."""

    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    AUTH = "auth"
    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"


RETRYABLE_CLASSES = frozenset(
    {ErrorClass.TRANSIENT, ErrorClass.RATE_LIMITED, ErrorClass.UNKNOWN}
)


def _classify_status(status_code: int, retry_after: Optional[float]) -> ErrorClass:
    if status_code == 429:
        return ErrorClass.RATE_LIMITED if retry_after is not None else ErrorClass.TRANSIENT
    if status_code in (401, 403):
        return ErrorClass.AUTH
    if status_code in (408, 425):
        return ErrorClass.TRANSIENT
    if 400 <= status_code < 500:
        return ErrorClass.CLIENT_ERROR
    if 500 <= status_code < 600:
        return ErrorClass.TRANSIENT
    return ErrorClass.UNKNOWN


def classify_error(exc: BaseException) -> ErrorClass:
    """
    Classify an exception for the retry loop.

    Args:
        exc: Exception raised by an attempt

    Returns:
        ErrorClass for the exception. Anything unrecognized is UNKNOWN,
        which is retried.
    """
    if isinstance(exc, RateLimitError):
        return ErrorClass.RATE_LIMITED if exc.retry_after is not None else ErrorClass.TRANSIENT
    if isinstance(exc, AuthenticationError):
        return ErrorClass.AUTH
    if isinstance(
        exc, (ValidationError, NotFoundError, ConfigurationError, UnsupportedCapabilityError)
    ):
        return ErrorClass.CLIENT_ERROR
    if isinstance(exc, RetryableError):
        return ErrorClass.TRANSIENT
    if isinstance(exc, httpx.RequestError):
        return ErrorClass.TRANSIENT
    if isinstance(exc, httpx.HTTPStatusError):
        retry_after = parse_retry_after(exc.response.headers.get("Retry-After"))
        return _classify_status(exc.response.status_code, retry_after)
    if isinstance(exc, FatalError):
        return ErrorClass.CLIENT_ERROR
    if isinstance(exc, APIError):
        if exc.status_code:
            return _classify_status(exc.status_code, None)
        return ErrorClass.TRANSIENT if exc.retryable else ErrorClass.UNKNOWN
    return ErrorClass.UNKNOWN


def compute_backoff_delay(
    attempt: int, base_delay: float, max_delay: float, jitter: float = 0.0
) -> float:
    """
    Calculate delay before the next attempt.

    Args:
        attempt: Attempt number that just failed (1-indexed)
        base_delay: Delay after the first failure, in seconds
        max_delay: Upper bound on the delay
        jitter: Additive jitter in seconds

    Returns:
        ``min(base_delay * 2**(attempt - 1) + jitter, max_delay)``
    """
    exponent = max(attempt - 1, 0)
    return min(base_delay * (2 ** exponent) + jitter, max_delay)


def _set_attempts(exc: BaseException, attempts: int) -> None:
    try:
        exc.attempts = attempts
    except AttributeError:
        logger.debug(f"Could not record attempts on {type(exc).__name__}")


class RetryPolicy:
    """
    Bounded retry loop around an async operation.

    The operation is re-invoked from scratch on each attempt, so rate
    limiter admission inside it applies to every attempt.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_jitter: float = 1.0,
        max_retry_after: float = 120.0,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_jitter = max_jitter
        self.max_retry_after = max_retry_after
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

    def delay_for(self, attempt: int, error_class: ErrorClass, exc: BaseException) -> float:
        """Delay before retrying after ``attempt`` failed with ``exc``."""
        if error_class == ErrorClass.RATE_LIMITED:
            retry_after = getattr(exc, "retry_after", None)
            if retry_after is None and isinstance(exc, httpx.HTTPStatusError):
                retry_after = parse_retry_after(exc.response.headers.get("Retry-After"))
            if retry_after is not None:
                return min(float(retry_after), self.max_retry_after)
        jitter = self._rng.uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return compute_backoff_delay(attempt, self.base_delay, self.max_delay, jitter)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        operation_name: str = "operation",
    ) -> T:
        """
        Run ``operation`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine factory
            max_attempts: Per-call override of the attempt bound
            operation_name: Label used in log messages

        Returns:
            The operation's result

        Raises:
            The last error, with ``attempts`` set, when attempts are
            exhausted or the error is not retryable.
        """
        attempts_allowed = max_attempts or self.max_attempts
        attempt = 0

        while True:
            attempt += 1
            try:
                return await operation()
            except Exception as e:
                error_class = classify_error(e)

                if error_class not in RETRYABLE_CLASSES:
                    _set_attempts(e, attempt)
                    raise

                if attempt >= attempts_allowed:
                    logger.error(
                        f"All {attempts_allowed} attempts failed for {operation_name}: {e}"
                    )
                    _set_attempts(e, attempt)
                    raise

                delay = self.delay_for(attempt, error_class, e)
                logger.warning(
                    f"Retry {attempt}/{attempts_allowed} for {operation_name} "
                    f"after {delay:.2f}s ({error_class.value}): {e}"
                )
                await self._sleep(delay)
