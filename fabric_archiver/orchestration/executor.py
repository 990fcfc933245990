"""Rate-limited operation executor.

Wraps a single remote call, classifies its failures, and retries
rate-limited and transient failures with backoff. The executor knows
nothing about what the operation does; discovery, export, and metadata
calls all go through it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

import httpx

from ..core.retry_policy import RetryPolicy
from ..errors import ApiError, OperationError
from ..types.archive import ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS_CODES = {429}
TRANSIENT_STATUS_CODES = {502, 503, 504}

# Message fallbacks for callers that only surface text
_RATE_LIMIT_MARKERS = ("429", "too many requests", "rate limit")
_TRANSIENT_MARKERS = (
    "503",
    "502",
    "504",
    "service unavailable",
    "bad gateway",
    "gateway timeout",
    "timed out",
    "connection refused",
    "connection reset",
    "connection aborted",
)


def classify_status(status_code: int) -> ErrorKind:
    """Classify an HTTP status code."""
    if status_code in RATE_LIMIT_STATUS_CODES:
        return ErrorKind.RATE_LIMITED
    if status_code in TRANSIENT_STATUS_CODES:
        return ErrorKind.TRANSIENT
    return ErrorKind.FATAL


def classify_error(error: BaseException) -> ErrorKind:
    """Classify a failure as rate-limited, transient, or fatal.

    Structured information (status codes, exception types) is used when
    available; otherwise the message is matched against known markers.
    """
    if isinstance(error, OperationError):
        return error.kind

    if isinstance(error, ApiError):
        return classify_status(error.status_code)

    if isinstance(error, httpx.HTTPStatusError):
        return classify_status(error.response.status_code)

    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorKind.TRANSIENT

    if isinstance(error, (TimeoutError, ConnectionError)):
        return ErrorKind.TRANSIENT

    message = str(error).lower()
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.RATE_LIMITED
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return ErrorKind.TRANSIENT

    return ErrorKind.FATAL


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Successful outcome of an executed operation."""

    value: T
    attempts: int


class RateLimitedExecutor:
    """Runs operations with error classification and retry/backoff.

    Each call keeps its own attempt counter, so one executor can be shared
    by any number of concurrent workers. A retry delay only blocks the
    caller that is retrying.
    """

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the executor.

        Args:
            sleep: Blocking sleep used by execute().
            async_sleep: Awaitable sleep used by execute_async().
        """
        self._sleep = sleep
        self._async_sleep = async_sleep

    def execute(
        self,
        operation: Callable[[], T],
        name: str,
        policy: RetryPolicy,
    ) -> OperationResult[T]:
        """Run a blocking operation with retries.

        Args:
            operation: Zero-argument callable performing the remote call.
            name: Label used in logs and errors.
            policy: Retry budget and backoff schedule.

        Returns:
            OperationResult with the value and number of attempts.

        Raises:
            OperationError: On a fatal error or when retries are exhausted.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                value = operation()
            except Exception as e:
                delay = self._on_failure(e, name, policy, attempt)
                self._sleep(delay)
                continue

            self._on_success(name, attempt)
            return OperationResult(value=value, attempts=attempt)

    async def execute_async(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str,
        policy: RetryPolicy,
    ) -> OperationResult[T]:
        """Async variant of execute() for coroutine operations.

        Args:
            operation: Zero-argument callable returning an awaitable.
            name: Label used in logs and errors.
            policy: Retry budget and backoff schedule.

        Returns:
            OperationResult with the value and number of attempts.

        Raises:
            OperationError: On a fatal error or when retries are exhausted.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                value = await operation()
            except Exception as e:
                delay = self._on_failure(e, name, policy, attempt)
                await self._async_sleep(delay)
                continue

            self._on_success(name, attempt)
            return OperationResult(value=value, attempts=attempt)

    def _on_failure(
        self,
        error: Exception,
        name: str,
        policy: RetryPolicy,
        attempt: int,
    ) -> float:
        """Classify a failure and return the retry delay, or raise."""
        kind = classify_error(error)

        if not kind.retryable:
            logger.debug(f"{name}: fatal error on attempt {attempt}: {error}")
            raise OperationError(name, kind, attempt, error) from error

        if attempt > policy.max_retries:
            logger.warning(
                f"{name}: giving up after {attempt} attempt(s) ({kind.value}): {error}"
            )
            raise OperationError(name, kind, attempt, error) from error

        delay = policy.delay_for(kind, attempt)
        logger.warning(
            f"{name}: {kind.value} error, retrying in {delay:.1f}s "
            f"(attempt {attempt}/{policy.max_attempts}): {error}"
        )
        return delay

    def _on_success(self, name: str, attempt: int) -> None:
        if attempt > 1:
            logger.info(f"{name}: succeeded on attempt {attempt}")
