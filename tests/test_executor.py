"""Tests for the rate-limited operation executor."""

import httpx
import pytest

from fabric_archiver.core.retry_policy import RetryPolicy
from fabric_archiver.errors import ApiError, OperationError
from fabric_archiver.orchestration.executor import (
    RateLimitedExecutor,
    classify_error,
    classify_status,
)
from fabric_archiver.types.archive import ErrorKind


class FlakyOperation:
    """Raises the queued errors in order, then returns a value."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def executor(sleeps):
    async def record_async_sleep(delay):
        sleeps.append(delay)

    return RateLimitedExecutor(sleep=sleeps.append, async_sleep=record_async_sleep)


class TestRetryPolicy:
    """Test delay schedule and validation."""

    def test_rate_limited_delays_grow_exponentially(self):
        policy = RetryPolicy(max_retries=3, base_delay=30, backoff_multiplier=2)
        delays = [policy.delay_for(ErrorKind.RATE_LIMITED, n) for n in (1, 2, 3)]
        assert delays == [30, 60, 120]

    def test_transient_delay_is_flat(self):
        policy = RetryPolicy(max_retries=3, base_delay=30, backoff_multiplier=2)
        delays = [policy.delay_for(ErrorKind.TRANSIENT, n) for n in (1, 2, 3)]
        assert delays == [30, 30, 30]

    def test_max_attempts(self):
        assert RetryPolicy(max_retries=0).max_attempts == 1
        assert RetryPolicy(max_retries=4).max_attempts == 5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"base_delay": -0.5},
            {"backoff_multiplier": 0.5},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestClassifyError:
    """Test failure classification."""

    @pytest.mark.parametrize(
        "status,expected",
        [
            (429, ErrorKind.RATE_LIMITED),
            (503, ErrorKind.TRANSIENT),
            (502, ErrorKind.TRANSIENT),
            (504, ErrorKind.TRANSIENT),
            (401, ErrorKind.FATAL),
            (403, ErrorKind.FATAL),
            (404, ErrorKind.FATAL),
            (500, ErrorKind.FATAL),
        ],
    )
    def test_status_codes(self, status, expected):
        assert classify_status(status) == expected
        assert classify_error(ApiError(status, "boom")) == expected

    def test_httpx_status_error(self):
        request = httpx.Request("GET", "https://example.test/")
        response = httpx.Response(429, request=request)
        error = httpx.HTTPStatusError("too many", request=request, response=response)
        assert classify_error(error) == ErrorKind.RATE_LIMITED

    def test_httpx_transport_errors_are_transient(self):
        request = httpx.Request("GET", "https://example.test/")
        assert classify_error(httpx.ReadTimeout("slow", request=request)) == ErrorKind.TRANSIENT
        assert classify_error(httpx.ConnectError("refused", request=request)) == ErrorKind.TRANSIENT

    def test_builtin_timeouts_are_transient(self):
        assert classify_error(TimeoutError("late")) == ErrorKind.TRANSIENT
        assert classify_error(ConnectionResetError("reset")) == ErrorKind.TRANSIENT

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Response status code 429", ErrorKind.RATE_LIMITED),
            ("Too Many Requests", ErrorKind.RATE_LIMITED),
            ("503 Service Unavailable", ErrorKind.TRANSIENT),
            ("502 Bad Gateway", ErrorKind.TRANSIENT),
            ("The operation has timed out", ErrorKind.TRANSIENT),
            ("401 Authentication failed", ErrorKind.FATAL),
            ("Item not found", ErrorKind.FATAL),
        ],
    )
    def test_message_fallback(self, message, expected):
        assert classify_error(RuntimeError(message)) == expected

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("401 invalid connection string", ErrorKind.FATAL),
            ("Invalid timeout parameter", ErrorKind.FATAL),
            ("Connection refused by host", ErrorKind.TRANSIENT),
            ("Connection reset by peer", ErrorKind.TRANSIENT),
            ("504 Gateway Timeout", ErrorKind.TRANSIENT),
        ],
    )
    def test_message_markers_are_specific(self, message, expected):
        """Words like 'connection' alone do not make a failure retryable."""
        assert classify_error(RuntimeError(message)) == expected

    def test_only_fatal_is_not_retryable(self):
        assert ErrorKind.RATE_LIMITED.retryable
        assert ErrorKind.TRANSIENT.retryable
        assert not ErrorKind.FATAL.retryable


class TestExecute:
    """Test the blocking retry loop."""

    def test_success_first_try(self, executor, sleeps):
        result = executor.execute(lambda: 42, "answer", RetryPolicy())
        assert result.value == 42
        assert result.attempts == 1
        assert sleeps == []

    def test_429_once_then_success(self, executor, sleeps):
        """A single 429 with max_retries=1 succeeds on attempt 2."""
        operation = FlakyOperation([RuntimeError("429 Too Many Requests")], value="done")
        policy = RetryPolicy(max_retries=1, base_delay=30, backoff_multiplier=2)

        result = executor.execute(operation, "export", policy)

        assert result.value == "done"
        assert result.attempts == 2
        assert sleeps == [30]

    def test_connection_string_error_not_retried(self, executor, sleeps):
        operation = FlakyOperation([RuntimeError("401 invalid connection string")] * 3)

        with pytest.raises(OperationError) as exc_info:
            executor.execute(operation, "export", RetryPolicy(max_retries=3))

        assert exc_info.value.attempts == 1
        assert sleeps == []

    def test_authentication_failure_not_retried(self, executor, sleeps):
        operation = FlakyOperation([RuntimeError("401 Authentication failed")] * 5)

        with pytest.raises(OperationError) as exc_info:
            executor.execute(operation, "export", RetryPolicy(max_retries=3))

        assert exc_info.value.attempts == 1
        assert exc_info.value.kind == ErrorKind.FATAL
        assert operation.calls == 1
        assert sleeps == []

    def test_rate_limit_backoff_schedule(self, executor, sleeps):
        operation = FlakyOperation([ApiError(429, "slow down")] * 4)
        policy = RetryPolicy(max_retries=3, base_delay=30, backoff_multiplier=2)

        with pytest.raises(OperationError) as exc_info:
            executor.execute(operation, "list workspaces", policy)

        assert sleeps == [30, 60, 120]
        assert exc_info.value.attempts == 4
        assert exc_info.value.kind == ErrorKind.RATE_LIMITED
        assert isinstance(exc_info.value.cause, ApiError)

    def test_transient_uses_flat_delay(self, executor, sleeps):
        operation = FlakyOperation([ApiError(503), ApiError(502)], value="ok")
        policy = RetryPolicy(max_retries=3, base_delay=5, backoff_multiplier=3)

        result = executor.execute(operation, "list items", policy)

        assert result.attempts == 3
        assert sleeps == [5, 5]

    def test_mixed_failures_use_attempt_number(self, executor, sleeps):
        operation = FlakyOperation([ApiError(503), ApiError(429)], value="ok")
        policy = RetryPolicy(max_retries=2, base_delay=10, backoff_multiplier=2)

        result = executor.execute(operation, "export", policy)

        assert result.attempts == 3
        assert sleeps == [10, 20]

    def test_zero_retries(self, executor, sleeps):
        operation = FlakyOperation([ApiError(429)])

        with pytest.raises(OperationError) as exc_info:
            executor.execute(operation, "export", RetryPolicy(max_retries=0))

        assert exc_info.value.attempts == 1
        assert sleeps == []

    @pytest.mark.parametrize("max_retries", [0, 1, 2, 5])
    def test_attempts_bounded_by_budget(self, executor, max_retries):
        operation = FlakyOperation([ApiError(503)] * 10)

        with pytest.raises(OperationError) as exc_info:
            executor.execute(operation, "export", RetryPolicy(max_retries=max_retries, base_delay=0))

        assert exc_info.value.attempts == max_retries + 1
        assert operation.calls == max_retries + 1

    def test_error_message_names_operation(self, executor):
        with pytest.raises(OperationError, match="list workspaces failed after 1 attempt"):
            executor.execute(
                FlakyOperation([ApiError(403, "Forbidden")]),
                "list workspaces",
                RetryPolicy(),
            )


class TestExecuteAsync:
    """Test the coroutine retry loop."""

    @pytest.mark.asyncio
    async def test_async_retry_then_success(self, executor, sleeps):
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise ApiError(429)
            return "exported"

        policy = RetryPolicy(max_retries=3, base_delay=30, backoff_multiplier=2)
        result = await executor.execute_async(operation, "export", policy)

        assert result.value == "exported"
        assert result.attempts == 3
        assert sleeps == [30, 60]

    @pytest.mark.asyncio
    async def test_async_fatal(self, executor, sleeps):
        async def operation():
            raise RuntimeError("401 Authentication failed")

        with pytest.raises(OperationError) as exc_info:
            await executor.execute_async(operation, "export", RetryPolicy())

        assert exc_info.value.attempts == 1
        assert sleeps == []
