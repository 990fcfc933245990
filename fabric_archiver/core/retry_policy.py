"""Retry policy value object."""

from dataclasses import dataclass

from ..types.archive import ErrorKind


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff schedule for one remote call.

    Attributes:
        max_retries: Retries allowed after the first attempt.
        base_delay: Delay in seconds before the first retry.
        backoff_multiplier: Growth factor applied to rate-limited retries.
    """

    max_retries: int = 3
    base_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, kind: ErrorKind, retry_number: int) -> float:
        """Seconds to wait before the given retry (1-indexed).

        Rate-limited failures back off exponentially; transient failures
        wait a flat base delay.
        """
        if kind is ErrorKind.RATE_LIMITED:
            return self.base_delay * (self.backoff_multiplier ** (retry_number - 1))
        return self.base_delay
