"""Exception types raised by the archiver."""

from typing import Optional

from .types.archive import ErrorKind


class ArchiverError(Exception):
    """Base class for archiver errors."""


class ConfigError(ArchiverError):
    """Configuration file could not be read or parsed."""


class ApiError(ArchiverError):
    """Non-success response from the remote API."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code} {message}".strip())


class OperationError(ArchiverError):
    """Terminal failure of a rate-limited operation.

    Raised either immediately on a fatal error or once the retry budget is
    exhausted. ``attempts`` is the number of times the operation ran.
    """

    def __init__(
        self,
        name: str,
        kind: ErrorKind,
        attempts: int,
        cause: Optional[BaseException] = None,
    ):
        self.name = name
        self.kind = kind
        self.attempts = attempts
        self.cause = cause
        detail = str(cause) if cause is not None else "unknown error"
        super().__init__(
            f"{name} failed after {attempts} attempt(s) [{kind.value}]: {detail}"
        )


class DiscoveryError(ArchiverError):
    """Workspace listing failed; nothing can be exported."""
