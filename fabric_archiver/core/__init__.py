"""Core infrastructure for the Fabric workspace archiver."""

from .config import (
    ArchiveConfig,
    Credentials,
    RetrySettings,
    get_credentials,
    load_config,
)
from .filter_evaluator import (
    FilterClause,
    FilterResult,
    WorkspaceFilter,
    filter_workspaces,
)
from .paths import sanitize_name
from .retry_policy import RetryPolicy
from .throttle import MAX_AUTO_THROTTLE, resolve_throttle_limit

__all__ = [
    # Config
    "ArchiveConfig",
    "Credentials",
    "RetrySettings",
    "get_credentials",
    "load_config",
    # Filter Evaluator
    "FilterClause",
    "FilterResult",
    "WorkspaceFilter",
    "filter_workspaces",
    # Paths
    "sanitize_name",
    # Retry / Throttle
    "RetryPolicy",
    "MAX_AUTO_THROTTLE",
    "resolve_throttle_limit",
]
