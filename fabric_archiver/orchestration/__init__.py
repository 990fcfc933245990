"""Discovery and export orchestration."""

from .discovery import DiscoveryResult, DiscoveryStage, WorkspaceExport
from .executor import (
    OperationResult,
    RateLimitedExecutor,
    classify_error,
    classify_status,
)
from .export_orchestrator import (
    ExportOrchestrator,
    ExportRunResult,
    SummaryAccumulator,
)
from .job_flattener import flatten_jobs, item_folder_name

__all__ = [
    # Discovery
    "DiscoveryResult",
    "DiscoveryStage",
    "WorkspaceExport",
    # Executor
    "OperationResult",
    "RateLimitedExecutor",
    "classify_error",
    "classify_status",
    # Export
    "ExportOrchestrator",
    "ExportRunResult",
    "SummaryAccumulator",
    # Flattener
    "flatten_jobs",
    "item_folder_name",
]
