"""Type definitions and Pydantic models."""

from .archive import (
    ErrorKind,
    ExportJob,
    Item,
    JobError,
    JobResult,
    JobStatus,
    RunSummary,
    Workspace,
    WorkspaceCounts,
)

__all__ = [
    "ErrorKind",
    "ExportJob",
    "Item",
    "JobError",
    "JobResult",
    "JobStatus",
    "RunSummary",
    "Workspace",
    "WorkspaceCounts",
]
