"""Workspace, item, and export job models."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

ACTIVE_STATE = "Active"


class ErrorKind(str, Enum):
    """Classification of a failed remote call."""

    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self is not ErrorKind.FATAL


class JobStatus(str, Enum):
    """Lifecycle of a single export job."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Workspace(BaseModel):
    """A remote collection of exportable items.

    The discovery source only returns workspaces the caller can reach, so
    every Workspace is treated as active.
    """

    id: str = Field(description="Workspace ID")
    display_name: str = Field(alias="displayName")
    kind: str = Field(default="Workspace", alias="type")
    description: Optional[str] = Field(default=None)
    capacity_id: Optional[str] = Field(default=None, alias="capacityId")

    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}

    @property
    def state(self) -> str:
        return ACTIVE_STATE


class Item(BaseModel):
    """A single exportable object inside a workspace."""

    id: str = Field(description="Item ID")
    display_name: str = Field(alias="displayName")
    type: str = Field(description="Item type, e.g. Report, SemanticModel, Notebook")
    workspace_id: str = Field(alias="workspaceId")
    description: Optional[str] = Field(default=None)

    model_config = {"populate_by_name": True, "extra": "ignore", "frozen": True}


class ExportJob(BaseModel):
    """One unit of concurrent work: export a single item's definition."""

    workspace_id: str
    workspace_display_name: str
    item_id: str
    item_display_name: str
    item_type: str
    destination_path: Path

    model_config = {"frozen": True}

    @property
    def job_id(self) -> str:
        return f"{self.workspace_id}/{self.item_id}"


class JobError(BaseModel):
    """Classified terminal error of a job."""

    kind: ErrorKind
    message: str


class JobResult(BaseModel):
    """Terminal outcome of one ExportJob."""

    job_id: str
    workspace_id: str
    item_id: str
    item_display_name: str = ""
    item_type: str = ""
    succeeded: bool
    attempts: int = Field(ge=1)
    error: Optional[JobError] = Field(default=None)
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime = Field(default_factory=datetime.now)

    @property
    def status(self) -> JobStatus:
        return JobStatus.SUCCEEDED if self.succeeded else JobStatus.FAILED

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


class WorkspaceCounts(BaseModel):
    """Per-workspace job tallies."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0


class RunSummary(BaseModel):
    """Aggregate counts for an export run."""

    total_jobs: int = 0
    succeeded: int = 0
    failed: int = 0
    per_workspace_counts: dict[str, WorkspaceCounts] = Field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0
