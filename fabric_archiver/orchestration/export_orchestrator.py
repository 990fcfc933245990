"""Export orchestrator for parallel, rate-limited item export.

Runs the flat job queue through a fixed pool of async workers. Each job
is wrapped individually by the RateLimitedExecutor; a job's retry sleep
only holds its own worker, and a failed job never cancels its siblings.
After every job is terminal, workspace metadata is written in a
sequential finishing pass.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from ..clients.base import WorkspaceApi
from ..core.retry_policy import RetryPolicy
from ..errors import OperationError
from ..types.archive import (
    ErrorKind,
    ExportJob,
    JobError,
    JobResult,
    JobStatus,
    RunSummary,
    WorkspaceCounts,
)
from .discovery import WorkspaceExport
from .executor import RateLimitedExecutor

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExportJob, JobStatus], None]
MetadataWriter = Callable[[WorkspaceExport, list[JobResult]], None]


class SummaryAccumulator:
    """Single serialization point for results shared by all workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._summary = RunSummary()
        self._results: dict[str, JobResult] = {}
        self._in_flight = 0
        self._in_flight_peak = 0

    def job_started(self) -> None:
        with self._lock:
            self._in_flight += 1
            self._in_flight_peak = max(self._in_flight_peak, self._in_flight)

    def record(self, result: JobResult) -> None:
        """Record a terminal job result exactly once."""
        with self._lock:
            if result.job_id in self._results:
                raise ValueError(f"Result already recorded for job {result.job_id}")

            self._results[result.job_id] = result
            self._in_flight -= 1

            counts = self._summary.per_workspace_counts.setdefault(
                result.workspace_id, WorkspaceCounts()
            )
            self._summary.total_jobs += 1
            counts.total += 1
            if result.succeeded:
                self._summary.succeeded += 1
                counts.succeeded += 1
            else:
                self._summary.failed += 1
                counts.failed += 1

    @property
    def in_flight_peak(self) -> int:
        with self._lock:
            return self._in_flight_peak

    def snapshot(self) -> tuple[dict[str, JobResult], RunSummary]:
        with self._lock:
            return dict(self._results), self._summary.model_copy(deep=True)


@dataclass
class ExportRunResult:
    """Result of an export run."""

    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    results: dict[str, JobResult] = field(default_factory=dict)
    summary: RunSummary = field(default_factory=RunSummary)
    concurrency: int = 1
    in_flight_peak: int = 0

    @property
    def success(self) -> bool:
        """Check if every job succeeded."""
        return self.summary.failed == 0

    @property
    def duration_seconds(self) -> float:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    @property
    def failed_results(self) -> list[JobResult]:
        return [r for r in self.results.values() if not r.succeeded]

    def results_for_workspace(self, workspace_id: str) -> list[JobResult]:
        return [r for r in self.results.values() if r.workspace_id == workspace_id]


class ExportOrchestrator:
    """Runs export jobs with bounded concurrency and per-job retries.

    Features:
    - Fixed-size worker pool pulling from a shared queue
    - Per-job retry/backoff through the RateLimitedExecutor
    - Failure isolation (no cross-job cancellation)
    - Lock-protected result aggregation keyed by job ID
    - Sequential per-workspace metadata pass
    """

    def __init__(
        self,
        api: WorkspaceApi,
        executor: Optional[RateLimitedExecutor] = None,
        policy: Optional[RetryPolicy] = None,
        concurrency: int = 1,
        metadata_writer: Optional[MetadataWriter] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize the orchestrator.

        Args:
            api: Remote workspace API.
            executor: Executor wrapping each export call.
            policy: Retry policy applied to every job.
            concurrency: Number of workers (resolved throttle limit).
            metadata_writer: Called once per workspace after all jobs finish.
            progress_callback: Called on each job state change.
        """
        self._api = api
        self._executor = executor or RateLimitedExecutor()
        self._policy = policy or RetryPolicy()
        self._concurrency = max(1, concurrency)
        self._metadata_writer = metadata_writer
        self._progress_callback = progress_callback

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def run(
        self,
        jobs: list[ExportJob],
        workspaces: Optional[list[WorkspaceExport]] = None,
    ) -> ExportRunResult:
        """Export every job.

        Args:
            jobs: Flat job list from the job flattener.
            workspaces: Discovery entries, used for the metadata pass.

        Returns:
            ExportRunResult with one JobResult per job and a RunSummary.
        """
        run_result = ExportRunResult(concurrency=self._concurrency)
        accumulator = SummaryAccumulator()

        queue: asyncio.Queue[ExportJob] = asyncio.Queue()
        for job in jobs:
            queue.put_nowait(job)
            self._report_progress(job, JobStatus.PENDING)

        worker_count = min(self._concurrency, len(jobs))
        logger.info(f"Exporting {len(jobs)} item(s) with {worker_count} worker(s)")

        async def worker() -> None:
            while True:
                try:
                    job = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                accumulator.job_started()
                self._report_progress(job, JobStatus.RUNNING)
                result = await self._run_job(job)
                accumulator.record(result)
                self._report_progress(job, result.status)
                queue.task_done()

        await asyncio.gather(*(worker() for _ in range(worker_count)))

        run_result.results, run_result.summary = accumulator.snapshot()
        run_result.in_flight_peak = accumulator.in_flight_peak

        run_result.completed_at = datetime.now()

        if workspaces:
            self._write_metadata(workspaces, run_result)

        logger.info(
            f"Export finished: {run_result.summary.succeeded} succeeded, "
            f"{run_result.summary.failed} failed in {run_result.duration_seconds:.1f}s"
        )
        return run_result

    def run_sync(
        self,
        jobs: list[ExportJob],
        workspaces: Optional[list[WorkspaceExport]] = None,
    ) -> ExportRunResult:
        """Synchronous wrapper for run()."""
        return asyncio.run(self.run(jobs, workspaces))

    async def _run_job(self, job: ExportJob) -> JobResult:
        """Execute one job and build its terminal result."""
        started_at = datetime.now()
        name = f"export {job.workspace_display_name}/{job.item_display_name}"

        def operation():
            return asyncio.to_thread(
                self._api.export_item,
                job.workspace_id,
                job.item_id,
                job.destination_path,
            )

        try:
            outcome = await self._executor.execute_async(operation, name, self._policy)
            return self._result(job, True, outcome.attempts, None, started_at)

        except OperationError as e:
            logger.error(f"Job {job.job_id} failed: {e}")
            error = JobError(kind=e.kind, message=str(e.cause or e))
            return self._result(job, False, e.attempts, error, started_at)

        except Exception as e:
            logger.exception(f"Job {job.job_id} failed with unexpected error")
            error = JobError(kind=ErrorKind.FATAL, message=str(e))
            return self._result(job, False, 1, error, started_at)

    def _result(
        self,
        job: ExportJob,
        succeeded: bool,
        attempts: int,
        error: Optional[JobError],
        started_at: datetime,
    ) -> JobResult:
        return JobResult(
            job_id=job.job_id,
            workspace_id=job.workspace_id,
            item_id=job.item_id,
            item_display_name=job.item_display_name,
            item_type=job.item_type,
            succeeded=succeeded,
            attempts=attempts,
            error=error,
            started_at=started_at,
            completed_at=datetime.now(),
        )

    def _write_metadata(
        self,
        workspaces: list[WorkspaceExport],
        run_result: ExportRunResult,
    ) -> None:
        """Sequential finishing pass over each workspace's results."""
        if not self._metadata_writer:
            return

        for entry in workspaces:
            results = run_result.results_for_workspace(entry.workspace.id)
            try:
                self._metadata_writer(entry, results)
            except Exception as e:
                logger.error(
                    f"Failed to write metadata for workspace "
                    f"{entry.workspace.display_name}: {e}"
                )

    def _report_progress(self, job: ExportJob, status: JobStatus) -> None:
        if self._progress_callback:
            self._progress_callback(job, status)
