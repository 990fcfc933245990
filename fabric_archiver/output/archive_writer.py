"""Archive output: run folders, workspace metadata, and run reports.

Layout of one run:
- <target>/<YYYYmmdd_HHMMSS>/: Run folder
- <run>/<workspace>/<item>.<Type>/: Exported item definition parts
- <run>/<workspace>/workspace.json: Workspace record and item outcomes
- <run>/run-report.json: Summary and every job result
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import orjson

from .. import __version__
from ..orchestration.discovery import WorkspaceExport
from ..orchestration.export_orchestrator import ExportRunResult
from ..types.archive import JobResult

logger = logging.getLogger(__name__)

WORKSPACE_METADATA_FILE = "workspace.json"
RUN_REPORT_FILE = "run-report.json"


def json_dumps(obj: Any) -> bytes:
    """Serialize object to JSON bytes using orjson."""
    return orjson.dumps(
        obj,
        option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS,
        default=_json_default,
    )


def _json_default(obj: Any) -> Any:
    """Default serializer for non-standard types."""
    if isinstance(obj, Path):
        return str(obj)
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    raise TypeError(f"Cannot serialize {type(obj)}")


def run_folder_path(target_folder: Path, timestamp: Optional[datetime] = None) -> Path:
    """Timestamped run folder below the target folder (not created)."""
    stamp = (timestamp or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return target_folder / stamp


class WorkspaceMetadataWriter:
    """Writes workspace.json into each workspace folder.

    Used as the export orchestrator's metadata_writer.
    """

    def __call__(self, entry: WorkspaceExport, results: list[JobResult]) -> None:
        self.write(entry, results)

    def write(self, entry: WorkspaceExport, results: list[JobResult]) -> Optional[Path]:
        """Write metadata for one workspace.

        Args:
            entry: Discovery entry for the workspace.
            results: Job results belonging to the workspace.

        Returns:
            Path written, or None when the workspace has no folder.
        """
        if entry.folder is None:
            return None

        by_item = {result.item_id: result for result in results}
        items = []
        for item in entry.items:
            result = by_item.get(item.id)
            items.append(
                {
                    "id": item.id,
                    "displayName": item.display_name,
                    "type": item.type,
                    "status": result.status.value if result else "not_run",
                    "attempts": result.attempts if result else 0,
                    "error": result.error.message if result and result.error else None,
                }
            )

        data = {
            "workspace": entry.workspace.model_dump(mode="json", by_alias=True),
            "exportedAt": datetime.now().isoformat(),
            "itemCount": len(entry.items),
            "succeeded": sum(1 for r in results if r.succeeded),
            "failed": sum(1 for r in results if not r.succeeded),
            "skippedUnsupported": entry.skipped_items,
            "items": items,
        }

        entry.folder.mkdir(parents=True, exist_ok=True)
        path = entry.folder / WORKSPACE_METADATA_FILE
        with open(path, "wb") as f:
            f.write(json_dumps(data))

        logger.debug(f"Wrote workspace metadata to {path}")
        return path


def write_run_report(run_folder: Path, run_result: ExportRunResult) -> Path:
    """Write the run summary and all job results.

    Args:
        run_folder: Folder of the current run.
        run_result: Result of the export orchestrator.

    Returns:
        Path to the report file.
    """
    report = {
        "toolVersion": __version__,
        "startedAt": run_result.started_at.isoformat(),
        "completedAt": run_result.completed_at.isoformat() if run_result.completed_at else None,
        "durationSeconds": run_result.duration_seconds,
        "concurrency": run_result.concurrency,
        "summary": run_result.summary.model_dump(mode="json"),
        "results": sorted(
            (r.model_dump(mode="json") for r in run_result.results.values()),
            key=lambda r: r["job_id"],
        ),
    }

    run_folder.mkdir(parents=True, exist_ok=True)
    path = run_folder / RUN_REPORT_FILE
    with open(path, "wb") as f:
        f.write(json_dumps(report))

    logger.info(f"Wrote run report to {path}")
    return path
