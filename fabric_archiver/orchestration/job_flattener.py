"""Flatten discovered workspaces and items into one export job queue.

Jobs are not grouped by workspace, so worker utilization depends only on
the total item count and not on how items are spread across workspaces.
"""

from pathlib import Path

from ..core.paths import sanitize_name
from ..types.archive import ExportJob, Item
from .discovery import DiscoveryResult


def item_folder_name(item: Item) -> str:
    """Folder name for an exported item, e.g. "Sales Report.Report"."""
    return f"{sanitize_name(item.display_name, fallback=item.id)}.{item.type}"


def flatten_jobs(discovery: DiscoveryResult) -> list[ExportJob]:
    """Build one ExportJob per (workspace, item) pair.

    Args:
        discovery: Result of the discovery stage.

    Returns:
        Jobs ordered by workspace, then item, as discovered.
    """
    jobs = []

    for entry in discovery.workspaces:
        workspace = entry.workspace
        folder = entry.folder or Path(sanitize_name(workspace.display_name, workspace.id))
        used: set[str] = set()

        for item in entry.items:
            name = item_folder_name(item)
            if name.lower() in used:
                name = f"{name}_{item.id}"
            used.add(name.lower())

            jobs.append(
                ExportJob(
                    workspace_id=workspace.id,
                    workspace_display_name=workspace.display_name,
                    item_id=item.id,
                    item_display_name=item.display_name,
                    item_type=item.type,
                    destination_path=folder / name,
                )
            )

    return jobs
