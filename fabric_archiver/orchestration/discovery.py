"""Discovery stage: find the workspaces and items to export.

Runs sequentially: list workspaces, apply the workspace filter, then list
items per surviving workspace and keep the supported types. Only a failure
to list workspaces aborts the run; a workspace whose item listing fails is
recorded and skipped.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from ..clients.base import WorkspaceApi
from ..core.config import ArchiveConfig
from ..core.filter_evaluator import WorkspaceFilter
from ..core.paths import sanitize_name
from ..core.retry_policy import RetryPolicy
from ..errors import DiscoveryError, OperationError
from ..types.archive import Item, Workspace
from .executor import RateLimitedExecutor

logger = logging.getLogger(__name__)


@dataclass
class WorkspaceExport:
    """A workspace that survived filtering and its exportable items."""

    workspace: Workspace
    items: list[Item] = field(default_factory=list)
    folder: Optional[Path] = None
    skipped_items: int = 0  # Items whose type is not supported


@dataclass
class DiscoveryResult:
    """Output of the discovery stage."""

    workspaces: list[WorkspaceExport] = field(default_factory=list)
    total_workspaces: int = 0  # Before filtering
    filter_warnings: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)  # workspace_id -> message

    @property
    def item_count(self) -> int:
        return sum(len(entry.items) for entry in self.workspaces)

    @property
    def is_empty(self) -> bool:
        return not self.workspaces


class DiscoveryStage:
    """Lists workspaces and items through the rate-limited executor."""

    def __init__(
        self,
        api: WorkspaceApi,
        executor: Optional[RateLimitedExecutor] = None,
        policy: Optional[RetryPolicy] = None,
        progress_callback: Optional[Callable[[str, int, int], None]] = None,
    ):
        """Initialize the stage.

        Args:
            api: Remote workspace API.
            executor: Executor wrapping each listing call.
            policy: Retry policy for listing calls.
            progress_callback: Called with (workspace name, index, total).
        """
        self._api = api
        self._executor = executor or RateLimitedExecutor()
        self._policy = policy or RetryPolicy()
        self._progress_callback = progress_callback

    def discover(
        self,
        config: ArchiveConfig,
        run_root: Path,
        create_folders: bool = True,
    ) -> DiscoveryResult:
        """Discover the workspaces and items to export.

        Args:
            config: Run configuration (filter, item types).
            run_root: Folder that receives one sub-folder per workspace.
            create_folders: Create workspace folders (False for dry runs).

        Returns:
            DiscoveryResult, possibly empty.

        Raises:
            DiscoveryError: If the workspace listing fails terminally.
        """
        result = DiscoveryResult()

        try:
            listing = self._executor.execute(
                self._api.list_workspaces, "list workspaces", self._policy
            )
        except OperationError as e:
            raise DiscoveryError(f"Unable to list workspaces: {e}") from e

        result.total_workspaces = len(listing.value)
        filtered = WorkspaceFilter(config.workspace_filter).apply(listing.value)
        result.filter_warnings = filtered.warnings

        logger.info(
            f"{len(filtered.workspaces)} of {result.total_workspaces} workspace(s) "
            f"match filter '{config.workspace_filter}'"
        )

        if not filtered.workspaces:
            logger.info("No workspaces matched; nothing to export")
            return result

        supported = set(config.supported_item_types)
        used_folders: set[str] = set()
        total = len(filtered.workspaces)

        for index, workspace in enumerate(filtered.workspaces, start=1):
            self._report_progress(workspace.display_name, index, total)
            entry = WorkspaceExport(workspace=workspace)
            entry.folder = run_root / self._folder_name(workspace, used_folders)

            try:
                items = self._executor.execute(
                    lambda ws_id=workspace.id: self._api.list_items(ws_id),
                    f"list items in {workspace.display_name}",
                    self._policy,
                ).value
            except OperationError as e:
                logger.error(f"Skipping workspace {workspace.display_name}: {e}")
                result.errors[workspace.id] = str(e)
                continue

            entry.items = [item for item in items if item.type in supported]
            entry.skipped_items = len(items) - len(entry.items)

            logger.info(
                f"Workspace {workspace.display_name}: {len(entry.items)} exportable "
                f"item(s), {entry.skipped_items} unsupported"
            )

            if create_folders:
                entry.folder.mkdir(parents=True, exist_ok=True)

            result.workspaces.append(entry)

        return result

    def _folder_name(self, workspace: Workspace, used: set[str]) -> str:
        """Sanitized folder name, suffixed with the ID on collision."""
        name = sanitize_name(workspace.display_name, fallback=workspace.id)
        if name.lower() in used:
            name = f"{name}_{workspace.id}"
        used.add(name.lower())
        return name

    def _report_progress(self, name: str, current: int, total: int) -> None:
        if self._progress_callback:
            self._progress_callback(name, current, total)
