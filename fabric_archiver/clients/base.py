"""Capability interface for the remote workspace API."""

from abc import ABC, abstractmethod
from pathlib import Path

from ..types.archive import Item, Workspace


class WorkspaceApi(ABC):
    """Operations the archiver needs from a remote workspace service.

    Implementations raise on failure; ApiError with a status code is
    preferred so failures can be classified without message matching.
    All methods are blocking and must be safe to call from several
    threads at once.
    """

    @abstractmethod
    def list_workspaces(self) -> list[Workspace]:
        """List every workspace visible to the caller."""
        ...

    @abstractmethod
    def list_items(self, workspace_id: str) -> list[Item]:
        """List the items in a workspace."""
        ...

    @abstractmethod
    def export_item(self, workspace_id: str, item_id: str, destination_path: Path) -> None:
        """Write an item's definition below destination_path."""
        ...

    def close(self) -> None:
        """Release connections. No-op unless overridden."""
