"""Shared fixtures: an in-memory workspace API."""

import threading
import time
from pathlib import Path
from typing import Optional

import pytest

from fabric_archiver.clients.base import WorkspaceApi
from fabric_archiver.types.archive import Item, Workspace


class FakeWorkspaceApi(WorkspaceApi):
    """In-memory WorkspaceApi that tracks export concurrency.

    ``failures`` maps an item ID (or "list_workspaces" / a workspace ID for
    listings) to exceptions raised on successive calls before succeeding.
    An entry given as a single exception is raised on every call.
    """

    def __init__(
        self,
        workspaces: list[Workspace],
        items: Optional[dict[str, list[Item]]] = None,
        failures: Optional[dict[str, object]] = None,
        export_delay: float = 0.0,
    ):
        self.workspaces = workspaces
        self.items = items or {}
        self.failures = failures or {}
        self.export_delay = export_delay
        self.exported: list[tuple[str, str, Path]] = []
        self.calls: dict[str, int] = {}
        self.in_flight = 0
        self.peak_in_flight = 0
        self._lock = threading.Lock()

    def _maybe_fail(self, key: str) -> None:
        with self._lock:
            self.calls[key] = self.calls.get(key, 0) + 1
            planned = self.failures.get(key)
            if planned is None:
                return
            if isinstance(planned, list):
                if not planned:
                    return
                error = planned.pop(0)
            else:
                error = planned
        raise error

    def list_workspaces(self) -> list[Workspace]:
        self._maybe_fail("list_workspaces")
        return list(self.workspaces)

    def list_items(self, workspace_id: str) -> list[Item]:
        self._maybe_fail(workspace_id)
        return list(self.items.get(workspace_id, []))

    def export_item(self, workspace_id: str, item_id: str, destination_path: Path) -> None:
        with self._lock:
            self.in_flight += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.export_delay:
                time.sleep(self.export_delay)
            self._maybe_fail(item_id)
            with self._lock:
                self.exported.append((workspace_id, item_id, destination_path))
        finally:
            with self._lock:
                self.in_flight -= 1


def make_workspace(ws_id: str, name: str, kind: str = "Workspace") -> Workspace:
    return Workspace(id=ws_id, display_name=name, kind=kind)


def make_item(item_id: str, name: str, item_type: str, workspace_id: str) -> Item:
    return Item(id=item_id, display_name=name, type=item_type, workspace_id=workspace_id)


@pytest.fixture
def sample_workspaces():
    """Workspaces used across discovery and filter tests."""
    return [
        make_workspace("ws-1", "Test Workspace 1"),
        make_workspace("ws-2", "Test Workspace 2"),
        make_workspace("ws-3", "Inactive Workspace"),
        make_workspace("ws-4", "Personal", kind="Personal"),
    ]


@pytest.fixture
def sample_items():
    """Items keyed by workspace ID, mixing supported and unsupported types."""
    return {
        "ws-1": [
            make_item("i-1", "Sales Report", "Report", "ws-1"),
            make_item("i-2", "Sales Model", "SemanticModel", "ws-1"),
            make_item("i-3", "Landing", "Lakehouse", "ws-1"),
        ],
        "ws-2": [
            make_item("i-4", "ETL", "Notebook", "ws-2"),
        ],
        "ws-3": [],
        "ws-4": [
            make_item("i-5", "Scratch", "Notebook", "ws-4"),
        ],
    }


@pytest.fixture
def fake_api(sample_workspaces, sample_items):
    return FakeWorkspaceApi(sample_workspaces, sample_items)
