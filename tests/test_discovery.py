"""Tests for the discovery stage."""

import pytest

from fabric_archiver.core.config import ArchiveConfig, RetrySettings
from fabric_archiver.core.retry_policy import RetryPolicy
from fabric_archiver.errors import ApiError, DiscoveryError
from fabric_archiver.orchestration.discovery import DiscoveryStage
from fabric_archiver.orchestration.executor import RateLimitedExecutor

from conftest import FakeWorkspaceApi, make_item, make_workspace


@pytest.fixture
def executor():
    return RateLimitedExecutor(sleep=lambda _: None)


@pytest.fixture
def policy():
    return RetryPolicy(max_retries=2, base_delay=0)


@pytest.fixture
def config():
    return ArchiveConfig(
        workspace_filter="",
        supported_item_types=["Report", "SemanticModel", "Notebook"],
        retry=RetrySettings(max_retries=2, base_delay_seconds=0),
    )


class TestDiscoveryStage:
    """Test workspace listing, filtering and item discovery."""

    def test_discovers_all_without_filter(self, fake_api, executor, policy, config, tmp_path):
        stage = DiscoveryStage(fake_api, executor, policy)
        result = stage.discover(config, tmp_path)

        assert result.total_workspaces == 4
        assert len(result.workspaces) == 4
        assert result.item_count == 4  # Lakehouse is unsupported

    def test_filters_item_types(self, fake_api, executor, policy, config, tmp_path):
        stage = DiscoveryStage(fake_api, executor, policy)
        result = stage.discover(config, tmp_path)

        ws1 = next(e for e in result.workspaces if e.workspace.id == "ws-1")
        assert [item.id for item in ws1.items] == ["i-1", "i-2"]
        assert ws1.skipped_items == 1

    def test_applies_workspace_filter(self, fake_api, executor, policy, config, tmp_path):
        config.workspace_filter = "contains(name,'Test')"
        stage = DiscoveryStage(fake_api, executor, policy)
        result = stage.discover(config, tmp_path)

        assert [e.workspace.id for e in result.workspaces] == ["ws-1", "ws-2"]
        assert fake_api.calls.get("ws-3") is None  # Items not listed for filtered out

    def test_creates_workspace_folders(self, fake_api, executor, policy, config, tmp_path):
        stage = DiscoveryStage(fake_api, executor, policy)
        result = stage.discover(config, tmp_path / "run")

        for entry in result.workspaces:
            assert entry.folder.is_dir()
            assert entry.folder.parent == tmp_path / "run"
        assert (tmp_path / "run" / "Test Workspace 1").is_dir()

    def test_dry_run_creates_no_folders(self, fake_api, executor, policy, config, tmp_path):
        stage = DiscoveryStage(fake_api, executor, policy)
        result = stage.discover(config, tmp_path / "run", create_folders=False)

        assert result.item_count == 4
        assert not (tmp_path / "run").exists()

    def test_no_matches_is_empty_result(self, fake_api, executor, policy, config, tmp_path):
        config.workspace_filter = "state eq 'Inactive'"
        stage = DiscoveryStage(fake_api, executor, policy)
        result = stage.discover(config, tmp_path)

        assert result.is_empty
        assert result.item_count == 0
        assert result.total_workspaces == 4

    def test_invalid_filter_warns_and_matches_all(
        self, fake_api, executor, policy, config, tmp_path
    ):
        config.workspace_filter = "name = 'Test'"
        stage = DiscoveryStage(fake_api, executor, policy)
        result = stage.discover(config, tmp_path)

        assert len(result.workspaces) == 4
        assert len(result.filter_warnings) == 1

    def test_fatal_workspace_listing_aborts(self, sample_workspaces, executor, policy, config, tmp_path):
        api = FakeWorkspaceApi(
            sample_workspaces,
            failures={"list_workspaces": ApiError(401, "Authentication failed")},
        )
        stage = DiscoveryStage(api, executor, policy)

        with pytest.raises(DiscoveryError):
            stage.discover(config, tmp_path)
        assert api.calls["list_workspaces"] == 1

    def test_exhausted_workspace_listing_aborts(
        self, sample_workspaces, executor, policy, config, tmp_path
    ):
        api = FakeWorkspaceApi(
            sample_workspaces,
            failures={"list_workspaces": ApiError(503)},
        )
        stage = DiscoveryStage(api, executor, policy)

        with pytest.raises(DiscoveryError):
            stage.discover(config, tmp_path)
        assert api.calls["list_workspaces"] == policy.max_retries + 1

    def test_rate_limited_listing_recovers(
        self, sample_workspaces, sample_items, executor, policy, config, tmp_path
    ):
        api = FakeWorkspaceApi(
            sample_workspaces,
            sample_items,
            failures={"list_workspaces": [ApiError(429)]},
        )
        stage = DiscoveryStage(api, executor, policy)
        result = stage.discover(config, tmp_path)

        assert len(result.workspaces) == 4
        assert api.calls["list_workspaces"] == 2

    def test_item_listing_failure_skips_workspace(
        self, sample_workspaces, sample_items, executor, policy, config, tmp_path
    ):
        api = FakeWorkspaceApi(
            sample_workspaces,
            sample_items,
            failures={"ws-2": ApiError(403, "Forbidden")},
        )
        stage = DiscoveryStage(api, executor, policy)
        result = stage.discover(config, tmp_path)

        assert [e.workspace.id for e in result.workspaces] == ["ws-1", "ws-3", "ws-4"]
        assert "ws-2" in result.errors
        assert "Forbidden" in result.errors["ws-2"]

    def test_sanitizes_and_deduplicates_folder_names(self, executor, policy, config, tmp_path):
        api = FakeWorkspaceApi(
            [
                make_workspace("a", "Sales: EMEA"),
                make_workspace("b", "Sales: EMEA"),
            ],
            {"a": [make_item("x", "R", "Report", "a")]},
        )
        stage = DiscoveryStage(api, executor, policy)
        result = stage.discover(config, tmp_path)

        folders = [entry.folder.name for entry in result.workspaces]
        assert folders == ["Sales_ EMEA", "Sales_ EMEA_b"]

    def test_progress_callback(self, fake_api, executor, policy, config, tmp_path):
        seen = []
        stage = DiscoveryStage(
            fake_api,
            executor,
            policy,
            progress_callback=lambda name, current, total: seen.append((name, current, total)),
        )
        stage.discover(config, tmp_path)

        assert seen[0] == ("Test Workspace 1", 1, 4)
        assert seen[-1] == ("Personal", 4, 4)
