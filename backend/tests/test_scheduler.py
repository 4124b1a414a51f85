"""
Tests for the graph refresh scheduler.
"""

import asyncio

import pytest

from config import parse_config
from errors import ScanError
from services.dependency_service import DependencyGraphService
from services.refresh_orchestrator import RefreshOrchestrator
from services.scheduler import GraphRefreshScheduler


def make_scheduler(workspace_path, cache_store, registry_client):
    config = parse_config({
        "workspacePath": workspace_path,
        "identities": {"acme": {"username": "acme-corp", "scope": "acme"}},
    })
    orchestrator = RefreshOrchestrator(cache=cache_store, registry=registry_client)
    return GraphRefreshScheduler(DependencyGraphService(config, orchestrator))


def test_trigger_now_records_result(workspace, cache_store, registry_client):
    workspace.add("pkgA", name="@acme/a")
    scheduler = make_scheduler(workspace.root, cache_store, registry_client)

    async def _test():
        await scheduler.trigger_now()
        return await scheduler.trigger_now()

    result = asyncio.run(_test())
    status = scheduler.get_status()

    assert result["from_cache"] is True
    assert result["localRepositories"] == 1
    assert status["run_count"] == 2
    assert status["error_count"] == 0
    assert status["last_run"] is not None


def test_failed_refresh_is_counted(tmp_path, cache_store, registry_client):
    scheduler = make_scheduler(str(tmp_path / "missing"), cache_store, registry_client)

    with pytest.raises(ScanError):
        asyncio.run(scheduler.trigger_now())

    status = scheduler.get_status()
    assert status["error_count"] == 1
    assert "not a directory" in status["last_result"]["error"]


def test_start_and_stop(workspace, cache_store, registry_client):
    scheduler = make_scheduler(workspace.root, cache_store, registry_client)

    async def _test():
        assert scheduler.start(interval_seconds=3600)
        assert not scheduler.start(interval_seconds=3600)
        running = scheduler.get_status()
        assert scheduler.stop()
        return running

    running = asyncio.run(_test())

    assert running["is_running"] is True
    assert running["next_run"] is not None
    assert scheduler.get_status()["is_running"] is False
    assert not scheduler.stop()
