"""Tests for the background maintenance runner."""

import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from cache.permission_cache import PermissionCache
from config.settings import CacheSettings
from rbac.engine import AuthorizationEngine
from rbac.maintenance import MaintenanceRunner

FAST = {
    "cache_compaction": 0.01,
    "grant_sweep": 0.01,
    "audit_retention": 0.01,
    "cache_warming": 0.01,
}


class TestJobs:
    """Tests for job setup and one-shot runs."""

    def test_default_jobs(self, engine):
        runner = MaintenanceRunner(engine)
        names = [job.name for job in runner.jobs]

        assert names == ["cache_compaction", "grant_sweep", "audit_retention"]
        assert runner.jobs[0].interval_seconds == engine.settings.cache.compaction_interval_seconds

    def test_warming_job_when_enabled(self, settings, grants, monitor, monotonic):
        cache = PermissionCache(CacheSettings(), clock=monotonic, warming_enabled=True)
        engine = AuthorizationEngine(settings=settings, grants=grants, cache=cache, monitor=monitor)

        runner = MaintenanceRunner(engine, intervals={"cache_warming": 30})

        assert runner.jobs[-1].name == "cache_warming"
        assert runner.jobs[-1].interval_seconds == 30
        assert runner.run_once()["cache_warming"] > 0

    def test_run_once(self, engine, clock, monotonic):
        engine.cache.set("stale", True, ttl=5)
        monotonic.advance(10)
        engine.grant(
            "editor-1", "workflow:publish", "admin-1", "Short",
            expires_at=clock.now + timedelta(minutes=1),
        )
        clock.advance(days=91)

        runner = MaintenanceRunner(engine)
        assert runner.run_once() == {
            "cache_compaction": 1,
            "grant_sweep": 1,
            "audit_retention": 1,
        }
        assert runner.run_once() == {
            "cache_compaction": 0,
            "grant_sweep": 0,
            "audit_retention": 0,
        }

    def test_without_grant_store(self, settings, cache, monitor):
        engine = AuthorizationEngine(settings=settings, grants=None, cache=cache, monitor=monitor)
        assert MaintenanceRunner(engine).run_once()["grant_sweep"] == 0

    def test_failing_job_is_counted(self, engine):
        runner = MaintenanceRunner(engine)
        runner.jobs[0].action = MagicMock(side_effect=RuntimeError("disk on fire"))

        results = runner.run_once()

        assert results["cache_compaction"] == 0
        stats = runner.get_stats()["jobs"]["cache_compaction"]
        assert stats["failures"] == 1
        assert stats["runs"] == 1
        assert stats["last_run"] is not None
        # Other jobs still ran
        assert runner.get_stats()["jobs"]["grant_sweep"]["runs"] == 1


class TestLifecycle:
    """Tests for start/stop."""

    def test_start_requires_running_loop(self, engine):
        with pytest.raises(RuntimeError):
            MaintenanceRunner(engine).start()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine):
        runner = MaintenanceRunner(engine, intervals=FAST)

        runner.start()
        assert runner.running
        await asyncio.sleep(0.1)
        await runner.stop()

        assert not runner.running
        stats = runner.get_stats()
        assert stats["running"] is False
        assert all(job["runs"] >= 1 for job in stats["jobs"].values())

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, engine, caplog):
        runner = MaintenanceRunner(engine, intervals=FAST)
        runner.start()
        tasks = list(runner._tasks)

        with caplog.at_level("WARNING", logger="rbac.maintenance"):
            runner.start()

        assert runner._tasks == tasks
        assert "already running" in caplog.text
        await runner.stop()

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, engine):
        runner = MaintenanceRunner(engine)
        await runner.stop()
        assert not runner.running

    @pytest.mark.asyncio
    async def test_nothing_runs_before_first_interval(self, engine):
        runner = MaintenanceRunner(engine, intervals={"cache_compaction": 60})
        runner.start()
        await asyncio.sleep(0)
        await runner.stop()

        assert runner.get_stats()["jobs"]["cache_compaction"]["runs"] == 0
