"""
Maintenance Runner

Background housekeeping for an AuthorizationEngine. Each job runs on its
own interval as an asyncio task:

- cache_compaction: drop expired cache entries
- grant_sweep: deactivate expired dynamic grants
- audit_retention: prune audit events past retention
- cache_warming: re-seed common role decisions (only when warming is on)

Usage:
    runner = MaintenanceRunner(engine)

    # on startup, inside the running event loop
    runner.start()

    # on shutdown
    await runner.stop()

Jobs only take the structure locks for the duration of one sweep, so
foreground evaluations are never stalled for long.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceJob:
    """One periodic housekeeping job."""
    name: str
    interval_seconds: float
    action: Callable[[], int]
    runs: int = 0
    processed: int = 0
    failures: int = 0
    last_run: Optional[datetime] = None


class MaintenanceRunner:
    """
    Runs the engine's periodic sweeps until stopped.

    Started and stopped explicitly by the owning process; nothing runs
    until start() is called.
    """

    def __init__(self, engine, intervals: Optional[Dict[str, float]] = None):
        """
        Initialize the runner.

        Args:
            engine: AuthorizationEngine whose cache, grants and monitor are swept
            intervals: Per-job interval overrides in seconds, keyed by job name
        """
        self.engine = engine
        settings = engine.settings
        overrides = intervals or {}

        self.jobs: List[MaintenanceJob] = [
            MaintenanceJob(
                "cache_compaction",
                overrides.get("cache_compaction", settings.cache.compaction_interval_seconds),
                engine.cache.compact,
            ),
            MaintenanceJob(
                "grant_sweep",
                overrides.get("grant_sweep", settings.grants.sweep_interval_seconds),
                self._sweep_grants,
            ),
            MaintenanceJob(
                "audit_retention",
                overrides.get("audit_retention", settings.audit.retention_sweep_interval_seconds),
                engine.monitor.prune_expired,
            ),
        ]
        if engine.cache.warming_enabled:
            self.jobs.append(
                MaintenanceJob(
                    "cache_warming",
                    overrides.get("cache_warming", settings.cache.warming_interval_seconds),
                    engine.warm_up,
                )
            )

        self._tasks: List[asyncio.Task] = []
        self._running = False

    def _sweep_grants(self) -> int:
        if self.engine.grants is None:
            return 0
        return self.engine.grants.sweep_expired()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """
        Schedule every job on the running event loop.

        Must be called from inside a coroutine.
        """
        if self._running:
            logger.warning("MaintenanceRunner already running")
            return

        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._loop(job), name=f"maintenance:{job.name}")
            for job in self.jobs
        ]
        self._running = True
        logger.info(
            "MaintenanceRunner started ("
            + ", ".join(f"{job.name}={job.interval_seconds}s" for job in self.jobs)
            + ")"
        )

    async def stop(self) -> None:
        """Cancel every job and wait for them to finish."""
        if not self._running:
            return

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._running = False
        logger.info("MaintenanceRunner stopped")

    def run_once(self) -> Dict[str, int]:
        """
        Run every job immediately.

        Returns:
            Items processed per job name.
        """
        return {job.name: self._run_job(job) for job in self.jobs}

    async def _loop(self, job: MaintenanceJob) -> None:
        while True:
            await asyncio.sleep(job.interval_seconds)
            self._run_job(job)

    def _run_job(self, job: MaintenanceJob) -> int:
        job.last_run = datetime.now(timezone.utc)
        job.runs += 1
        try:
            processed = job.action() or 0
        except Exception as e:
            job.failures += 1
            logger.error(f"Maintenance job {job.name} failed: {e}")
            return 0

        job.processed += processed
        if processed:
            logger.debug(f"Maintenance job {job.name} processed {processed} items")
        return processed

    def get_stats(self) -> Dict[str, Any]:
        """Get runner statistics."""
        return {
            "running": self._running,
            "jobs": {
                job.name: {
                    "interval_seconds": job.interval_seconds,
                    "runs": job.runs,
                    "processed": job.processed,
                    "failures": job.failures,
                    "last_run": job.last_run.isoformat() if job.last_run else None,
                }
                for job in self.jobs
            },
        }
