"""
Background scheduler for TTL-driven graph refresh.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from errors import RunGhostError
from services.dependency_service import DependencyGraphService

logger = logging.getLogger(__name__)


class GraphRefreshScheduler:
    """
    Periodically calls `load_graph()` so the cached graph is rebuilt once its
    inputs expire. Manages the job with start/stop/status controls.
    """

    JOB_ID = "dependency_graph_refresh"
    DEFAULT_INTERVAL_SECONDS = 300

    def __init__(self, service: DependencyGraphService):
        self.service = service
        self.scheduler = AsyncIOScheduler()
        self._last_run: Optional[datetime] = None
        self._last_result: Optional[dict] = None
        self._is_running = False
        self._error_count = 0
        self._run_count = 0

        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def start(self, interval_seconds: int = DEFAULT_INTERVAL_SECONDS) -> bool:
        """
        Start the scheduler.

        Returns:
            True if started, False if already running
        """
        if self._is_running:
            logger.warning("Graph refresh scheduler already running")
            return False

        self.scheduler.add_job(
            self._run_refresh,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=self.JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._is_running = True
        logger.info("Graph refresh scheduler started with %ds interval", interval_seconds)
        return True

    def stop(self) -> bool:
        """
        Stop the scheduler.

        Returns:
            True if stopped, False if not running
        """
        if not self._is_running:
            logger.warning("Graph refresh scheduler not running")
            return False

        self.scheduler.remove_job(self.JOB_ID)
        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Graph refresh scheduler stopped")
        return True

    async def trigger_now(self) -> dict:
        """Run one refresh cycle immediately, outside the schedule."""
        logger.info("Triggering immediate graph refresh")
        return await self._run_refresh()

    def get_status(self) -> dict:
        job = self.scheduler.get_job(self.JOB_ID) if self._is_running else None
        next_run = job.next_run_time.isoformat() if job and job.next_run_time else None

        return {
            "is_running": self._is_running,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "next_run": next_run,
            "last_result": self._last_result,
            "run_count": self._run_count,
            "error_count": self._error_count,
        }

    async def _run_refresh(self) -> dict:
        self._last_run = datetime.now(timezone.utc)
        self._run_count += 1

        try:
            result = await self.service.load_graph()
        except RunGhostError as e:
            logger.error("Scheduled graph refresh failed: %s", e)
            self._error_count += 1
            self._last_result = {"error": str(e)}
            raise

        self._last_result = {
            "fingerprint": result.fingerprint,
            "from_cache": result.from_cache,
            "warnings": len(result.warnings),
            **result.graph.summary().model_dump(by_alias=True),
        }
        return self._last_result

    def _on_job_error(self, event):
        logger.error("Job error: %s - %s", event.job_id, event.exception)
