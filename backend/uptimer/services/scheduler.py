"""Scheduler service - one recurring job per active monitor.

Job keyspaces:
- ``monitor:{id}`` runs that monitor's check cycle every ``frequency`` seconds.
- ``refresh:{user_id}`` pushes the user's monitor list to open dashboards.
The two never share ids, so toggling a user's refresh cannot cancel a
monitor's checks and vice versa.

APScheduler starts each due job as its own asyncio task, so a slow probe
never delays another monitor's timer. ``max_instances=1`` keeps a monitor
from overlapping itself when a check runs longer than its interval.
"""
import logging
import random
from datetime import datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..schemas import MonitorConfig
from .engine import MonitorEngine, monitor_engine

logger = logging.getLogger(__name__)

MONITOR_JOB_PREFIX = "monitor:"
REFRESH_JOB_PREFIX = "refresh:"


def monitor_job_id(monitor_id: int) -> str:
    return f"{MONITOR_JOB_PREFIX}{monitor_id}"


def refresh_job_id(user_id: int) -> str:
    return f"{REFRESH_JOB_PREFIX}{user_id}"


class SchedulerService:
    """Starts, replaces and stops per-monitor check jobs."""

    def __init__(
        self,
        engine: Optional[MonitorEngine] = None,
        timezone: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ):
        self.engine = engine or monitor_engine
        self.store = self.engine.store
        self.timezone = ZoneInfo(timezone or settings.timezone)
        self.scheduler = AsyncIOScheduler(timezone=self.timezone)
        self._random = rng or random.Random()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler. Must be called from within the event loop."""
        if self._running:
            return
        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (timezone={self.timezone.key})")

    async def shutdown(self, drain_timeout: Optional[float] = None):
        """Stop firing new checks, then wait for in-flight ones."""
        if self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")
        timeout = settings.drain_timeout_seconds if drain_timeout is None else drain_timeout
        await self.engine.drain(timeout)

    def _stagger_ms(self) -> int:
        return self._random.randint(settings.stagger_min_ms, settings.stagger_max_ms)

    def start_monitor(self, monitor: MonitorConfig, delay_ms: int = 0) -> bool:
        """Create or replace the monitor's job; first check after ``delay_ms``."""
        if not monitor.active:
            logger.info(f"Not scheduling inactive monitor {monitor.id}")
            return False

        first_run = datetime.now(self.timezone) + timedelta(milliseconds=delay_ms)
        self.scheduler.add_job(
            self.engine.run_cycle,
            trigger=IntervalTrigger(seconds=monitor.frequency, timezone=self.timezone),
            args=[monitor],
            id=monitor_job_id(monitor.id),
            name=f"check {monitor.name}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=monitor.frequency,
            next_run_time=first_run,
        )
        logger.info(f"Scheduled monitor {monitor.name} ({monitor.id}) every {monitor.frequency}s, first check in {delay_ms}ms")
        return True

    def stop_monitor(self, monitor_id: int) -> bool:
        """Cancel future checks. Idempotent; an in-flight check still completes."""
        try:
            self.scheduler.remove_job(monitor_job_id(monitor_id))
            removed = True
            logger.info(f"Stopped monitor {monitor_id}")
        except JobLookupError:
            removed = False

        state = self.engine.state_machine.get_state(monitor_id)
        if state is not None and not state.lock.locked():
            self.engine.state_machine.discard(monitor_id)
        return removed

    async def resume_monitor(self, monitor_id: int) -> bool:
        """Re-arm one monitor from its stored row, e.g. after it was toggled active."""
        monitor = await self.store.get_monitor_by_id(monitor_id)
        if monitor is None:
            logger.warning(f"Cannot resume monitor {monitor_id}: not found")
            return False
        return self.start_monitor(monitor, delay_ms=self._stagger_ms())

    async def resume_all(self) -> int:
        """Start every active monitor, spreading first checks over a random stagger."""
        monitors = await self.store.get_all_active_monitors()
        offset_ms = 0
        started = 0
        for monitor in monitors:
            offset_ms += self._stagger_ms()
            if self.start_monitor(monitor, delay_ms=offset_ms):
                started += 1
        logger.info(f"Resumed {started} monitors over {offset_ms}ms")
        return started

    def start_auto_refresh(self, user_id: int):
        """Push the user's active monitors every ``refresh_interval_seconds``."""
        self.scheduler.add_job(
            self.engine.publish_user,
            trigger=IntervalTrigger(seconds=settings.refresh_interval_seconds, timezone=self.timezone),
            args=[user_id],
            id=refresh_job_id(user_id),
            name=f"refresh user {user_id}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Auto refresh enabled for user {user_id}")

    def stop_auto_refresh(self, user_id: int) -> bool:
        try:
            self.scheduler.remove_job(refresh_job_id(user_id))
        except JobLookupError:
            return False
        logger.info(f"Auto refresh disabled for user {user_id}")
        return True

    def is_scheduled(self, monitor_id: int) -> bool:
        return self.scheduler.get_job(monitor_job_id(monitor_id)) is not None

    def next_run_time(self, monitor_id: int) -> Optional[datetime]:
        job = self.scheduler.get_job(monitor_job_id(monitor_id))
        return job.next_run_time if job else None

    def _ids_with_prefix(self, prefix: str) -> List[int]:
        return sorted(
            int(job.id[len(prefix):])
            for job in self.scheduler.get_jobs()
            if job.id.startswith(prefix)
        )

    def scheduled_monitor_ids(self) -> List[int]:
        return self._ids_with_prefix(MONITOR_JOB_PREFIX)

    def refreshing_user_ids(self) -> List[int]:
        return self._ids_with_prefix(REFRESH_JOB_PREFIX)


# Global instance
scheduler_service = SchedulerService()
