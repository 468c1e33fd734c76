"""
Scheduler module for aggregation flush timers.

This module provides the one-shot timers that close aggregation windows.
Each pending buffered group owns exactly one job, identified by its
aggregation key, which fires once after the window and is then discarded.

The aggregator depends only on the TimerScheduler protocol (arm, cancel),
so tests can drive it with a virtual clock instead of real delays.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Protocol

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
import pytz

from tradewatch.config import Config

# Configure module logger
logger = logging.getLogger(__name__)


class TimerScheduler(Protocol):
    """Arm/cancel/fire-once timers keyed by job id."""

    def arm(self, job_id: str, delay_seconds: float, callback: Callable[..., Any], *args: Any) -> None:
        ...

    def cancel(self, job_id: str) -> bool:
        ...


class FlushScheduler:
    """
    One-shot timer scheduler backed by APScheduler's AsyncIOScheduler.

    Must be started from inside a running event loop. Coroutine callbacks
    run as tasks on that loop, interleaved with the monitor loop.
    """

    def __init__(self, timezone: Optional[str] = None):
        """Initialize the scheduler."""
        self._timezone = pytz.timezone(timezone or Config.TIMEZONE)
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.is_running = False

    def start(self) -> bool:
        """
        Start the underlying APScheduler instance.

        Returns:
            True if scheduler started successfully, False if already running
        """
        if self.is_running:
            logger.warning("Flush scheduler is already running")
            return False

        self.scheduler = AsyncIOScheduler(timezone=self._timezone)

        # Add event listeners for monitoring
        self.scheduler.add_listener(
            self._on_job_event,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED
        )

        self.scheduler.start()
        self.is_running = True
        logger.info("Flush scheduler started")
        return True

    def stop(self, wait: bool = False) -> bool:
        """
        Stop the scheduler, dropping any jobs that have not fired.

        Callers drain the aggregator first so no buffered fill is lost.

        Args:
            wait: Whether to wait for running jobs to complete

        Returns:
            True if scheduler stopped, False if it was not running
        """
        if not self.is_running or not self.scheduler:
            logger.warning("Flush scheduler is not running")
            return False

        self.scheduler.shutdown(wait=wait)
        self.is_running = False
        self.scheduler = None
        logger.info("Flush scheduler stopped")
        return True

    def arm(self, job_id: str, delay_seconds: float, callback: Callable[..., Any], *args: Any) -> None:
        """
        Schedule ``callback(*args)`` to run once after ``delay_seconds``.

        Raises:
            RuntimeError: If the scheduler has not been started
        """
        if not self.is_running or not self.scheduler:
            raise RuntimeError("Flush scheduler is not running")

        run_date = datetime.now(self._timezone) + timedelta(seconds=delay_seconds)
        self.scheduler.add_job(
            func=callback,
            trigger=DateTrigger(run_date=run_date, timezone=self._timezone),
            args=list(args),
            id=job_id,
            name=f"flush {job_id}",
            replace_existing=True,
            misfire_grace_time=None,  # A late flush is still a flush
        )
        logger.debug(f"Armed flush timer {job_id} for {delay_seconds}s")

    def cancel(self, job_id: str) -> bool:
        """
        Cancel a pending timer.

        Returns:
            True if a pending job was removed, False if it had already fired
        """
        if not self.scheduler:
            return False

        try:
            self.scheduler.remove_job(job_id)
            return True
        except JobLookupError:
            return False

    def _on_job_event(self, event) -> None:
        """
        Event listener for job execution events.

        Args:
            event: APScheduler event object
        """
        if event.code == EVENT_JOB_MISSED:
            logger.warning(f"Flush job {event.job_id} missed its run time")
        elif event.exception:
            logger.error(f"Flush job {event.job_id} raised an exception: {event.exception}")
        else:
            logger.debug(f"Flush job {event.job_id} executed successfully")

    def get_status(self) -> dict:
        """
        Get current scheduler status.

        Returns:
            Dictionary with scheduler status information
        """
        status = {
            "is_running": self.is_running,
            "pending_jobs": 0,
            "next_run_time": None,
        }

        if self.is_running and self.scheduler:
            jobs = self.scheduler.get_jobs()
            status["pending_jobs"] = len(jobs)
            run_times = [job.next_run_time for job in jobs if job.next_run_time]
            if run_times:
                status["next_run_time"] = min(run_times).isoformat()

        return status
