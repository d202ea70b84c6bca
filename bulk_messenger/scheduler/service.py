"""Periodic recovery of interrupted bulk jobs."""

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bulk_messenger.logging import get_logger

logger = get_logger(__name__, component="scheduler")

RECOVERY_JOB_ID = "job-recovery"


class RecoveryScheduler:
    """
    Runs the interrupted-job recovery check at a fixed interval.

    Uses BackgroundScheduler so the main thread stays free to handle
    signals and coordinate shutdown.
    """

    def __init__(
        self,
        recovery_callable: Callable[[], object],
        interval_seconds: int,
        run_immediately: bool = True,
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the recovery scheduler.

        Args:
            recovery_callable: Called on each run (e.g. service.recover_interrupted_jobs)
            interval_seconds: Interval between checks in seconds
            run_immediately: Run the first check at startup instead of after one interval
            shutdown_event: Optional event to set on shutdown for coordination
        """
        self.recovery_callable = recovery_callable
        self.interval_seconds = interval_seconds
        self.run_immediately = run_immediately
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": interval_seconds,
            },
            timezone=timezone.utc,
        )

    def _run_check(self) -> None:
        try:
            self.recovery_callable()
        except Exception as e:
            # Keep the schedule alive; the next interval retries
            logger.error(
                f"Recovery check failed: {e}",
                extra={"event": "scheduler.recovery.failed", "error_type": type(e).__name__},
                exc_info=True,
            )

    def start(self) -> None:
        """Register the recovery job and start the scheduler thread."""
        trigger = IntervalTrigger(seconds=self.interval_seconds, timezone=timezone.utc)

        job_kwargs = {}
        if self.run_immediately:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            func=self._run_check,
            trigger=trigger,
            id=RECOVERY_JOB_ID,
            name="Interrupted job recovery",
            replace_existing=True,
            **job_kwargs,
        )
        self.scheduler.start()

        next_run = self.get_next_run_time()
        logger.info(
            f"Recovery scheduler started with interval: {self.interval_seconds} seconds",
            extra={
                "event": "scheduler.started",
                "interval_seconds": self.interval_seconds,
                "next_run_time": next_run.isoformat() if next_run else None,
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: If True, wait for a running check to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self) -> None:
        """Run a recovery check synchronously in the current thread."""
        logger.info("Triggering immediate recovery check", extra={"event": "scheduler.trigger_now"})
        self._run_check()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(RECOVERY_JOB_ID)
        return job.next_run_time if job else None
