"""Run loop for bulk jobs and the per-process worker registry."""

import os
import socket
import threading
import time
from datetime import date
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from bulk_messenger.config.models import AppConfig
from bulk_messenger.domain.models import (
    ACTIVE_STATUSES,
    BulkJob,
    GatewayInstance,
    JobItem,
    JobStatus,
    MessageTemplate,
    NotificationRecord,
)
from bulk_messenger.gateway.client import GatewayClient
from bulk_messenger.gateway.phone import normalize_phone
from bulk_messenger.logging import get_logger
from bulk_messenger.logging.context import log_context
from bulk_messenger.messages.renderer import render
from bulk_messenger.messages.selection import (
    build_fields,
    classify,
    days_remaining,
    notification_type_for,
    select_template,
)
from bulk_messenger.persistence.exceptions import PersistenceError
from bulk_messenger.persistence.store import JobStore
from bulk_messenger.utils.timestamps import parse_calendar_date, utc_now

from .models import ItemOutcome, RunResult

logger = get_logger(__name__, component="runner")

ItemHook = Callable[[str, ItemOutcome], None]


def _utc_today() -> date:
    return utc_now().date()


class JobRunner:
    """
    Drives the per-item send loop of bulk jobs.

    Items are processed strictly in snapshot order from the persisted cursor.
    The job status is re-read before every item, so a pause or cancel issued
    by a control call takes effect before the next send, never mid-send.
    Counters and the cursor are persisted after every item.

    launch() runs a job on a daemon thread. The registry guarantees at most
    one worker per job in this process. A worker that stops because the job
    left the processing state deregisters under the same lock launch() uses,
    so a resume racing with a stopping worker either keeps the old worker
    running or starts a new one, never neither.

    Across processes sharing one database, a worker first claims the job's
    lease with a conditional update and renews it before every send and at
    every checkpoint. A worker that finds the lease held by someone else does
    not run; one that loses its lease stops before the next send.
    """

    def __init__(
        self,
        store: JobStore,
        gateway: GatewayClient,
        app_config: AppConfig,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = _utc_today,
        on_item_processed: Optional[ItemHook] = None,
        worker_id: Optional[str] = None,
    ):
        """
        Initialize the runner.

        Args:
            store: Job store facade
            gateway: Messaging gateway client
            app_config: Application configuration
            sleep: Pacing sleep function (injected by tests)
            today: Returns the date used to compute days until expiration
            on_item_processed: Called after each item's progress is persisted
            worker_id: Lease owner name; defaults to host, pid and a random suffix
        """
        self.store = store
        self.gateway = gateway
        self.app_config = app_config
        self.on_item_processed = on_item_processed
        self.worker_id = worker_id or f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"
        self._sleep = sleep
        self._today = today
        self._lock = threading.RLock()
        self._workers: Dict[str, threading.Thread] = {}

    # Worker registry

    def launch(self, job_id: str) -> bool:
        """
        Run a job on a background thread without blocking the caller.

        Returns:
            True if a worker was started, False if one is already running
        """
        with self._lock:
            if job_id in self._workers:
                logger.info(
                    f"Worker already running for job {job_id}",
                    extra={"event": "job.worker.already_running", "job_id": job_id},
                )
                return False

            thread = threading.Thread(
                target=self._work,
                args=(job_id,),
                name=f"bulk-job-{job_id[:8]}",
                daemon=True,
            )
            self._workers[job_id] = thread
            thread.start()

        logger.info(
            f"Worker launched for job {job_id}",
            extra={"event": "job.worker.launched", "job_id": job_id},
        )
        return True

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._workers

    def running_job_ids(self) -> List[str]:
        with self._lock:
            return list(self._workers)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no worker is registered.

        Workers started while waiting (e.g. by a resume) are waited for too.

        Returns:
            True if all workers finished, False on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with self._lock:
                threads = list(self._workers.values())
            if not threads:
                return True

            for thread in threads:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                thread.join(remaining)
                if deadline is not None and time.monotonic() >= deadline:
                    with self._lock:
                        return not self._workers

    def _work(self, job_id: str) -> None:
        try:
            self.run(job_id)
        finally:
            with self._lock:
                self._release(job_id)

    def _release(self, job_id: str) -> None:
        """Drop the registry entry if it belongs to the calling thread (lock held)."""
        if self._workers.get(job_id) is threading.current_thread():
            del self._workers[job_id]

    # Run loop

    def run(self, job_id: str) -> RunResult:
        """
        Process a job from its persisted cursor until exhaustion, pause or cancel.

        Never raises: an unexpected exception cancels the job and records the
        message as last_error.

        Args:
            job_id: Job to run

        Returns:
            RunResult describing where the loop stopped
        """
        with log_context(job_id=job_id):
            job = self.store.get_job(job_id)
            if job is None:
                logger.error(
                    f"Job {job_id} not found; nothing to run",
                    extra={"event": "job.run.not_found"},
                )
                return RunResult(job_id=job_id, final_status=None, stop_reason="not_found")

            with log_context(owner_id=job.owner_id):
                try:
                    return self._run_job(job)
                except Exception as e:
                    return self._fail(job, e)

    def _run_job(self, job: BulkJob) -> RunResult:
        try:
            claimed = self.store.claim_job(job.id, self.worker_id, self._lease_seconds(job))
        except PersistenceError as e:
            # Without the lease the job may belong to another worker; leave it alone
            logger.error(
                f"Could not claim job: {e}",
                extra={"event": "job.run.claim_failed", "error_type": type(e).__name__},
                exc_info=True,
            )
            return RunResult(
                job_id=job.id, final_status=None, stop_reason="failed", error=str(e)
            )

        if not claimed:
            logger.info(
                "Job is held by another worker; not running it",
                extra={"event": "job.run.lease_held", "worker_id": self.worker_id},
            )
            return RunResult(
                job_id=job.id,
                final_status=self.store.get_status(job.id),
                stop_reason="lease_held",
                success_count=job.success_count,
                error_count=job.error_count,
            )

        # A previous holder may have advanced the cursor before its lease lapsed
        job = self.store.get_job(job.id) or job

        # Conditional, so a pause issued while pending wins
        self.store.transition(job.id, JobStatus.PROCESSING, {JobStatus.PENDING})

        stopped = self._stop_requested(job.id)
        if stopped is not None:
            return self._stopped(job, stopped, 0, job.success_count, job.error_count)

        instance = self.store.get_gateway_instance(job.owner_id)
        preflight_error = self._preflight(instance)
        if preflight_error:
            logger.error(
                f"Job cannot run: {preflight_error}",
                extra={"event": "job.run.preflight_failed", "error": preflight_error},
            )
            self.store.transition(
                job.id, JobStatus.CANCELLED, ACTIVE_STATUSES, last_error=preflight_error
            )
            self.store.release_lease(job.id, self.worker_id)
            return RunResult(
                job_id=job.id,
                final_status=self.store.get_status(job.id),
                stop_reason="preflight_failed",
                success_count=job.success_count,
                error_count=job.error_count,
                error=preflight_error,
            )

        templates = self.store.get_templates(job.owner_id)
        country_code = instance.country_code or self.app_config.messaging.default_country_code
        lease_seconds = self._lease_seconds(job)

        success_count = job.success_count
        error_count = job.error_count
        processed_now = 0
        index = job.current_index

        logger.info(
            f"Job run started at item {job.current_index} of {job.total_items}",
            extra={
                "event": "job.run.started",
                "current_index": job.current_index,
                "total_items": job.total_items,
                "pace_seconds": job.pace_seconds,
                "template_count": len(templates),
                "worker_id": self.worker_id,
            },
        )

        while True:
            stopped = self._stop_requested(job.id)
            if stopped is not None:
                return self._stopped(job, stopped, processed_now, success_count, error_count)

            if not self.store.renew_lease(job.id, self.worker_id, lease_seconds):
                return self._lease_lost(job, processed_now, success_count, error_count)

            if index >= job.total_items:
                with self._lock:
                    completed = self.store.complete(
                        job.id, self.worker_id, job.total_items, success_count, error_count
                    )
                    if completed:
                        self._release(job.id)
                if completed:
                    break
                # Paused or cancelled after the last item; the status check settles it
                continue

            with log_context(item_index=index):
                outcome = self._process_item(
                    job, index, job.items[index], templates, instance, country_code
                )

            if outcome.success:
                success_count += 1
            else:
                error_count += 1
            processed_now += 1
            index += 1

            # Durability checkpoint
            if not self.store.update_progress(
                job.id, self.worker_id, index, success_count, error_count, lease_seconds
            ):
                return self._lease_lost(job, processed_now, success_count, error_count)

            if self.on_item_processed is not None:
                self.on_item_processed(job.id, outcome)

            if index < job.total_items and job.pace_seconds > 0:
                self._sleep(job.pace_seconds)

        logger.info(
            f"Job completed: {success_count} sent, {error_count} failed",
            extra={
                "event": "job.run.completed",
                "total_items": job.total_items,
                "success_count": success_count,
                "error_count": error_count,
            },
        )
        return RunResult(
            job_id=job.id,
            final_status=JobStatus.COMPLETED,
            stop_reason="completed",
            items_processed=processed_now,
            success_count=success_count,
            error_count=error_count,
        )

    def _lease_seconds(self, job: BulkJob) -> float:
        # The worker sleeps for the pace between check-ins
        return self.app_config.jobs.lease_timeout_seconds + job.pace_seconds

    def _stop_requested(self, job_id: str) -> Optional[JobStatus]:
        """
        Re-read the status and decide whether the loop must stop.

        A stopping worker gives up its lease and its registry entry under the
        registry lock. If a resume put the job back to processing in the
        meantime the lease is kept and the loop goes on.

        Returns:
            None to continue, or the status that stopped the loop
        """
        with self._lock:
            status = self.store.get_status(job_id)
            if status == JobStatus.PROCESSING:
                return None
            if status is not None and not self.store.release_lease(job_id, self.worker_id):
                # Resumed, or the lease is gone; the caller's lease renewal decides
                return None
            self._release(job_id)
            return status

    def _lease_lost(
        self, job: BulkJob, processed_now: int, success_count: int, error_count: int
    ) -> RunResult:
        logger.warning(
            "Job lease was taken over by another worker; stopping",
            extra={
                "event": "job.run.lease_lost",
                "worker_id": self.worker_id,
                "items_processed": processed_now,
            },
        )
        with self._lock:
            self._release(job.id)
        return RunResult(
            job_id=job.id,
            final_status=self.store.get_status(job.id),
            stop_reason="lease_lost",
            items_processed=processed_now,
            success_count=success_count,
            error_count=error_count,
        )

    def _stopped(
        self,
        job: BulkJob,
        status: Optional[JobStatus],
        processed_now: int,
        success_count: int,
        error_count: int,
    ) -> RunResult:
        reason = status.value if status is not None else "not_found"
        logger.info(
            f"Job run stopped: status is {reason}",
            extra={
                "event": "job.run.stopped",
                "status": reason,
                "items_processed": processed_now,
            },
        )
        return RunResult(
            job_id=job.id,
            final_status=status,
            stop_reason=reason,
            items_processed=processed_now,
            success_count=success_count,
            error_count=error_count,
        )

    def _fail(self, job: BulkJob, error: Exception) -> RunResult:
        message = str(error) or type(error).__name__
        logger.error(
            f"Job run failed: {message}",
            extra={"event": "job.run.failed", "error_type": type(error).__name__},
            exc_info=True,
        )
        try:
            self.store.transition(
                job.id, JobStatus.CANCELLED, ACTIVE_STATUSES, last_error=message
            )
            self.store.release_lease(job.id, self.worker_id)
        except PersistenceError as write_error:
            # Job stays in its last status; recovery relaunches it
            logger.critical(
                f"Could not mark failed job as cancelled: {write_error}",
                extra={"event": "job.run.fail_write_failed", "error_type": type(write_error).__name__},
                exc_info=True,
            )
            return RunResult(
                job_id=job.id, final_status=None, stop_reason="failed", error=message
            )

        return RunResult(
            job_id=job.id,
            final_status=JobStatus.CANCELLED,
            stop_reason="failed",
            error=message,
        )

    def _preflight(self, instance: Optional[GatewayInstance]) -> Optional[str]:
        """Check the owner can send at all; return the reason if not."""
        if instance is None or not instance.is_connected:
            return "WhatsApp instance not connected"

        if not self.gateway.is_configured:
            return "Gateway API not configured"

        if self.app_config.gateway.verify_connection and not self.gateway.is_connected(
            instance.instance_name
        ):
            return f"Gateway reports instance {instance.instance_name} as disconnected"

        return None

    def _process_item(
        self,
        job: BulkJob,
        index: int,
        item: JobItem,
        templates: List[MessageTemplate],
        instance: GatewayInstance,
        country_code: str,
    ) -> ItemOutcome:
        """Resolve, render and send one item; per-item failures become an error outcome."""
        try:
            days_left = days_remaining(item, self._today())
        except ValueError as e:
            return self._item_error(index, item, str(e))

        template_type = classify(days_left)
        template = select_template(
            templates,
            template_type,
            item.category,
            default_category=self.app_config.messaging.default_category,
        )
        if template is None:
            category = item.category or self.app_config.messaging.default_category
            return self._item_error(
                index, item, f"No {template_type.value} template for category {category}"
            )

        text = render(template.message, build_fields(item, job.profile, days_left))

        number = normalize_phone(item.phone, country_code)
        if not number:
            return self._item_error(index, item, "Missing phone number")

        result = self.gateway.send_text(instance.instance_name, number, text)
        if not result.success:
            return self._item_error(
                index, item, result.error or "Unknown error", attempts=result.attempts
            )

        recorded = self._record_notification(job, item, template_type)

        logger.info(
            f"Message sent to customer {item.id}",
            extra={
                "event": "job.item.sent",
                "customer_id": item.id,
                "template": template.name,
                "attempts": result.attempts,
            },
        )
        return ItemOutcome(
            index=index,
            customer_id=item.id,
            success=True,
            attempts=result.attempts,
            notification_recorded=recorded,
        )

    def _item_error(
        self, index: int, item: JobItem, error: str, attempts: int = 0
    ) -> ItemOutcome:
        logger.warning(
            f"Item {index} failed: {error}",
            extra={
                "event": "job.item.failed",
                "customer_id": item.id,
                "error": error,
                "attempts": attempts,
            },
        )
        return ItemOutcome(
            index=index, customer_id=item.id, success=False, error=error, attempts=attempts
        )

    def _record_notification(self, job: BulkJob, item: JobItem, template_type) -> bool:
        """Write the tracking record for a delivered message (duplicates are ignored)."""
        if not item.id:
            logger.warning(
                "Item has no customer id; notification not tracked",
                extra={"event": "job.item.untracked"},
            )
            return False

        try:
            cycle_date = parse_calendar_date(item.expiration_date)
        except ValueError:
            logger.warning(
                "Item has no expiration date; notification not tracked",
                extra={"event": "job.item.untracked", "customer_id": item.id},
            )
            return False

        record = NotificationRecord(
            customer_id=item.id,
            owner_id=job.owner_id,
            notification_type=notification_type_for(template_type),
            cycle_date=cycle_date,
            sent_at=utc_now(),
        )
        return self.store.record_notification(record)
