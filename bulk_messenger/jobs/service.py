"""Job lifecycle operations: start, pause, resume, cancel and read projections.

Control calls only ever change the job status, always through conditional
updates, so they cannot overwrite a terminal state written concurrently by
the runner. Counters and the cursor belong to the runner.
"""

from typing import Any, Iterable, List, Mapping, Optional, Union
from uuid import uuid4

from pydantic import ValidationError

from bulk_messenger.config.models import AppConfig
from bulk_messenger.domain.models import (
    ACTIVE_STATUSES,
    BulkJob,
    JobItem,
    JobStatus,
    JobSummary,
    ProfileData,
)
from bulk_messenger.logging import get_logger
from bulk_messenger.logging.context import log_context
from bulk_messenger.persistence.exceptions import DataIntegrityError
from bulk_messenger.persistence.store import JobStore
from bulk_messenger.utils.timestamps import utc_now

from .exceptions import JobConflictError, JobNotFoundError, JobValidationError
from .runner import JobRunner

logger = get_logger(__name__, component="jobs")

ItemInput = Union[JobItem, Mapping[str, Any]]


class BulkJobService:
    """Lifecycle operations on bulk jobs for a single process."""

    def __init__(self, store: JobStore, runner: JobRunner, app_config: AppConfig):
        self.store = store
        self.runner = runner
        self.app_config = app_config

    def start(
        self,
        owner_id: str,
        items: Optional[Iterable[ItemInput]],
        pace_seconds: Optional[int] = None,
        profile: Optional[Union[ProfileData, Mapping[str, Any]]] = None,
    ) -> BulkJob:
        """
        Create a pending job from a snapshot of items and launch its worker.

        Returns immediately; the items are processed in the background.

        Args:
            owner_id: Owner (seller) starting the job
            items: Customer items to notify, in send order
            pace_seconds: Delay between sends (defaults to jobs.default_pace_seconds)
            profile: Seller profile fields used by the templates

        Returns:
            The created job (status pending)

        Raises:
            JobValidationError: If owner or items are missing or invalid
            JobConflictError: If the owner already has an active job
        """
        if not owner_id or not str(owner_id).strip():
            raise JobValidationError("owner_id is required")

        item_list = list(items or [])
        if not item_list:
            raise JobValidationError("items must contain at least one item")

        if pace_seconds is None:
            pace_seconds = self.app_config.jobs.default_pace_seconds
        if pace_seconds < 0:
            raise JobValidationError(f"pace_seconds must be >= 0, got: {pace_seconds}")

        try:
            snapshot = [
                item if isinstance(item, JobItem) else JobItem.model_validate(item)
                for item in item_list
            ]
            profile_data = (
                profile
                if isinstance(profile, ProfileData)
                else ProfileData.model_validate(profile or {})
            )
        except ValidationError as e:
            raise JobValidationError(f"Invalid job payload: {e}") from e

        with log_context(owner_id=owner_id):
            existing = self.store.get_active_job(owner_id)
            if existing is not None:
                logger.warning(
                    f"Start rejected: job {existing.id} is still {existing.status.value}",
                    extra={"event": "job.start.conflict", "active_job_id": existing.id},
                )
                raise JobConflictError(
                    f"Owner already has an active job ({existing.status.value})", job=existing
                )

            now = utc_now()
            job = BulkJob(
                id=uuid4().hex,
                owner_id=owner_id,
                status=JobStatus.PENDING,
                total_items=len(snapshot),
                pace_seconds=pace_seconds,
                items=snapshot,
                profile=profile_data,
                created_at=now,
                updated_at=now,
            )

            try:
                created = self.store.create_job(job)
            except DataIntegrityError as e:
                # Lost the race against a concurrent start for the same owner
                existing = self.store.get_active_job(owner_id)
                raise JobConflictError("Owner already has an active job", job=existing) from e

            logger.info(
                f"Job created with {created.total_items} items",
                extra={
                    "event": "job.start.created",
                    "job_id": created.id,
                    "total_items": created.total_items,
                    "pace_seconds": created.pace_seconds,
                },
            )

        self.runner.launch(created.id)
        return created

    def status(self, job_id: str, owner_id: Optional[str] = None) -> BulkJob:
        """
        Read a job with its counters.

        Raises:
            JobNotFoundError: If the job does not exist or owner_id does not match
        """
        return self._get_owned(job_id, owner_id)

    def get_active(self, owner_id: str) -> Optional[BulkJob]:
        """Return the owner's pending, processing or paused job, if any."""
        if not owner_id:
            raise JobValidationError("owner_id is required")
        return self.store.get_active_job(owner_id)

    def list_recent(self, owner_id: str, limit: Optional[int] = None) -> List[JobSummary]:
        """List the owner's most recent jobs, newest first, without items."""
        if not owner_id:
            raise JobValidationError("owner_id is required")
        return self.store.list_recent(owner_id, limit or self.app_config.jobs.list_limit)

    def pause(self, owner_id: str, job_id: str) -> BulkJob:
        """
        Pause a pending or processing job. Pausing a paused job is a no-op.

        The worker observes the new status before its next send.

        Raises:
            JobNotFoundError: If the job does not exist or belongs to another owner
            JobConflictError: If the job is completed or cancelled
        """
        return self._change_status(
            owner_id,
            job_id,
            to_status=JobStatus.PAUSED,
            from_statuses={JobStatus.PENDING, JobStatus.PROCESSING},
        )

    def cancel(self, owner_id: str, job_id: str) -> BulkJob:
        """
        Cancel any non-terminal job. Cancelling a cancelled job is a no-op.

        Raises:
            JobNotFoundError: If the job does not exist or belongs to another owner
            JobConflictError: If the job is completed
        """
        return self._change_status(
            owner_id,
            job_id,
            to_status=JobStatus.CANCELLED,
            from_statuses=ACTIVE_STATUSES,
        )

    def resume(self, owner_id: str, job_id: str) -> BulkJob:
        """
        Resume a paused job from its persisted cursor.

        Raises:
            JobNotFoundError: If the job does not exist or belongs to another owner
            JobConflictError: If the job is not paused
        """
        job = self._get_owned(job_id, owner_id)

        with log_context(job_id=job_id, owner_id=owner_id):
            if job.status != JobStatus.PAUSED or not self.store.transition(
                job_id, JobStatus.PROCESSING, {JobStatus.PAUSED}, owner_id=owner_id
            ):
                current = self._get_owned(job_id, owner_id)
                logger.warning(
                    f"Resume rejected: job is {current.status.value}",
                    extra={"event": "job.resume.conflict", "status": current.status.value},
                )
                raise JobConflictError(
                    f"Only paused jobs can be resumed (job is {current.status.value})",
                    job=current,
                )

            logger.info(
                f"Job resumed at item {job.current_index} of {job.total_items}",
                extra={"event": "job.resumed", "current_index": job.current_index},
            )
            self.runner.launch(job_id)

        return self._get_owned(job_id, owner_id)

    def recover_interrupted_jobs(self) -> List[str]:
        """
        Relaunch pending and processing jobs whose worker lease is free or lapsed.

        Such jobs are left behind by a crash or restart. Jobs whose lease is
        still live belong to a worker in this or another process and are left
        alone, so several processes may share one database.

        Returns:
            Ids of the jobs relaunched
        """
        interrupted = self.store.list_recoverable()
        relaunched = []

        for summary in interrupted:
            if self.runner.is_running(summary.id):
                continue
            with log_context(job_id=summary.id, owner_id=summary.owner_id):
                logger.warning(
                    f"Recovering interrupted job at item {summary.current_index} "
                    f"of {summary.total_items}",
                    extra={
                        "event": "job.recovery.relaunched",
                        "status": summary.status.value,
                        "current_index": summary.current_index,
                    },
                )
                if self.runner.launch(summary.id):
                    relaunched.append(summary.id)

        logger.info(
            f"Recovery check relaunched {len(relaunched)} job(s)",
            extra={"event": "job.recovery.completed", "relaunched_count": len(relaunched)},
        )
        return relaunched

    def _get_owned(self, job_id: str, owner_id: Optional[str]) -> BulkJob:
        if not job_id:
            raise JobValidationError("job_id is required")

        job = self.store.get_job(job_id)
        # A foreign job is reported exactly like a missing one
        if job is None or (owner_id is not None and job.owner_id != owner_id):
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def _change_status(
        self,
        owner_id: str,
        job_id: str,
        to_status: JobStatus,
        from_statuses: Iterable[JobStatus],
    ) -> BulkJob:
        if not owner_id:
            raise JobValidationError("owner_id is required")

        job = self._get_owned(job_id, owner_id)
        action = "pause" if to_status == JobStatus.PAUSED else "cancel"

        with log_context(job_id=job_id, owner_id=owner_id):
            if job.status == to_status:
                logger.info(
                    f"Job already {to_status.value}; {action} is a no-op",
                    extra={"event": f"job.{action}.noop"},
                )
                return job

            if self.store.transition(job_id, to_status, from_statuses, owner_id=owner_id):
                logger.info(
                    f"Job {to_status.value} (was {job.status.value})",
                    extra={
                        "event": f"job.{action}.applied",
                        "previous_status": job.status.value,
                        "current_index": job.current_index,
                    },
                )
                return self._get_owned(job_id, owner_id)

            # The status changed between the read and the conditional update
            current = self._get_owned(job_id, owner_id)
            if current.status == to_status:
                return current

            logger.warning(
                f"Cannot {action} job in status {current.status.value}",
                extra={"event": f"job.{action}.conflict", "status": current.status.value},
            )
            raise JobConflictError(
                f"Cannot {action} a {current.status.value} job", job=current
            )
