"""Data access layer (repositories) for persistence operations.

Repositories wrap a caller-owned session and return domain models rather
than ORM models. They flush but never commit; get_session() commits.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, defer

from bulk_messenger.domain.models import (
    ACTIVE_STATUSES,
    BulkJob,
    GatewayInstance,
    JobStatus,
    JobSummary,
    MessageTemplate,
    NotificationRecord,
)
from bulk_messenger.utils.timestamps import format_timestamp, utc_now

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    BulkJobModel,
    GatewayInstanceModel,
    MessageTemplateModel,
    NotificationTrackingModel,
)

logger = logging.getLogger(__name__)


def _status_values(statuses: Iterable[JobStatus]) -> List[str]:
    return [JobStatus(status).value for status in statuses]


def _lease_values(now: datetime, lease_seconds: float) -> Dict[str, str]:
    return {
        "heartbeat_at": format_timestamp(now),
        "lease_expires_at": format_timestamp(now + timedelta(seconds=lease_seconds)),
    }


class JobRepository:
    """Repository for bulk job records."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, job: BulkJob) -> BulkJob:
        """Insert a new job.

        Raises:
            DataIntegrityError: If the owner already has an active job or the id exists
            PersistenceError: If database error occurs
        """
        try:
            job_model = BulkJobModel.from_domain(job)
            self.session.add(job_model)
            self.session.flush()
            return job_model.to_domain()

        except IntegrityError as e:
            logger.warning(f"Integrity error inserting job {job.id} for owner {job.owner_id}: {e}")
            raise DataIntegrityError(f"Failed to create job due to constraint violation: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting job {job.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create job: {e}") from e

    def get(self, job_id: str) -> Optional[BulkJob]:
        """Retrieve a job with its item snapshot, or None if unknown."""
        try:
            job_model = self.session.get(BulkJobModel, job_id)
            return job_model.to_domain() if job_model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job: {e}") from e

    def get_status(self, job_id: str) -> Optional[JobStatus]:
        """Read only the status column; the runner polls this before every send."""
        try:
            stmt = select(BulkJobModel.status).where(BulkJobModel.id == job_id)
            status = self.session.execute(stmt).scalar_one_or_none()
            return JobStatus(status) if status is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error reading status of job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read job status: {e}") from e

    def get_active_for_owner(self, owner_id: str) -> Optional[BulkJob]:
        """Return the owner's pending, processing or paused job, newest first."""
        try:
            stmt = (
                select(BulkJobModel)
                .where(
                    BulkJobModel.owner_id == owner_id,
                    BulkJobModel.status.in_(_status_values(ACTIVE_STATUSES)),
                )
                .order_by(BulkJobModel.created_at.desc())
                .limit(1)
            )
            job_model = self.session.execute(stmt).scalar_one_or_none()
            return job_model.to_domain() if job_model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving active job for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve active job: {e}") from e

    def list_recent(self, owner_id: str, limit: int = 10) -> List[JobSummary]:
        """List the owner's most recent jobs, newest first, without payloads."""
        try:
            stmt = (
                select(BulkJobModel)
                .options(defer(BulkJobModel.items), defer(BulkJobModel.profile))
                .where(BulkJobModel.owner_id == owner_id)
                .order_by(BulkJobModel.created_at.desc())
                .limit(limit)
            )
            return [model.to_summary() for model in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing jobs for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list jobs: {e}") from e

    def list_recoverable(self) -> List[JobSummary]:
        """List pending and processing jobs whose worker lease is free or lapsed, oldest first."""
        try:
            now = format_timestamp(utc_now())
            stmt = (
                select(BulkJobModel)
                .options(defer(BulkJobModel.items), defer(BulkJobModel.profile))
                .where(
                    BulkJobModel.status.in_(
                        _status_values({JobStatus.PENDING, JobStatus.PROCESSING})
                    ),
                    or_(
                        BulkJobModel.worker_id.is_(None),
                        BulkJobModel.lease_expires_at.is_(None),
                        BulkJobModel.lease_expires_at < now,
                    ),
                )
                .order_by(BulkJobModel.created_at.asc())
            )
            return [model.to_summary() for model in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error listing recoverable jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list recoverable jobs: {e}") from e

    def claim(self, job_id: str, worker_id: str, lease_seconds: float) -> bool:
        """Take the job's worker lease if it is free, lapsed or already held by worker_id.

        A single conditional UPDATE, so of two workers racing for the same
        job exactly one succeeds.

        Returns:
            True if worker_id now holds the lease
        """
        try:
            now = utc_now()
            stmt = (
                update(BulkJobModel)
                .where(
                    BulkJobModel.id == job_id,
                    or_(
                        BulkJobModel.worker_id.is_(None),
                        BulkJobModel.worker_id == worker_id,
                        BulkJobModel.lease_expires_at.is_(None),
                        BulkJobModel.lease_expires_at < format_timestamp(now),
                    ),
                )
                .values(worker_id=worker_id, **_lease_values(now, lease_seconds))
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error(f"Error claiming job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to claim job: {e}") from e

    def renew(self, job_id: str, worker_id: str, lease_seconds: float) -> bool:
        """Extend the lease held by worker_id.

        Returns:
            False if worker_id no longer holds the lease
        """
        try:
            stmt = (
                update(BulkJobModel)
                .where(BulkJobModel.id == job_id, BulkJobModel.worker_id == worker_id)
                .values(**_lease_values(utc_now(), lease_seconds))
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error(f"Error renewing lease of job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to renew job lease: {e}") from e

    def release(self, job_id: str, worker_id: str) -> bool:
        """Give up the lease held by worker_id unless the job is processing again.

        A worker stopping because of a pause must not drop the lease after a
        resume has already put the job back to processing; it keeps running
        instead.

        Returns:
            True if the lease was released
        """
        try:
            stmt = (
                update(BulkJobModel)
                .where(
                    BulkJobModel.id == job_id,
                    BulkJobModel.worker_id == worker_id,
                    BulkJobModel.status != JobStatus.PROCESSING.value,
                )
                .values(worker_id=None, heartbeat_at=None, lease_expires_at=None)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error(f"Error releasing lease of job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to release job lease: {e}") from e

    def transition(
        self,
        job_id: str,
        to_status: JobStatus,
        from_statuses: Iterable[JobStatus],
        owner_id: Optional[str] = None,
        last_error: Optional[str] = None,
    ) -> bool:
        """Conditionally move a job to a new status.

        The update only applies while the job is in one of from_statuses (and
        belongs to owner_id when given), so concurrent control calls and the
        runner never overwrite a terminal state.

        Returns:
            True if the row was updated, False if the condition did not hold
        """
        try:
            conditions = [
                BulkJobModel.id == job_id,
                BulkJobModel.status.in_(_status_values(from_statuses)),
            ]
            if owner_id is not None:
                conditions.append(BulkJobModel.owner_id == owner_id)

            values = {"status": to_status.value, "updated_at": format_timestamp(utc_now())}
            if last_error is not None:
                values["last_error"] = last_error

            result = self.session.execute(update(BulkJobModel).where(*conditions).values(**values))
            self.session.flush()
            return result.rowcount > 0

        except IntegrityError as e:
            raise DataIntegrityError(f"Failed to change status of job {job_id}: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error changing status of job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to change job status: {e}") from e

    def update_progress(
        self,
        job_id: str,
        worker_id: str,
        current_index: int,
        success_count: int,
        error_count: int,
        lease_seconds: float,
    ) -> bool:
        """Persist counters and cursor after an item (the durability checkpoint).

        Applies only while worker_id holds the lease and the job is not
        completed, and renews the lease. processed_count is derived from the
        two counters so the counter invariant holds for every stored row.

        Returns:
            False if the lease was lost or the job already completed

        Raises:
            RecordNotFoundError: If job_id doesn't exist
            PersistenceError: If database error occurs
        """
        try:
            now = utc_now()
            stmt = (
                update(BulkJobModel)
                .where(
                    BulkJobModel.id == job_id,
                    BulkJobModel.worker_id == worker_id,
                    BulkJobModel.status != JobStatus.COMPLETED.value,
                )
                .values(
                    current_index=current_index,
                    processed_count=success_count + error_count,
                    success_count=success_count,
                    error_count=error_count,
                    updated_at=format_timestamp(now),
                    **_lease_values(now, lease_seconds),
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                if self.session.get(BulkJobModel, job_id) is None:
                    raise RecordNotFoundError(f"Job {job_id} not found")
                return False
            return True

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating progress of job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update job progress: {e}") from e

    def complete(
        self, job_id: str, worker_id: str, total_items: int, success_count: int, error_count: int
    ) -> bool:
        """Mark a processing job completed with the cursor at the end and free its lease.

        Returns:
            False if the job was paused or cancelled in the meantime, or
            worker_id no longer holds the lease
        """
        try:
            stmt = (
                update(BulkJobModel)
                .where(
                    BulkJobModel.id == job_id,
                    BulkJobModel.status == JobStatus.PROCESSING.value,
                    BulkJobModel.worker_id == worker_id,
                )
                .values(
                    status=JobStatus.COMPLETED.value,
                    current_index=total_items,
                    processed_count=success_count + error_count,
                    success_count=success_count,
                    error_count=error_count,
                    updated_at=format_timestamp(utc_now()),
                    worker_id=None,
                    heartbeat_at=None,
                    lease_expires_at=None,
                )
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error(f"Error completing job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to complete job: {e}") from e


class NotificationRepository:
    """Repository for the notification tracking (de-duplication) table."""

    def __init__(self, session: Session):
        self.session = session

    def record(self, record: NotificationRecord) -> bool:
        """Insert a tracking record unless the same key already exists.

        Returns:
            True if inserted, False if the key was already recorded

        Raises:
            PersistenceError: If database error occurs
        """
        key = {
            "customer_id": record.customer_id,
            "notification_type": record.notification_type.value,
            "cycle_date": record.cycle_date.isoformat(),
        }
        try:
            if self.session.get(NotificationTrackingModel, key) is not None:
                logger.debug(f"Notification already recorded: {key}")
                return False

            self.session.add(NotificationTrackingModel.from_domain(record))
            self.session.flush()
            return True

        except IntegrityError:
            # Concurrent insert of the same key
            self.session.rollback()
            logger.debug(f"Duplicate notification record (concurrent insert): {key}")
            return False
        except SQLAlchemyError as e:
            logger.error(f"Error recording notification {key}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record notification: {e}") from e

    def list_for_customer(self, customer_id: str) -> List[NotificationRecord]:
        """Retrieve every notification sent to a customer, newest first."""
        try:
            stmt = (
                select(NotificationTrackingModel)
                .where(NotificationTrackingModel.customer_id == customer_id)
                .order_by(NotificationTrackingModel.sent_at.desc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving notifications for {customer_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve notifications: {e}") from e


class TemplateRepository:
    """Repository for owner message templates."""

    def __init__(self, session: Session):
        self.session = session

    def list_for_owner(self, owner_id: str) -> List[MessageTemplate]:
        """Return the owner's templates in creation order."""
        try:
            stmt = (
                select(MessageTemplateModel)
                .where(MessageTemplateModel.owner_id == owner_id)
                .order_by(MessageTemplateModel.id.asc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving templates for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve templates: {e}") from e

    def upsert(self, template: MessageTemplate) -> MessageTemplate:
        """Insert a template or replace the message of the same owner/name/type."""
        try:
            stmt = select(MessageTemplateModel).where(
                MessageTemplateModel.owner_id == template.owner_id,
                MessageTemplateModel.name == template.name,
                MessageTemplateModel.template_type == template.template_type.value,
            )
            existing = self.session.execute(stmt).scalar_one_or_none()

            if existing:
                existing.message = template.message
                self.session.flush()
                return existing.to_domain()

            model = MessageTemplateModel(
                owner_id=template.owner_id,
                name=template.name,
                template_type=template.template_type.value,
                message=template.message,
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            raise DataIntegrityError(f"Failed to upsert template: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting template {template.name}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert template: {e}") from e


class GatewayInstanceRepository:
    """Repository for owners' gateway instances."""

    def __init__(self, session: Session):
        self.session = session

    def get_for_owner(self, owner_id: str) -> Optional[GatewayInstance]:
        try:
            model = self.session.get(GatewayInstanceModel, owner_id)
            return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving gateway instance for {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve gateway instance: {e}") from e

    def upsert(self, instance: GatewayInstance) -> GatewayInstance:
        try:
            existing = self.session.get(GatewayInstanceModel, instance.owner_id)

            if existing:
                existing.instance_name = instance.instance_name
                existing.is_connected = instance.is_connected
                existing.country_code = instance.country_code
                self.session.flush()
                return existing.to_domain()

            model = GatewayInstanceModel(
                owner_id=instance.owner_id,
                instance_name=instance.instance_name,
                is_connected=instance.is_connected,
                country_code=instance.country_code,
            )
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(
                f"Error upserting gateway instance for {instance.owner_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to upsert gateway instance: {e}") from e
