"""Job store facade used by the runner and the job service.

Each method opens its own session so that every write is committed before
the call returns. The runner relies on this: a status change made by a
control call is visible on the next status read, and progress written after
an item survives a crash. The worker lease lives on the job row so that
workers in different processes never run the same job at once.
"""

from typing import Iterable, List, Optional

from bulk_messenger.domain.models import (
    BulkJob,
    GatewayInstance,
    JobStatus,
    JobSummary,
    MessageTemplate,
    NotificationRecord,
)

from .database import get_session
from .repositories import (
    GatewayInstanceRepository,
    JobRepository,
    NotificationRepository,
    TemplateRepository,
)


class JobStore:
    """Record-oriented access to jobs, templates, instances and tracking."""

    def create_job(self, job: BulkJob) -> BulkJob:
        with get_session() as session:
            return JobRepository(session).add(job)

    def get_job(self, job_id: str) -> Optional[BulkJob]:
        with get_session() as session:
            return JobRepository(session).get(job_id)

    def get_status(self, job_id: str) -> Optional[JobStatus]:
        with get_session() as session:
            return JobRepository(session).get_status(job_id)

    def get_active_job(self, owner_id: str) -> Optional[BulkJob]:
        with get_session() as session:
            return JobRepository(session).get_active_for_owner(owner_id)

    def list_recent(self, owner_id: str, limit: int) -> List[JobSummary]:
        with get_session() as session:
            return JobRepository(session).list_recent(owner_id, limit=limit)

    def transition(
        self,
        job_id: str,
        to_status: JobStatus,
        from_statuses: Iterable[JobStatus],
        owner_id: Optional[str] = None,
        last_error: Optional[str] = None,
    ) -> bool:
        with get_session() as session:
            return JobRepository(session).transition(
                job_id, to_status, from_statuses, owner_id=owner_id, last_error=last_error
            )

    def update_progress(
        self,
        job_id: str,
        worker_id: str,
        current_index: int,
        success_count: int,
        error_count: int,
        lease_seconds: float,
    ) -> bool:
        with get_session() as session:
            return JobRepository(session).update_progress(
                job_id, worker_id, current_index, success_count, error_count, lease_seconds
            )

    def complete(
        self, job_id: str, worker_id: str, total_items: int, success_count: int, error_count: int
    ) -> bool:
        with get_session() as session:
            return JobRepository(session).complete(
                job_id, worker_id, total_items, success_count, error_count
            )

    # Worker lease

    def list_recoverable(self) -> List[JobSummary]:
        with get_session() as session:
            return JobRepository(session).list_recoverable()

    def claim_job(self, job_id: str, worker_id: str, lease_seconds: float) -> bool:
        with get_session() as session:
            return JobRepository(session).claim(job_id, worker_id, lease_seconds)

    def renew_lease(self, job_id: str, worker_id: str, lease_seconds: float) -> bool:
        with get_session() as session:
            return JobRepository(session).renew(job_id, worker_id, lease_seconds)

    def release_lease(self, job_id: str, worker_id: str) -> bool:
        with get_session() as session:
            return JobRepository(session).release(job_id, worker_id)

    def record_notification(self, record: NotificationRecord) -> bool:
        with get_session() as session:
            return NotificationRepository(session).record(record)

    def list_notifications(self, customer_id: str) -> List[NotificationRecord]:
        with get_session() as session:
            return NotificationRepository(session).list_for_customer(customer_id)

    def get_templates(self, owner_id: str) -> List[MessageTemplate]:
        with get_session() as session:
            return TemplateRepository(session).list_for_owner(owner_id)

    def save_template(self, template: MessageTemplate) -> MessageTemplate:
        with get_session() as session:
            return TemplateRepository(session).upsert(template)

    def get_gateway_instance(self, owner_id: str) -> Optional[GatewayInstance]:
        with get_session() as session:
            return GatewayInstanceRepository(session).get_for_owner(owner_id)

    def save_gateway_instance(self, instance: GatewayInstance) -> GatewayInstance:
        with get_session() as session:
            return GatewayInstanceRepository(session).upsert(instance)
