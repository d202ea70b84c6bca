"""Database schema definition and ORM models.

ORM models convert to and from the domain models in bulk_messenger.domain.
Timestamps are stored as ISO 8601 UTC strings so that ordering by the column
is chronological on every backend.
"""

import logging
from datetime import date

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    inspect,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from bulk_messenger.domain.models import (
    BulkJob,
    GatewayInstance,
    JobItem,
    JobStatus,
    JobSummary,
    MessageTemplate,
    NotificationRecord,
    ProfileData,
)
from bulk_messenger.utils.timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

Base = declarative_base()

ACTIVE_STATUS_SQL = "status IN ('pending', 'processing', 'paused')"


class BulkJobModel(Base):
    """ORM model for the bulk_jobs table."""

    __tablename__ = "bulk_jobs"

    id = Column(String(64), primary_key=True, nullable=False)
    owner_id = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)

    total_items = Column(Integer, nullable=False)
    processed_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    current_index = Column(Integer, nullable=False, default=0)
    pace_seconds = Column(Integer, nullable=False)

    # Snapshot captured at creation; never rewritten
    items = Column(JSON, nullable=False)
    profile = Column(JSON, nullable=True)

    last_error = Column(Text, nullable=True)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    # Worker lease: the worker running the job, its last check-in and when
    # the lease lapses if it stops checking in
    worker_id = Column(String(128), nullable=True)
    heartbeat_at = Column(String(50), nullable=True)
    lease_expires_at = Column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_bulk_jobs_owner_created", "owner_id", "created_at"),
        Index("idx_bulk_jobs_status", "status"),
        # One active lineage per owner
        Index(
            "uq_bulk_jobs_active_owner",
            "owner_id",
            unique=True,
            sqlite_where=text(ACTIVE_STATUS_SQL),
            postgresql_where=text(ACTIVE_STATUS_SQL),
        ),
    )

    def to_domain(self) -> BulkJob:
        """Convert ORM model to domain model."""
        return BulkJob(
            id=self.id,
            owner_id=self.owner_id,
            status=JobStatus(self.status),
            total_items=self.total_items,
            processed_count=self.processed_count,
            success_count=self.success_count,
            error_count=self.error_count,
            current_index=self.current_index,
            pace_seconds=self.pace_seconds,
            items=[JobItem.model_validate(item) for item in (self.items or [])],
            profile=ProfileData.model_validate(self.profile or {}),
            last_error=self.last_error,
            created_at=parse_timestamp(self.created_at),
            updated_at=parse_timestamp(self.updated_at),
        )

    def to_summary(self) -> JobSummary:
        """Convert to a summary without touching the deferred payload columns."""
        return JobSummary(
            id=self.id,
            owner_id=self.owner_id,
            status=JobStatus(self.status),
            total_items=self.total_items,
            processed_count=self.processed_count,
            success_count=self.success_count,
            error_count=self.error_count,
            current_index=self.current_index,
            pace_seconds=self.pace_seconds,
            last_error=self.last_error,
            created_at=parse_timestamp(self.created_at),
            updated_at=parse_timestamp(self.updated_at),
        )

    @classmethod
    def from_domain(cls, job: BulkJob) -> "BulkJobModel":
        """Create ORM model from domain model."""
        return cls(
            id=job.id,
            owner_id=job.owner_id,
            status=job.status.value,
            total_items=job.total_items,
            processed_count=job.processed_count,
            success_count=job.success_count,
            error_count=job.error_count,
            current_index=job.current_index,
            pace_seconds=job.pace_seconds,
            items=[item.model_dump(mode="json") for item in job.items],
            profile=job.profile.model_dump(mode="json"),
            last_error=job.last_error,
            created_at=format_timestamp(job.created_at),
            updated_at=format_timestamp(job.updated_at),
        )


class NotificationTrackingModel(Base):
    """ORM model for client_notification_tracking.

    The composite primary key is the de-duplication key: one message per
    customer, notification type and billing cycle.
    """

    __tablename__ = "client_notification_tracking"

    customer_id = Column(String(255), primary_key=True, nullable=False)
    notification_type = Column(String(50), primary_key=True, nullable=False)
    cycle_date = Column(String(10), primary_key=True, nullable=False)

    owner_id = Column(String(255), nullable=False)
    sent_via = Column(String(50), nullable=False)
    sent_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_tracking_owner_sent_at", "owner_id", "sent_at"),)

    def to_domain(self) -> NotificationRecord:
        return NotificationRecord(
            customer_id=self.customer_id,
            owner_id=self.owner_id,
            notification_type=self.notification_type,
            cycle_date=date.fromisoformat(self.cycle_date),
            sent_via=self.sent_via,
            sent_at=parse_timestamp(self.sent_at),
        )

    @classmethod
    def from_domain(cls, record: NotificationRecord) -> "NotificationTrackingModel":
        return cls(
            customer_id=record.customer_id,
            notification_type=record.notification_type.value,
            cycle_date=record.cycle_date.isoformat(),
            owner_id=record.owner_id,
            sent_via=record.sent_via,
            sent_at=format_timestamp(record.sent_at),
        )


class MessageTemplateModel(Base):
    """ORM model for message_templates."""

    __tablename__ = "message_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    template_type = Column(String(30), nullable=False)
    message = Column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "name", "template_type", name="uq_templates_owner_name_type"),
    )

    def to_domain(self) -> MessageTemplate:
        return MessageTemplate(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            template_type=self.template_type,
            message=self.message,
        )


class GatewayInstanceModel(Base):
    """ORM model for gateway_instances (one WhatsApp instance per owner)."""

    __tablename__ = "gateway_instances"

    owner_id = Column(String(255), primary_key=True, nullable=False)
    instance_name = Column(String(255), nullable=False)
    is_connected = Column(Boolean, nullable=False, default=False)
    country_code = Column(String(4), nullable=True)

    def to_domain(self) -> GatewayInstance:
        return GatewayInstance(
            owner_id=self.owner_id,
            instance_name=self.instance_name,
            is_connected=bool(self.is_connected),
            country_code=self.country_code,
        )


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
