"""Domain models for the bulk messenger."""

from .models import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    BulkJob,
    GatewayInstance,
    JobItem,
    JobStatus,
    JobSummary,
    MessageTemplate,
    NotificationRecord,
    NotificationType,
    ProfileData,
    TemplateType,
)

__all__ = [
    "BulkJob",
    "JobSummary",
    "JobItem",
    "JobStatus",
    "ProfileData",
    "MessageTemplate",
    "TemplateType",
    "GatewayInstance",
    "NotificationRecord",
    "NotificationType",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
]
