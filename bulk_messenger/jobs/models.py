"""Data models for job run tracking and reporting."""

from dataclasses import dataclass
from typing import Optional

from bulk_messenger.domain.models import JobStatus


@dataclass
class ItemOutcome:
    """
    Result of processing one item of a job.

    Attributes:
        index: Position of the item in the job snapshot
        customer_id: Item customer identifier, if present
        success: Whether the gateway acknowledged the message
        error: Failure reason for error items
        attempts: Gateway attempts made (0 when the item failed before sending)
        notification_recorded: Whether a new tracking record was written
    """

    index: int
    customer_id: Optional[str]
    success: bool
    error: Optional[str] = None
    attempts: int = 0
    notification_recorded: bool = False


@dataclass
class RunResult:
    """
    Summary of one invocation of the run loop.

    Attributes:
        job_id: Job that was run
        final_status: Status the job was left in (None if the job is unknown)
        stop_reason: completed, paused, cancelled, preflight_failed, failed, not_found,
            lease_held (another worker holds the job) or lease_lost (taken over mid-run)
        items_processed: Items handled by this invocation only
        success_count: Job success counter when the loop ended
        error_count: Job error counter when the loop ended
        error: Failure message for preflight_failed and failed runs
    """

    job_id: str
    final_status: Optional[JobStatus]
    stop_reason: str
    items_processed: int = 0
    success_count: int = 0
    error_count: int = 0
    error: Optional[str] = None
