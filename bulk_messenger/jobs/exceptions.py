"""Exceptions raised by job lifecycle operations.

The control API maps each one to a response status: validation -> 400,
not found -> 404, conflict -> 409.
"""

from typing import Optional

from bulk_messenger.domain.models import BulkJob


class JobError(Exception):
    """Base exception for job lifecycle errors."""

    pass


class JobValidationError(JobError):
    """Request is missing required fields or carries invalid values.

    Raised before any job record is created.
    """

    pass


class JobNotFoundError(JobError):
    """Job does not exist or belongs to another owner."""

    pass


class JobConflictError(JobError):
    """Operation is not allowed in the job's current state.

    Examples:
    - start while the owner already has a pending/processing/paused job
    - resume on a job that is not paused
    - pause or cancel on a completed job
    """

    def __init__(self, message: str, job: Optional[BulkJob] = None) -> None:
        super().__init__(message)
        self.job = job
