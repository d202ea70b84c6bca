"""Bulk job lifecycle and run loop."""

from .exceptions import JobConflictError, JobError, JobNotFoundError, JobValidationError
from .models import ItemOutcome, RunResult
from .runner import JobRunner
from .service import BulkJobService

__all__ = [
    "BulkJobService",
    "JobRunner",
    "ItemOutcome",
    "RunResult",
    "JobError",
    "JobConflictError",
    "JobNotFoundError",
    "JobValidationError",
]
