"""Transport-agnostic control surface for bulk jobs.

JobControlAPI.handle() takes a decoded request envelope (a dict with an
"action" key), validates it, delegates to BulkJobService and maps the
outcome or the error to a ControlResponse. It holds no business logic.
"""

from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from bulk_messenger.domain.models import BulkJob, JobSummary
from bulk_messenger.jobs.exceptions import (
    JobConflictError,
    JobNotFoundError,
    JobValidationError,
)
from bulk_messenger.jobs.service import BulkJobService
from bulk_messenger.logging import get_logger
from bulk_messenger.persistence.exceptions import PersistenceError

from .models import (
    ControlAction,
    ControlEnvelope,
    ControlResponse,
    JobActionRequest,
    OwnerRequest,
    StartRequest,
    StatusRequest,
)

logger = get_logger(__name__, component="control")


def _job_data(job: Optional[BulkJob]) -> Optional[Dict[str, Any]]:
    if job is None:
        return None
    return job.summary().model_dump(mode="json")


def _summary_data(summary: JobSummary) -> Dict[str, Any]:
    return summary.model_dump(mode="json")


def format_validation_error(error: ValidationError) -> str:
    """Flatten pydantic errors into 'field: message; ...'."""
    parts = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "request"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


class JobControlAPI:
    """Maps control envelopes to job service calls."""

    def __init__(self, service: BulkJobService):
        self.service = service
        self._handlers = {
            ControlAction.START: self._start,
            ControlAction.STATUS: self._status,
            ControlAction.GET_ACTIVE: self._get_active,
            ControlAction.PAUSE: self._pause,
            ControlAction.RESUME: self._resume,
            ControlAction.CANCEL: self._cancel,
            ControlAction.LIST: self._list,
        }

    def handle(self, request: Mapping[str, Any]) -> ControlResponse:
        """
        Execute one control request.

        Args:
            request: Decoded envelope, e.g. {"action": "pause", "owner_id": ..., "job_id": ...}

        Returns:
            ControlResponse; errors are reported in the response, not raised
        """
        action = request.get("action") if isinstance(request, Mapping) else None

        try:
            envelope = ControlEnvelope.model_validate(request)
            response = self._handlers[envelope.action](request)

        except ValidationError as e:
            message = format_validation_error(e)
            logger.info(
                f"Rejected {action} request: {message}",
                extra={"event": "control.request.invalid", "action": action},
            )
            return ControlResponse.failure(400, message, "validation_error")

        except JobValidationError as e:
            logger.info(
                f"Rejected {action} request: {e}",
                extra={"event": "control.request.invalid", "action": action},
            )
            return ControlResponse.failure(400, str(e), "validation_error")

        except JobNotFoundError as e:
            return ControlResponse.failure(404, str(e), "not_found")

        except JobConflictError as e:
            data = {"job": _job_data(e.job)} if e.job is not None else {}
            return ControlResponse.failure(409, str(e), "conflict", **data)

        except PersistenceError as e:
            logger.error(
                f"Storage failure handling {action} request: {e}",
                extra={
                    "event": "control.request.failed",
                    "action": action,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return ControlResponse.failure(500, str(e), "storage_error")

        except Exception as e:
            logger.error(
                f"Unexpected error handling {action} request: {e}",
                extra={
                    "event": "control.request.failed",
                    "action": action,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return ControlResponse.failure(
                500, str(e) or type(e).__name__, "internal_error"
            )

        logger.debug(
            f"Handled {action} request",
            extra={"event": "control.request.handled", "action": action},
        )
        return response

    def _start(self, request: Mapping[str, Any]) -> ControlResponse:
        params = StartRequest.model_validate(request)
        job = self.service.start(
            params.owner_id,
            params.items,
            pace_seconds=params.pace_seconds,
            profile=params.profile,
        )
        return ControlResponse.success(job_id=job.id, job=_job_data(job))

    def _status(self, request: Mapping[str, Any]) -> ControlResponse:
        params = StatusRequest.model_validate(request)
        job = self.service.status(params.job_id, owner_id=params.owner_id)
        return ControlResponse.success(job=_job_data(job))

    def _get_active(self, request: Mapping[str, Any]) -> ControlResponse:
        params = OwnerRequest.model_validate(request)
        return ControlResponse.success(job=_job_data(self.service.get_active(params.owner_id)))

    def _pause(self, request: Mapping[str, Any]) -> ControlResponse:
        params = JobActionRequest.model_validate(request)
        return ControlResponse.success(job=_job_data(self.service.pause(params.owner_id, params.job_id)))

    def _resume(self, request: Mapping[str, Any]) -> ControlResponse:
        params = JobActionRequest.model_validate(request)
        return ControlResponse.success(
            job=_job_data(self.service.resume(params.owner_id, params.job_id))
        )

    def _cancel(self, request: Mapping[str, Any]) -> ControlResponse:
        params = JobActionRequest.model_validate(request)
        return ControlResponse.success(
            job=_job_data(self.service.cancel(params.owner_id, params.job_id))
        )

    def _list(self, request: Mapping[str, Any]) -> ControlResponse:
        params = OwnerRequest.model_validate(request)
        jobs = self.service.list_recent(params.owner_id, limit=params.limit)
        return ControlResponse.success(jobs=[_summary_data(job) for job in jobs])
