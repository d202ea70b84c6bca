"""Request and response envelopes of the job control API.

Requests accept both the owner_id/items/pace_seconds/profile names and the
seller_id/clients/interval_seconds/profile_data names used by existing
callers.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class ControlAction(str, Enum):
    START = "start"
    STATUS = "status"
    GET_ACTIVE = "get_active"
    PAUSE = "pause"
    RESUME = "resume"
    CANCEL = "cancel"
    LIST = "list"


class ControlEnvelope(BaseModel):
    """Outer envelope; only the action is validated here."""

    action: ControlAction

    model_config = {"extra": "allow"}


class StartRequest(BaseModel):
    owner_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("owner_id", "seller_id")
    )
    items: List[Dict[str, Any]] = Field(
        ..., min_length=1, validation_alias=AliasChoices("items", "clients")
    )
    pace_seconds: Optional[int] = Field(
        None, ge=0, validation_alias=AliasChoices("pace_seconds", "interval_seconds")
    )
    profile: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("profile", "profile_data")
    )


class JobActionRequest(BaseModel):
    """pause, resume and cancel."""

    owner_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("owner_id", "seller_id")
    )
    job_id: str = Field(..., min_length=1)


class StatusRequest(BaseModel):
    job_id: str = Field(..., min_length=1)
    owner_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("owner_id", "seller_id")
    )


class OwnerRequest(BaseModel):
    """get_active and list."""

    owner_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("owner_id", "seller_id")
    )
    limit: Optional[int] = Field(None, ge=1, le=100)


class ControlResponse(BaseModel):
    """
    Result of one control call.

    status_code follows HTTP conventions: 200 ok, 400 validation error,
    404 not found, 409 conflict, 500 storage failure or unexpected error.
    """

    ok: bool
    status_code: int = 200
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    error_type: Optional[str] = None

    @classmethod
    def success(cls, **data: Any) -> "ControlResponse":
        return cls(ok=True, status_code=200, data=data)

    @classmethod
    def failure(
        cls, status_code: int, error: str, error_type: str, **data: Any
    ) -> "ControlResponse":
        return cls(
            ok=False, status_code=status_code, error=error, error_type=error_type, data=data
        )
