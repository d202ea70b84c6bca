"""Core domain models for bulk jobs, templates, gateway instances and tracking.

This module defines the data structures shared by every layer:
- BulkJob / JobSummary: a persisted batch of notification sends and its projection
- JobItem / ProfileData: the immutable snapshot captured when a job starts
- MessageTemplate: per-owner message text for each billing bucket
- GatewayInstance: the owner's WhatsApp instance on the messaging gateway
- NotificationRecord: de-duplication record of a message already sent
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator


class JobStatus(str, Enum):
    """Lifecycle states of a bulk job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


# An owner may hold at most one job in these states
ACTIVE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.PROCESSING, JobStatus.PAUSED})
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED})


class TemplateType(str, Enum):
    """Billing bucket a message template is written for."""

    EXPIRED = "expired"
    EXPIRING_SOON = "expiring_3days"
    BILLING = "billing"


class NotificationType(str, Enum):
    """Notification kinds recorded in the tracking table."""

    EXPIRED = "iptv_vencimento"
    EXPIRING_SOON = "iptv_3_dias"
    BILLING = "iptv_cobranca"


def _coerce_optional_str(v: Any) -> Optional[str]:
    if v is None or isinstance(v, str):
        return v
    return str(v)


class JobItem(BaseModel):
    """One customer's notification unit inside a job snapshot.

    Every field is optional and any value is accepted: numbers become
    strings, and a days_remaining that is not a whole number is kept as the
    raw string. Malformed customer data is reported as a per-item error
    while the job runs rather than rejected up front. Unknown keys are
    preserved so the snapshot keeps whatever the caller sent.
    """

    id: Optional[str] = Field(None, description="Customer identifier")
    name: Optional[str] = Field(None, description="Customer display name")
    phone: Optional[str] = Field(None, description="Phone number in any format")
    category: Optional[str] = Field(None, description="Service category (iptv, vpn, ...)")
    expiration_date: Optional[str] = Field(None, description="ISO date the plan expires")
    days_remaining: Optional[Union[int, str]] = Field(
        None,
        validation_alias=AliasChoices("days_remaining", "daysRemaining"),
        description="Overrides the days computed from expiration_date",
    )
    plan_name: Optional[str] = Field(None, description="Plan name")
    plan_price: Optional[Union[int, float, str]] = Field(None, description="Plan price")

    @field_validator(
        "id", "name", "phone", "category", "expiration_date", "plan_name", mode="before"
    )
    @classmethod
    def coerce_to_str(cls, v: Any) -> Optional[str]:
        """Accept numbers (and any other scalar) where text is expected."""
        return _coerce_optional_str(v)

    @field_validator("days_remaining", mode="before")
    @classmethod
    def coerce_days(cls, v: Any) -> Optional[Union[int, str]]:
        """Keep whole numbers as int and anything else as text for the runner to reject."""
        if v is None or (isinstance(v, int) and not isinstance(v, bool)):
            return v
        text = str(v).strip()
        try:
            number = float(text)
        except ValueError:
            return text
        return int(number) if number.is_integer() else text

    @field_validator("plan_price", mode="before")
    @classmethod
    def coerce_price(cls, v: Any) -> Optional[Union[int, float, str]]:
        if isinstance(v, bool) or not isinstance(v, (int, float, str, type(None))):
            return str(v)
        return v

    model_config = {"extra": "allow", "populate_by_name": True}


class ProfileData(BaseModel):
    """Seller profile fields available to message templates."""

    company_name: Optional[str] = None
    full_name: Optional[str] = None
    pix_key: Optional[str] = None

    model_config = {"extra": "allow"}


class JobSummary(BaseModel):
    """Job projection without the item payload (used by list responses)."""

    id: str
    owner_id: str
    status: JobStatus
    total_items: int
    processed_count: int
    success_count: int
    error_count: int
    current_index: int
    pace_seconds: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BulkJob(BaseModel):
    """A unit of bulk-send work.

    Counters and the cursor are written only by the runner; control calls only
    touch the status. success_count + error_count always equals
    processed_count, and processed_count equals current_index while active.
    """

    id: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1)
    status: JobStatus = JobStatus.PENDING
    total_items: int = Field(..., ge=0)
    processed_count: int = Field(0, ge=0)
    success_count: int = Field(0, ge=0)
    error_count: int = Field(0, ge=0)
    current_index: int = Field(0, ge=0)
    pace_seconds: int = Field(15, ge=0)
    items: List[JobItem] = Field(default_factory=list)
    profile: ProfileData = Field(default_factory=ProfileData)
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def summary(self) -> JobSummary:
        """Project the job without its items."""
        return JobSummary(**self.model_dump(exclude={"items", "profile"}))


class MessageTemplate(BaseModel):
    """Owner-defined message text for one billing bucket."""

    id: Optional[int] = None
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    template_type: TemplateType
    message: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Template name cannot be empty or whitespace-only")
        return stripped


class GatewayInstance(BaseModel):
    """The owner's WhatsApp instance registered on the messaging gateway."""

    owner_id: str = Field(..., min_length=1)
    instance_name: str = Field(..., min_length=1)
    is_connected: bool = False
    country_code: Optional[str] = Field(
        None, description="Overrides messaging.default_country_code for this owner"
    )


class NotificationRecord(BaseModel):
    """Tracking row proving a message was sent for one billing cycle."""

    customer_id: str
    owner_id: str
    notification_type: NotificationType
    cycle_date: date
    sent_via: str = "api_bulk_background"
    sent_at: datetime
