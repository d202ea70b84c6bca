"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class GatewayConfig(BaseModel):
    """Messaging gateway (Evolution-compatible WhatsApp API) settings."""

    base_url: Optional[str] = Field(
        None, description="Gateway base URL; GATEWAY_BASE_URL overrides it"
    )
    timeout_seconds: int = Field(
        15, ge=1, le=120, description="Per-request timeout for gateway calls (seconds)"
    )
    max_retries: int = Field(
        2, ge=0, le=10, description="Retries after the first attempt on transient failures"
    )
    retry_backoff_seconds: float = Field(
        1.0, ge=0.0, le=60.0, description="Linear backoff unit: retry n waits n * this value"
    )
    verify_connection: bool = Field(
        False, description="Query the instance connection state before running a job"
    )

    @field_validator("base_url")
    @classmethod
    def strip_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Strip whitespace and treat empty strings as unset."""
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None


class JobsConfig(BaseModel):
    """Bulk job processing settings."""

    default_pace_seconds: int = Field(
        15, ge=0, le=3600, description="Delay between sends when a request omits it"
    )
    list_limit: int = Field(
        10, ge=1, le=200, description="Number of jobs returned by the list action"
    )
    recovery_interval_seconds: int = Field(
        300, ge=10, le=86400, description="Interval of the interrupted-job recovery sweep"
    )
    recover_on_startup: bool = Field(
        True, description="Run a recovery sweep as soon as the daemon starts"
    )
    lease_timeout_seconds: int = Field(
        120,
        ge=10,
        le=3600,
        description=(
            "How long a worker may go without checking in, on top of the job's pace, "
            "before another process may take the job over"
        ),
    )


class MessagingConfig(BaseModel):
    """Defaults applied when rendering and addressing messages."""

    default_country_code: str = Field(
        "55", min_length=1, max_length=4, description="Country prefix for local numbers"
    )
    default_category: str = Field(
        "iptv", min_length=1, description="Category assumed for items without one"
    )

    @field_validator("default_country_code")
    @classmethod
    def digits_only(cls, v: str) -> str:
        """Country codes are digits without '+' or spaces."""
        stripped = v.strip().lstrip("+")
        if not stripped.isdigit():
            raise ValueError("default_country_code must contain digits only")
        return stripped


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True, "validate_default": True}


class AppConfig(BaseModel):
    """Root configuration object for the bulk messenger."""

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    messaging: MessagingConfig = Field(default_factory=MessagingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
