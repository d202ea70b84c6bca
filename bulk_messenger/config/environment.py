"""Environment variable loading and validation."""

import os
from typing import Optional

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/bulk_messenger.db"


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        gateway_api_key: Optional[str] = None,
        gateway_base_url: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
    ):
        self.gateway_api_key = gateway_api_key
        self.gateway_base_url = gateway_base_url
        self.log_level = log_level
        self.database_url = database_url or DEFAULT_DATABASE_URL


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    All variables are optional so that read-only control actions work without
    gateway credentials; a job started without them is cancelled by the
    runner pre-flight check.

    - GATEWAY_API_KEY: API key sent in the gateway 'apikey' header
    - GATEWAY_BASE_URL: Overrides gateway.base_url from the config file
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - DATABASE_URL: SQLAlchemy URL (default: sqlite:///./data/bulk_messenger.db)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If a variable is set to an invalid value
    """
    errors = []

    gateway_api_key = (os.getenv("GATEWAY_API_KEY") or "").strip() or None
    gateway_base_url = (os.getenv("GATEWAY_BASE_URL") or "").strip() or None
    log_level = os.getenv("LOG_LEVEL")
    database_url = os.getenv("DATABASE_URL")

    if gateway_base_url and not gateway_base_url.startswith(("http://", "https://")):
        errors.append(
            f"Invalid GATEWAY_BASE_URL: '{gateway_base_url}'. Must start with http:// or https://"
        )

    if log_level:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )
        else:
            log_level = log_level.upper()

    if database_url is not None and not database_url.strip():
        errors.append("DATABASE_URL is set but empty")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Unset variables you do not need instead of leaving them empty",
            ],
        )

    return EnvironmentConfig(
        gateway_api_key=gateway_api_key,
        gateway_base_url=gateway_base_url,
        log_level=log_level,
        database_url=database_url,
    )
