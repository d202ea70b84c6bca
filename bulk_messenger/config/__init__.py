"""Configuration management for the bulk messenger."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config
from .models import (
    AppConfig,
    GatewayConfig,
    JobsConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    MessagingConfig,
)

__all__ = [
    "load_config",
    "load_environment_config",
    "AppConfig",
    "GatewayConfig",
    "JobsConfig",
    "MessagingConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
