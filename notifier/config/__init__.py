"""Configuration management for the notification engine."""

from .duration import DurationParseError, format_duration, parse_duration
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_app_config, load_config
from .models import (
    AppConfig,
    FlowControlConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    MaintenanceConfig,
    NotificationsConfig,
    PollingConfig,
    QueueConfig,
    ServerConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "load_app_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "QueueConfig",
    "FlowControlConfig",
    "NotificationsConfig",
    "PollingConfig",
    "MaintenanceConfig",
    "ServerConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Durations
    "parse_duration",
    "format_duration",
    "DurationParseError",
    # Exceptions
    "ConfigurationError",
]
