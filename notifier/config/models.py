"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field, field_validator, model_validator

from notifier.domain.models import NotificationType

from .duration import DurationParseError, parse_duration, validate_duration_range

DEFAULT_ENABLED_TYPES = [
    NotificationType.PREP_48H,
    NotificationType.PREP_24H,
    NotificationType.IMMEDIATE_FEEDBACK,
]


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


def _check_duration(value: str, min_seconds: int, max_seconds: int, label: str) -> str:
    try:
        validate_duration_range(parse_duration(value), min_seconds, max_seconds, label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class FlowControlConfig(BaseModel):
    """Throughput cap the queue enforces towards the email provider."""

    key: str = Field("email-delivery", min_length=1, description="Flow-control bucket name")
    rate: int = Field(2, ge=1, le=1000, description="Messages released per period")
    parallelism: int = Field(1, ge=1, le=100, description="Concurrent deliveries")
    period: str = Field("1s", description="Rate window, e.g. '1s' or 'PT1M'")

    @field_validator("period")
    @classmethod
    def validate_period(cls, v: str) -> str:
        return _check_duration(v, 1, 3600, "Flow control period")

    @property
    def period_seconds(self) -> int:
        return parse_duration(self.period)


class QueueConfig(BaseModel):
    """Delayed-delivery queue settings."""

    api_url: str = Field("https://qstash.upstash.io", description="Queue REST API base URL")
    worker_path: str = Field(
        "/api/notifications/send", description="Path of the delivery worker on APP_BASE_URL"
    )
    callback_path: str = Field("/api/queue/callback", description="Success callback path")
    failure_path: str = Field("/api/queue/failure", description="Failure callback path")
    retries: int = Field(5, ge=0, le=10, description="Delivery retries before the failure callback")
    retry_delay: str = Field(
        "pow(2, retried) * 1000",
        min_length=1,
        description="Backoff expression (milliseconds) evaluated by the queue",
    )
    request_timeout: float = Field(10, ge=1, le=60, description="Outbound call timeout (seconds)")
    flow_control: FlowControlConfig = Field(default_factory=FlowControlConfig)

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        return v

    @field_validator("worker_path", "callback_path", "failure_path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError(f"Path must start with '/': {v!r}")
        return v


class NotificationsConfig(BaseModel):
    """Which notification types are derived from an event, and how."""

    enabled_types: List[NotificationType] = Field(
        default_factory=lambda: list(DEFAULT_ENABLED_TYPES),
        description="Notification types scheduled for every event",
    )
    default_duration_minutes: int = Field(
        60, ge=1, le=1440, description="Event length used when the event has none"
    )

    @field_validator("enabled_types")
    @classmethod
    def dedupe_types(cls, v: List[NotificationType]) -> List[NotificationType]:
        if not v:
            raise ValueError("At least one notification type must be enabled")
        return list(dict.fromkeys(v))


class PollingConfig(BaseModel):
    """Client-side status polling cadence."""

    active_interval: str = Field("5s", description="Interval while any batch is active")
    idle_interval: str = Field("60s", description="Interval once all batches are terminal")
    terminal_grace: str = Field("10s", description="How long terminal batches stay tracked")

    @field_validator("active_interval", "idle_interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        return _check_duration(v, 1, 3600, "Polling interval")

    @field_validator("terminal_grace")
    @classmethod
    def validate_grace(cls, v: str) -> str:
        return _check_duration(v, 1, 3600, "Terminal grace")

    @model_validator(mode="after")
    def validate_ordering(self):
        if parse_duration(self.active_interval) > parse_duration(self.idle_interval):
            raise ValueError("active_interval must not be longer than idle_interval")
        return self


class MaintenanceConfig(BaseModel):
    """Periodic repair jobs."""

    recalculate_interval: str = Field("15m", description="Recalculate active batches every")
    reconcile_interval: str = Field("5m", description="Re-publish orphaned jobs every")
    orphan_grace: str = Field(
        "10m", description="Minimum age of an unpublished pending job before re-publishing"
    )

    @field_validator("recalculate_interval", "reconcile_interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        return _check_duration(v, 60, 86400, "Maintenance interval")

    @field_validator("orphan_grace")
    @classmethod
    def validate_grace(cls, v: str) -> str:
        return _check_duration(v, 60, 86400, "Orphan grace")


class ServerConfig(BaseModel):
    """HTTP server binding."""

    host: str = Field("127.0.0.1", min_length=1)
    port: int = Field(8000, ge=1, le=65535)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification engine.

    Every section has defaults, so an empty document is a valid configuration.
    """

    queue: QueueConfig = Field(default_factory=QueueConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    maintenance: MaintenanceConfig = Field(default_factory=MaintenanceConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"extra": "forbid"}
