"""Environment variable loading and validation."""

import os
from typing import List, Mapping, Optional

from .exceptions import ConfigurationError

DEFAULT_APP_BASE_URL = "http://localhost:8000"
DEFAULT_DATABASE_URL = "sqlite:///./data/notifier.db"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        queue_token: Optional[str] = None,
        current_signing_key: Optional[str] = None,
        next_signing_key: Optional[str] = None,
        app_base_url: Optional[str] = None,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
        strict_signatures: Optional[bool] = None,
    ):
        self.queue_token = queue_token
        self.current_signing_key = current_signing_key
        self.next_signing_key = next_signing_key
        self.app_base_url = (app_base_url or DEFAULT_APP_BASE_URL).rstrip("/")
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.log_level = log_level
        self.environment = (environment or "local").lower()
        self._strict_override = strict_signatures

    @property
    def strict_signatures(self) -> bool:
        """Whether unsigned webhooks are rejected.

        Explicit STRICT_SIGNATURES wins; otherwise production is strict.
        """
        if self._strict_override is not None:
            return self._strict_override
        return self.environment == "production"

    @property
    def signing_keys(self) -> List[str]:
        """Configured signing keys, current first."""
        return [k for k in (self.current_signing_key, self.next_signing_key) if k]

    def __repr__(self) -> str:
        return (
            f"EnvironmentConfig(environment={self.environment!r}, "
            f"app_base_url={self.app_base_url!r}, "
            f"queue_token={'set' if self.queue_token else 'unset'}, "
            f"signing_keys={len(self.signing_keys)}, "
            f"strict_signatures={self.strict_signatures})"
        )


def load_environment_config(environ: Optional[Mapping[str, str]] = None) -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Optional environment variables:
    - QUEUE_TOKEN: Bearer token for the queue API (required to publish)
    - QUEUE_CURRENT_SIGNING_KEY / QUEUE_NEXT_SIGNING_KEY: Webhook signing keys
    - APP_BASE_URL: Public base URL of this service (default: http://localhost:8000)
    - DATABASE_URL: Database URL (default: sqlite:///./data/notifier.db)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - ENVIRONMENT: Environment label; "production" implies strict signatures
    - STRICT_SIGNATURES: Explicit true/false override of strict signature mode

    In strict mode both signing keys are required.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If variables are invalid
    """
    env = os.environ if environ is None else environ
    errors = []

    def get(name: str) -> Optional[str]:
        value = env.get(name)
        return value.strip() if value and value.strip() else None

    app_base_url = get("APP_BASE_URL")
    if app_base_url and not app_base_url.startswith(("http://", "https://")):
        errors.append(f"Invalid APP_BASE_URL: '{app_base_url}'. Must start with http:// or https://")

    log_level = get("LOG_LEVEL")
    if log_level:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )

    strict_raw = get("STRICT_SIGNATURES")
    strict_signatures = None
    if strict_raw is not None:
        if strict_raw.lower() in _TRUE_VALUES:
            strict_signatures = True
        elif strict_raw.lower() in _FALSE_VALUES:
            strict_signatures = False
        else:
            errors.append(f"Invalid STRICT_SIGNATURES: '{strict_raw}'. Use true or false.")

    config = EnvironmentConfig(
        queue_token=get("QUEUE_TOKEN"),
        current_signing_key=get("QUEUE_CURRENT_SIGNING_KEY"),
        next_signing_key=get("QUEUE_NEXT_SIGNING_KEY"),
        app_base_url=app_base_url,
        database_url=get("DATABASE_URL"),
        log_level=log_level,
        environment=get("ENVIRONMENT"),
        strict_signatures=strict_signatures,
    )

    if config.strict_signatures:
        if not config.current_signing_key:
            errors.append("Strict signature mode requires QUEUE_CURRENT_SIGNING_KEY")
        if not config.next_signing_key:
            errors.append("Strict signature mode requires QUEUE_NEXT_SIGNING_KEY")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
                "Copy both signing keys from the queue provider console",
                "Set STRICT_SIGNATURES=false only for local development",
            ],
        )

    return config
