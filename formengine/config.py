"""
Centralized configuration with environment variable overrides.

API endpoints, scheduling defaults, and validation messages are
configurable here. Nothing is hardcoded in runtime or collaborator logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from formengine.logging_context import install_session_filter

load_dotenv()

logger = logging.getLogger(__name__)

NONEXISTENT_TIME_POLICIES = ("skip", "shift")
CONSULTATION_TYPES = ("online", "in-person")
LOG_FORMAT = "%(asctime)s [%(name)s] [%(session_id)s] %(levelname)s: %(message)s"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class ApiConfig:
    """Clinic REST API connection settings."""

    base_url: str = os.getenv("CLINIC_API_URL", "http://localhost:3001/api")
    timeout_sec: float = _safe_float("CLINIC_API_TIMEOUT", "30.0")
    clinic_id: str = os.getenv("CLINIC_ID", "")


@dataclass(frozen=True)
class ScheduleConfig:
    """Defaults for the appointment scheduling field."""

    clinic_timezone: str = os.getenv("CLINIC_TIMEZONE", "UTC")
    viewer_timezone: str = os.getenv("VIEWER_TIMEZONE", "UTC")
    nonexistent_time_policy: str = os.getenv("NONEXISTENT_TIME_POLICY", "skip")
    default_consultation_type: str = os.getenv("DEFAULT_CONSULTATION_TYPE", "in-person")


@dataclass(frozen=True)
class ValidationConfig:
    """User-facing validation messages and authoring limits."""

    required_message: str = os.getenv("REQUIRED_FIELD_MESSAGE", "This field is required")
    max_option_label_length: int = _safe_int("MAX_OPTION_LABEL_LENGTH", "200")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    api: ApiConfig = field(default_factory=ApiConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "clinic-form-engine")


def _check_timezone(env_var: str, name: str) -> None:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"{env_var} is not a known IANA time zone: {name!r}") from None


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.api.timeout_sec <= 0:
        raise ValueError(
            f"CLINIC_API_TIMEOUT must be > 0, got {config.api.timeout_sec}"
        )
    if not config.api.base_url.startswith(("http://", "https://")):
        raise ValueError(
            f"CLINIC_API_URL must be an http(s) URL, got {config.api.base_url!r}"
        )

    _check_timezone("CLINIC_TIMEZONE", config.schedule.clinic_timezone)
    _check_timezone("VIEWER_TIMEZONE", config.schedule.viewer_timezone)

    if config.schedule.nonexistent_time_policy not in NONEXISTENT_TIME_POLICIES:
        raise ValueError(
            f"NONEXISTENT_TIME_POLICY must be one of {NONEXISTENT_TIME_POLICIES}, "
            f"got {config.schedule.nonexistent_time_policy!r}"
        )
    if config.schedule.default_consultation_type not in CONSULTATION_TYPES:
        raise ValueError(
            f"DEFAULT_CONSULTATION_TYPE must be one of {CONSULTATION_TYPES}, "
            f"got {config.schedule.default_consultation_type!r}"
        )

    if not config.validation.required_message.strip():
        raise ValueError("REQUIRED_FIELD_MESSAGE must not be empty")
    if config.validation.max_option_label_length < 1:
        raise ValueError(
            "MAX_OPTION_LABEL_LENGTH must be >= 1, "
            f"got {config.validation.max_option_label_length}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        install_session_filter(handler)
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
