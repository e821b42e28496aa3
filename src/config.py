"""
Centralized configuration with environment variable overrides.

Scheduling thresholds, identifier formats, and the store backend are
configurable here. Nothing is hardcoded in the scheduling logic.
"""

import logging
import os
from dataclasses import dataclass, field
from zoneinfo import ZoneInfoNotFoundError

from dotenv import load_dotenv

from src.logging_context import RequestIdFilter
from src.utils import garage_timezone

load_dotenv()

logger = logging.getLogger(__name__)


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
class SchedulingConfig:
    """Durations and concurrency limits for the scheduling core."""

    default_service_minutes: int = _safe_int("DEFAULT_SERVICE_MINUTES", "60")
    slot_step_minutes: int = _safe_int("SLOT_STEP_MINUTES", "30")
    lock_timeout_sec: float = _safe_float("LOCK_TIMEOUT_SECONDS", "5.0")
    timezone: str = os.getenv("GARAGE_TIMEZONE", "UTC")


@dataclass(frozen=True)
class StoreConfig:
    """Record store backend and identifier formats."""

    database_url: str = os.getenv("DATABASE_URL", "")
    booking_id_prefix: str = os.getenv("BOOKING_ID_PREFIX", "B-")
    task_id_prefix: str = os.getenv("TASK_ID_PREFIX", "T-")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "garage-scheduler")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.scheduling.default_service_minutes < 1:
        raise ValueError(
            "DEFAULT_SERVICE_MINUTES must be >= 1, "
            f"got {config.scheduling.default_service_minutes}"
        )
    step = config.scheduling.slot_step_minutes
    if step < 1 or 60 % step != 0:
        raise ValueError(
            f"SLOT_STEP_MINUTES must be a positive divisor of 60, got {step}"
        )
    if config.scheduling.lock_timeout_sec <= 0:
        raise ValueError(
            f"LOCK_TIMEOUT_SECONDS must be > 0, got {config.scheduling.lock_timeout_sec}"
        )
    try:
        garage_timezone(config.scheduling.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(
            f"GARAGE_TIMEZONE is not a known time zone: {config.scheduling.timezone!r}"
        ) from None

    for prefix_name, prefix_value in [
        ("BOOKING_ID_PREFIX", config.store.booking_id_prefix),
        ("TASK_ID_PREFIX", config.store.task_id_prefix),
    ]:
        if not prefix_value.strip():
            raise ValueError(f"{prefix_name} must not be empty")

    if config.store.booking_id_prefix == config.store.task_id_prefix:
        raise ValueError(
            "BOOKING_ID_PREFIX and TASK_ID_PREFIX must differ, "
            f"both are {config.store.booking_id_prefix!r}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # records from library loggers reach the handler without a request_id
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
