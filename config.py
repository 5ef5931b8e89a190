"""Application configuration module.

Reads settings from environment variables with sane defaults for a single
institution-group deployment backed by one SQLite database file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    """Get integer from environment variable with fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    """Get float from environment variable with fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_str(name: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.getenv(name, default)


@dataclass(frozen=True)
class Config:
    environment: str
    debug: bool
    database_path: str
    db_pool_size: int
    db_busy_timeout: int
    log_folder: str
    log_level: str

    # Legal admission quotas, as fractions of total institution capacity
    first_priority_quota_ratio: float
    second_priority_quota_ratio: float

    def validate(self) -> None:
        """Reject settings the admission engine cannot work with."""
        if self.db_pool_size < 1:
            raise ConfigurationError("DB_POOL_SIZE must be at least 1")
        for name, ratio in (
            ("FIRST_PRIORITY_QUOTA_RATIO", self.first_priority_quota_ratio),
            ("SECOND_PRIORITY_QUOTA_RATIO", self.second_priority_quota_ratio),
        ):
            if not 0.0 <= ratio <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {ratio}")
        if self.first_priority_quota_ratio + self.second_priority_quota_ratio > 1.0:
            raise ConfigurationError("Priority quota ratios must not exceed 1 in total")


def load_config() -> Config:
    """Load application configuration from environment variables.

    Returns:
        Config: Application configuration with validated values

    Raises:
        ConfigurationError: If a value is out of its allowed range
    """
    config = Config(
        environment=_get_str("ENVIRONMENT", "development"),
        debug=_get_bool("DEBUG", False),
        database_path=_get_str("DATABASE_PATH", "data/childcare.sqlite"),
        db_pool_size=_get_int("DB_POOL_SIZE", 5),
        db_busy_timeout=_get_int("DB_BUSY_TIMEOUT", 5000),
        log_folder=_get_str("LOG_FOLDER", "logs"),
        log_level=_get_str("LOG_LEVEL", "INFO").upper(),
        first_priority_quota_ratio=_get_float("FIRST_PRIORITY_QUOTA_RATIO", 0.2),
        second_priority_quota_ratio=_get_float("SECOND_PRIORITY_QUOTA_RATIO", 0.1),
    )
    config.validate()
    return config
