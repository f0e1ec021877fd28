"""Configuration loading for the billing engine.

Loads settings from .env file and environment variables with sensible defaults.
Validates values and provides clear error messages.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

from condobill.services.logging import LOG_LEVEL_MAP


@dataclass
class BillingConfig:
    """Runtime configuration of the billing engine."""

    database_url: str = "sqlite:///./condobill.db"
    """SQLAlchemy database URL (default: local SQLite)"""

    log_file: str = "logs/billing.log"
    """Path to log file (default: logs/billing.log)"""

    log_level: str = "INFO"
    """Root log level name"""

    allocation_log_level: str | None = None
    """Level of the allocation loggers; None follows log_level"""

    lock_timeout_seconds: int = 10
    """How long a payment waits for a unit's row locks before giving up"""

    default_penalty_rate: Decimal = Decimal("0.10")
    """Penalty rate seeded into new tenants' rate settings"""


def load_config(env_file: str | Path = ".env") -> BillingConfig:
    """
    Load configuration from .env file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (DATABASE_URL, LOG_FILE, LOG_LEVEL, ...)
    2. .env file in project root
    3. Default values

    Returns:
        BillingConfig with validated settings

    Raises:
        ValueError: If a value is present but invalid

    Example:
        Create .env file:
        ```
        DATABASE_URL=postgresql+psycopg://billing@localhost/condobill
        LOCK_TIMEOUT_SECONDS=5
        ```
    """
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)

    defaults = BillingConfig()
    database_url = os.getenv("DATABASE_URL", defaults.database_url)
    log_file = os.getenv("LOG_FILE", defaults.log_file)
    log_level = os.getenv("LOG_LEVEL", defaults.log_level).upper()
    allocation_log_level = os.getenv("ALLOCATION_LOG_LEVEL", "").upper() or None
    lock_timeout_raw = os.getenv("LOCK_TIMEOUT_SECONDS", str(defaults.lock_timeout_seconds))
    penalty_rate_raw = os.getenv("DEFAULT_PENALTY_RATE", str(defaults.default_penalty_rate))

    if not database_url.strip():
        raise ValueError("DATABASE_URL is empty. Set DATABASE_URL environment variable or in .env file")

    if log_level not in LOG_LEVEL_MAP:
        raise ValueError(
            f"LOG_LEVEL must be one of {', '.join(LOG_LEVEL_MAP)}, got '{log_level}'"
        )
    if allocation_log_level is not None and allocation_log_level not in LOG_LEVEL_MAP:
        raise ValueError(
            f"ALLOCATION_LOG_LEVEL must be one of {', '.join(LOG_LEVEL_MAP)}, got '{allocation_log_level}'"
        )

    try:
        lock_timeout_seconds = int(lock_timeout_raw)
    except ValueError as e:
        raise ValueError(f"LOCK_TIMEOUT_SECONDS must be an integer, got '{lock_timeout_raw}'") from e
    if lock_timeout_seconds <= 0:
        raise ValueError(f"LOCK_TIMEOUT_SECONDS must be positive, got {lock_timeout_seconds}")

    try:
        default_penalty_rate = Decimal(penalty_rate_raw)
    except InvalidOperation as e:
        raise ValueError(f"DEFAULT_PENALTY_RATE must be a decimal, got '{penalty_rate_raw}'") from e
    if not Decimal("0") <= default_penalty_rate <= Decimal("1"):
        raise ValueError(f"DEFAULT_PENALTY_RATE must be between 0 and 1, got {default_penalty_rate}")

    return BillingConfig(
        database_url=database_url,
        log_file=log_file,
        log_level=log_level,
        allocation_log_level=allocation_log_level,
        lock_timeout_seconds=lock_timeout_seconds,
        default_penalty_rate=default_penalty_rate,
    )


__all__ = ["BillingConfig", "load_config"]
