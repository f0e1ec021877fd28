"""Logging configuration for billing runs.

Dual output (stdout + file). LOG_LEVEL sets the level of the whole run
(default INFO). ALLOCATION_LOG_LEVEL overrides it for the loggers that
move money between bills and advance balances, so one payment's
allocation trace can be captured at DEBUG while the rest of the run,
SQL included, stays at INFO.
"""

import logging
import os
import sys
from pathlib import Path

# Map string level names to logging constants
LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Loggers tracing allocation, advance credit and payment persistence
ALLOCATION_LOGGERS = (
    "condobill.services.allocation_service",
    "condobill.services.advance_balance_service",
    "condobill.services.payment_service",
)


def get_log_level(env_var: str = "LOG_LEVEL", default: int | None = logging.INFO) -> int | None:
    """Get logging level from an environment variable.

    Args:
        env_var: Variable holding a level name (default: LOG_LEVEL)
        default: Level when the variable is unset or unknown

    Returns:
        Logging level constant
    """
    level_str = os.getenv(env_var)
    if not level_str:
        return default
    return LOG_LEVEL_MAP.get(level_str.upper(), default)


def setup_logging(
    log_file: str = "logs/billing.log",
    level: int | None = None,
    allocation_level: int | None = None,
) -> None:
    """
    Configure root logger for billing runs.

    Args:
        log_file: Path to log file (default: logs/billing.log)
        level: Run level (default: from LOG_LEVEL)
        allocation_level: Level of ALLOCATION_LOGGERS (default: from
            ALLOCATION_LOG_LEVEL; unset means they follow the run level)

    Behavior:
        - Root logger writes to both stdout and the log file
        - [YYYY-MM-DD HH:MM:SS] timestamps
        - Handlers do not filter, so per-logger levels decide what is written
        - Existing root handlers are replaced, so repeated calls do not duplicate output
        - SQL statements are logged only when the run level is DEBUG
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    log_level = get_log_level() if level is None else level
    if allocation_level is None:
        allocation_level = get_log_level("ALLOCATION_LOG_LEVEL", default=None)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    for name in ALLOCATION_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if allocation_level is None else allocation_level)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if log_level == logging.DEBUG else logging.WARNING
    )


__all__ = ["ALLOCATION_LOGGERS", "LOG_LEVEL_MAP", "get_log_level", "setup_logging"]
