"""Shared utility functions for the Pluggy Sync service."""

import logging
import math
from datetime import UTC, date, datetime
from pathlib import Path

import colorlog


def get_logger(name: str) -> logging.Logger:
    """Get a logger with a colorized format for the project."""
    logger = logging.getLogger(name)
    if "." in name:
        # Module loggers report through the handlers of their project logger.
        return logger
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = colorlog.ColoredFormatter(
            "%(log_color)s%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "bold_red",
            },
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def ensure_dir(path: str | Path) -> None:
    """Ensure a directory exists (like mkdir -p)."""
    Path(path).mkdir(parents=True, exist_ok=True)


def safe_number(val: object, default: float | None = None) -> float | None:
    """Cast a value to a finite float, returning default on failure."""
    if val is None or isinstance(val, bool):
        return default
    try:
        number = float(val)
    except (ValueError, TypeError):
        return default
    return number if math.isfinite(number) else default


def utcnow() -> datetime:
    """Get the current UTC time as an aware datetime."""
    return datetime.now(UTC)


def utcnow_iso() -> str:
    """Get the current UTC time as an ISO8601 string."""
    return utcnow().isoformat()


def calendar_day(value: object) -> str | None:
    """Return the YYYY-MM-DD portion of a date, datetime or ISO timestamp string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or len(value) < 10:
        return None
    day = value.split("T")[0][:10]
    try:
        return date.fromisoformat(day).isoformat()
    except ValueError:
        return None


def parse_day(value: object) -> date | None:
    """Parse a value into a date, or None when it is not a recognizable date."""
    day = calendar_day(value)
    return date.fromisoformat(day) if day else None


def day_of_month(value: object) -> int | None:
    """Return the day-of-month of a date-like value."""
    parsed = parse_day(value)
    return parsed.day if parsed else None
