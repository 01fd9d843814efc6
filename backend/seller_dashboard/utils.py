"""
Shared utility functions.
"""

import logging
import math
import re
import time
from typing import Any, Optional
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def safe_error_detail(exc: Exception, fallback: str = "An internal error occurred. Please try again later.") -> str:
    """
    Return a sanitized error message safe for client consumption.
    Logs the real exception detail server-side.
    """
    logger.error(f"Operation failed: {exc}", exc_info=True)
    return fallback


def utcnow() -> datetime:
    """
    Return the current UTC time as a naive datetime (no tzinfo).
    Naive datetimes are used because our DB columns are TIMESTAMP WITHOUT TIME ZONE.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def elapsed_ms(started: float) -> int:
    """Milliseconds since a ``time.monotonic()`` reading."""
    return int((time.monotonic() - started) * 1000)


def parse_float(value: Any) -> Optional[float]:
    """
    Lenient float parse: numbers pass through, strings are read up to the first
    non-numeric character ("12.5 USD" -> 12.5). Returns None when nothing parses.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        f = float(value)
        return None if math.isnan(f) else f
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value.strip())
        if match:
            return float(match.group(0))
    return None


def to_float(value: Any, default: float = 0.0) -> float:
    """Coerce numbers, numeric strings and ``{"amount": ...}`` money objects to float."""
    if isinstance(value, dict):
        value = value.get("amount")
    parsed = parse_float(value)
    if parsed is None or math.isinf(parsed):
        return default
    return parsed


def to_number(value: Any) -> float:
    """Number(x || 0): falsy -> 0, unparseable -> 0."""
    if not value:
        return 0.0
    if isinstance(value, bool):
        return 1.0
    if isinstance(value, str):
        try:
            return float(value.strip() or 0)
        except ValueError:
            return 0.0
    return to_float(value)


def round2(value: float) -> float:
    """Round half-up to 2 decimals (the way the dashboard has always displayed money)."""
    if value is None or (isinstance(value, float) and (math.isnan(value) or math.isinf(value))):
        return 0.0
    return math.floor(value * 100 + 0.5) / 100


def length_of(value: Any) -> Optional[int]:
    """Length of a string, list or mapping; None for anything else."""
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    return None
