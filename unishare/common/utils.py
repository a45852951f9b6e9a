"""
Common utility functions for the UniShare backend.

Time handling and small numeric helpers shared by the gamification
components. All timestamps inside the application are timezone-aware UTC.
"""

import datetime
from typing import Any, Optional, Union


def utc_now() -> datetime.datetime:
    """Current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def ensure_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be UTC (SQLite drops tzinfo on
    round trip).

    Args:
        value: Datetime to normalize, or None

    Returns:
        Aware UTC datetime, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime.datetime]:
    """
    Parse an ISO-8601 string or datetime into aware UTC.

    Args:
        value: ISO string, datetime or None

    Returns:
        Aware UTC datetime, or None if the value is empty

    Raises:
        ValueError: If the value cannot be parsed
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        # fromisoformat rejects the trailing Z on older interpreters
        return ensure_utc(datetime.datetime.fromisoformat(value.replace("Z", "+00:00")))
    raise ValueError(f"Cannot parse datetime from {type(value).__name__}")


def safe_divide(
    numerator: Union[int, float],
    denominator: Union[int, float],
    default: Union[int, float] = 0
) -> float:
    """
    Divide, returning ``default`` when the denominator is zero.

    Args:
        numerator: Numerator
        denominator: Denominator
        default: Value returned for a zero denominator

    Returns:
        The quotient or the default
    """
    if not denominator:
        return float(default)
    return numerator / denominator
