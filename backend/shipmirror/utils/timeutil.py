from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (sqlite hands them back without tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO8601 string from the provider into an aware UTC datetime.

    Returns None for empty or unparseable values instead of raising.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(date_parser.isoparse(str(value)))
    except (TypeError, ValueError, OverflowError):
        return None


def floor_seconds(value: datetime) -> datetime:
    """Drop sub-second precision; the provider filters on whole seconds."""
    return as_utc(value).replace(microsecond=0)


def isoformat_z(value: datetime) -> str:
    """Format as UTC ISO8601 with a trailing "Z", as the provider expects."""
    value = as_utc(value)
    return value.replace(microsecond=0).isoformat().replace("+00:00", "Z")
