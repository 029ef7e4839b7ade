"""
Timezone helpers.

All timestamps are stored and compared in UTC. Platform APIs hand back
ISO-8601 strings in several shapes ("2024-05-01T10:00:00+0000" from the
Graph API, "...Z" from JavaScript clients, naive strings from old rows);
`parse_timestamp` accepts all of them.
"""

import re
from datetime import datetime, timezone

TZ_UTC = timezone.utc

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def now_utc() -> datetime:
    """
    Current time in UTC (timezone-aware).

    Returns:
        datetime in UTC with tzinfo
    """
    return datetime.now(TZ_UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Args:
        dt: naive (assumed UTC) or aware datetime

    Returns:
        datetime in UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=TZ_UTC)
    return dt.astimezone(TZ_UTC)


def parse_timestamp(value) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Args:
        value: ISO string or datetime

    Returns:
        datetime in UTC

    Raises:
        ValueError: if the value cannot be parsed
    """
    if isinstance(value, datetime):
        return to_utc(value)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET.sub(r"\1:\2", text)

    return to_utc(datetime.fromisoformat(text))


def isoformat_utc(dt: datetime) -> str:
    """ISO string in UTC, as stored in the message tables."""
    return to_utc(dt).isoformat()
