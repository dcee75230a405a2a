"""
UTC timestamp utilities for webchat-bridge.

All wall-clock timestamps are timezone-aware and in UTC. Deadlines inside an
exchange use the monotonic clock instead (see exchange.pending).

This module provides:
- utc_now(): Current time as timezone-aware datetime
- utc_timestamp(): ISO 8601 timestamp string with 'Z' suffix
- parse_timestamp(): Parse the token endpoint's ISO 8601 'expires' field
- ms_to_seconds(): Convert the millisecond settings into asyncio seconds

Examples:
    >>> from webchat_bridge.utils.time import utc_timestamp, parse_timestamp
    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
    >>> parse_timestamp("2025-12-01T10:00:00.000Z").year
    2025
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    Returns:
        datetime: Current UTC time with tzinfo=UTC

    Note:
        NEVER use datetime.now() without timezone parameter.
        NEVER use datetime.utcnow() (deprecated, returns naive datetime).
    """
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ

    Returns:
        str: ISO 8601 formatted timestamp in UTC
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse ISO 8601 timestamp string to timezone-aware datetime.

    Accepts the 'Z' suffix with or without fractional seconds, as returned by
    the token endpoint (e.g. "2025-12-01T10:00:00.000Z"). Offsets other than
    UTC are converted to UTC.

    Args:
        timestamp_str: ISO 8601 timestamp string

    Returns:
        datetime: Timezone-aware datetime in UTC

    Raises:
        ValueError: If the string is not a valid ISO 8601 timestamp or has no
            timezone information

    Examples:
        >>> parse_timestamp('2025-11-02T08:30:45Z').tzinfo == UTC
        True

        >>> parse_timestamp('2025-11-02T08:30:45')
        Traceback (most recent call last):
        ...
        ValueError: Timestamp must carry a timezone: 2025-11-02T08:30:45
    """
    try:
        parsed = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid ISO 8601 timestamp format: {timestamp_str}") from e

    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp must carry a timezone: {timestamp_str}")

    return parsed.astimezone(UTC)


def ms_to_seconds(value_ms: int | float) -> float:
    """Convert a millisecond duration to seconds."""
    return value_ms / 1000.0
