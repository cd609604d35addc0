"""
Time utilities for monotonic timestamps and token lifetimes.
Timestamps are ISO 8601 formatted and monotonic within a process.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config import TIMESTAMP_FORMAT


class MonotonicClock:
    """
    Clock whose timestamps never go backwards.
    Decision log ordering relies on it.
    """

    def __init__(self):
        self._last_timestamp: Optional[str] = None
        self._lock = threading.Lock()

    def now(self) -> str:
        """
        Get current timestamp, guaranteed to be >= previous timestamp.

        Returns:
            ISO 8601 formatted timestamp string
        """
        with self._lock:
            current_str = format_timestamp(datetime.now(timezone.utc))

            if self._last_timestamp is not None and current_str <= self._last_timestamp:
                last_dt = parse_timestamp(self._last_timestamp)
                current_str = format_timestamp(last_dt + timedelta(microseconds=1))

            self._last_timestamp = current_str
            return current_str

    def reset(self):
        """Reset monotonic state (for testing only)."""
        with self._lock:
            self._last_timestamp = None


# Process-wide clock
_clock = MonotonicClock()


def now() -> str:
    """Get current monotonic timestamp."""
    return _clock.now()


def format_timestamp(moment: datetime) -> str:
    """Format an aware datetime as a UTC timestamp string."""
    return moment.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO 8601 timestamp string.

    Args:
        timestamp_str: ISO 8601 formatted timestamp

    Returns:
        datetime object in UTC

    Raises:
        ValueError: If timestamp format is invalid
    """
    try:
        return datetime.strptime(timestamp_str, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid timestamp format: {e}")


def timestamp_after(seconds: float, start: Optional[str] = None) -> str:
    """Timestamp `seconds` after `start` (defaults to the current wall clock)."""
    base = parse_timestamp(start) if start else datetime.now(timezone.utc)
    return format_timestamp(base + timedelta(seconds=seconds))


def is_expired(timestamp_str: str, at: Optional[datetime] = None) -> bool:
    """True when `timestamp_str` lies in the past relative to `at`."""
    reference = at or datetime.now(timezone.utc)
    return parse_timestamp(timestamp_str) <= reference
