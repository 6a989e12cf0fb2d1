"""Exceptions raised by the calendar sync pipeline."""
from typing import Optional


class CalendarSyncError(Exception):
    """Base class for calendar sync failures."""


class NetworkError(CalendarSyncError):
    """Transport-level failure (connection refused, DNS, timeout)."""


class FetchError(CalendarSyncError):
    """Calendar page responded with a non-2xx status."""

    def __init__(self, status_code: int, reason: str, url: Optional[str] = None):
        self.status_code = status_code
        self.reason = reason
        self.url = url
        super().__init__(f"HTTP {status_code}: {reason}")


class ParseError(CalendarSyncError):
    """Embedded JSON block could not be decoded."""


class PersistenceError(CalendarSyncError):
    """Snapshot could not be read or written."""
