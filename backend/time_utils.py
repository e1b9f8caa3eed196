"""
Time utilities for the Todo backend.

This module provides a single source of truth for time operations,
so every lifecycle marker and reminder window is computed the same way.
"""

from datetime import datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to an aware UTC datetime.

    Some backends (SQLite) hand timestamps back without tzinfo; those are
    stored in UTC, so a naive value is interpreted as UTC.

    Args:
        value: datetime to normalize, or None

    Returns:
        timezone-aware UTC datetime, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as an ISO-8601 UTC string (None stays None)."""
    normalized = ensure_utc(value)
    return normalized.isoformat() if normalized is not None else None


def due_soon_window(now: datetime) -> tuple[datetime, datetime]:
    """
    Window for "due soon" reminders: due between 24 and 48 hours from now.

    Returns:
        Tuple of (start, end) with start inclusive and end exclusive
    """
    return now + timedelta(hours=24), now + timedelta(hours=48)


def overdue_window(now: datetime) -> tuple[datetime, datetime]:
    """
    Window for "overdue" reminders: became due within the past 24 hours.

    Returns:
        Tuple of (start, end) with start inclusive and end exclusive
    """
    return now - timedelta(hours=24), now
