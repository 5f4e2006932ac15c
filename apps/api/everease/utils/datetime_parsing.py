"""Datetime helpers shared by services."""

from __future__ import annotations

from datetime import datetime, timezone


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Return an aware UTC datetime.

    Some backends (SQLite) hand back naive values for timezone-aware columns;
    those are stored as UTC, so tag them rather than convert.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def describe_expiry(expires_at: datetime | None, now: datetime | None = None) -> str | None:
    """Human-friendly "in N days" text for emails."""
    if expires_at is None:
        return None
    now = now or datetime.now(timezone.utc)
    days_remaining = (ensure_utc(expires_at) - now).days
    if days_remaining > 0:
        return f"in {days_remaining} day{'s' if days_remaining != 1 else ''}"
    return "soon"
