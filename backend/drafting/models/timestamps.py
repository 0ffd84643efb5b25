"""Timestamp helpers shared by the persisted models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def ensure_tz_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is timezone-aware (assume UTC if naive)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def coerce_timestamp(value: Any) -> Any:
    """Accept datetimes, epoch milliseconds or ISO strings.

    Realtime clients send epoch milliseconds; MongoDB hands back naive
    datetimes unless the client is tz-aware. Everything ends up as an aware
    UTC datetime.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_tz_aware(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        return ensure_tz_aware(datetime.fromisoformat(value))
    return value
