"""Internal utilities shared across jobstream."""

from __future__ import annotations

from datetime import UTC, datetime


def parse_datetime(val: str | None) -> datetime | None:
    """Parse an ISO 8601 datetime string, handling the 'Z' suffix."""
    if not val:
        return None
    return datetime.fromisoformat(val.replace("Z", "+00:00"))


def format_datetime(val: datetime | None) -> str | None:
    if val is None:
        return None
    return val.isoformat().replace("+00:00", "Z")


def utcnow() -> datetime:
    return datetime.now(UTC)
