# src/playtime_promoter/db/time.py
"""Time utilities for ledger records."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def parse_utc(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values and ``Z`` as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
