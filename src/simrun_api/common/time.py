"""Timezone-aware datetime helpers."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = ["parse_timestamp", "utc_now"]


def utc_now() -> datetime:
    """Return the current UTC time with timezone information."""

    return datetime.now(tz=UTC)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as reported by the workflow executor.

    Naive values are assumed to be UTC. Blank or missing values return ``None``.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
