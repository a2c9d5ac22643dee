"""Datetime helpers: lax provider timestamps in, strict stored strings out."""

from __future__ import annotations

from datetime import UTC, datetime

import pendulum

# Strict storage format: YYYY-MM-DD HH:MM:SS.ffffff+HHMM
STRICT_FORMAT = "%Y-%m-%d %H:%M:%S.%f%z"

# Display format used by the explorer projection.
DISPLAY_FORMAT = "%Y-%m-%d %H:%M"


def parse_datetime(value: str | datetime, default_tz: str = "UTC") -> datetime:
    """Parse a lax datetime string into a timezone-aware datetime.

    Providers report timestamps as RFC 3339 (``2024-03-01T10:15:00Z``,
    ``2024-03-01T10:15:00.123+00:00``). Missing timezone defaults to
    *default_tz*, date-only strings resolve to midnight.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            tz = pendulum.timezone(default_tz)
            value = value.replace(tzinfo=tz)  # type: ignore[arg-type]
        return value

    parsed = pendulum.parse(value.strip(), tz=default_tz, strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        parsed = pendulum.datetime(
            parsed.year, parsed.month, parsed.day, tz=default_tz  # type: ignore[union-attr]
        )
    return parsed  # type: ignore[return-value]


def format_datetime(dt: datetime) -> str:
    """Format a datetime to the strict storage format."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.strftime(STRICT_FORMAT)


def format_display(value: str | None) -> str:
    """Format a provider timestamp for display in UTC, or "" when unusable."""
    if not value:
        return ""
    try:
        parsed = parse_datetime(value)
    except ValueError:
        return ""
    return parsed.astimezone(UTC).strftime(DISPLAY_FORMAT)


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(UTC)
