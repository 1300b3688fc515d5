from __future__ import annotations

from datetime import date, datetime, timezone

import dateparser

DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
FILENAME_STAMP_FORMAT = "%Y%m%d_%H%M%S"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a query-string timestamp into an aware UTC datetime.

    ISO-8601 is tried first; anything else goes through dateparser so values
    like ``"2025-01-01 08:00"`` or ``"yesterday"`` are accepted. Raises
    ``ValueError`` when nothing matches.
    """
    if value is None or not value.strip():
        return None

    raw = value.strip()
    try:
        return ensure_utc(datetime.fromisoformat(raw))
    except ValueError:
        pass

    settings = {
        "RETURN_AS_TIMEZONE_AWARE": True,
        "TIMEZONE": "UTC",
        "TO_TIMEZONE": "UTC",
    }
    parsed = dateparser.parse(raw, settings=settings)
    if not parsed:
        raise ValueError(f"'{value}' is not a recognizable date or timestamp")
    return ensure_utc(parsed)


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).strftime(TIMESTAMP_FORMAT)


def export_filename(prefix: str = "patients", now: datetime | None = None) -> str:
    stamp = ensure_utc(now or utcnow()).strftime(FILENAME_STAMP_FORMAT)
    return f"{prefix}_{stamp}.csv"
