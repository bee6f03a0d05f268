"""Shared utility functions.

utcnow:               single source of "now" for services (patched in tests)
as_utc:               normalise DB datetimes (SQLite drops tzinfo) to aware UTC
parse_datetime_input: raises ValueError on bad input, for blueprint 400s
parse_date:           returns None on bad input
"""
import logging
from datetime import date, datetime, time, timezone

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime.

    SQLite returns naive datetimes even for ``DateTime(timezone=True)``
    columns; those are stored in UTC, so tzinfo is attached rather than
    converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_after(moment: datetime | None, deadline: datetime | None) -> bool:
    """True when *moment* is strictly later than *deadline*.

    A missing deadline never expires; a missing moment is never late.
    """
    if moment is None or deadline is None:
        return False
    return as_utc(moment) > as_utc(deadline)


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input.
    """
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_datetime_input(value):
    """Parse an ISO-8601 date or datetime string into an aware UTC datetime.

    Naive values are taken as UTC; a bare date means midnight UTC.
    Raises ValueError on bad input so blueprints can answer 400.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return datetime.combine(date.fromisoformat(text), time.min, tzinfo=timezone.utc)
    except ValueError as exc:
        raise ValueError(
            f"Invalid datetime {value!r}. Use ISO-8601 (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS+00:00)."
        ) from exc
