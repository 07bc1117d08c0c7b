"""
UTC timestamp utilities (stdlib-only).

The storage engine stamps ``created_at`` / ``updated_at`` / ``deleted_at``
columns from Python rather than with ``NOW()`` so every backend stores the
same textual format and tests can pin the clock.

Features:
    - **utc_now():** Timezone-aware UTC datetime
    - **db_timestamp():** ``YYYY-MM-DD HH:MM:SS`` string for timestamp columns

Tags:
    timestamps, utc, datetime, layerstore, stdlib-only
"""

from datetime import UTC, date, datetime

DB_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def db_timestamp(moment: datetime | None = None) -> str:
    """Format ``moment`` (default: now) for a timestamp column."""
    return (moment or utc_now()).strftime(DB_TIMESTAMP_FORMAT)


def date_string(value: date | datetime | str) -> str:
    """Reduce a date-ish value to ``YYYY-MM-DD``.

    Strings are passed through; the dialect truncates them on the SQL side.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value

