"""Conversion between 14-digit database timestamps and datetimes."""

import re
from datetime import datetime, timezone

DB_FORMAT = "%Y%m%d%H%M%S"
_DB_RE = re.compile(r"^\d{14}$")


def db_timestamp(value: datetime | str | None = None) -> str:
    """Normalize a datetime, ISO-8601 string or 14-digit string to YYYYMMDDHHMMSS.

    Raises:
        ValueError: if ``value`` is not a recognizable timestamp.
    """
    if value is None:
        return datetime.now(timezone.utc).strftime(DB_FORMAT)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(DB_FORMAT)
    text = str(value).strip()
    if _DB_RE.match(text):
        datetime.strptime(text, DB_FORMAT)
        return text
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    return db_timestamp(parsed)


def iso_timestamp(value: str) -> str:
    """Render a 14-digit timestamp as ISO-8601 UTC ("2024-01-31T12:00:00Z")."""
    parsed = datetime.strptime(value, DB_FORMAT)
    return parsed.strftime("%Y-%m-%dT%H:%M:%SZ")
