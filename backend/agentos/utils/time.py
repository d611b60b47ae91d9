"""Timezone helpers – provide a single UTC *now()* for the codebase.

Database columns are naive ``DateTime``; everything stored is UTC.  Use
:pyfunc:`utc_now_naive` for persisted values and :pyfunc:`utc_now` for
anything rendered to clients.
"""

from datetime import datetime
from datetime import timezone


def utc_now() -> datetime:  # noqa: D401 – simple utility
    """Return *aware* current time in UTC."""

    return datetime.now(timezone.utc)


def utc_now_naive() -> datetime:  # noqa: D401 – simple utility
    """Return *naive* current time in UTC for database compatibility."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise *value* to a naive UTC datetime (aware values are converted)."""

    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted) into naive UTC.

    Raises ``ValueError`` for unparseable input.
    """

    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("empty timestamp")
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_naive_utc(datetime.fromisoformat(text))


def isoformat_z(value: datetime | None) -> str | None:
    """Render a stored naive-UTC datetime as ``YYYY-MM-DDTHH:MM:SSZ``."""

    if value is None:
        return None
    return to_naive_utc(value).replace(microsecond=0).isoformat() + "Z"


__all__ = ["utc_now", "utc_now_naive", "to_naive_utc", "parse_iso_datetime", "isoformat_z"]
