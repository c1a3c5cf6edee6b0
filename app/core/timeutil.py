"""Timestamp parsing shared by criteria validation, normalization and the stores."""

from datetime import date, datetime, timezone
from typing import Any

# Without an explicit unit, numbers at or above this are read as epoch milliseconds
# (year ~5138 in seconds). Millisecond values before 1973-03-03 fall below it and
# would be read as seconds, so callers that know the unit pass epoch_unit.
_EPOCH_MS_THRESHOLD = 100_000_000_000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any, epoch_unit: str | None = None) -> datetime | None:
    """
    Best-effort conversion to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), dates (midnight UTC), epoch
    seconds or milliseconds, ISO 8601 strings (including a trailing "Z") and
    Mongo extended JSON {"$date": ...}. Returns None when nothing usable is found.

    epoch_unit ("s" or "ms") fixes how numbers are read; when None the unit is
    guessed from the magnitude.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict) and "$date" in value:
        return parse_timestamp(value["$date"], epoch_unit)
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if epoch_unit == "ms":
            seconds = value / 1000
        elif epoch_unit == "s":
            seconds = value
        elif epoch_unit is None:
            seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
        else:
            raise ValueError(f"unknown epoch unit: {epoch_unit!r}")
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return parse_timestamp(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)
