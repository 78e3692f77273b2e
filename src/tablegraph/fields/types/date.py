"""Date field type handler and the date helpers shared by computed fields."""

from datetime import date, datetime, timezone
from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler


def parse_datetime(value: Any) -> datetime | None:
    """
    Parse a stored date value into an aware UTC datetime.

    Accepts ``date``/``datetime`` objects and ISO-8601 strings (date-only
    strings and a trailing ``Z`` included). Naive values are taken as UTC.
    Returns None for anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso_string(value: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision, e.g. ``2024-01-05T00:00:00.000Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_timestamp() -> str:
    """Current time as an ISO-8601 string."""
    return to_iso_string(datetime.now(timezone.utc))


class DateFieldHandler(BaseFieldTypeHandler):
    """
    Handler for date fields.

    Values are stored as the ISO string the user supplied; date objects are
    converted with ``isoformat()``.
    """

    field_type = "date"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return str(value)

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        return parse_datetime(value)

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        if value is None or value == "":
            return True
        if parse_datetime(value) is None:
            raise ValueError(f"Invalid date value: {value!r}")
        return True
