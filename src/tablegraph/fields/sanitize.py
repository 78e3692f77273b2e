"""Row data sanitization against the live field set."""

from collections.abc import Iterable, Mapping
from typing import Any

COMPUTED_AT_SUFFIX = "_computed_at"

READ_ONLY_FIELD_TYPES = frozenset(
    {
        "rollup",
        "formula",
        "created_time",
        "last_edited_time",
        "created_by",
        "last_edited_by",
    }
)


def computed_at_key(field_id: str) -> str:
    """Key under which a computed field's last computation time is stored."""
    return f"{field_id}{COMPUTED_AT_SUFFIX}"


def is_computed_at_key(key: str) -> bool:
    return key.endswith(COMPUTED_AT_SUFFIX)


def is_read_only_type(field_type: str) -> bool:
    return field_type in READ_ONLY_FIELD_TYPES


def sanitize_row_data(raw: Mapping[str, Any] | None, valid_field_ids: Iterable[str]) -> dict[str, Any]:
    """
    Drop keys that belong to no live field.

    Keys in ``valid_field_ids`` and every ``*_computed_at`` key survive; the
    timestamps are kept even when their field is gone. Applying the function
    twice gives the same result as applying it once.
    """
    if not raw:
        return {}
    valid = valid_field_ids if isinstance(valid_field_ids, (set, frozenset)) else set(valid_field_ids)
    return {key: value for key, value in raw.items() if key in valid or is_computed_at_key(key)}


def strip_read_only(data: Mapping[str, Any], field_types: Mapping[str, str]) -> dict[str, Any]:
    """Remove values for computed and system-managed fields.

    ``field_types`` maps field id to field type.
    """
    return {
        key: value
        for key, value in data.items()
        if not is_read_only_type(field_types.get(key, ""))
    }
