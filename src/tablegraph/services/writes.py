"""Validation of incoming row values, shared by the single-row and bulk paths."""

from dataclasses import dataclass, field as dataclass_field
from typing import Any

from tablegraph.core.exceptions import InvalidFieldValueError
from tablegraph.fields import get_field_handler, sanitize_row_data, strip_read_only
from tablegraph.models.field import FieldType, TableField
from tablegraph.services.relation import LinkSyncResult


@dataclass
class PreparedWrite:
    """A validated row write, split into plain values and relation cells."""

    values: dict[str, Any] = dataclass_field(default_factory=dict)
    links: dict[str, Any] = dataclass_field(default_factory=dict)

    @property
    def field_ids(self) -> set[str]:
        return set(self.values) | set(self.links)


def prepare_write(data: dict[str, Any], fields: list[TableField]) -> PreparedWrite:
    """
    Sanitize, strip read-only keys and validate a row write.

    Raises:
        InvalidFieldValueError: If a value does not fit its field type
    """
    by_id = {f.id: f for f in fields}
    cleaned = strip_read_only(
        sanitize_row_data(data, by_id),
        {f.id: f.field_type for f in fields},
    )

    prepared = PreparedWrite()
    for key, value in cleaned.items():
        field = by_id.get(key)
        if field is None:
            # *_computed_at keys are engine-owned
            continue
        if field.field_type == FieldType.RELATION.value:
            prepared.links[key] = value
            continue
        handler = get_field_handler(field.field_type)
        if handler is None:
            prepared.values[key] = value
            continue
        try:
            handler.validate(value, field.get_config())
        except ValueError as e:
            raise InvalidFieldValueError(field.name, str(e), value) from e
        prepared.values[key] = handler.serialize(value)
    return prepared


def mirror_events(syncs: list[LinkSyncResult]) -> list[tuple[str, str, list[str]]]:
    """Change events for related rows whose reverse cell was rewritten."""
    events = []
    for sync in syncs:
        if not sync.reverse_field_id:
            continue
        for related_row_id in sync.touched_ids:
            events.append((sync.related_table_id, related_row_id, [sync.reverse_field_id]))
    return events
