"""System-managed field handlers.

These fields surface row metadata (timestamps, acting users). Their values
are never written through cell updates.
"""

from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler


class SystemFieldHandler(BaseFieldTypeHandler):
    """Base for read-only metadata fields."""

    field_type = "created_time"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        return value

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        raise ValueError(f"{cls.field_type} fields are managed by the system")

    @classmethod
    def is_read_only(cls) -> bool:
        return True


class CreatedTimeFieldHandler(SystemFieldHandler):
    field_type = "created_time"


class LastEditedTimeFieldHandler(SystemFieldHandler):
    field_type = "last_edited_time"


class CreatedByFieldHandler(SystemFieldHandler):
    field_type = "created_by"


class LastEditedByFieldHandler(SystemFieldHandler):
    field_type = "last_edited_by"
