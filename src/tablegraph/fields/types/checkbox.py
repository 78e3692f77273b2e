"""Checkbox field type handler."""

from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler


class CheckboxFieldHandler(BaseFieldTypeHandler):
    """Handler for checkbox field type."""

    field_type = "checkbox"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None:
            return False
        return bool(value)

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        if value is None or isinstance(value, bool):
            return True
        raise ValueError(f"Checkbox field requires boolean value, got {type(value).__name__}")

    @classmethod
    def default(cls) -> Any:
        return False
