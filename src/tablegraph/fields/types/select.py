"""Choice and list-valued field handlers: select, status, priority, multi select, person, files."""

from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler


class SelectFieldHandler(BaseFieldTypeHandler):
    """
    Handler for single choice fields.

    Options:
        options: Optional list of ``{"id", "label"}`` choices. When present the
            value must match a choice id or label.
    """

    field_type = "select"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        if value is None or value == "":
            return True
        if not isinstance(value, str):
            raise ValueError(f"{cls.field_type} field requires a single choice")
        choices = (options or {}).get("options")
        if choices:
            allowed = set()
            for choice in choices:
                if isinstance(choice, dict):
                    allowed.update(str(choice[k]) for k in ("id", "label", "name") if k in choice)
                else:
                    allowed.add(str(choice))
            if value not in allowed:
                raise ValueError(f"'{value}' is not a valid choice")
        return True


class StatusFieldHandler(SelectFieldHandler):
    field_type = "status"


class PriorityFieldHandler(SelectFieldHandler):
    field_type = "priority"


class ListFieldHandler(BaseFieldTypeHandler):
    """Handler for fields whose cell holds a list."""

    field_type = "multi_select"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        return [value]

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        if value is None:
            return True
        if not isinstance(value, (list, tuple)):
            raise ValueError(f"{cls.field_type} field requires a list")
        return True

    @classmethod
    def default(cls) -> Any:
        return []


class MultiSelectFieldHandler(ListFieldHandler):
    field_type = "multi_select"


class FilesFieldHandler(ListFieldHandler):
    field_type = "files"


class PersonFieldHandler(ListFieldHandler):
    """Person cells hold user ids; a single id is accepted and wrapped."""

    field_type = "person"

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        if isinstance(value, str):
            return True
        return super().validate(value, options)
