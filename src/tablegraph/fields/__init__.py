"""Field type handlers for TableGraph.

Each field type has a handler implementing serialization, validation and
config normalization. Handlers are looked up by the field's type string.
"""

from tablegraph.fields.base import (
    ERROR_SENTINEL,
    BaseFieldTypeHandler,
    format_error_value,
    is_error_value,
)
from tablegraph.fields.sanitize import (
    READ_ONLY_FIELD_TYPES,
    computed_at_key,
    is_computed_at_key,
    is_read_only_type,
    sanitize_row_data,
    strip_read_only,
)
from tablegraph.fields.types.checkbox import CheckboxFieldHandler
from tablegraph.fields.types.date import DateFieldHandler
from tablegraph.fields.types.formula import FormulaFieldHandler
from tablegraph.fields.types.number import NumberFieldHandler
from tablegraph.fields.types.relation import RelationFieldHandler, normalize_row_ids
from tablegraph.fields.types.rollup import RollupFieldHandler
from tablegraph.fields.types.select import (
    FilesFieldHandler,
    MultiSelectFieldHandler,
    PersonFieldHandler,
    PriorityFieldHandler,
    SelectFieldHandler,
    StatusFieldHandler,
)
from tablegraph.fields.types.system_fields import (
    CreatedByFieldHandler,
    CreatedTimeFieldHandler,
    LastEditedByFieldHandler,
    LastEditedTimeFieldHandler,
)
from tablegraph.fields.types.text import (
    EmailFieldHandler,
    LongTextFieldHandler,
    PhoneFieldHandler,
    TextFieldHandler,
    URLFieldHandler,
)

FIELD_HANDLERS: dict[str, type[BaseFieldTypeHandler]] = {
    handler.field_type: handler
    for handler in (
        TextFieldHandler,
        LongTextFieldHandler,
        NumberFieldHandler,
        SelectFieldHandler,
        MultiSelectFieldHandler,
        StatusFieldHandler,
        PriorityFieldHandler,
        DateFieldHandler,
        CheckboxFieldHandler,
        URLFieldHandler,
        EmailFieldHandler,
        PhoneFieldHandler,
        PersonFieldHandler,
        FilesFieldHandler,
        CreatedTimeFieldHandler,
        LastEditedTimeFieldHandler,
        CreatedByFieldHandler,
        LastEditedByFieldHandler,
        FormulaFieldHandler,
        RelationFieldHandler,
        RollupFieldHandler,
    )
}


def get_field_handler(field_type: str) -> type[BaseFieldTypeHandler] | None:
    """Get the handler for a field type, or None if the type is unknown."""
    return FIELD_HANDLERS.get(field_type)


__all__ = [
    "ERROR_SENTINEL",
    "FIELD_HANDLERS",
    "READ_ONLY_FIELD_TYPES",
    "BaseFieldTypeHandler",
    "FormulaFieldHandler",
    "RelationFieldHandler",
    "RollupFieldHandler",
    "computed_at_key",
    "format_error_value",
    "get_field_handler",
    "is_computed_at_key",
    "is_error_value",
    "is_read_only_type",
    "normalize_row_ids",
    "sanitize_row_data",
    "strip_read_only",
]
