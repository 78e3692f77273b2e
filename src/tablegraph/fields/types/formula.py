"""Formula field type handler.

Formula fields are computed from an expression over other fields of the
same row. The engine stores the result in the row's data together with a
``<field_id>_computed_at`` timestamp.
"""

from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler, is_error_value
from tablegraph.fields.types.date import parse_datetime, to_iso_string
from tablegraph.fields.types.number import to_number

RETURN_TYPES = ("text", "number", "boolean", "date")


class FormulaFieldHandler(BaseFieldTypeHandler):
    """
    Handler for formula fields.

    Options:
        formula: The expression, e.g. ``{Price} * {Quantity}`` (required)
        return_type: text, number, boolean or date (default text)
        dependencies: Field ids referenced by the expression; maintained by
            the field service whenever ``formula`` changes
    """

    field_type = "formula"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        return value

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        raise ValueError("Formula fields are computed and cannot be edited")

    @classmethod
    def is_computed(cls) -> bool:
        return True

    @classmethod
    def normalize_config(cls, config: dict[str, Any] | None) -> dict[str, Any]:
        config = dict(config or {})
        formula = config.get("formula")
        if not isinstance(formula, str) or not formula.strip():
            raise ValueError("Formula field must specify a formula")

        return_type = config.get("return_type") or "text"
        if return_type not in RETURN_TYPES:
            raise ValueError(
                f"Invalid return_type '{return_type}'. Supported: {', '.join(RETURN_TYPES)}"
            )

        dependencies = config.get("dependencies") or []
        return {
            "formula": formula,
            "return_type": return_type,
            "dependencies": [str(dep) for dep in dependencies],
        }

    @classmethod
    def coerce(cls, value: Any, return_type: str | None) -> Any:
        """
        Coerce an evaluation result to the declared return type.

        Error markers pass through untouched. ``number`` gives a number or
        None, ``boolean`` gives the truthiness, ``date`` gives an ISO string
        or None, ``text`` leaves the value as is.
        """
        if is_error_value(value):
            return value

        if return_type == "number":
            return to_number(value)

        if return_type == "boolean":
            return bool(value)

        if return_type == "date":
            parsed = parse_datetime(value)
            return to_iso_string(parsed) if parsed is not None else None

        return value
