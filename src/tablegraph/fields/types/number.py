"""Number field type handler."""

import math
from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler


def to_number(value: Any) -> int | float | None:
    """
    Coerce a cell value to a number.

    Booleans count as 1/0, numeric strings are parsed, whole floats come back
    as ints. Anything else (None, blank strings, lists, NaN) gives None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return None
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        if math.isnan(number):
            return None
        return int(number) if number.is_integer() else number
    return None


class NumberFieldHandler(BaseFieldTypeHandler):
    """Handler for number field type."""

    field_type = "number"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        number = to_number(value)
        if number is None or isinstance(value, bool):
            raise ValueError(f"Cannot convert {value!r} to number")
        return number

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        """
        Validate number field value.

        Args:
            value: Value to validate
            options: Optional dict with 'min_value' and 'max_value' keys

        Raises:
            ValueError: If the value is not numeric or out of range
        """
        if value is None or value == "":
            return True

        if isinstance(value, bool):
            raise ValueError("Number field requires numeric value, got boolean")

        num = to_number(value)
        if num is None:
            raise ValueError(f"Number field requires numeric value, got {value!r}")

        if options:
            min_value = options.get("min_value")
            if min_value is not None and num < min_value:
                raise ValueError(f"Number value must be >= {min_value}")

            max_value = options.get("max_value")
            if max_value is not None and num > max_value:
                raise ValueError(f"Number value must be <= {max_value}")

        return True
