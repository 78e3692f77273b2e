"""Text-like field type handlers: text, long text, URL, email and phone."""

import re
from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler


class TextFieldHandler(BaseFieldTypeHandler):
    """Handler for single-line text fields."""

    field_type = "text"
    max_length: int | None = 10_000

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        if value is None:
            return True
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValueError(f"{cls.field_type} field requires text, got {type(value).__name__}")
        if cls.max_length is not None and len(str(value)) > cls.max_length:
            raise ValueError(f"Text exceeds {cls.max_length} characters")
        return True


class LongTextFieldHandler(TextFieldHandler):
    """Handler for multi-line text fields."""

    field_type = "long_text"
    max_length = None


class _PatternTextHandler(TextFieldHandler):
    pattern: re.Pattern[str]
    description: str

    @classmethod
    def serialize(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return super().serialize(value)

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        super().validate(value, options)
        if value is None or value == "":
            return True
        if not cls.pattern.match(str(value).strip()):
            raise ValueError(f"Invalid {cls.description}: {value!r}")
        return True


class URLFieldHandler(_PatternTextHandler):
    """Handler for URL fields."""

    field_type = "url"
    pattern = re.compile(r"^(https?|ftp)://[^\s/$.?#][^\s]*$|^[\w.-]+\.[a-z]{2,}(/\S*)?$", re.I)
    description = "URL"


class EmailFieldHandler(_PatternTextHandler):
    """Handler for email fields."""

    field_type = "email"
    pattern = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    description = "email address"


class PhoneFieldHandler(_PatternTextHandler):
    """Handler for phone number fields."""

    field_type = "phone"
    pattern = re.compile(r"^\+?[\d\s().-]{3,30}$")
    description = "phone number"
