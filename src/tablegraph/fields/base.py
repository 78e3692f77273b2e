"""Base class for field type handlers."""

from abc import ABC, abstractmethod
from typing import Any

ERROR_SENTINEL = "#ERROR"


def format_error_value(message: str | None = None) -> str:
    """
    Build the in-cell marker written when a computed value cannot be produced.

    Returns ``"#ERROR"`` or ``"#ERROR: <message>"``.
    """
    if not message:
        return ERROR_SENTINEL
    return f"{ERROR_SENTINEL}: {message}"


def is_error_value(value: Any) -> bool:
    """Whether ``value`` is an error marker produced by :func:`format_error_value`."""
    return isinstance(value, str) and value.startswith(ERROR_SENTINEL)


class BaseFieldTypeHandler(ABC):
    """
    Base class for field type handlers.

    Each field type implements serialization, deserialization and validation
    of cell values, plus validation of its ``config``. Handlers are stateless
    and expose classmethods only.

    Example:
        class MyFieldHandler(BaseFieldTypeHandler):
            field_type = "my_type"

            @classmethod
            def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
                if value is None:
                    return True
                if not isinstance(value, str):
                    raise ValueError("expected text")
                return True
    """

    field_type: str

    @classmethod
    @abstractmethod
    def serialize(cls, value: Any) -> Any:
        """
        Convert Python value to the JSON-storable cell format.

        Args:
            value: Python value to serialize

        Returns:
            JSON-serializable value
        """

    @classmethod
    def deserialize(cls, value: Any) -> Any:
        """Convert a stored cell value back to Python format."""
        return value

    @classmethod
    @abstractmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        """
        Validate value against field type requirements.

        Args:
            value: Value to validate
            options: Field config

        Returns:
            True if valid

        Raises:
            ValueError: If validation fails
        """

    @classmethod
    def default(cls) -> Any:
        """Default cell value for new rows."""
        return None

    @classmethod
    def normalize_config(cls, config: dict[str, Any] | None) -> dict[str, Any]:
        """
        Validate and normalize a field config.

        Raises:
            ValueError: If the config is unusable for this type
        """
        return dict(config or {})

    @classmethod
    def is_computed(cls) -> bool:
        """Whether values are derived by the engine rather than entered."""
        return False

    @classmethod
    def is_read_only(cls) -> bool:
        """Whether users may not write values directly."""
        return cls.is_computed()
