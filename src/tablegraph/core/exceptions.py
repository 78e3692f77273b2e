"""
Custom exceptions for TableGraph.

Provides a hierarchy of exceptions that map to HTTP status codes
and include structured error information.
"""

from typing import Any


class TableGraphException(Exception):
    """
    Base exception for all TableGraph errors.

    All custom exceptions should inherit from this class.
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
        """
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# HTTP 400 - Bad Request Errors
# =============================================================================


class ValidationError(TableGraphException):
    """Request validation failed."""

    status_code = 400

    def __init__(
        self,
        message: str = "Validation error",
        code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code=code, details=details)


class ReadOnlyFieldError(ValidationError):
    """Attempted to write a computed or system-managed field."""

    def __init__(self, field_id: str, field_type: str) -> None:
        super().__init__(
            message="This field is read-only",
            code="READ_ONLY_FIELD",
            details={"field_id": field_id, "field_type": field_type},
        )


class InvalidFieldTypeError(ValidationError):
    """Invalid field type specified."""

    def __init__(self, field_type: str) -> None:
        super().__init__(
            message=f"Invalid field type: {field_type}",
            code="INVALID_FIELD_TYPE",
            details={"field_type": field_type},
        )


class InvalidFieldValueError(ValidationError):
    """Invalid value for field type."""

    def __init__(self, field_name: str, reason: str, received_value: Any = None) -> None:
        super().__init__(
            message=f"Invalid value for field '{field_name}': {reason}",
            code="INVALID_FIELD_VALUE",
            details={
                "field_name": field_name,
                "reason": reason,
                "received_value": str(received_value)[:100],
            },
        )


class RelationConfigError(ValidationError):
    """Relation field is missing or has unusable configuration."""

    def __init__(self, message: str, field_id: str | None = None) -> None:
        super().__init__(
            message=message,
            code="RELATION_CONFIG",
            details={"field_id": field_id},
        )


class BatchTooLargeError(ValidationError):
    """Bulk operation exceeds the configured batch size."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            message=f"Batch of {size} rows exceeds the limit of {limit}",
            code="BATCH_TOO_LARGE",
            details={"size": size, "limit": limit},
        )


# =============================================================================
# HTTP 401 - Authentication Errors
# =============================================================================


class AuthenticationError(TableGraphException):
    """No authenticated user."""

    status_code = 401

    def __init__(
        self,
        message: str = "Unauthorized",
        code: str = "AUTHENTICATION_REQUIRED",
    ) -> None:
        super().__init__(message=message, code=code)


class InvalidTokenError(AuthenticationError):
    """JWT token is invalid or expired."""

    def __init__(self) -> None:
        super().__init__(message="Invalid or expired token", code="INVALID_TOKEN")


# =============================================================================
# HTTP 403 - Authorization Errors
# =============================================================================


class PermissionDeniedError(TableGraphException):
    """User is not permitted to perform this action."""

    status_code = 403

    def __init__(
        self,
        message: str = "Not a member of this workspace",
        resource: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code="FORBIDDEN",
            details={"resource": resource},
        )


# =============================================================================
# HTTP 404 - Not Found Errors
# =============================================================================


class NotFoundError(TableGraphException):
    """Requested resource not found."""

    status_code = 404

    def __init__(
        self,
        resource: str,
        identifier: str | None = None,
    ) -> None:
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID '{identifier}' not found"

        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource": resource, "identifier": identifier},
        )


class WorkspaceNotFoundError(NotFoundError):
    """Workspace not found."""

    def __init__(self, workspace_id: str | None = None) -> None:
        super().__init__(resource="Workspace", identifier=workspace_id)


class TableNotFoundError(NotFoundError):
    """Table not found."""

    def __init__(self, table_id: str | None = None) -> None:
        super().__init__(resource="Table", identifier=table_id)


class FieldNotFoundError(NotFoundError):
    """Field not found."""

    def __init__(self, field_id: str | None = None) -> None:
        super().__init__(resource="Field", identifier=field_id)


class RowNotFoundError(NotFoundError):
    """Row not found."""

    def __init__(self, row_id: str | None = None) -> None:
        super().__init__(resource="Row", identifier=row_id)


# =============================================================================
# HTTP 422 - Unprocessable Entity
# =============================================================================


class FormulaError(TableGraphException):
    """Formula definition was rejected (syntax error, circular reference)."""

    status_code = 422

    def __init__(self, formula: str, error: str) -> None:
        super().__init__(
            message=f"Formula error: {error}",
            code="FORMULA_ERROR",
            details={"formula": formula, "error": error},
        )


# =============================================================================
# HTTP 500 - Internal Server Errors
# =============================================================================


class PersistenceError(TableGraphException):
    """The underlying store rejected a write."""

    status_code = 500

    def __init__(
        self,
        message: str = "Database operation failed",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, code="PERSISTENCE_ERROR", details=details)
