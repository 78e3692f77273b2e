"""
Exception handlers.

Every error leaves the API in the same envelope:
``{"error": {"code", "message", "details"}}``.
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from tablegraph.core.config import settings
from tablegraph.core.exceptions import PersistenceError, TableGraphException
from tablegraph.core.logging import get_logger

logger = get_logger(__name__)


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details or {}}},
    )


async def tablegraph_exception_handler(request: Request, exc: TableGraphException) -> JSONResponse:
    """Render engine errors with their own status and code."""
    if exc.status_code >= 500:
        logger.error(
            exc.message,
            extra={"code": exc.code, "path": request.url.path, "details": exc.details},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report request body problems field by field."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Request validation failed",
        {"errors": errors},
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """A store failure that escaped the services is still a persistence error."""
    logger.exception("Database error", extra={"path": request.url.path})
    error = PersistenceError()
    if settings.environment != "production":
        error.details["reason"] = str(exc.__cause__ or exc)
    return await tablegraph_exception_handler(request, error)


async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error: {exc}")
    message = "An unexpected error occurred" if settings.environment == "production" else str(exc)
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", message)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handlers, most specific first."""
    app.add_exception_handler(TableGraphException, tablegraph_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, unexpected_exception_handler)
