"""Tests for the error envelope."""

import pytest
from fastapi import FastAPI, status
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from tablegraph.api.errors import register_exception_handlers
from tablegraph.core.exceptions import RowNotFoundError


def make_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/missing")
    async def missing() -> None:
        raise RowNotFoundError("row-1")

    @app.get("/store")
    async def store() -> None:
        raise OperationalError("UPDATE table_rows", {}, Exception("database is locked"))

    return app


@pytest.mark.asyncio
async def test_engine_error_keeps_its_code() -> None:
    async with AsyncClient(transport=ASGITransport(app=make_app()), base_url="http://test") as ac:
        response = await ac.get("/missing")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert "row-1" in response.json()["error"]["message"]


@pytest.mark.asyncio
async def test_store_failure_is_a_persistence_error() -> None:
    async with AsyncClient(transport=ASGITransport(app=make_app()), base_url="http://test") as ac:
        response = await ac.get("/store")

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    error = response.json()["error"]
    assert error["code"] == "PERSISTENCE_ERROR"
    assert error["message"] == "Database operation failed"
