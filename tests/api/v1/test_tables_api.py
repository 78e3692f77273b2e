"""Integration tests for table endpoints."""

import pytest
from fastapi import status
from httpx import AsyncClient

from tablegraph.models.table import Table


@pytest.mark.asyncio
async def test_update_table(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    response = await client.patch(
        f"/api/v1/tables/{projects_table.id}",
        json={"description": "Client work"},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()["data"]
    assert data["name"] == "Projects"
    assert data["description"] == "Client work"


@pytest.mark.asyncio
async def test_duplicate_table(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/duplicate",
        json={"include_rows": False},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_201_CREATED
    copy = response.json()["data"]
    assert copy["id"] != projects_table.id
    assert copy["name"] == "Projects (Copy)"

    response = await client.get(f"/api/v1/tables/{copy['id']}/fields", headers=auth_headers)
    assert [f["name"] for f in response.json()["data"]] == ["Name"]


@pytest.mark.asyncio
async def test_delete_table(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    response = await client.delete(f"/api/v1/tables/{projects_table.id}", headers=auth_headers)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"] == {"id": projects_table.id, "deleted": True}

    response = await client.get(f"/api/v1/tables/{projects_table.id}", headers=auth_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_outsider_cannot_delete_table(
    client: AsyncClient, projects_table: Table, outsider_headers: dict[str, str]
) -> None:
    response = await client.delete(f"/api/v1/tables/{projects_table.id}", headers=outsider_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN
