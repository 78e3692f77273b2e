"""Integration tests for table and field endpoints."""

import pytest
from fastapi import status
from httpx import AsyncClient

from tablegraph.models.table import Table
from tablegraph.models.workspace import Workspace


@pytest.mark.asyncio
async def test_create_table_with_primary_field(
    client: AsyncClient, workspace: Workspace, auth_headers: dict[str, str]
) -> None:
    response = await client.post(
        f"/api/v1/workspaces/{workspace.id}/tables",
        json={"name": "Parts"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    table_id = response.json()["data"]["id"]

    response = await client.get(f"/api/v1/tables/{table_id}/fields", headers=auth_headers)
    fields = response.json()["data"]
    assert [(f["name"], f["is_primary"]) for f in fields] == [("Name", True)]


@pytest.mark.asyncio
async def test_circular_formula_is_rejected(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/fields",
        json={"name": "A", "field_type": "formula", "config": {"formula": "1"}},
        headers=auth_headers,
    )
    a = response.json()["data"]
    await client.post(
        f"/api/v1/tables/{projects_table.id}/fields",
        json={"name": "B", "field_type": "formula", "config": {"formula": "{A} + 1"}},
        headers=auth_headers,
    )

    response = await client.patch(
        f"/api/v1/fields/{a['id']}",
        json={"config": {"formula": "{B} + 1"}},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["error"]["code"] == "FORMULA_ERROR"


@pytest.mark.asyncio
async def test_unknown_field_type_fails_validation(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/fields",
        json={"name": "Odd", "field_type": "hologram"},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_configure_relation_and_recompute(
    client: AsyncClient,
    projects_table: Table,
    tasks_table: Table,
    auth_headers: dict[str, str],
) -> None:
    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/fields",
        json={"name": "Tasks", "field_type": "relation"},
        headers=auth_headers,
    )
    link = response.json()["data"]

    response = await client.put(
        f"/api/v1/fields/{link['id']}/relation",
        json={"related_table_id": tasks_table.id, "reverse_field_name": "Project"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    config = response.json()["data"]["config"]
    assert config["related_table_id"] == tasks_table.id
    assert config["reverse_field_id"]

    response = await client.get(f"/api/v1/tables/{tasks_table.id}/fields", headers=auth_headers)
    assert "Project" in [f["name"] for f in response.json()["data"]]

    response = await client.post(f"/api/v1/fields/{link['id']}/recompute", headers=auth_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.asyncio
async def test_delete_field(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/fields",
        json={"name": "Note", "field_type": "text"},
        headers=auth_headers,
    )
    note = response.json()["data"]

    response = await client.delete(f"/api/v1/fields/{note['id']}", headers=auth_headers)
    assert response.status_code == status.HTTP_200_OK

    response = await client.get(f"/api/v1/fields/{note['id']}", headers=auth_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND
