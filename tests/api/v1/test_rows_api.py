"""Integration tests for row endpoints."""

import pytest
from fastapi import status
from httpx import AsyncClient

from tablegraph.models.table import Table


async def create_field(
    client: AsyncClient, headers: dict[str, str], table_id: str, **payload
) -> dict:
    response = await client.post(
        f"/api/v1/tables/{table_id}/fields", json=payload, headers=headers
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()["data"]


async def create_row(
    client: AsyncClient, headers: dict[str, str], table_id: str, data: dict | None = None
) -> dict:
    response = await client.post(
        f"/api/v1/tables/{table_id}/rows", json={"data": data or {}}, headers=headers
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_ready_reports_database_and_bulk_strategy(client: AsyncClient) -> None:
    response = await client.get("/ready")
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["status"] == "ready"
    assert body["database"] == "sqlite"
    assert body["bulk_strategy"] == "local"
    assert body["missing_procedures"] == []


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(
    client: AsyncClient, projects_table: Table
) -> None:
    response = await client.get(f"/api/v1/tables/{projects_table.id}/rows")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["code"] == "AUTHENTICATION_REQUIRED"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(client: AsyncClient, projects_table: Table) -> None:
    response = await client.get(
        f"/api/v1/tables/{projects_table.id}/rows",
        headers={"Authorization": "Bearer not-a-token"},
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_non_member_is_forbidden(
    client: AsyncClient, projects_table: Table, outsider_headers: dict[str, str]
) -> None:
    response = await client.get(
        f"/api/v1/tables/{projects_table.id}/rows", headers=outsider_headers
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_create_and_list_rows(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    """Rows come back wrapped in a data envelope with computed values filled."""
    price = await create_field(
        client, auth_headers, projects_table.id, name="Price", field_type="number"
    )
    total = await create_field(
        client,
        auth_headers,
        projects_table.id,
        name="Total",
        field_type="formula",
        config={"formula": "{Price} * 3"},
    )

    row = await create_row(client, auth_headers, projects_table.id, {price["id"]: 2})
    assert row["data"][total["id"]] == 6

    response = await client.get(
        f"/api/v1/tables/{projects_table.id}/rows", headers=auth_headers
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()["data"]
    assert body["total"] == 1
    assert body["items"][0]["id"] == row["id"]


@pytest.mark.asyncio
async def test_writing_computed_cell_is_rejected(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    total = await create_field(
        client,
        auth_headers,
        projects_table.id,
        name="Total",
        field_type="formula",
        config={"formula": "1 + 1"},
    )
    row = await create_row(client, auth_headers, projects_table.id)

    response = await client.put(
        f"/api/v1/rows/{row['id']}/cells/{total['id']}",
        json={"value": 5},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["code"] == "READ_ONLY_FIELD"


@pytest.mark.asyncio
async def test_invalid_cell_value(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    price = await create_field(
        client, auth_headers, projects_table.id, name="Price", field_type="number"
    )
    row = await create_row(client, auth_headers, projects_table.id)

    response = await client.put(
        f"/api/v1/rows/{row['id']}/cells/{price['id']}",
        json={"value": "many"},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    error = response.json()["error"]
    assert error["code"] == "INVALID_FIELD_VALUE"
    assert error["details"]["field_name"] == "Price"


@pytest.mark.asyncio
async def test_unknown_row(client: AsyncClient, auth_headers: dict[str, str]) -> None:
    response = await client.get("/api/v1/rows/missing", headers=auth_headers)
    assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_bulk_endpoints(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    note = await create_field(
        client, auth_headers, projects_table.id, name="Note", field_type="text"
    )

    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/rows/bulk-insert",
        json={"rows": [{"data": {note["id"]: f"row {i}"}} for i in range(3)]},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    ids = response.json()["data"]["row_ids"]
    assert len(ids) == 3

    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/rows/bulk-update",
        json={"row_ids": ids[:2], "updates": {note["id"]: "same"}},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["data"]["count"] == 2

    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/rows/bulk-duplicate",
        json={"row_ids": [ids[0]]},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_201_CREATED
    copy_id = response.json()["data"]["row_ids"][0]

    response = await client.get(f"/api/v1/rows/{copy_id}", headers=auth_headers)
    assert response.json()["data"]["data"][note["id"]] == "same"

    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/rows/bulk-delete",
        json={"row_ids": [ids[2], copy_id]},
        headers=auth_headers,
    )
    assert response.json()["data"]["count"] == 2

    response = await client.get(
        f"/api/v1/tables/{projects_table.id}/rows", headers=auth_headers
    )
    assert response.json()["data"]["total"] == 2


@pytest.mark.asyncio
async def test_related_rows_and_link_count(
    client: AsyncClient,
    projects_table: Table,
    tasks_table: Table,
    auth_headers: dict[str, str],
) -> None:
    link = await create_field(
        client,
        auth_headers,
        projects_table.id,
        name="Tasks",
        field_type="relation",
        config={"related_table_id": tasks_table.id},
    )
    task = await create_row(client, auth_headers, tasks_table.id)
    project = await create_row(client, auth_headers, projects_table.id, {link["id"]: [task["id"]]})

    response = await client.get(
        f"/api/v1/rows/{project['id']}/related/{link['id']}", headers=auth_headers
    )
    assert response.status_code == status.HTTP_200_OK
    assert [r["id"] for r in response.json()["data"]["rows"]] == [task["id"]]

    response = await client.post(
        f"/api/v1/tables/{tasks_table.id}/relations/count",
        json={"row_ids": [task["id"]]},
        headers=auth_headers,
    )
    assert response.json()["data"]["count"] == 2


@pytest.mark.asyncio
async def test_filter_and_search_rows(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    status_field = await create_field(
        client, auth_headers, projects_table.id, name="Status", field_type="text"
    )
    open_row = await create_row(
        client, auth_headers, projects_table.id, {status_field["id"]: "Open"}
    )
    await create_row(client, auth_headers, projects_table.id, {status_field["id"]: "Closed"})

    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/rows/filter",
        json={"filters": [{"field_id": status_field["id"], "operator": "equals", "value": "Open"}]},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    body = response.json()["data"]
    assert body["total"] == 1
    assert body["items"][0]["id"] == open_row["id"]

    response = await client.get(
        f"/api/v1/tables/{projects_table.id}/rows/search",
        params={"q": "clos"},
        headers=auth_headers,
    )
    assert response.status_code == status.HTTP_200_OK
    assert [r["data"][status_field["id"]] for r in response.json()["data"]["items"]] == ["Closed"]


@pytest.mark.asyncio
async def test_filter_with_unknown_operator_is_rejected(
    client: AsyncClient, projects_table: Table, auth_headers: dict[str, str]
) -> None:
    note = await create_field(client, auth_headers, projects_table.id, name="Note", field_type="text")

    response = await client.post(
        f"/api/v1/tables/{projects_table.id}/rows/filter",
        json={"filters": [{"field_id": note["id"], "operator": "like", "value": "x"}]},
        headers=auth_headers,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
