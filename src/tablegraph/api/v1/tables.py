"""
Table endpoints.

Handles table CRUD and duplication, and lists the fields of a table.
"""

from typing import Any

from fastapi import APIRouter, status

from tablegraph.api.deps import CurrentUserId, DbSession, FieldServiceDep, TableServiceDep
from tablegraph.schemas.common import DataResponse
from tablegraph.schemas.field import FieldResponse
from tablegraph.schemas.table import TableCreate, TableDuplicate, TableResponse, TableUpdate

router = APIRouter()


@router.post(
    "/workspaces/{workspace_id}/tables",
    response_model=DataResponse[TableResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_table(
    workspace_id: str,
    table_data: TableCreate,
    db: DbSession,
    user_id: CurrentUserId,
    table_service: TableServiceDep,
) -> DataResponse[TableResponse]:
    """
    Create a table in a workspace.

    The table starts with a primary ``Name`` text field.
    """
    table = await table_service.create_table(db, user_id, workspace_id, table_data)
    return DataResponse(data=TableResponse.model_validate(table))


@router.get("/tables/{table_id}", response_model=DataResponse[TableResponse])
async def get_table(
    table_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    table_service: TableServiceDep,
) -> DataResponse[TableResponse]:
    table = await table_service.get_table(db, user_id, table_id)
    return DataResponse(data=TableResponse.model_validate(table))


@router.patch("/tables/{table_id}", response_model=DataResponse[TableResponse])
async def update_table(
    table_id: str,
    table_data: TableUpdate,
    db: DbSession,
    user_id: CurrentUserId,
    table_service: TableServiceDep,
) -> DataResponse[TableResponse]:
    table = await table_service.update_table(db, user_id, table_id, table_data)
    return DataResponse(data=TableResponse.model_validate(table))


@router.delete("/tables/{table_id}", response_model=DataResponse[dict[str, Any]])
async def delete_table(
    table_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    table_service: TableServiceDep,
) -> DataResponse[dict[str, Any]]:
    """Delete a table; links into it from other tables are removed."""
    await table_service.delete_table(db, user_id, table_id)
    return DataResponse(data={"id": table_id, "deleted": True})


@router.post(
    "/tables/{table_id}/duplicate",
    response_model=DataResponse[TableResponse],
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_table(
    table_id: str,
    request: TableDuplicate,
    db: DbSession,
    user_id: CurrentUserId,
    table_service: TableServiceDep,
) -> DataResponse[TableResponse]:
    """Copy a table's fields, and its rows when ``include_rows`` is set."""
    table = await table_service.duplicate_table(
        db, user_id, table_id, include_rows=request.include_rows
    )
    return DataResponse(data=TableResponse.model_validate(table))


@router.get("/tables/{table_id}/fields", response_model=DataResponse[list[FieldResponse]])
async def list_table_fields(
    table_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    field_service: FieldServiceDep,
) -> DataResponse[list[FieldResponse]]:
    """List the fields of a table in display order."""
    fields = await field_service.list_fields(db, user_id, table_id)
    return DataResponse(data=[FieldResponse.model_validate(f) for f in fields])
