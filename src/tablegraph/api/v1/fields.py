"""
Field endpoints.

Handles field CRUD, ordering, relation setup and recomputation.
"""

from typing import Any

from fastapi import APIRouter, status

from tablegraph.api.deps import CurrentUserId, DbSession, FieldServiceDep
from tablegraph.schemas.common import DataResponse
from tablegraph.schemas.field import (
    FieldCreate,
    FieldReorder,
    FieldResponse,
    FieldUpdate,
    RecomputeResponse,
    RelationConfigure,
)

router = APIRouter()


@router.post(
    "/tables/{table_id}/fields",
    response_model=DataResponse[FieldResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_field(
    table_id: str,
    field_data: FieldCreate,
    db: DbSession,
    user_id: CurrentUserId,
    field_service: FieldServiceDep,
) -> DataResponse[FieldResponse]:
    """
    Create a field in a table.

    Formula and rollup fields are computed for every existing row before
    the response is sent.
    """
    field = await field_service.create_field(db, user_id, table_id, field_data)
    return DataResponse(data=FieldResponse.model_validate(field))


@router.get("/fields/{field_id}", response_model=DataResponse[FieldResponse])
async def get_field(
    field_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    field_service: FieldServiceDep,
) -> DataResponse[FieldResponse]:
    field = await field_service.get_field(db, user_id, field_id)
    return DataResponse(data=FieldResponse.model_validate(field))


@router.patch("/fields/{field_id}", response_model=DataResponse[FieldResponse])
async def update_field(
    field_id: str,
    field_data: FieldUpdate,
    db: DbSession,
    user_id: CurrentUserId,
    field_service: FieldServiceDep,
) -> DataResponse[FieldResponse]:
    field = await field_service.update_field(db, user_id, field_id, field_data)
    return DataResponse(data=FieldResponse.model_validate(field))


@router.delete("/fields/{field_id}", response_model=DataResponse[dict[str, Any]])
async def delete_field(
    field_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    field_service: FieldServiceDep,
) -> DataResponse[dict[str, Any]]:
    """Delete a field, purging its values and recomputing fields that read it."""
    await field_service.delete_field(db, user_id, field_id)
    return DataResponse(data={"id": field_id, "deleted": True})


@router.post(
    "/tables/{table_id}/fields/reorder",
    response_model=DataResponse[list[FieldResponse]],
)
async def reorder_fields(
    table_id: str,
    reorder: FieldReorder,
    db: DbSession,
    user_id: CurrentUserId,
    field_service: FieldServiceDep,
) -> DataResponse[list[FieldResponse]]:
    fields = await field_service.reorder_fields(
        db, user_id, table_id, [(item.field_id, item.position) for item in reorder.fields]
    )
    return DataResponse(data=[FieldResponse.model_validate(f) for f in fields])


@router.put("/fields/{field_id}/relation", response_model=DataResponse[FieldResponse])
async def configure_relation(
    field_id: str,
    request: RelationConfigure,
    db: DbSession,
    user_id: CurrentUserId,
    field_service: FieldServiceDep,
) -> DataResponse[FieldResponse]:
    """Point a relation field at a table, creating its reverse field if bidirectional."""
    field = await field_service.configure_relation(db, user_id, field_id, request)
    return DataResponse(data=FieldResponse.model_validate(field))


@router.post("/fields/{field_id}/recompute", response_model=DataResponse[RecomputeResponse])
async def recompute_field(
    field_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    field_service: FieldServiceDep,
) -> DataResponse[RecomputeResponse]:
    """Recompute a formula or rollup field on every row of its table."""
    rows = await field_service.recompute_field(db, user_id, field_id)
    return DataResponse(data=RecomputeResponse(field_id=field_id, rows=rows))
