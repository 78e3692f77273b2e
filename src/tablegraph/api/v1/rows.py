"""
Row endpoints.

Handles row CRUD, single-cell writes, ordering and bulk operations.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Query, status

from tablegraph.api.deps import BulkOrchestratorDep, CurrentUserId, DbSession, RowServiceDep
from tablegraph.schemas.common import DataResponse
from tablegraph.schemas.row import (
    BulkInsertRequest,
    BulkResult,
    BulkRowIdsRequest,
    BulkUpdateRequest,
    CellUpdate,
    RowCreate,
    RowFilterRequest,
    RowListResponse,
    RowReorder,
    RowResponse,
    RowUpdate,
)

router = APIRouter()


# =============================================================================
# Row CRUD Endpoints
# =============================================================================


@router.get("/tables/{table_id}/rows", response_model=DataResponse[RowListResponse])
async def list_rows(
    table_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
    offset: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> DataResponse[RowListResponse]:
    rows, total = await row_service.list_rows(db, user_id, table_id, offset=offset, limit=limit)
    return DataResponse(
        data=RowListResponse(items=[RowResponse.model_validate(r) for r in rows], total=total)
    )


@router.post("/tables/{table_id}/rows/filter", response_model=DataResponse[RowListResponse])
async def filter_rows(
    table_id: str,
    request: RowFilterRequest,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
) -> DataResponse[RowListResponse]:
    """Rows matching every condition, in row order."""
    rows = await row_service.filter_rows(
        db, user_id, table_id, [c.model_dump() for c in request.filters]
    )
    return DataResponse(
        data=RowListResponse(items=[RowResponse.model_validate(r) for r in rows], total=len(rows))
    )


@router.get("/tables/{table_id}/rows/search", response_model=DataResponse[RowListResponse])
async def search_rows(
    table_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
    q: Annotated[str, Query(max_length=500)] = "",
) -> DataResponse[RowListResponse]:
    """Rows with any cell containing ``q``, case-insensitively."""
    rows = await row_service.search_rows(db, user_id, table_id, q)
    return DataResponse(
        data=RowListResponse(items=[RowResponse.model_validate(r) for r in rows], total=len(rows))
    )


@router.post(
    "/tables/{table_id}/rows",
    response_model=DataResponse[RowResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_row(
    table_id: str,
    row_data: RowCreate,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
) -> DataResponse[RowResponse]:
    """
    Create a row.

    Computed and unknown keys in ``data`` are ignored.
    """
    row = await row_service.create_row(db, user_id, table_id, row_data.data, row_data.order)
    return DataResponse(data=RowResponse.model_validate(row))


@router.get("/rows/{row_id}", response_model=DataResponse[RowResponse])
async def get_row(
    row_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
) -> DataResponse[RowResponse]:
    row = await row_service.get_row(db, user_id, row_id)
    return DataResponse(data=RowResponse.model_validate(row))


@router.patch("/rows/{row_id}", response_model=DataResponse[RowResponse])
async def update_row(
    row_id: str,
    row_data: RowUpdate,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
) -> DataResponse[RowResponse]:
    row = await row_service.update_row(db, user_id, row_id, row_data.data)
    return DataResponse(data=RowResponse.model_validate(row))


@router.put("/rows/{row_id}/cells/{field_id}", response_model=DataResponse[RowResponse])
async def update_cell(
    row_id: str,
    field_id: str,
    cell: CellUpdate,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
) -> DataResponse[RowResponse]:
    """Write one cell; computed and system fields are rejected."""
    row = await row_service.update_cell(db, user_id, row_id, field_id, cell.value)
    return DataResponse(data=RowResponse.model_validate(row))


@router.delete("/rows/{row_id}", response_model=DataResponse[dict[str, Any]])
async def delete_row(
    row_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
) -> DataResponse[dict[str, Any]]:
    await row_service.delete_row(db, user_id, row_id)
    return DataResponse(data={"id": row_id, "deleted": True})


@router.post(
    "/rows/{row_id}/duplicate",
    response_model=DataResponse[RowResponse],
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_row(
    row_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
) -> DataResponse[RowResponse]:
    row = await row_service.duplicate_row(db, user_id, row_id)
    return DataResponse(data=RowResponse.model_validate(row))


@router.post("/tables/{table_id}/rows/reorder", response_model=DataResponse[list[RowResponse]])
async def reorder_rows(
    table_id: str,
    reorder: RowReorder,
    db: DbSession,
    user_id: CurrentUserId,
    row_service: RowServiceDep,
) -> DataResponse[list[RowResponse]]:
    rows = await row_service.reorder_rows(
        db, user_id, table_id, [(item.row_id, item.order) for item in reorder.rows]
    )
    return DataResponse(data=[RowResponse.model_validate(r) for r in rows])


# =============================================================================
# Bulk Endpoints
# =============================================================================


@router.post("/tables/{table_id}/rows/bulk-update", response_model=DataResponse[BulkResult])
async def bulk_update_rows(
    table_id: str,
    request: BulkUpdateRequest,
    db: DbSession,
    user_id: CurrentUserId,
    bulk: BulkOrchestratorDep,
) -> DataResponse[BulkResult]:
    """Apply the same values to several rows."""
    ids = await bulk.bulk_update_rows(db, user_id, table_id, request.row_ids, request.updates)
    return DataResponse(data=BulkResult(row_ids=ids, count=len(ids)))


@router.post("/tables/{table_id}/rows/bulk-delete", response_model=DataResponse[BulkResult])
async def bulk_delete_rows(
    table_id: str,
    request: BulkRowIdsRequest,
    db: DbSession,
    user_id: CurrentUserId,
    bulk: BulkOrchestratorDep,
) -> DataResponse[BulkResult]:
    deleted = await bulk.bulk_delete_rows(db, user_id, table_id, request.row_ids)
    return DataResponse(data=BulkResult(row_ids=request.row_ids, count=deleted))


@router.post(
    "/tables/{table_id}/rows/bulk-duplicate",
    response_model=DataResponse[BulkResult],
    status_code=status.HTTP_201_CREATED,
)
async def bulk_duplicate_rows(
    table_id: str,
    request: BulkRowIdsRequest,
    db: DbSession,
    user_id: CurrentUserId,
    bulk: BulkOrchestratorDep,
) -> DataResponse[BulkResult]:
    ids = await bulk.bulk_duplicate_rows(db, user_id, table_id, request.row_ids)
    return DataResponse(data=BulkResult(row_ids=ids, count=len(ids)))


@router.post(
    "/tables/{table_id}/rows/bulk-insert",
    response_model=DataResponse[BulkResult],
    status_code=status.HTTP_201_CREATED,
)
async def bulk_insert_rows(
    table_id: str,
    request: BulkInsertRequest,
    db: DbSession,
    user_id: CurrentUserId,
    bulk: BulkOrchestratorDep,
) -> DataResponse[BulkResult]:
    """
    Insert rows in chunks.

    Chunks are committed one by one; on failure, rows from earlier chunks
    stay.
    """
    ids = await bulk.bulk_insert_rows(
        db, user_id, table_id, [row.model_dump() for row in request.rows]
    )
    return DataResponse(data=BulkResult(row_ids=ids, count=len(ids)))
