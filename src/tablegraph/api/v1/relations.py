"""
Relation endpoints.

Read access to linked rows and link counts.
"""

from fastapi import APIRouter

from tablegraph.api.deps import CurrentUserId, DbSession, RelationServiceDep
from tablegraph.core.exceptions import RowNotFoundError
from tablegraph.models.row import TableRow
from tablegraph.schemas.common import DataResponse
from tablegraph.schemas.relation import LinkCountRequest, LinkCountResponse, RelatedRowsResponse
from tablegraph.schemas.row import RowResponse

router = APIRouter()


@router.get(
    "/rows/{row_id}/related/{field_id}",
    response_model=DataResponse[RelatedRowsResponse],
)
async def list_related_rows(
    row_id: str,
    field_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    relation_service: RelationServiceDep,
) -> DataResponse[RelatedRowsResponse]:
    """Rows linked through a relation cell, with the field used to label them."""
    related = await relation_service.list_related_rows(db, user_id, row_id, field_id)
    return DataResponse(
        data=RelatedRowsResponse(
            rows=[RowResponse.model_validate(r) for r in related.rows],
            display_field_id=related.display_field_id,
        )
    )


@router.post(
    "/tables/{table_id}/relations/count",
    response_model=DataResponse[LinkCountResponse],
)
async def count_relation_links(
    table_id: str,
    request: LinkCountRequest,
    db: DbSession,
    user_id: CurrentUserId,
    relation_service: RelationServiceDep,
) -> DataResponse[LinkCountResponse]:
    """Number of links touching the given rows, e.g. to warn before a delete."""
    ctx = await relation_service.gate.require_table_access(db, user_id, table_id)
    for row_id in request.row_ids:
        row = await db.get(TableRow, row_id)
        if row is None or row.table_id != ctx.table_id:
            raise RowNotFoundError(row_id)
    count = await relation_service.count_relation_links_for_rows(
        db, ctx.table_id, request.row_ids
    )
    return DataResponse(data=LinkCountResponse(count=count))
