"""Row service for business logic."""

from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.core.config import Settings, settings as default_settings
from tablegraph.core.exceptions import (
    FieldNotFoundError,
    ReadOnlyFieldError,
    RowNotFoundError,
    ValidationError,
)
from tablegraph.core.logging import get_logger
from tablegraph.fields import is_computed_at_key, is_read_only_type, sanitize_row_data
from tablegraph.fields.types.rollup import RollupFieldHandler
from tablegraph.models.field import TableField
from tablegraph.models.row import TableRow
from tablegraph.services.access import AccessGate, TableAccessContext
from tablegraph.services.bulk import BulkMutationOrchestrator
from tablegraph.services.recompute import RecomputeDispatcher
from tablegraph.services.relation import LinkSyncResult, RelationService
from tablegraph.services.store import load_fields, load_row, write_row_data
from tablegraph.services.writes import PreparedWrite, mirror_events, prepare_write

logger = get_logger(__name__)


class RowService:
    """Service for row operations."""

    def __init__(
        self,
        settings: Settings | None = None,
        gate: AccessGate | None = None,
        relations: RelationService | None = None,
        dispatcher: RecomputeDispatcher | None = None,
        bulk: BulkMutationOrchestrator | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.gate = gate or AccessGate()
        self.relations = relations or RelationService(self.gate)
        self.dispatcher = dispatcher or RecomputeDispatcher(
            settings=self.settings, relations=self.relations
        )
        self.bulk = bulk or BulkMutationOrchestrator(
            self.settings, gate=self.gate, relations=self.relations, dispatcher=self.dispatcher
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_row(self, db: AsyncSession, user_id: str, row_id: str) -> TableRow:
        """Get a row, checking workspace membership."""
        _, row = await self.gate.require_row_access(db, user_id, row_id)
        return row

    async def list_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        offset: int = 0,
        limit: int = 100,
    ) -> tuple[list[TableRow], int]:
        """List rows of a table in row order.

        Returns:
            Tuple of (rows, total count)

        """
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        total = await db.scalar(
            select(func.count(TableRow.id)).where(TableRow.table_id == ctx.table_id)
        )
        result = await db.execute(
            select(TableRow)
            .where(TableRow.table_id == ctx.table_id)
            .order_by(TableRow.order.asc().nullslast(), TableRow.created_at)
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), int(total or 0)

    async def filter_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        filters: list[dict[str, Any]],
    ) -> list[TableRow]:
        """Rows matching every filter condition, in row order.

        Conditions use the rollup filter operators and compare the same way
        rollup filters do.

        Raises:
            ValidationError: If a condition names an unknown field or operator

        """
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        field_ids = {f.id for f in await load_fields(db, ctx.table_id)}
        conditions = []
        for condition in filters:
            field_id = condition.get("field_id")
            operator = condition.get("operator") or "equals"
            if field_id not in field_ids:
                raise ValidationError(
                    f"Unknown filter field '{field_id}'", details={"field_id": field_id}
                )
            if operator not in RollupFieldHandler.FILTER_OPERATORS:
                raise ValidationError(
                    f"Invalid filter operator '{operator}'", details={"operator": operator}
                )
            conditions.append((field_id, operator, condition.get("value")))

        rows = await self._table_rows(db, ctx.table_id)
        return [
            row
            for row in rows
            if all(
                RollupFieldHandler.matches_filter(row.get_data().get(field_id), operator, value)
                for field_id, operator, value in conditions
            )
        ]

    async def search_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        query: str,
    ) -> list[TableRow]:
        """Rows with any cell containing ``query``, case-insensitively."""
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        rows = await self._table_rows(db, ctx.table_id)
        return [
            row
            for row in rows
            if any(
                RollupFieldHandler.matches_filter(value, "contains", query)
                for key, value in row.get_data().items()
                if not is_computed_at_key(key)
            )
        ]

    async def _table_rows(self, db: AsyncSession, table_id: str) -> list[TableRow]:
        result = await db.execute(
            select(TableRow)
            .where(TableRow.table_id == table_id)
            .order_by(TableRow.order.asc().nullslast(), TableRow.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # ==========================================================================
    # Writes
    # ==========================================================================

    async def create_row(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        data: dict[str, Any],
        order: float | None = None,
    ) -> TableRow:
        """Create a row.

        Unknown and read-only keys are dropped, values are validated and
        relation cells are synced to edges. All computed fields of the new
        row are then evaluated. Without an explicit order the row is
        appended after the current last row.

        Raises:
            InvalidFieldValueError: If a value does not fit its field type

        """
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        fields = await load_fields(db, table_id)
        prepared = prepare_write(data, fields)

        if order is None:
            order = await self.next_order(db, table_id)
        row = TableRow(
            table_id=table_id,
            order=order,
            created_by=user_id,
            updated_by=user_id,
        )
        row.set_data(prepared.values)
        db.add(row)
        await db.flush()

        syncs = await self._sync_links(ctx, row, fields, prepared.links)
        await self.dispatcher.dispatch_many(
            db, [(table_id, row.id, None), *mirror_events(syncs)]
        )

        logger.info("Row created", extra={"row_id": row.id, "table_id": table_id})
        return await load_row(db, row.id)

    async def update_row(
        self,
        db: AsyncSession,
        user_id: str,
        row_id: str,
        data: dict[str, Any],
    ) -> TableRow:
        """Merge values into a row and recompute what depends on them.

        Raises:
            InvalidFieldValueError: If a value does not fit its field type

        """
        ctx, row = await self.gate.require_row_access(db, user_id, row_id)
        fields = await load_fields(db, ctx.table_id)
        return await self._apply(ctx, row, fields, prepare_write(data, fields))

    async def update_cell(
        self,
        db: AsyncSession,
        user_id: str,
        row_id: str,
        field_id: str,
        value: Any,
    ) -> TableRow:
        """Write a single cell.

        Raises:
            ReadOnlyFieldError: If the field is computed or system-managed;
                the row is left untouched
            FieldNotFoundError: If the field is not part of the row's table

        """
        ctx, row = await self.gate.require_row_access(db, user_id, row_id)
        fields = await load_fields(db, ctx.table_id)
        field = next((f for f in fields if f.id == field_id), None)
        if field is None:
            raise FieldNotFoundError(field_id)
        if is_read_only_type(field.field_type):
            raise ReadOnlyFieldError(field.id, field.field_type)
        return await self._apply(ctx, row, fields, prepare_write({field_id: value}, fields))

    async def _apply(
        self,
        ctx: TableAccessContext,
        row: TableRow,
        fields: list[TableField],
        prepared: PreparedWrite,
    ) -> TableRow:
        db = ctx.db
        valid_ids = {f.id for f in fields}
        columns = {"edited": True} if row.is_snapshot else None

        if prepared.values or columns:
            await write_row_data(
                db,
                row.id,
                lambda data: sanitize_row_data({**data, **prepared.values}, valid_ids),
                updated_by=ctx.user_id,
                columns=columns,
            )

        syncs = await self._sync_links(ctx, row, fields, prepared.links)
        if prepared.field_ids:
            await self.dispatcher.dispatch_many(
                db,
                [(ctx.table_id, row.id, prepared.field_ids), *mirror_events(syncs)],
            )
            logger.debug(
                "Row updated",
                extra={"row_id": row.id, "fields": sorted(prepared.field_ids)},
            )

        refreshed = await load_row(db, row.id)
        if refreshed is None:
            raise RowNotFoundError(row.id)
        return refreshed

    async def _sync_links(
        self,
        ctx: TableAccessContext,
        row: TableRow,
        fields: list[TableField],
        links: dict[str, Any],
    ) -> list[LinkSyncResult]:
        by_id = {f.id: f for f in fields}
        syncs = []
        for field_id, desired in links.items():
            syncs.append(
                await self.relations.sync_relation_links(
                    ctx.db, row, by_id[field_id], desired, ctx.user_id
                )
            )
        return syncs

    # ==========================================================================
    # Delete / duplicate / reorder
    # ==========================================================================

    async def delete_row(self, db: AsyncSession, user_id: str, row_id: str) -> None:
        """Delete a row, unlinking it from every row that referenced it."""
        ctx, row = await self.gate.require_row_access(db, user_id, row_id)
        await self.bulk.bulk_delete_rows(db, user_id, ctx.table_id, [row.id])

    async def delete_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        row_ids: list[str],
    ) -> int:
        """Delete several rows of one table."""
        return await self.bulk.bulk_delete_rows(db, user_id, table_id, row_ids)

    async def duplicate_row(self, db: AsyncSession, user_id: str, row_id: str) -> TableRow:
        """Copy a row directly below the original, with the same links."""
        ctx, row = await self.gate.require_row_access(db, user_id, row_id)
        new_ids = await self.bulk.bulk_duplicate_rows(db, user_id, ctx.table_id, [row.id])
        duplicate = await load_row(db, new_ids[0])
        if duplicate is None:
            raise RowNotFoundError(new_ids[0])
        return duplicate

    async def reorder_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        orders: list[tuple[str, float]],
    ) -> list[TableRow]:
        """Set the order of rows in a table."""
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        for row_id, order in orders:
            result = await db.execute(
                update(TableRow)
                .where(TableRow.id == row_id, TableRow.table_id == ctx.table_id)
                .values(order=order)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise RowNotFoundError(row_id)
        result = await db.execute(
            select(TableRow)
            .where(TableRow.id.in_([row_id for row_id, _ in orders]))
            .order_by(TableRow.order.asc().nullslast())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def next_order(self, db: AsyncSession, table_id: str) -> float:
        current = await db.scalar(
            select(func.max(TableRow.order)).where(TableRow.table_id == table_id)
        )
        return 0.0 if current is None else float(current) + 1
