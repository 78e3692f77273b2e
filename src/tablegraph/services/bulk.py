"""Bulk mutation orchestrator.

Bulk update, delete, duplicate and insert run the row mutation through a
``BulkOperationStrategy``: ``RemoteProcedureStrategy`` calls the stored
procedures installed on PostgreSQL, ``LocalStrategy`` does the same work
with ORM statements. Everything around the mutation (authorization, value
validation, capture of inbound links, relation sync and recomputation) lives
in the orchestrator, so both strategies end in the same state.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.core.config import Settings, settings as default_settings
from tablegraph.core.exceptions import BatchTooLargeError, PersistenceError, RowNotFoundError
from tablegraph.core.logging import get_logger
from tablegraph.db.base import generate_uuid
from tablegraph.db.procedures import (
    BULK_DELETE_ROWS,
    BULK_DUPLICATE_ROWS,
    BULK_INSERT_ROWS,
    BULK_UPDATE_ROWS,
)
from tablegraph.fields import sanitize_row_data
from tablegraph.models.field import FieldType
from tablegraph.models.row import TableRow
from tablegraph.services.access import AccessGate
from tablegraph.services.recompute import RecomputeDispatcher
from tablegraph.services.relation import LinkSyncResult, RelationService
from tablegraph.services.store import load_fields, load_row, load_rows, write_row_data
from tablegraph.services.writes import mirror_events, prepare_write

logger = get_logger(__name__)


@dataclass
class DuplicateItem:
    source_id: str
    new_id: str
    order: float


@dataclass
class InsertItem:
    id: str
    data: dict[str, Any]
    order: float | None = None
    source_entity_id: str | None = None
    source_entity_type: str | None = None
    source_sync_mode: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "data": self.data,
            "order": self.order,
            "source_entity_id": self.source_entity_id,
            "source_entity_type": self.source_entity_type,
            "source_sync_mode": self.source_sync_mode,
        }


# ==========================================================================
# Strategies
# ==========================================================================


class BulkOperationStrategy(ABC):
    """Persists the row mutation of a bulk operation, nothing else."""

    name: str

    @abstractmethod
    async def update_rows(
        self,
        db: AsyncSession,
        table_id: str,
        row_ids: list[str],
        updates: dict[str, Any],
        valid_field_ids: set[str],
        user_id: str,
    ) -> list[str]:
        """Merge ``updates`` into each row; returns the ids written."""

    @abstractmethod
    async def delete_rows(self, db: AsyncSession, table_id: str, row_ids: list[str]) -> int:
        """Delete rows; returns how many were removed."""

    @abstractmethod
    async def duplicate_rows(
        self,
        db: AsyncSession,
        table_id: str,
        items: list[DuplicateItem],
        user_id: str,
    ) -> list[str]:
        """Copy rows verbatim under new ids and orders."""

    @abstractmethod
    async def insert_rows(
        self,
        db: AsyncSession,
        table_id: str,
        items: list[InsertItem],
        user_id: str,
    ) -> list[str]:
        """Insert rows; returns their ids in input order."""


class LocalStrategy(BulkOperationStrategy):
    """Bulk mutations as ORM statements on the caller's session."""

    name = "local"

    async def update_rows(
        self,
        db: AsyncSession,
        table_id: str,
        row_ids: list[str],
        updates: dict[str, Any],
        valid_field_ids: set[str],
        user_id: str,
    ) -> list[str]:
        written = []
        for row in await load_rows(db, row_ids):
            if row.table_id != table_id:
                continue
            result = await write_row_data(
                db,
                row.id,
                lambda data: sanitize_row_data({**data, **updates}, valid_field_ids),
                updated_by=user_id,
                columns={"edited": True} if row.is_snapshot else None,
            )
            if result is not None:
                written.append(row.id)
        return written

    async def delete_rows(self, db: AsyncSession, table_id: str, row_ids: list[str]) -> int:
        result = await db.execute(
            delete(TableRow)
            .where(TableRow.table_id == table_id, TableRow.id.in_(row_ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def duplicate_rows(
        self,
        db: AsyncSession,
        table_id: str,
        items: list[DuplicateItem],
        user_id: str,
    ) -> list[str]:
        sources = {row.id: row for row in await load_rows(db, [i.source_id for i in items])}
        created = []
        for item in items:
            source = sources.get(item.source_id)
            if source is None or source.table_id != table_id:
                continue
            db.add(
                TableRow(
                    id=item.new_id,
                    table_id=table_id,
                    data=source.data,
                    order=item.order,
                    source_entity_id=source.source_entity_id,
                    source_entity_type=source.source_entity_type,
                    source_sync_mode=(
                        source.source_sync_mode or "snapshot" if source.source_entity_id else None
                    ),
                    edited=source.edited,
                    created_by=user_id,
                    updated_by=user_id,
                )
            )
            created.append(item.new_id)
        await db.flush()
        return created

    async def insert_rows(
        self,
        db: AsyncSession,
        table_id: str,
        items: list[InsertItem],
        user_id: str,
    ) -> list[str]:
        for item in items:
            row = TableRow(
                id=item.id,
                table_id=table_id,
                order=item.order,
                source_entity_id=item.source_entity_id,
                source_entity_type=item.source_entity_type,
                source_sync_mode=item.source_sync_mode,
                created_by=user_id,
                updated_by=user_id,
            )
            row.set_data(item.data)
            db.add(row)
        await db.flush()
        return [item.id for item in items]


class RemoteProcedureStrategy(BulkOperationStrategy):
    """
    Bulk mutations through the stored procedures.

    Only PostgreSQL carries the procedures; on any other dialect, or when a
    call fails, the operation is handed to the fallback strategy. Each call
    runs in a savepoint so a failure leaves the transaction usable.
    """

    name = "remote_procedure"

    def __init__(self, fallback: BulkOperationStrategy | None = None) -> None:
        self.fallback = fallback or LocalStrategy()

    @staticmethod
    def _supported(db: AsyncSession) -> bool:
        return db.get_bind().dialect.name == "postgresql"

    async def _call(self, db: AsyncSession, sql: str, params: dict[str, Any]):
        async with db.begin_nested():
            return await db.execute(text(sql), params)

    def _log_fallback(self, procedure: str, table_id: str, error: Exception) -> None:
        logger.warning(
            "Bulk procedure failed, using local path",
            extra={"procedure": procedure, "table_id": table_id, "error": str(error)},
        )

    async def update_rows(
        self,
        db: AsyncSession,
        table_id: str,
        row_ids: list[str],
        updates: dict[str, Any],
        valid_field_ids: set[str],
        user_id: str,
    ) -> list[str]:
        args = (db, table_id, row_ids, updates, valid_field_ids, user_id)
        if not self._supported(db):
            return await self.fallback.update_rows(*args)
        try:
            result = await self._call(
                db,
                f"SELECT * FROM {BULK_UPDATE_ROWS}(:table_id, CAST(:row_ids AS varchar[]), "
                "CAST(:updates AS jsonb), CAST(:valid_ids AS varchar[]), :user_id)",
                {
                    "table_id": table_id,
                    "row_ids": row_ids,
                    "updates": json.dumps(updates, default=str),
                    "valid_ids": sorted(valid_field_ids),
                    "user_id": user_id,
                },
            )
        except SQLAlchemyError as e:
            self._log_fallback(BULK_UPDATE_ROWS, table_id, e)
            return await self.fallback.update_rows(*args)
        return list(result.scalars().all())

    async def delete_rows(self, db: AsyncSession, table_id: str, row_ids: list[str]) -> int:
        if not self._supported(db):
            return await self.fallback.delete_rows(db, table_id, row_ids)
        try:
            result = await self._call(
                db,
                f"SELECT {BULK_DELETE_ROWS}(:table_id, CAST(:row_ids AS varchar[]))",
                {"table_id": table_id, "row_ids": row_ids},
            )
        except SQLAlchemyError as e:
            self._log_fallback(BULK_DELETE_ROWS, table_id, e)
            return await self.fallback.delete_rows(db, table_id, row_ids)
        return int(result.scalar() or 0)

    async def duplicate_rows(
        self,
        db: AsyncSession,
        table_id: str,
        items: list[DuplicateItem],
        user_id: str,
    ) -> list[str]:
        if not self._supported(db):
            return await self.fallback.duplicate_rows(db, table_id, items, user_id)
        payload = [
            {"source_id": i.source_id, "new_id": i.new_id, "order": i.order} for i in items
        ]
        try:
            result = await self._call(
                db,
                f"SELECT * FROM {BULK_DUPLICATE_ROWS}(:table_id, CAST(:items AS jsonb), :user_id)",
                {"table_id": table_id, "items": json.dumps(payload), "user_id": user_id},
            )
        except SQLAlchemyError as e:
            self._log_fallback(BULK_DUPLICATE_ROWS, table_id, e)
            return await self.fallback.duplicate_rows(db, table_id, items, user_id)
        created = set(result.scalars().all())
        return [i.new_id for i in items if i.new_id in created]

    async def insert_rows(
        self,
        db: AsyncSession,
        table_id: str,
        items: list[InsertItem],
        user_id: str,
    ) -> list[str]:
        if not self._supported(db):
            return await self.fallback.insert_rows(db, table_id, items, user_id)
        try:
            await self._call(
                db,
                f"SELECT * FROM {BULK_INSERT_ROWS}(:table_id, CAST(:rows AS jsonb), :user_id)",
                {
                    "table_id": table_id,
                    "rows": json.dumps([i.to_payload() for i in items], default=str),
                    "user_id": user_id,
                },
            )
        except SQLAlchemyError as e:
            self._log_fallback(BULK_INSERT_ROWS, table_id, e)
            return await self.fallback.insert_rows(db, table_id, items, user_id)
        return [item.id for item in items]


def select_strategy(settings: Settings) -> BulkOperationStrategy:
    """Pick the bulk strategy for a configuration."""
    if settings.bulk_rpc_enabled:
        return RemoteProcedureStrategy(LocalStrategy())
    return LocalStrategy()


# ==========================================================================
# Orchestrator
# ==========================================================================


class BulkMutationOrchestrator:
    """Bulk update, delete, duplicate and insert for one table."""

    def __init__(
        self,
        settings: Settings | None = None,
        gate: AccessGate | None = None,
        relations: RelationService | None = None,
        dispatcher: RecomputeDispatcher | None = None,
        strategy: BulkOperationStrategy | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.gate = gate or AccessGate()
        self.relations = relations or RelationService(self.gate)
        self.dispatcher = dispatcher or RecomputeDispatcher(
            settings=self.settings, relations=self.relations
        )
        self.strategy = strategy or select_strategy(self.settings)

    def _check_size(self, size: int) -> None:
        if size > self.settings.max_bulk_rows:
            raise BatchTooLargeError(size, self.settings.max_bulk_rows)

    async def _require_rows(self, db: AsyncSession, table_id: str, row_ids: list[str]) -> None:
        result = await db.execute(
            select(TableRow.id).where(TableRow.table_id == table_id, TableRow.id.in_(row_ids))
        )
        found = set(result.scalars().all())
        for row_id in row_ids:
            if row_id not in found:
                raise RowNotFoundError(row_id)

    # --------------------------------------------------------------------------
    # Update
    # --------------------------------------------------------------------------

    async def bulk_update_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        row_ids: list[str],
        updates: dict[str, Any],
    ) -> list[str]:
        """Apply the same values to several rows.

        Values are validated once for the batch. Relation cells are synced
        per row, then every row is recomputed for the changed fields.

        Returns:
            Updated row ids, in request order

        Raises:
            BatchTooLargeError: If the batch exceeds ``max_bulk_rows``
            RowNotFoundError: If an id is not a row of the table
            InvalidFieldValueError: If a value does not fit its field type

        """
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        ids = list(dict.fromkeys(row_ids))
        self._check_size(len(ids))
        if not ids:
            return []

        fields = await load_fields(db, table_id)
        prepared = prepare_write(updates, fields)
        await self._require_rows(db, table_id, ids)

        if prepared.values:
            await self.strategy.update_rows(
                db, table_id, ids, prepared.values, {f.id for f in fields}, ctx.user_id
            )

        syncs: list[LinkSyncResult] = []
        if prepared.links:
            by_id = {f.id: f for f in fields}
            for row_id in ids:
                row = await load_row(db, row_id)
                for field_id, desired in prepared.links.items():
                    syncs.append(
                        await self.relations.sync_relation_links(
                            db, row, by_id[field_id], desired, user_id
                        )
                    )

        if prepared.field_ids:
            await self.dispatcher.dispatch_many(
                db,
                [(table_id, row_id, prepared.field_ids) for row_id in ids] + mirror_events(syncs),
            )

        logger.info(
            "Bulk update completed",
            extra={
                "table_id": table_id,
                "rows": len(ids),
                "fields": sorted(prepared.field_ids),
                "strategy": self.strategy.name,
            },
        )
        return ids

    # --------------------------------------------------------------------------
    # Delete
    # --------------------------------------------------------------------------

    async def bulk_delete_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        row_ids: list[str],
    ) -> int:
        """Delete rows and unlink them everywhere.

        Links pointing at the rows are captured first; after the delete the
        referencing rows get the ids pruned from their relation cells and
        are recomputed.

        Returns:
            Number of rows deleted

        """
        await self.gate.require_table_access(db, user_id, table_id)
        ids = list(dict.fromkeys(row_ids))
        self._check_size(len(ids))
        if not ids:
            return 0
        await self._require_rows(db, table_id, ids)

        inbound = await self.relations.collect_inbound_links(db, ids)
        await self.relations.delete_edges_for_rows(db, ids)
        deleted = await self.strategy.delete_rows(db, table_id, ids)
        await self.relations.prune_cached_links(db, inbound)
        await self.dispatcher.dispatch_many(
            db,
            [(links.table_id, row_id, links.field_ids) for row_id, links in inbound.items()],
        )

        logger.info(
            "Bulk delete completed",
            extra={
                "table_id": table_id,
                "rows": deleted,
                "referencing_rows": len(inbound),
                "strategy": self.strategy.name,
            },
        )
        return deleted

    # --------------------------------------------------------------------------
    # Duplicate
    # --------------------------------------------------------------------------

    async def bulk_duplicate_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        row_ids: list[str],
    ) -> list[str]:
        """Copy rows directly below their originals.

        Data, computed values included, is copied as is. Outbound links are
        copied too, so the mirrored rows list the duplicate; the duplicates
        themselves are not recomputed.

        Returns:
            New row ids, in request order

        """
        await self.gate.require_table_access(db, user_id, table_id)
        ids = list(dict.fromkeys(row_ids))
        self._check_size(len(ids))
        if not ids:
            return []
        await self._require_rows(db, table_id, ids)

        sources = {row.id: row for row in await load_rows(db, ids)}
        ordered_sources = [sources[row_id] for row_id in ids]
        orders = await self.duplicate_orders(db, table_id, ordered_sources)
        items = [
            DuplicateItem(source_id=source.id, new_id=generate_uuid(), order=order)
            for source, order in zip(ordered_sources, orders)
        ]
        created = await self.strategy.duplicate_rows(db, table_id, items, user_id)

        relation_fields = [
            f
            for f in await load_fields(db, table_id)
            if f.field_type == FieldType.RELATION.value and f.get_config().get("related_table_id")
        ]
        syncs: list[LinkSyncResult] = []
        if relation_fields:
            created_set = set(created)
            for item in items:
                if item.new_id not in created_set:
                    continue
                target = await load_row(db, item.new_id)
                copied = await self.relations.copy_outbound_links(
                    db, item.source_id, target, relation_fields, user_id
                )
                syncs.extend(sync for _, sync in copied)
        await self.dispatcher.dispatch_many(db, mirror_events(syncs))

        logger.info(
            "Bulk duplicate completed",
            extra={"table_id": table_id, "rows": len(created), "strategy": self.strategy.name},
        )
        return created

    async def duplicate_orders(
        self,
        db: AsyncSession,
        table_id: str,
        sources: list[TableRow],
    ) -> list[float]:
        """
        Orders for duplicates of ``sources``.

        The i-th duplicate goes ``step * (i + 1)`` after its source, pulled
        back to the middle of the gap when that would reach the next row.
        """
        step = self.settings.duplicate_order_step
        orders = []
        for index, source in enumerate(sources):
            base = float(source.order or 0)
            next_order = await db.scalar(
                select(func.min(TableRow.order)).where(
                    TableRow.table_id == table_id, TableRow.order > base
                )
            )
            offset = step * (index + 1)
            if next_order is not None and base + offset >= next_order:
                offset = (next_order - base) / 2
            orders.append(base + offset)
        return orders

    # --------------------------------------------------------------------------
    # Insert
    # --------------------------------------------------------------------------

    async def bulk_insert_rows(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        rows: list[dict[str, Any]],
    ) -> list[str]:
        """Insert rows in chunks.

        Each row is a mapping with ``data`` and optionally ``order`` and the
        ``source_entity_*`` keys. Read-only keys are dropped. Every chunk is
        committed on its own; a failing chunk stops the insert with
        ``PersistenceError`` and leaves earlier chunks in place. Once all
        chunks are in, relation cells are synced and the new rows computed.

        Returns:
            Inserted row ids, in input order

        """
        await self.gate.require_table_access(db, user_id, table_id)
        self._check_size(len(rows))
        if not rows:
            return []

        fields = await load_fields(db, table_id)
        by_id = {f.id: f for f in fields}
        next_order = await db.scalar(
            select(func.max(TableRow.order)).where(TableRow.table_id == table_id)
        )
        next_order = 0.0 if next_order is None else float(next_order) + 1

        items: list[InsertItem] = []
        links: dict[str, dict[str, Any]] = {}
        for row in rows:
            prepared = prepare_write(row.get("data") or {}, fields)
            order = row.get("order")
            if order is None:
                order = next_order
                next_order += 1
            source_entity_id = row.get("source_entity_id")
            item = InsertItem(
                id=generate_uuid(),
                data=prepared.values,
                order=order,
                source_entity_id=source_entity_id,
                source_entity_type=row.get("source_entity_type") if source_entity_id else None,
                source_sync_mode=(row.get("source_sync_mode") or "snapshot")
                if source_entity_id
                else None,
            )
            items.append(item)
            if prepared.links:
                links[item.id] = prepared.links

        chunk_size = self.settings.bulk_insert_chunk_size
        inserted: list[str] = []
        for index, start in enumerate(range(0, len(items), chunk_size)):
            chunk = items[start : start + chunk_size]
            try:
                inserted.extend(await self._insert_chunk(db, table_id, chunk, user_id))
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(
                    "Bulk insert chunk failed",
                    extra={"table_id": table_id, "chunk": index, "inserted": len(inserted)},
                )
                raise PersistenceError(
                    f"Failed to insert rows: {e}",
                    details={"chunk": index, "inserted_ids": inserted},
                ) from e

        syncs: list[LinkSyncResult] = []
        for row_id, row_links in links.items():
            row = await load_row(db, row_id)
            for field_id, desired in row_links.items():
                syncs.append(
                    await self.relations.sync_relation_links(
                        db, row, by_id[field_id], desired, user_id
                    )
                )

        await self.dispatcher.dispatch_many(
            db, [(table_id, row_id, None) for row_id in inserted] + mirror_events(syncs)
        )

        logger.info(
            "Bulk insert completed",
            extra={
                "table_id": table_id,
                "rows": len(inserted),
                "chunks": (len(items) + chunk_size - 1) // chunk_size,
                "strategy": self.strategy.name,
            },
        )
        return inserted

    async def _insert_chunk(
        self,
        db: AsyncSession,
        table_id: str,
        chunk: list[InsertItem],
        user_id: str,
    ) -> list[str]:
        return await self.strategy.insert_rows(db, table_id, chunk, user_id)
