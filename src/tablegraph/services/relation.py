"""Relation graph store.

Edges in ``table_relations`` are the source of truth for links between
rows. The relation cell of the linking row caches the linked ids and is
rewritten from the edge set after every sync. Bidirectional relations keep
a mirror edge set under the paired reverse field of the related table.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field as dataclass_field
from typing import Any

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.core.exceptions import FieldNotFoundError, RelationConfigError
from tablegraph.core.logging import get_logger
from tablegraph.fields.types.relation import RelationFieldHandler, normalize_row_ids
from tablegraph.models.field import FieldType, TableField
from tablegraph.models.relation import TableRelation
from tablegraph.models.row import TableRow
from tablegraph.models.table import Table
from tablegraph.services.access import AccessGate, TableAccessContext
from tablegraph.services.store import load_fields, write_row_data

logger = get_logger(__name__)


@dataclass
class LinkSyncResult:
    """What a relation sync changed."""

    related_table_id: str
    reverse_field_id: str | None
    linked_ids: list[str]
    added: list[str]
    removed: list[str]

    @property
    def touched_ids(self) -> list[str]:
        """Related rows whose mirror side changed."""
        return self.added + self.removed


@dataclass
class InboundLinks:
    """Links from one referencing row into a set of rows about to be deleted."""

    table_id: str
    field_ids: set[str] = dataclass_field(default_factory=set)
    removed_ids: set[str] = dataclass_field(default_factory=set)


@dataclass
class RelatedRows:
    rows: list[TableRow]
    display_field_id: str | None


def resolve_display_field_id(
    configured: str | None,
    fields: Sequence[TableField],
) -> str | None:
    """
    Pick the field used to label related rows.

    Falls back from the configured field (by id or name) to the primary
    field, the first text field, the first long text field and finally the
    first field.
    """
    if not fields:
        return None
    if configured:
        for f in fields:
            if f.id == configured or f.name == configured:
                return f.id
    for predicate in (
        lambda f: f.is_primary,
        lambda f: f.field_type == FieldType.TEXT.value,
        lambda f: f.field_type == FieldType.LONG_TEXT.value,
    ):
        for f in fields:
            if predicate(f):
                return f.id
    return fields[0].id


def relation_config(field: TableField) -> dict[str, Any]:
    """Normalized config of a relation field."""
    if field.field_type != FieldType.RELATION.value:
        raise RelationConfigError(f"Field '{field.name}' is not a relation field", field.id)
    try:
        return RelationFieldHandler.normalize_config(field.get_config())
    except ValueError as e:
        raise RelationConfigError(str(e), field.id) from e


class RelationService:
    """Create, sync and query relation links."""

    def __init__(self, gate: AccessGate | None = None) -> None:
        self.gate = gate or AccessGate()

    # ==========================================================================
    # Configuration
    # ==========================================================================

    async def configure_relation_field(
        self,
        ctx: TableAccessContext,
        field: TableField,
        *,
        related_table_id: str,
        allow_multiple: bool = True,
        bidirectional: bool = True,
        reverse_allow_multiple: bool | None = None,
        limit: int | None = None,
        display_field_id: str | None = None,
        reverse_field_name: str | None = None,
        relation_type: str | None = None,
    ) -> TableField:
        """
        Point a relation field at a table and set up its reverse field.

        When bidirectional, a relation field named ``Related <table>`` is
        created in the related table unless the pair already exists. Both
        tables must belong to the same workspace.

        Raises:
            RelationConfigError: If the related table is missing or lives in
                another workspace
        """
        db = ctx.db
        related_table = await db.get(Table, related_table_id)
        if related_table is None:
            raise RelationConfigError("Related table not found", field.id)
        if related_table.workspace_id != ctx.workspace_id:
            raise RelationConfigError(
                "Related table must be in the same workspace", field.id
            )

        current = field.get_config()
        config = RelationFieldHandler.normalize_config(
            {
                **current,
                "related_table_id": related_table_id,
                "relation_type": relation_type or current.get("relation_type"),
                "allow_multiple": allow_multiple,
                "bidirectional": bidirectional,
                "limit": limit,
                "display_field_id": display_field_id or current.get("display_field_id"),
            }
        )

        reverse = None
        if current.get("reverse_field_id"):
            reverse = await db.get(TableField, current["reverse_field_id"])
            if reverse is not None and reverse.table_id != related_table_id:
                # the relation now points at another table; the old pair stays behind unpaired
                await self._unpair(reverse)
                reverse = None

        if bidirectional:
            reverse_multiple = (
                reverse_allow_multiple if reverse_allow_multiple is not None else not allow_multiple
            )
            reverse_config = {
                "related_table_id": ctx.table_id,
                "relation_type": "many_to_many" if reverse_multiple else "many_to_one",
                "allow_multiple": reverse_multiple,
                "bidirectional": True,
                "reverse_field_id": field.id,
            }
            if reverse is None:
                reverse = TableField(
                    table_id=related_table_id,
                    name=reverse_field_name or f"Related {ctx.table.name}",
                    field_type=FieldType.RELATION.value,
                    position=await self._next_position(db, related_table_id),
                )
                reverse.set_config(reverse_config)
                db.add(reverse)
                await db.flush()
            else:
                reverse.set_config({**reverse.get_config(), **reverse_config})
            config["reverse_field_id"] = reverse.id
        else:
            if reverse is not None:
                await self._unpair(reverse)
            config["reverse_field_id"] = None

        field.set_config(config)
        await db.flush()
        logger.info(
            "Relation field configured",
            extra={
                "field_id": field.id,
                "related_table_id": related_table_id,
                "reverse_field_id": config["reverse_field_id"],
            },
        )
        return field

    async def _unpair(self, reverse: TableField) -> None:
        reverse_config = reverse.get_config()
        reverse_config["bidirectional"] = False
        reverse_config["reverse_field_id"] = None
        reverse.set_config(reverse_config)

    async def _next_position(self, db: AsyncSession, table_id: str) -> int:
        result = await db.execute(
            select(func.max(TableField.position)).where(TableField.table_id == table_id)
        )
        current = result.scalar()
        return 0 if current is None else current + 1

    # ==========================================================================
    # Link sync
    # ==========================================================================

    async def sync_relation_links(
        self,
        db: AsyncSession,
        row: TableRow,
        field: TableField,
        desired: Any,
        user_id: str | None = None,
    ) -> LinkSyncResult:
        """
        Make the row's links through ``field`` equal ``desired``.

        Ids are de-duplicated, capped to one when the field does not allow
        multiple links, capped to the configured limit, and restricted to rows
        that exist in the related table. Only the difference against the
        current edges is written. When the field is bidirectional, mirror
        edges are kept in step and each touched related row gets its reverse
        cell rebuilt from its edges.
        """
        config = relation_config(field)
        related_table_id = config["related_table_id"]

        requested = RelationFieldHandler.cap_links(normalize_row_ids(desired), config)
        valid_ids: list[str] = []
        if requested:
            result = await db.execute(
                select(TableRow.id).where(
                    TableRow.id.in_(requested),
                    TableRow.table_id == related_table_id,
                )
            )
            existing_rows = set(result.scalars().all())
            valid_ids = [row_id for row_id in requested if row_id in existing_rows]

        current_ids = await self._linked_ids(db, row.id, field.id)
        valid_set = set(valid_ids)
        current_set = set(current_ids)
        added = [row_id for row_id in valid_ids if row_id not in current_set]
        removed = [row_id for row_id in current_ids if row_id not in valid_set]

        if removed:
            await db.execute(
                delete(TableRelation).where(
                    TableRelation.from_row_id == row.id,
                    TableRelation.from_field_id == field.id,
                    TableRelation.to_row_id.in_(removed),
                )
            )
        for to_row_id in added:
            db.add(
                TableRelation(
                    from_table_id=row.table_id,
                    from_field_id=field.id,
                    from_row_id=row.id,
                    to_table_id=related_table_id,
                    to_row_id=to_row_id,
                    created_by=user_id,
                )
            )
        await db.flush()

        await write_row_data(
            db,
            row.id,
            lambda data: {**data, field.id: valid_ids},
            updated_by=user_id,
        )

        reverse_field_id = config.get("reverse_field_id") if config["bidirectional"] else None
        if reverse_field_id and (added or removed):
            reverse_field_id = await self._sync_mirror(
                db, row, related_table_id, reverse_field_id, added, removed, user_id
            )

        return LinkSyncResult(
            related_table_id=related_table_id,
            reverse_field_id=reverse_field_id,
            linked_ids=valid_ids,
            added=added,
            removed=removed,
        )

    async def _sync_mirror(
        self,
        db: AsyncSession,
        row: TableRow,
        related_table_id: str,
        reverse_field_id: str,
        added: list[str],
        removed: list[str],
        user_id: str | None,
    ) -> str | None:
        reverse = await db.get(TableField, reverse_field_id)
        if reverse is None or reverse.table_id != related_table_id:
            logger.warning(
                "Reverse relation field missing, mirror links skipped",
                extra={"row_id": row.id, "reverse_field_id": reverse_field_id},
            )
            return None

        if removed:
            await db.execute(
                delete(TableRelation).where(
                    TableRelation.from_field_id == reverse_field_id,
                    TableRelation.from_row_id.in_(removed),
                    TableRelation.to_row_id == row.id,
                )
            )
        if added:
            result = await db.execute(
                select(TableRelation.from_row_id).where(
                    TableRelation.from_field_id == reverse_field_id,
                    TableRelation.from_row_id.in_(added),
                    TableRelation.to_row_id == row.id,
                )
            )
            already = set(result.scalars().all())
            for from_row_id in added:
                if from_row_id in already:
                    continue
                db.add(
                    TableRelation(
                        from_table_id=related_table_id,
                        from_field_id=reverse_field_id,
                        from_row_id=from_row_id,
                        to_table_id=row.table_id,
                        to_row_id=row.id,
                        created_by=user_id,
                    )
                )
        await db.flush()

        for related_row_id in added + removed:
            await self.refresh_cached_links(db, related_row_id, reverse_field_id)
        return reverse_field_id

    async def _linked_ids(self, db: AsyncSession, row_id: str, field_id: str) -> list[str]:
        result = await db.execute(
            select(TableRelation.to_row_id)
            .where(
                TableRelation.from_row_id == row_id,
                TableRelation.from_field_id == field_id,
            )
            .order_by(TableRelation.created_at, TableRelation.id)
        )
        return list(result.scalars().all())

    async def refresh_cached_links(self, db: AsyncSession, row_id: str, field_id: str) -> None:
        """Rebuild a relation cell from the edge table."""
        linked = await self._linked_ids(db, row_id, field_id)
        await write_row_data(db, row_id, lambda data: {**data, field_id: linked})

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_related_rows(
        self,
        db: AsyncSession,
        row_id: str,
        field: TableField,
    ) -> RelatedRows:
        """Rows linked from ``row_id`` through ``field``, in row order."""
        config = relation_config(field)
        result = await db.execute(
            select(TableRow)
            .join(TableRelation, TableRelation.to_row_id == TableRow.id)
            .where(
                TableRelation.from_row_id == row_id,
                TableRelation.from_field_id == field.id,
            )
            .order_by(TableRow.order.asc().nullslast(), TableRow.created_at)
            .execution_options(populate_existing=True)
        )
        rows = list(result.scalars().all())
        related_fields = await load_fields(db, config["related_table_id"])
        return RelatedRows(
            rows=rows,
            display_field_id=resolve_display_field_id(config.get("display_field_id"), related_fields),
        )

    async def list_related_rows(
        self,
        db: AsyncSession,
        user_id: str,
        row_id: str,
        field_id: str,
    ) -> RelatedRows:
        """Related rows of a relation cell, for a user with access to the row."""
        ctx, row = await self.gate.require_row_access(db, user_id, row_id)
        field = await db.get(TableField, field_id)
        if field is None or field.table_id != ctx.table_id:
            raise FieldNotFoundError(field_id)
        return await self.get_related_rows(db, row.id, field)

    async def count_relation_links_for_rows(
        self,
        db: AsyncSession,
        table_id: str,
        row_ids: Iterable[str],
    ) -> int:
        """Number of edges with either end among ``row_ids`` of ``table_id``."""
        ids = list(dict.fromkeys(row_ids))
        if not ids:
            return 0
        result = await db.execute(
            select(func.count(TableRelation.id)).where(
                or_(
                    and_(TableRelation.from_table_id == table_id, TableRelation.from_row_id.in_(ids)),
                    and_(TableRelation.to_table_id == table_id, TableRelation.to_row_id.in_(ids)),
                )
            )
        )
        return int(result.scalar() or 0)

    # ==========================================================================
    # Deletion cascade
    # ==========================================================================

    async def collect_inbound_links(
        self,
        db: AsyncSession,
        row_ids: Iterable[str],
    ) -> dict[str, InboundLinks]:
        """
        Group the edges pointing at ``row_ids`` by the row that holds them.

        Rows that are themselves being deleted are left out.
        """
        ids = set(row_ids)
        if not ids:
            return {}
        result = await db.execute(
            select(
                TableRelation.from_row_id,
                TableRelation.from_table_id,
                TableRelation.from_field_id,
                TableRelation.to_row_id,
            ).where(TableRelation.to_row_id.in_(ids))
        )
        grouped: dict[str, InboundLinks] = {}
        for from_row_id, from_table_id, from_field_id, to_row_id in result.all():
            if from_row_id in ids:
                continue
            links = grouped.setdefault(from_row_id, InboundLinks(table_id=from_table_id))
            links.field_ids.add(from_field_id)
            links.removed_ids.add(to_row_id)
        return grouped

    async def delete_edges_for_rows(self, db: AsyncSession, row_ids: Iterable[str]) -> None:
        """Remove every edge with either end among ``row_ids``."""
        ids = list(dict.fromkeys(row_ids))
        if not ids:
            return
        await db.execute(
            delete(TableRelation).where(
                or_(TableRelation.from_row_id.in_(ids), TableRelation.to_row_id.in_(ids))
            )
        )

    async def delete_edges_for_field(self, db: AsyncSession, field_id: str) -> None:
        await db.execute(delete(TableRelation).where(TableRelation.from_field_id == field_id))

    async def prune_cached_links(
        self,
        db: AsyncSession,
        affected: dict[str, InboundLinks],
    ) -> None:
        """Strip deleted row ids from the relation cells of referencing rows."""
        for row_id, links in affected.items():

            def prune(data: dict[str, Any], links: InboundLinks = links) -> dict[str, Any] | None:
                changed = False
                for field_id in links.field_ids:
                    cached = data.get(field_id)
                    if isinstance(cached, list):
                        kept = [v for v in cached if v not in links.removed_ids]
                        if len(kept) != len(cached):
                            data[field_id] = kept
                            changed = True
                return data if changed else None

            await write_row_data(db, row_id, prune)

    async def copy_outbound_links(
        self,
        db: AsyncSession,
        source_row_id: str,
        target_row: TableRow,
        relation_fields: Sequence[TableField],
        user_id: str | None = None,
    ) -> list[tuple[TableField, LinkSyncResult]]:
        """Give ``target_row`` the same outbound links as the source row."""
        results = []
        for relation_field in relation_fields:
            linked = await self._linked_ids(db, source_row_id, relation_field.id)
            if not linked:
                continue
            sync = await self.sync_relation_links(db, target_row, relation_field, linked, user_id)
            results.append((relation_field, sync))
        return results
