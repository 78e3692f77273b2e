"""Table service for business logic."""

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.core.config import Settings, settings as default_settings
from tablegraph.core.logging import get_logger
from tablegraph.db.base import generate_uuid
from tablegraph.fields.sanitize import COMPUTED_AT_SUFFIX, computed_at_key
from tablegraph.models.field import FieldType, TableField
from tablegraph.models.row import TableRow
from tablegraph.models.table import Table
from tablegraph.schemas.table import TableCreate, TableUpdate
from tablegraph.services.access import AccessGate
from tablegraph.services.recompute import RecomputeDispatcher
from tablegraph.services.relation import RelationService
from tablegraph.services.store import load_fields
from tablegraph.services.writes import mirror_events

logger = get_logger(__name__)

PRIMARY_FIELD_NAME = "Name"
COPY_SUFFIX = " (Copy)"


class TableService:
    """Service for table operations."""

    def __init__(
        self,
        gate: AccessGate | None = None,
        relations: RelationService | None = None,
        dispatcher: RecomputeDispatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.gate = gate or AccessGate()
        self.relations = relations or RelationService(self.gate)
        self.dispatcher = dispatcher or RecomputeDispatcher(
            settings=self.settings, relations=self.relations
        )

    async def create_table(
        self,
        db: AsyncSession,
        user_id: str,
        workspace_id: str,
        table_data: TableCreate,
    ) -> Table:
        """Create a table with a primary ``Name`` text field.

        Args:
            db: Database session
            user_id: User ID creating the table
            workspace_id: Workspace that will own the table
            table_data: Table creation data

        Returns:
            Created table

        Raises:
            WorkspaceNotFoundError: If the workspace doesn't exist
            PermissionDeniedError: If the user is not a workspace member

        """
        await self.gate.require_workspace_access(db, user_id, workspace_id)

        table = Table(
            workspace_id=workspace_id,
            name=table_data.name,
            description=table_data.description,
            created_by=user_id,
        )
        db.add(table)
        await db.flush()

        db.add(
            TableField(
                table_id=table.id,
                name=PRIMARY_FIELD_NAME,
                field_type=FieldType.TEXT.value,
                position=0,
                is_primary=True,
            )
        )
        await db.flush()

        logger.info(
            "Table created",
            extra={"table_id": table.id, "workspace_id": workspace_id, "user_id": user_id},
        )
        return table

    async def get_table(self, db: AsyncSession, user_id: str, table_id: str) -> Table:
        """Get a table, checking workspace membership."""
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        return ctx.table

    async def update_table(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        table_data: TableUpdate,
    ) -> Table:
        """Rename a table or change its description; unset fields are kept."""
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        table = ctx.table
        for key, value in table_data.model_dump(exclude_unset=True).items():
            if key == "name" and value is None:
                continue
            setattr(table, key, value)
        await db.flush()
        return table

    async def delete_table(self, db: AsyncSession, user_id: str, table_id: str) -> None:
        """Delete a table with its fields, rows and relation edges.

        Rows in other tables lose their links into this table, and their
        rollups are recomputed. Relation fields elsewhere that were paired
        with a field of this table are unpaired.
        """
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        fields = await load_fields(db, ctx.table_id)
        result = await db.execute(select(TableRow.id).where(TableRow.table_id == ctx.table_id))
        row_ids = list(result.scalars().all())

        affected = await self.relations.collect_inbound_links(db, row_ids)
        await self.relations.delete_edges_for_rows(db, row_ids)
        for field in fields:
            if field.field_type == FieldType.RELATION.value:
                await self.relations.delete_edges_for_field(db, field.id)
        await self.relations.prune_cached_links(db, affected)
        await self._unpair_reverse_fields(db, fields)

        await db.execute(delete(TableRow).where(TableRow.table_id == ctx.table_id))
        await db.execute(delete(TableField).where(TableField.table_id == ctx.table_id))
        await db.delete(ctx.table)
        await db.flush()

        await self.dispatcher.dispatch_many(
            db,
            [(links.table_id, row_id, links.field_ids) for row_id, links in affected.items()],
        )
        logger.info(
            "Table deleted",
            extra={"table_id": table_id, "rows": len(row_ids), "linked_rows": len(affected)},
        )

    async def _unpair_reverse_fields(self, db: AsyncSession, fields: list[TableField]) -> None:
        for field in fields:
            if field.field_type != FieldType.RELATION.value:
                continue
            reverse_id = field.get_config().get("reverse_field_id")
            reverse = await db.get(TableField, reverse_id) if reverse_id else None
            if reverse is None or reverse.table_id == field.table_id:
                continue
            config = reverse.get_config()
            config["bidirectional"] = False
            config["reverse_field_id"] = None
            reverse.set_config(config)

    async def duplicate_table(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        include_rows: bool = False,
    ) -> Table:
        """Copy a table's fields, and optionally its rows, into a new table.

        Field ids are regenerated. Formula dependencies and references, rollup
        relation and target ids and relations within the table are remapped
        onto the copies. Relations to other tables are copied one-way; the
        other table's reverse field stays paired with the original.

        Copied rows keep their values and outbound links, then every computed
        field of the copy is recomputed.
        """
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        source = ctx.table
        fields = await load_fields(db, source.id)

        copy = Table(
            workspace_id=source.workspace_id,
            name=f"{source.name}{COPY_SUFFIX}"[:255],
            description=source.description,
            created_by=user_id,
        )
        db.add(copy)
        await db.flush()

        field_map = {f.id: generate_uuid() for f in fields}
        new_fields = []
        for field in fields:
            new_field = TableField(
                id=field_map[field.id],
                table_id=copy.id,
                name=field.name,
                field_type=field.field_type,
                position=field.position,
                is_primary=field.is_primary,
                width=field.width,
            )
            new_field.set_config(remap_field_config(field, field_map, source.id, copy.id))
            db.add(new_field)
            new_fields.append(new_field)
        await db.flush()

        copied_rows = 0
        if include_rows:
            copied_rows = await self._copy_rows(db, user_id, source.id, copy.id, field_map, new_fields)

        logger.info(
            "Table duplicated",
            extra={
                "table_id": source.id,
                "copy_id": copy.id,
                "fields": len(new_fields),
                "rows": copied_rows,
            },
        )
        return copy

    async def _copy_rows(
        self,
        db: AsyncSession,
        user_id: str,
        source_id: str,
        copy_id: str,
        field_map: dict[str, str],
        new_fields: list[TableField],
    ) -> int:
        result = await db.execute(
            select(TableRow)
            .where(TableRow.table_id == source_id)
            .order_by(TableRow.order.asc().nullslast(), TableRow.created_at)
        )
        rows = list(result.scalars().all())
        relation_fields = [f for f in new_fields if f.field_type == FieldType.RELATION.value]
        relation_ids = {f.id for f in relation_fields}

        row_map: dict[str, str] = {}
        copies: list[tuple[TableRow, dict[str, Any]]] = []
        for row in rows:
            data = remap_row_data(row.get_data(), field_map)
            links = {fid: data.pop(fid, None) for fid in relation_ids}
            copy_row = TableRow(
                id=generate_uuid(),
                table_id=copy_id,
                order=row.order,
                created_by=user_id,
                updated_by=user_id,
            )
            copy_row.set_data(data)
            db.add(copy_row)
            row_map[row.id] = copy_row.id
            copies.append((copy_row, links))
        await db.flush()

        syncs = []
        for copy_row, links in copies:
            for field in relation_fields:
                linked = links.get(field.id)
                if not isinstance(linked, list) or not linked:
                    continue
                if field.get_config().get("related_table_id") == copy_id:
                    linked = [row_map[r] for r in linked if r in row_map]
                syncs.append(
                    await self.relations.sync_relation_links(db, copy_row, field, linked, user_id)
                )

        await self.dispatcher.dispatch_many(
            db, [(copy_id, row.id, None) for row, _ in copies] + mirror_events(syncs)
        )
        return len(copies)


def remap_field_config(
    field: TableField,
    field_map: dict[str, str],
    source_table_id: str,
    copy_table_id: str,
) -> dict[str, Any]:
    """Config of ``field`` rewritten to point at the copied fields."""
    config = field.get_config()

    if field.field_type == FieldType.FORMULA.value:
        formula = config.get("formula") or ""
        for old_id, new_id in field_map.items():
            formula = formula.replace("{" + old_id + "}", "{" + new_id + "}")
        config["formula"] = formula
        config["dependencies"] = [
            field_map.get(dep, dep) for dep in config.get("dependencies") or []
        ]

    elif field.field_type == FieldType.ROLLUP.value:
        for key in ("relation_field_id", "target_field_id"):
            if config.get(key) in field_map:
                config[key] = field_map[config[key]]

    elif field.field_type == FieldType.RELATION.value:
        if config.get("related_table_id") == source_table_id:
            config["related_table_id"] = copy_table_id
            if config.get("reverse_field_id") in field_map:
                config["reverse_field_id"] = field_map[config["reverse_field_id"]]
        else:
            config["bidirectional"] = False
            config["reverse_field_id"] = None

    return config


def remap_row_data(data: dict[str, Any], field_map: dict[str, str]) -> dict[str, Any]:
    """Row data keyed by the copied field ids; keys of unknown fields are dropped."""
    remapped = {}
    for key, value in data.items():
        if key in field_map:
            remapped[field_map[key]] = value
        elif key.endswith(COMPUTED_AT_SUFFIX):
            base = key[: -len(COMPUTED_AT_SUFFIX)]
            if base in field_map:
                remapped[computed_at_key(field_map[base])] = value
    return remapped
