"""Recompute dispatcher.

Keeps formula and rollup values current after a write. A write is turned
into change events ``(row, fields)`` which are processed breadth-first:

1. formulas of the row that read a changed field (transitively, in
   dependency order);
2. rollups of the row that roll up through a changed relation field;
3. rollups of rows linking *to* this row whose target is a changed field.

Every rollup recomputed in steps 2 and 3 is itself a change and is queued,
up to ``recompute_max_depth`` hops. A visited set of ``(row, field)``
events stops cycles between tables. Relation links are never re-synced by
propagation.

All work happens sequentially on the caller's session; ``AsyncSession`` is
not safe for concurrent use.
"""

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.core.config import Settings, settings as default_settings
from tablegraph.core.exceptions import PersistenceError, RelationConfigError
from tablegraph.core.logging import get_logger
from tablegraph.fields.base import format_error_value
from tablegraph.fields.sanitize import computed_at_key, sanitize_row_data
from tablegraph.fields.types.date import utc_timestamp
from tablegraph.fields.types.formula import FormulaFieldHandler
from tablegraph.fields.types.rollup import RollupFieldHandler
from tablegraph.formula.dependencies import FormulaDependencyGraph
from tablegraph.formula.engine import FormulaEngine
from tablegraph.models.field import FieldType, TableField
from tablegraph.models.relation import TableRelation
from tablegraph.models.row import TableRow
from tablegraph.services.relation import RelationService
from tablegraph.services.store import load_fields, load_row, write_row_data

logger = get_logger(__name__)

ALL_FIELDS = "*"


@dataclass
class RollupResult:
    value: Any = None
    error: str | None = None


@dataclass
class ChangeEvent:
    """Fields of one row that changed; ``field_ids`` None means all of them."""

    table_id: str
    row_id: str
    field_ids: frozenset[str] | None
    depth: int = 0


class _FieldCache:
    """Per-pass cache of table fields and of the formulas a change affects."""

    def __init__(self, db: AsyncSession):
        self._db = db
        self._tables: dict[str, list[TableField]] = {}
        self.plans: dict[tuple[str, frozenset[str] | None], tuple[list[str], set[str]]] = {}

    async def fields(self, table_id: str) -> list[TableField]:
        if table_id not in self._tables:
            self._tables[table_id] = await load_fields(self._db, table_id)
        return self._tables[table_id]


def _rollup_config(field: TableField) -> dict[str, Any]:
    return RollupFieldHandler.normalize_config(field.get_config())


class RecomputeDispatcher:
    """Recompute formula and rollup values affected by row changes."""

    def __init__(
        self,
        settings: Settings | None = None,
        formula_engine: FormulaEngine | None = None,
        relations: RelationService | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.formula_engine = formula_engine or FormulaEngine()
        self.relations = relations or RelationService()

    # ==========================================================================
    # Propagation
    # ==========================================================================

    async def dispatch(
        self,
        db: AsyncSession,
        table_id: str,
        row_id: str,
        changed_field_ids: Iterable[str] | None = None,
    ) -> None:
        """Recompute everything affected by a change to one row."""
        await self.dispatch_many(db, [(table_id, row_id, changed_field_ids)])

    async def dispatch_many(
        self,
        db: AsyncSession,
        changes: Iterable[tuple[str, str, Iterable[str] | None]],
    ) -> None:
        """
        Process several change events in one pass.

        Args:
            changes: ``(table_id, row_id, changed_field_ids)`` tuples; None
                as the field set means every computed field of the row
        """
        queue: deque[ChangeEvent] = deque(
            ChangeEvent(table_id, row_id, None if fields is None else frozenset(fields))
            for table_id, row_id, fields in changes
        )
        visited: set[tuple[str, str]] = set()
        cache = _FieldCache(db)
        max_depth = self.settings.recompute_max_depth

        while queue:
            event = queue.popleft()
            if event.field_ids is None:
                if (event.row_id, ALL_FIELDS) in visited:
                    continue
                visited.add((event.row_id, ALL_FIELDS))
                changed: frozenset[str] | None = None
            else:
                changed = frozenset(
                    f for f in event.field_ids if (event.row_id, f) not in visited
                )
                if not changed:
                    continue
                visited.update((event.row_id, f) for f in changed)

            follow_ups = await self._process(db, cache, event.table_id, event.row_id, changed)

            if event.depth >= max_depth:
                if follow_ups:
                    logger.debug(
                        "Recompute depth limit reached",
                        extra={"row_id": event.row_id, "depth": event.depth},
                    )
                continue
            for table_id, row_id, field_ids in follow_ups:
                queue.append(ChangeEvent(table_id, row_id, frozenset(field_ids), event.depth + 1))

    async def _process(
        self,
        db: AsyncSession,
        cache: _FieldCache,
        table_id: str,
        row_id: str,
        changed: frozenset[str] | None,
    ) -> list[tuple[str, str, set[str]]]:
        fields = await cache.fields(table_id)
        key = (table_id, changed)
        if key not in cache.plans:
            cache.plans[key] = self.affected_formulas(fields, changed)
        formula_ids = await self._recompute_formulas(
            db, fields, table_id, row_id, changed, plan=cache.plans[key]
        )
        effective = None if changed is None else changed | set(formula_ids)

        follow_ups: list[tuple[str, str, set[str]]] = []

        rollups_here = [
            f
            for f in fields
            if f.field_type == FieldType.ROLLUP.value
            and (effective is None or f.get_config().get("relation_field_id") in effective)
        ]
        recomputed_here = await self._recompute_rollups(db, row_id, rollups_here)
        if recomputed_here:
            follow_ups.append((table_id, row_id, set(recomputed_here)))

        follow_ups.extend(await self._recompute_inbound(db, cache, row_id, effective))
        return follow_ups

    async def _recompute_inbound(
        self,
        db: AsyncSession,
        cache: _FieldCache,
        target_row_id: str,
        changed: set[str] | frozenset[str] | None,
    ) -> list[tuple[str, str, set[str]]]:
        result = await db.execute(
            select(
                TableRelation.from_table_id,
                TableRelation.from_row_id,
                TableRelation.from_field_id,
            ).where(TableRelation.to_row_id == target_row_id)
        )
        linking: dict[tuple[str, str], set[str]] = {}
        for from_table_id, from_row_id, from_field_id in result.all():
            linking.setdefault((from_table_id, from_row_id), set()).add(from_field_id)

        follow_ups = []
        for (from_table_id, from_row_id), relation_ids in linking.items():
            rollups = []
            for f in await cache.fields(from_table_id):
                if f.field_type != FieldType.ROLLUP.value:
                    continue
                config = f.get_config()
                if config.get("relation_field_id") not in relation_ids:
                    continue
                if changed is not None and config.get("target_field_id") not in changed:
                    continue
                rollups.append(f)
            recomputed = await self._recompute_rollups(db, from_row_id, rollups)
            if recomputed:
                follow_ups.append((from_table_id, from_row_id, set(recomputed)))
        return follow_ups

    # ==========================================================================
    # Formulas
    # ==========================================================================

    async def recompute_formulas_for_row(
        self,
        db: AsyncSession,
        table_id: str,
        row_id: str,
        changed_field_id: str | None = None,
    ) -> list[str]:
        """
        Re-evaluate the row's formulas affected by ``changed_field_id``.

        Returns:
            Ids of the formula fields that were written
        """
        fields = await load_fields(db, table_id)
        changed = None if changed_field_id is None else frozenset({changed_field_id})
        return await self._recompute_formulas(db, fields, table_id, row_id, changed)

    def affected_formulas(
        self,
        fields: list[TableField],
        changed: Iterable[str] | None,
    ) -> tuple[list[str], set[str]]:
        """
        Formulas to evaluate for a change, in dependency order.

        A formula is affected when its dependency list is empty (unknown
        dependencies, always recomputed), when it reads a changed field, or
        when it reads another affected formula.

        Returns:
            ``(ordered, cyclic)`` formula field ids
        """
        formulas = {
            f.id: f.get_config().get("dependencies") or []
            for f in fields
            if f.field_type == FieldType.FORMULA.value
        }
        if not formulas:
            return [], set()

        graph = FormulaDependencyGraph.from_formulas(formulas)
        if changed is None:
            targets = list(formulas)
        else:
            changed = set(changed)
            direct = [
                fid for fid, deps in formulas.items() if not deps or changed.intersection(deps)
            ]
            targets = direct + graph.get_affected_fields(changed | set(direct))
        return graph.get_evaluation_order(targets)

    async def _recompute_formulas(
        self,
        db: AsyncSession,
        fields: list[TableField],
        table_id: str,
        row_id: str,
        changed: Iterable[str] | None,
        plan: tuple[list[str], set[str]] | None = None,
    ) -> list[str]:
        ordered, cyclic = plan if plan is not None else self.affected_formulas(fields, changed)
        if not ordered and not cyclic:
            return []

        row = await load_row(db, row_id)
        if row is None:
            return []

        by_id = {f.id: f for f in fields}
        working = row.get_data()
        computed_at = utc_timestamp()
        updates: dict[str, Any] = {}

        for field_id in ordered:
            value, error = self._evaluate_formula(by_id[field_id], working, fields, row_id)
            updates[field_id] = value
            if error is None:
                updates[computed_at_key(field_id)] = computed_at
            working[field_id] = value

        for field_id in cyclic:
            updates[field_id] = format_error_value("Circular reference")

        valid_ids = set(by_id)
        await write_row_data(
            db,
            row_id,
            lambda data: sanitize_row_data({**data, **updates}, valid_ids),
        )
        return ordered + sorted(cyclic)

    # ==========================================================================
    # Rollups
    # ==========================================================================

    async def compute_rollup_value(
        self,
        db: AsyncSession,
        row_id: str,
        field: TableField,
    ) -> RollupResult:
        """
        Aggregate a rollup for one row and store the value.

        On failure the error marker is stored instead (the computed-at
        timestamp is left alone) and the error is returned.
        """
        try:
            value = await self._aggregate(db, row_id, field)
        except (PersistenceError, SQLAlchemyError):
            raise
        except Exception as e:
            message = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.warning(
                "Rollup computation failed",
                extra={"row_id": row_id, "field_id": field.id, "error": message},
            )
            await write_row_data(
                db, row_id, lambda data: {**data, field.id: format_error_value(message)}
            )
            return RollupResult(error=message)

        stamp = utc_timestamp()
        await write_row_data(
            db,
            row_id,
            lambda data: {**data, field.id: value, computed_at_key(field.id): stamp},
        )
        return RollupResult(value=value)

    async def _aggregate(self, db: AsyncSession, row_id: str, field: TableField) -> Any:
        config = _rollup_config(field)
        relation_field = await db.get(TableField, config["relation_field_id"])
        if relation_field is None or relation_field.table_id != field.table_id:
            raise RelationConfigError("Relation field not found", field.id)

        related = await self.relations.get_related_rows(db, row_id, relation_field)
        rows_data = RollupFieldHandler.apply_filter(
            [r.get_data() for r in related.rows], config.get("filter")
        )
        values = [data.get(config["target_field_id"]) for data in rows_data]
        return RollupFieldHandler.compute(values, config["aggregation"])

    async def _recompute_rollups(
        self,
        db: AsyncSession,
        row_id: str,
        rollups: list[TableField],
    ) -> list[str]:
        recomputed = []
        for field in rollups:
            await self.compute_rollup_value(db, row_id, field)
            recomputed.append(field.id)
        return recomputed

    async def recompute_rollups_for_row(
        self,
        db: AsyncSession,
        table_id: str,
        row_id: str,
        relation_field_id: str | None = None,
    ) -> list[RollupResult]:
        """Recompute the row's rollups that use ``relation_field_id`` (all when None)."""
        results = []
        for field in await load_fields(db, table_id):
            if field.field_type != FieldType.ROLLUP.value:
                continue
            if relation_field_id and field.get_config().get("relation_field_id") != relation_field_id:
                continue
            results.append(await self.compute_rollup_value(db, row_id, field))
        return results

    async def recompute_rollups_for_target_row_changed(
        self,
        db: AsyncSession,
        target_row_id: str,
        target_table_id: str,
        changed_field_id: str | None = None,
    ) -> None:
        """Recompute rollups on rows linking to ``target_row_id``."""
        changed = None if changed_field_id is None else {changed_field_id}
        await self._recompute_inbound(db, _FieldCache(db), target_row_id, changed)

    # ==========================================================================
    # Whole-table recomputation
    # ==========================================================================

    async def _table_row_ids(self, db: AsyncSession, table_id: str) -> list[str]:
        result = await db.execute(
            select(TableRow.id)
            .where(TableRow.table_id == table_id)
            .order_by(TableRow.order.asc().nullslast(), TableRow.created_at)
        )
        return list(result.scalars().all())

    async def recompute_field(self, db: AsyncSession, field: TableField) -> int:
        """
        Recompute a formula or rollup field on every row of its table, then
        propagate to dependents.

        Returns:
            Number of rows processed
        """
        row_ids = await self._table_row_ids(db, field.table_id)
        if field.field_type == FieldType.FORMULA.value:
            fields = await load_fields(db, field.table_id)
            _, cyclic = self.affected_formulas(fields, None)
            for row_id in row_ids:
                await self._recompute_single_formula(db, fields, field, row_id, field.id in cyclic)
        elif field.field_type == FieldType.ROLLUP.value:
            for row_id in row_ids:
                await self.compute_rollup_value(db, row_id, field)
        else:
            return 0

        await self.dispatch_many(db, [(field.table_id, row_id, [field.id]) for row_id in row_ids])
        logger.info(
            "Field recomputed",
            extra={"field_id": field.id, "table_id": field.table_id, "rows": len(row_ids)},
        )
        return len(row_ids)

    async def _recompute_single_formula(
        self,
        db: AsyncSession,
        fields: list[TableField],
        field: TableField,
        row_id: str,
        is_cyclic: bool,
    ) -> None:
        row = await load_row(db, row_id)
        if row is None:
            return
        if is_cyclic:
            updates = {field.id: format_error_value("Circular reference")}
        else:
            value, error = self._evaluate_formula(field, row.get_data(), fields, row_id)
            updates = {field.id: value}
            if error is None:
                updates[computed_at_key(field.id)] = utc_timestamp()
        await write_row_data(db, row_id, lambda data: {**data, **updates})

    def _evaluate_formula(
        self,
        field: TableField,
        row_data: dict[str, Any],
        fields: list[TableField],
        row_id: str,
    ) -> tuple[Any, str | None]:
        """
        Evaluate one formula cell.

        Returns:
            ``(value, error)``; on failure the value is the error marker
        """
        config = field.get_config()
        try:
            result = self.formula_engine.evaluate(config.get("formula") or "", row_data, fields)
            if result.ok:
                return FormulaFieldHandler.coerce(result.value, config.get("return_type")), None
            error = result.error or "Formula evaluation failed"
        except Exception as e:
            error = str(e) or type(e).__name__

        logger.warning(
            "Formula evaluation failed",
            extra={
                "table_id": field.table_id,
                "row_id": row_id,
                "field_id": field.id,
                "error": error,
            },
        )
        return format_error_value(error), error

    async def recompute_table(self, db: AsyncSession, table_id: str) -> int:
        """Recompute every computed field of every row in a table."""
        row_ids = await self._table_row_ids(db, table_id)
        await self.dispatch_many(db, [(table_id, row_id, None) for row_id in row_ids])
        return len(row_ids)
