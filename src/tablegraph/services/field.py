"""Field service for business logic."""

from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.core.exceptions import (
    FieldNotFoundError,
    FormulaError,
    InvalidFieldTypeError,
    RelationConfigError,
    ValidationError,
)
from tablegraph.core.logging import get_logger
from tablegraph.db.base import generate_uuid
from tablegraph.fields import get_field_handler
from tablegraph.formula.dependencies import FormulaDependencyGraph
from tablegraph.formula.engine import FieldRef, FormulaEngine
from tablegraph.models.field import FieldType, TableField
from tablegraph.models.row import TableRow
from tablegraph.schemas.field import FieldCreate, FieldUpdate, RelationConfigure
from tablegraph.services.access import AccessGate, TableAccessContext
from tablegraph.services.recompute import RecomputeDispatcher
from tablegraph.services.relation import RelationService
from tablegraph.services.store import load_fields, write_row_data

logger = get_logger(__name__)

COMPUTED_TYPES = (FieldType.FORMULA.value, FieldType.ROLLUP.value)


class FieldService:
    """Service for field operations."""

    def __init__(
        self,
        gate: AccessGate | None = None,
        relations: RelationService | None = None,
        dispatcher: RecomputeDispatcher | None = None,
        formula_engine: FormulaEngine | None = None,
    ) -> None:
        self.gate = gate or AccessGate()
        self.relations = relations or RelationService(self.gate)
        self.formula_engine = formula_engine or FormulaEngine()
        self.dispatcher = dispatcher or RecomputeDispatcher(
            formula_engine=self.formula_engine, relations=self.relations
        )

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_field(self, db: AsyncSession, user_id: str, field_id: str) -> TableField:
        """Get a field, checking workspace membership."""
        _, field = await self.gate.require_field_access(db, user_id, field_id)
        return field

    async def list_fields(self, db: AsyncSession, user_id: str, table_id: str) -> list[TableField]:
        """List the fields of a table in display order."""
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        return await load_fields(db, ctx.table_id)

    # ==========================================================================
    # Create / update
    # ==========================================================================

    async def create_field(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        field_data: FieldCreate,
    ) -> TableField:
        """Create a new field in a table.

        Formula fields get their dependencies extracted; rollup fields are
        checked against their relation and target fields; relation fields
        with a related table are wired up together with their reverse field.
        A new formula or rollup field is computed for every existing row.

        Args:
            db: Database session
            user_id: User ID creating the field
            table_id: Table to add the field to
            field_data: Field creation data

        Returns:
            Created field

        Raises:
            InvalidFieldTypeError: If the type has no handler
            FormulaError: If the formula does not parse or is circular
            ValidationError: If the config is invalid for the type

        """
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        field_type = FieldType(field_data.field_type).value
        if get_field_handler(field_type) is None:
            raise InvalidFieldTypeError(field_type)

        fields = await load_fields(db, table_id)
        field_id = generate_uuid()
        relation_request = None
        config: dict[str, Any] = {}
        if field_type == FieldType.RELATION.value:
            relation_request = self._relation_request(field_data.config)
        else:
            config = await self._prepare_config(
                db, ctx, field_id, field_data.name, field_type, field_data.config, fields
            )

        if field_data.is_primary:
            await self._clear_primary(db, table_id)

        field = TableField(
            id=field_id,
            table_id=table_id,
            name=field_data.name,
            field_type=field_type,
            position=(
                field_data.position
                if field_data.position is not None
                else await self._next_position(db, table_id)
            ),
            is_primary=field_data.is_primary,
            width=field_data.width,
        )
        field.set_config(config)
        db.add(field)
        await db.flush()

        if relation_request is not None:
            await self.relations.configure_relation_field(ctx, field, **relation_request)

        if field_type in COMPUTED_TYPES:
            await self.dispatcher.recompute_field(db, field)

        logger.info(
            "Field created",
            extra={"field_id": field.id, "table_id": table_id, "field_type": field_type},
        )
        return field

    async def update_field(
        self,
        db: AsyncSession,
        user_id: str,
        field_id: str,
        field_data: FieldUpdate,
    ) -> TableField:
        """Update a field's name, width, primary flag or config.

        A formula or rollup config change recomputes the field on every row.
        A relation config change re-runs the relation setup.
        """
        ctx, field = await self.gate.require_field_access(db, user_id, field_id)

        if field_data.name is not None:
            field.name = field_data.name
        if field_data.width is not None:
            field.width = field_data.width
        if field_data.is_primary is not None:
            if field_data.is_primary and not field.is_primary:
                await self._clear_primary(db, field.table_id)
            field.is_primary = field_data.is_primary

        recompute = False
        if field_data.config is not None:
            merged = {**field.get_config(), **field_data.config}
            if field.field_type == FieldType.RELATION.value:
                relation_request = self._relation_request(merged)
                if relation_request is None:
                    raise RelationConfigError("Relation field must specify related_table_id", field.id)
                await db.flush()
                await self.relations.configure_relation_field(ctx, field, **relation_request)
            else:
                fields = await load_fields(db, field.table_id)
                field.set_config(
                    await self._prepare_config(
                        db, ctx, field.id, field.name, field.field_type, merged, fields
                    )
                )
                recompute = field.field_type in COMPUTED_TYPES

        await db.flush()
        if recompute:
            await self.dispatcher.recompute_field(db, field)

        logger.info("Field updated", extra={"field_id": field.id, "table_id": field.table_id})
        return field

    async def configure_relation(
        self,
        db: AsyncSession,
        user_id: str,
        field_id: str,
        request: RelationConfigure,
    ) -> TableField:
        """Point a relation field at a table and set up its reverse field."""
        ctx, field = await self.gate.require_field_access(db, user_id, field_id)
        if field.field_type != FieldType.RELATION.value:
            raise RelationConfigError(f"Field '{field.name}' is not a relation field", field.id)
        return await self.relations.configure_relation_field(
            ctx, field, **request.model_dump()
        )

    async def _prepare_config(
        self,
        db: AsyncSession,
        ctx: TableAccessContext,
        field_id: str,
        field_name: str,
        field_type: str,
        config: dict[str, Any],
        fields: list[TableField],
    ) -> dict[str, Any]:
        handler = get_field_handler(field_type)
        if handler is None:
            raise InvalidFieldTypeError(field_type)

        if field_type == FieldType.FORMULA.value:
            return self._prepare_formula_config(field_id, field_name, config, fields)

        try:
            normalized = handler.normalize_config(config)
        except ValueError as e:
            raise ValidationError(str(e), details={"field_type": field_type}) from e

        if field_type == FieldType.ROLLUP.value:
            await self._check_rollup_references(db, ctx, field_id, normalized)
        return normalized

    def _prepare_formula_config(
        self,
        field_id: str,
        field_name: str,
        config: dict[str, Any],
        fields: list[TableField],
    ) -> dict[str, Any]:
        expression = config.get("formula")
        if not isinstance(expression, str) or not expression.strip():
            raise FormulaError(str(expression or ""), "Formula field must specify a formula")

        error = self.formula_engine.validate(expression)
        if error:
            raise FormulaError(expression, error)

        others = [f for f in fields if f.id != field_id]
        dependencies = self.formula_engine.extract_dependencies(
            expression, [*others, FieldRef(field_id, field_name)]
        )
        if field_id in dependencies:
            raise FormulaError(expression, "Formula cannot reference itself")

        graph = FormulaDependencyGraph.from_formulas(
            {
                f.id: f.get_config().get("dependencies") or []
                for f in others
                if f.field_type == FieldType.FORMULA.value
            }
        )
        ok, message = graph.add_formula_field(field_id, set(dependencies))
        if not ok:
            raise FormulaError(expression, message or "Circular reference")

        try:
            return get_field_handler(FieldType.FORMULA.value).normalize_config(
                {**config, "dependencies": dependencies}
            )
        except ValueError as e:
            raise FormulaError(expression, str(e)) from e

    async def _check_rollup_references(
        self,
        db: AsyncSession,
        ctx: TableAccessContext,
        field_id: str,
        config: dict[str, Any],
    ) -> None:
        relation_field = await db.get(TableField, config["relation_field_id"])
        if (
            relation_field is None
            or relation_field.table_id != ctx.table_id
            or relation_field.field_type != FieldType.RELATION.value
        ):
            raise RelationConfigError(
                "Rollup relation field must be a relation field of the same table", field_id
            )
        related_table_id = relation_field.get_config().get("related_table_id")
        if not related_table_id:
            raise RelationConfigError("Rollup relation field is not configured", field_id)

        target = await db.get(TableField, config["target_field_id"])
        if target is None or target.table_id != related_table_id:
            raise RelationConfigError(
                "Rollup target field must belong to the related table", field_id
            )

    @staticmethod
    def _relation_request(config: dict[str, Any] | None) -> dict[str, Any] | None:
        """Relation setup arguments from a raw config, or None when unconfigured."""
        config = dict(config or {})
        related_table_id = (
            config.get("related_table_id")
            or config.get("relation_table_id")
            or config.get("linkedTableId")
        )
        if not related_table_id:
            return None
        try:
            normalized = get_field_handler(FieldType.RELATION.value).normalize_config(config)
        except ValueError as e:
            raise RelationConfigError(str(e)) from e
        return {
            "related_table_id": normalized["related_table_id"],
            "allow_multiple": normalized["allow_multiple"],
            "bidirectional": bool(config.get("bidirectional", True)),
            "reverse_allow_multiple": config.get("reverse_allow_multiple"),
            "limit": normalized["limit"],
            "display_field_id": normalized["display_field_id"],
            "reverse_field_name": config.get("reverse_field_name"),
            "relation_type": normalized["relation_type"],
        }

    # ==========================================================================
    # Delete / reorder
    # ==========================================================================

    async def delete_field(self, db: AsyncSession, user_id: str, field_id: str) -> None:
        """Delete a field and everything hanging off it.

        The field's values are purged from every row of its table, its
        relation edges are removed and a paired reverse field is unpaired.
        Formulas and rollups that read the field are then recomputed.
        """
        ctx, field = await self.gate.require_field_access(db, user_id, field_id)

        if field.field_type == FieldType.RELATION.value:
            await self.relations.delete_edges_for_field(db, field.id)
            reverse_id = field.get_config().get("reverse_field_id")
            reverse = await db.get(TableField, reverse_id) if reverse_id else None
            if reverse is not None and reverse.get_config().get("reverse_field_id") == field.id:
                config = reverse.get_config()
                config["bidirectional"] = False
                config["reverse_field_id"] = None
                reverse.set_config(config)

        dependents = await self._dependent_fields(db, field)

        result = await db.execute(select(TableRow.id).where(TableRow.table_id == field.table_id))
        for row_id in result.scalars().all():
            await write_row_data(
                db,
                row_id,
                lambda data: {k: v for k, v in data.items() if k != field.id}
                if field.id in data
                else None,
            )

        await db.delete(field)
        await db.flush()

        for dependent in dependents:
            await self.dispatcher.recompute_field(db, dependent)

        logger.info(
            "Field deleted",
            extra={
                "field_id": field_id,
                "table_id": ctx.table_id,
                "recomputed": [f.id for f in dependents],
            },
        )

    async def _dependent_fields(self, db: AsyncSession, field: TableField) -> list[TableField]:
        """Formula and rollup fields that read ``field``, in any table."""
        result = await db.execute(
            select(TableField).where(
                TableField.field_type.in_(COMPUTED_TYPES),
                TableField.id != field.id,
            )
        )
        dependents = []
        for candidate in result.scalars().all():
            config = candidate.get_config()
            if candidate.field_type == FieldType.FORMULA.value:
                if candidate.table_id == field.table_id and field.id in (
                    config.get("dependencies") or []
                ):
                    dependents.append(candidate)
            elif field.id in (config.get("relation_field_id"), config.get("target_field_id")):
                dependents.append(candidate)
        return dependents

    async def reorder_fields(
        self,
        db: AsyncSession,
        user_id: str,
        table_id: str,
        positions: list[tuple[str, int]],
    ) -> list[TableField]:
        """Set field positions; fields not listed keep theirs."""
        ctx = await self.gate.require_table_access(db, user_id, table_id)
        by_id = {f.id: f for f in await load_fields(db, ctx.table_id)}
        for field_id, position in positions:
            field = by_id.get(field_id)
            if field is None:
                raise FieldNotFoundError(field_id)
            field.position = position
        await db.flush()
        return await load_fields(db, ctx.table_id)

    async def recompute_field(self, db: AsyncSession, user_id: str, field_id: str) -> int:
        """Recompute a formula or rollup field on every row of its table."""
        _, field = await self.gate.require_field_access(db, user_id, field_id)
        if field.field_type not in COMPUTED_TYPES:
            raise ValidationError(
                f"Field '{field.name}' is not a computed field",
                details={"field_id": field.id, "field_type": field.field_type},
            )
        return await self.dispatcher.recompute_field(db, field)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _next_position(self, db: AsyncSession, table_id: str) -> int:
        result = await db.execute(
            select(func.max(TableField.position)).where(TableField.table_id == table_id)
        )
        current = result.scalar()
        return 0 if current is None else current + 1

    async def _clear_primary(self, db: AsyncSession, table_id: str) -> None:
        await db.execute(
            update(TableField)
            .where(TableField.table_id == table_id, TableField.is_primary.is_(True))
            .values(is_primary=False)
            .execution_options(synchronize_session="fetch")
        )
