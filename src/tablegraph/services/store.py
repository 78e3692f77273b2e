"""Row and field persistence helpers shared by the services.

Row data writes are serialized per row with optimistic versioning: a write
re-reads the persisted row, applies its change to that fresh copy and
swaps it in with ``UPDATE ... WHERE version = :seen``. A lost race re-reads
and re-applies, so concurrent writers to different fields of one row both
land.
"""

import json
from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from tablegraph.core.exceptions import PersistenceError
from tablegraph.core.logging import get_logger
from tablegraph.db.base import utc_now
from tablegraph.models.field import TableField
from tablegraph.models.row import TableRow

logger = get_logger(__name__)

DataMutator = Callable[[dict[str, Any]], dict[str, Any] | None]

MAX_WRITE_ATTEMPTS = 5


async def load_fields(db: AsyncSession, table_id: str) -> list[TableField]:
    """Fields of a table in display order."""
    result = await db.execute(
        select(TableField)
        .where(TableField.table_id == table_id)
        .order_by(TableField.position, TableField.created_at)
    )
    return list(result.scalars().all())


async def load_row(db: AsyncSession, row_id: str) -> TableRow | None:
    """Load a row as currently persisted, refreshing any cached instance."""
    result = await db.execute(
        select(TableRow)
        .where(TableRow.id == row_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def load_rows(db: AsyncSession, row_ids: Iterable[str]) -> list[TableRow]:
    """Load rows by id, ordered by row order."""
    ids = list(dict.fromkeys(row_ids))
    if not ids:
        return []
    result = await db.execute(
        select(TableRow)
        .where(TableRow.id.in_(ids))
        .order_by(TableRow.order.asc().nullslast(), TableRow.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def write_row_data(
    db: AsyncSession,
    row_id: str,
    mutate: DataMutator,
    *,
    updated_by: str | None = None,
    columns: dict[str, Any] | None = None,
) -> TableRow | None:
    """
    Apply ``mutate`` to the current data of a row and persist the result.

    Args:
        db: Database session
        row_id: Row to write
        mutate: Receives a copy of the persisted data and returns the new
            data, or None to leave the row untouched
        updated_by: Acting user recorded on the row
        columns: Extra column values written in the same statement

    Returns:
        The refreshed row, or None if the row no longer exists

    Raises:
        PersistenceError: If the row kept changing underneath the write
    """
    for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
        row = await load_row(db, row_id)
        if row is None:
            return None

        new_data = mutate(row.get_data())
        if new_data is None:
            return row

        values: dict[str, Any] = {
            "data": json.dumps(new_data, default=str),
            "version": row.version + 1,
            "updated_at": utc_now(),
        }
        if updated_by is not None:
            values["updated_by"] = updated_by
        if columns:
            values.update(columns)

        result = await db.execute(
            update(TableRow)
            .where(TableRow.id == row_id, TableRow.version == row.version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            for key, value in values.items():
                set_committed_value(row, key, value)
            return row

        logger.debug(
            "Row version moved during write, retrying",
            extra={"row_id": row_id, "attempt": attempt},
        )

    raise PersistenceError(
        "Row was modified concurrently, please retry",
        details={"row_id": row_id},
    )
