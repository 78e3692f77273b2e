"""
Fixtures shared by the service tests.

``linked`` wires Projects to Tasks through a bidirectional relation and
gives Tasks a number field to roll up.
"""

from dataclasses import dataclass

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from tablegraph.models.field import FieldType, TableField
from tablegraph.models.row import TableRow
from tablegraph.models.table import Table
from tablegraph.schemas.field import FieldCreate
from tablegraph.services.field import FieldService
from tablegraph.services.row import RowService


@dataclass
class LinkedTables:
    projects: Table
    tasks: Table
    tasks_link: TableField
    projects_link: TableField
    hours: TableField


@pytest_asyncio.fixture
async def linked(
    db_session: AsyncSession,
    field_service: FieldService,
    user_id: str,
    projects_table: Table,
    tasks_table: Table,
) -> LinkedTables:
    hours = await field_service.create_field(
        db_session,
        user_id,
        tasks_table.id,
        FieldCreate(name="Hours", field_type=FieldType.NUMBER),
    )
    tasks_link = await field_service.create_field(
        db_session,
        user_id,
        projects_table.id,
        FieldCreate(
            name="Tasks",
            field_type=FieldType.RELATION,
            config={"related_table_id": tasks_table.id, "reverse_field_name": "Project"},
        ),
    )
    projects_link = await db_session.get(
        TableField, tasks_link.get_config()["reverse_field_id"]
    )
    return LinkedTables(
        projects=projects_table,
        tasks=tasks_table,
        tasks_link=tasks_link,
        projects_link=projects_link,
        hours=hours,
    )


@pytest.fixture
def make_field(db_session: AsyncSession, field_service: FieldService, user_id: str):
    """Factory creating a field with its config given as keyword arguments."""

    async def make(table_id: str, name: str, field_type: FieldType, **config) -> TableField:
        return await field_service.create_field(
            db_session,
            user_id,
            table_id,
            FieldCreate(name=name, field_type=field_type, config=config),
        )

    return make


@pytest.fixture
def make_row(db_session: AsyncSession, row_service: RowService, user_id: str):
    """Factory creating a row through the row service."""

    async def make(table_id: str, data: dict | None = None) -> TableRow:
        return await row_service.create_row(db_session, user_id, table_id, data or {})

    return make
