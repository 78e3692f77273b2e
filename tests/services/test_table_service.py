"""Tests for table updates, deletion and duplication."""

import pytest
from sqlalchemy import select

from tablegraph.core.exceptions import PermissionDeniedError
from tablegraph.models.field import FieldType, TableField
from tablegraph.models.row import TableRow
from tablegraph.models.table import Table
from tablegraph.schemas.table import TableUpdate
from tablegraph.services.store import load_fields, load_row


class TestUpdateTable:
    @pytest.mark.asyncio
    async def test_unset_fields_are_kept(
        self, db_session, projects_table, table_service, user_id
    ):
        await table_service.update_table(
            db_session, user_id, projects_table.id, TableUpdate(description="Active work")
        )
        table = await table_service.update_table(
            db_session, user_id, projects_table.id, TableUpdate(name="Programs")
        )

        assert table.name == "Programs"
        assert table.description == "Active work"

    @pytest.mark.asyncio
    async def test_non_member_is_denied(
        self, db_session, projects_table, table_service, outsider_id
    ):
        with pytest.raises(PermissionDeniedError):
            await table_service.update_table(
                db_session, outsider_id, projects_table.id, TableUpdate(name="x")
            )


class TestDeleteTable:
    """Deleting a table unlinks the rows of other tables."""

    @pytest.mark.asyncio
    async def test_links_into_deleted_table_are_pruned(
        self, db_session, linked, make_field, make_row, table_service, user_id
    ):
        total = await make_field(
            linked.projects.id,
            "Total Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
        )
        task = await make_row(linked.tasks.id, {linked.hours.id: 3})
        project = await make_row(linked.projects.id, {linked.tasks_link.id: [task.id]})
        assert (await load_row(db_session, project.id)).get_data()[total.id] == 3

        await table_service.delete_table(db_session, user_id, linked.tasks.id)

        assert await db_session.get(Table, linked.tasks.id) is None
        assert await load_row(db_session, task.id) is None
        data = (await load_row(db_session, project.id)).get_data()
        assert data[linked.tasks_link.id] == []
        assert data[total.id] == 0

    @pytest.mark.asyncio
    async def test_reverse_field_elsewhere_is_unpaired(
        self, db_session, linked, table_service, user_id
    ):
        await table_service.delete_table(db_session, user_id, linked.projects.id)

        reverse = await db_session.get(TableField, linked.projects_link.id)
        await db_session.refresh(reverse)
        config = reverse.get_config()
        assert config["bidirectional"] is False
        assert config["reverse_field_id"] is None
        assert await load_fields(db_session, linked.projects.id) == []


class TestDuplicateTable:
    @pytest.mark.asyncio
    async def test_field_configs_point_at_the_copies(
        self, db_session, linked, make_field, table_service, user_id
    ):
        budget = await make_field(linked.projects.id, "Budget", FieldType.NUMBER)
        double = await make_field(
            linked.projects.id, "Double", FieldType.FORMULA, formula="{Budget} * 2"
        )
        total = await make_field(
            linked.projects.id,
            "Total Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
        )

        copy = await table_service.duplicate_table(db_session, user_id, linked.projects.id)

        assert copy.name == "Projects (Copy)"
        by_name = {f.name: f for f in await load_fields(db_session, copy.id)}
        assert {f.id for f in by_name.values()}.isdisjoint(
            {budget.id, double.id, total.id, linked.tasks_link.id}
        )
        assert by_name["Double"].get_config()["dependencies"] == [by_name["Budget"].id]

        rollup = by_name["Total Hours"].get_config()
        assert rollup["relation_field_id"] == by_name["Tasks"].id
        assert rollup["target_field_id"] == linked.hours.id

        relation = by_name["Tasks"].get_config()
        assert relation["related_table_id"] == linked.tasks.id
        assert relation["bidirectional"] is False
        assert relation["reverse_field_id"] is None

        # the original pairing is untouched
        reverse = await db_session.get(TableField, linked.projects_link.id)
        assert reverse.get_config()["reverse_field_id"] == linked.tasks_link.id

    @pytest.mark.asyncio
    async def test_rows_are_copied_and_recomputed(
        self, db_session, linked, make_field, make_row, table_service, user_id
    ):
        budget = await make_field(linked.projects.id, "Budget", FieldType.NUMBER)
        await make_field(linked.projects.id, "Double", FieldType.FORMULA, formula="{Budget} * 2")
        await make_field(
            linked.projects.id,
            "Total Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
        )
        task = await make_row(linked.tasks.id, {linked.hours.id: 4})
        project = await make_row(
            linked.projects.id, {budget.id: 10, linked.tasks_link.id: [task.id]}
        )

        copy = await table_service.duplicate_table(
            db_session, user_id, linked.projects.id, include_rows=True
        )

        by_name = {f.name: f.id for f in await load_fields(db_session, copy.id)}
        result = await db_session.execute(select(TableRow).where(TableRow.table_id == copy.id))
        copied = list(result.scalars().all())
        assert len(copied) == 1
        copy_row = await load_row(db_session, copied[0].id)
        assert copy_row.id != project.id

        data = copy_row.get_data()
        assert data[by_name["Budget"]] == 10
        assert data[by_name["Double"]] == 20
        assert data[by_name["Tasks"]] == [task.id]
        assert data[by_name["Total Hours"]] == 4
        assert budget.id not in data

        # one-way copy: the task still points only at the original project
        task = await load_row(db_session, task.id)
        assert task.get_data()[linked.projects_link.id] == [project.id]

    @pytest.mark.asyncio
    async def test_self_relation_links_follow_the_copied_rows(
        self, db_session, projects_table, make_field, make_row, table_service, user_id
    ):
        parent = await make_field(
            projects_table.id,
            "Parent",
            FieldType.RELATION,
            related_table_id=projects_table.id,
            bidirectional=False,
        )
        root = await make_row(projects_table.id)
        child = await make_row(projects_table.id, {parent.id: [root.id]})

        copy = await table_service.duplicate_table(
            db_session, user_id, projects_table.id, include_rows=True
        )

        copy_parent = next(
            f for f in await load_fields(db_session, copy.id) if f.name == "Parent"
        )
        assert copy_parent.get_config()["related_table_id"] == copy.id
        result = await db_session.execute(
            select(TableRow)
            .where(TableRow.table_id == copy.id)
            .order_by(TableRow.order)
        )
        copy_root, copy_child = result.scalars().all()
        copy_child = await load_row(db_session, copy_child.id)
        assert copy_child.get_data()[copy_parent.id] == [copy_root.id]
        assert (await load_row(db_session, child.id)).get_data()[parent.id] == [root.id]
