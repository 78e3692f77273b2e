"""Tests for formula and rollup recomputation."""

import pytest

from tablegraph.fields import computed_at_key, is_error_value
from tablegraph.formula import FormulaEngine
from tablegraph.models.field import FieldType
from tablegraph.services.recompute import RecomputeDispatcher
from tablegraph.services.relation import RelationService
from tablegraph.services.store import load_fields, load_row, write_row_data


class ExplodingEngine(FormulaEngine):
    """Formula engine whose evaluation blows up outright."""

    def evaluate(self, expression, row_data, fields):
        raise RuntimeError("boom")


class UnreachableRelations(RelationService):
    """Relation service that cannot read linked rows."""

    async def get_related_rows(self, db, row_id, field, *args, **kwargs):
        raise RuntimeError("link store offline")


@pytest.fixture
def reload(db_session):
    async def reload(row):
        return (await load_row(db_session, row.id)).get_data()

    return reload


class TestFormulaRecompute:
    """Tests for formula evaluation on row writes."""

    @pytest.mark.asyncio
    async def test_formula_follows_its_inputs(
        self, db_session, projects_table, make_field, make_row, row_service, user_id, reload
    ):
        price = await make_field(projects_table.id, "Price", FieldType.NUMBER)
        qty = await make_field(projects_table.id, "Qty", FieldType.NUMBER)
        total = await make_field(
            projects_table.id, "Total", FieldType.FORMULA, formula="{Price} * {Qty}"
        )

        row = await make_row(projects_table.id, {price.id: 2.5, qty.id: 4})
        data = await reload(row)
        assert data[total.id] == 10
        assert computed_at_key(total.id) in data

        await row_service.update_cell(db_session, user_id, row.id, qty.id, 2)
        assert (await reload(row))[total.id] == 5

    @pytest.mark.asyncio
    async def test_chained_formulas_evaluate_in_order(
        self, db_session, projects_table, make_field, make_row, row_service, user_id, reload
    ):
        base = await make_field(projects_table.id, "Base", FieldType.NUMBER)
        double = await make_field(
            projects_table.id, "Double", FieldType.FORMULA, formula="{Base} * 2", return_type="number"
        )
        label = await make_field(
            projects_table.id, "Label", FieldType.FORMULA, formula='"x" & {Double}'
        )

        row = await make_row(projects_table.id, {base.id: 3})
        await row_service.update_cell(db_session, user_id, row.id, base.id, 5)

        data = await reload(row)
        assert data[double.id] == 10
        assert data[label.id] == "x10"

    @pytest.mark.asyncio
    async def test_evaluation_error_is_stored_as_marker(
        self, projects_table, make_field, make_row, reload
    ):
        """A failed evaluation stores the marker and no timestamp."""
        divisor = await make_field(projects_table.id, "Divisor", FieldType.NUMBER)
        ratio = await make_field(
            projects_table.id, "Ratio", FieldType.FORMULA, formula="1 / {Divisor}"
        )

        row = await make_row(projects_table.id, {divisor.id: 0})
        data = await reload(row)

        assert data[ratio.id] == "#ERROR: Division by zero"
        assert computed_at_key(ratio.id) not in data

    @pytest.mark.asyncio
    async def test_numeric_overflow_is_stored_as_marker(
        self, db_session, projects_table, make_field, make_row, row_service, user_id, reload
    ):
        base = await make_field(projects_table.id, "Base", FieldType.NUMBER)
        power = await make_field(
            projects_table.id, "Power", FieldType.FORMULA, formula="{Base} ^ 1000"
        )
        row = await make_row(projects_table.id, {base.id: 1})
        assert computed_at_key(power.id) in await reload(row)

        await row_service.update_cell(db_session, user_id, row.id, base.id, 2.5)

        data = await reload(row)
        assert data[base.id] == 2.5
        assert data[power.id].startswith("#ERROR: Cannot raise")

    @pytest.mark.asyncio
    async def test_engine_crash_is_stored_as_marker(
        self, db_session, test_settings, relation_service, projects_table, make_field, make_row,
        reload,
    ):
        label = await make_field(projects_table.id, "Label", FieldType.FORMULA, formula='"x"')
        row = await make_row(projects_table.id)
        stamp = (await reload(row))[computed_at_key(label.id)]

        exploding = RecomputeDispatcher(
            settings=test_settings, formula_engine=ExplodingEngine(), relations=relation_service
        )
        await exploding.dispatch(db_session, projects_table.id, row.id)

        data = await reload(row)
        assert data[label.id] == "#ERROR: boom"
        assert data[computed_at_key(label.id)] == stamp

    @pytest.mark.asyncio
    async def test_engine_crash_during_field_recompute(
        self, db_session, test_settings, relation_service, projects_table, make_field, make_row,
        reload,
    ):
        label = await make_field(projects_table.id, "Label", FieldType.FORMULA, formula='"x"')
        rows = [await make_row(projects_table.id) for _ in range(2)]

        exploding = RecomputeDispatcher(
            settings=test_settings, formula_engine=ExplodingEngine(), relations=relation_service
        )
        assert await exploding.recompute_field(db_session, label) == 2

        for row in rows:
            assert (await reload(row))[label.id] == "#ERROR: boom"

    @pytest.mark.asyncio
    async def test_stored_cycle_is_marked_circular(
        self, db_session, projects_table, make_field, make_row, dispatcher, reload
    ):
        a = await make_field(projects_table.id, "A", FieldType.FORMULA, formula="1")
        b = await make_field(projects_table.id, "B", FieldType.FORMULA, formula="{A} + 1")
        a.set_config({"formula": "{B} + 1", "return_type": "text", "dependencies": [b.id]})
        await db_session.flush()
        row = await make_row(projects_table.id)

        await dispatcher.recompute_table(db_session, projects_table.id)

        data = await reload(row)
        assert data[a.id] == "#ERROR: Circular reference"
        assert data[b.id] == "#ERROR: Circular reference"

    @pytest.mark.asyncio
    async def test_unrelated_change_does_not_select_formula(
        self, db_session, projects_table, make_field, dispatcher
    ):
        price = await make_field(projects_table.id, "Price", FieldType.NUMBER)
        note = await make_field(projects_table.id, "Note", FieldType.TEXT)
        total = await make_field(
            projects_table.id, "Total", FieldType.FORMULA, formula="{Price} + 1"
        )
        constant = await make_field(projects_table.id, "Const", FieldType.FORMULA, formula="42")
        fields = await load_fields(db_session, projects_table.id)

        ordered, _ = dispatcher.affected_formulas(fields, {note.id})
        assert total.id not in ordered
        # a formula without references is always recomputed
        assert constant.id in ordered

        ordered, _ = dispatcher.affected_formulas(fields, {price.id})
        assert total.id in ordered


class TestRollupRecompute:
    """Tests for rollups and their propagation across tables."""

    @pytest.mark.asyncio
    async def test_rollup_on_link_and_on_target_change(
        self, db_session, linked, make_field, make_row, row_service, user_id, reload
    ):
        total = await make_field(
            linked.projects.id,
            "Total Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
        )
        t1 = await make_row(linked.tasks.id, {linked.hours.id: 2})
        t2 = await make_row(linked.tasks.id, {linked.hours.id: 3})

        project = await make_row(linked.projects.id, {linked.tasks_link.id: [t1.id, t2.id]})
        data = await reload(project)
        assert data[total.id] == 5
        assert computed_at_key(total.id) in data

        # editing a linked task flows back to the project
        await row_service.update_cell(db_session, user_id, t1.id, linked.hours.id, 10)
        assert (await reload(project))[total.id] == 13

    @pytest.mark.asyncio
    async def test_rollup_feeds_formula(
        self, db_session, linked, make_field, make_row, row_service, user_id, reload
    ):
        total = await make_field(
            linked.projects.id,
            "Total Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
        )
        days = await make_field(
            linked.projects.id, "Days", FieldType.FORMULA, formula="{Total Hours} / 8"
        )
        task = await make_row(linked.tasks.id, {linked.hours.id: 8})
        project = await make_row(linked.projects.id, {linked.tasks_link.id: [task.id]})
        assert (await reload(project))[days.id] == 1

        await row_service.update_cell(db_session, user_id, task.id, linked.hours.id, 16)
        data = await reload(project)
        assert data[total.id] == 16
        assert data[days.id] == 2

    @pytest.mark.asyncio
    async def test_rollup_on_reverse_side(
        self, db_session, linked, make_field, make_row, row_service, user_id, reload
    ):
        """Mirror changes recompute rollups on the related table."""
        budget = await make_field(linked.projects.id, "Budget", FieldType.NUMBER)
        project_budget = await make_field(
            linked.tasks.id,
            "Project Budget",
            FieldType.ROLLUP,
            relation_field_id=linked.projects_link.id,
            target_field_id=budget.id,
            aggregation="max",
        )
        task = await make_row(linked.tasks.id)
        project = await make_row(
            linked.projects.id, {budget.id: 100, linked.tasks_link.id: [task.id]}
        )
        assert (await reload(task))[project_budget.id] == 100

        await row_service.update_cell(db_session, user_id, project.id, budget.id, 250)
        assert (await reload(task))[project_budget.id] == 250

    @pytest.mark.asyncio
    async def test_filtered_rollup(self, linked, make_field, make_row, reload):
        status = await make_field(linked.tasks.id, "Status", FieldType.TEXT)
        done_hours = await make_field(
            linked.projects.id,
            "Done Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
            filter={"field_id": status.id, "operator": "equals", "value": "done"},
        )
        t1 = await make_row(linked.tasks.id, {linked.hours.id: 2, status.id: "done"})
        t2 = await make_row(linked.tasks.id, {linked.hours.id: 5, status.id: "open"})

        project = await make_row(linked.projects.id, {linked.tasks_link.id: [t1.id, t2.id]})
        assert (await reload(project))[done_hours.id] == 2

    @pytest.mark.asyncio
    async def test_new_rollup_is_computed_for_existing_rows(
        self, linked, make_field, make_row, reload
    ):
        task = await make_row(linked.tasks.id, {linked.hours.id: 4})
        project = await make_row(linked.projects.id, {linked.tasks_link.id: [task.id]})

        count = await make_field(
            linked.projects.id,
            "Task Count",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="count",
        )
        assert (await reload(project))[count.id] == 1

    @pytest.mark.asyncio
    async def test_unlinking_updates_rollup(
        self, db_session, linked, make_field, make_row, row_service, user_id, reload
    ):
        total = await make_field(
            linked.projects.id,
            "Total Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
        )
        t1 = await make_row(linked.tasks.id, {linked.hours.id: 2})
        t2 = await make_row(linked.tasks.id, {linked.hours.id: 3})
        project = await make_row(linked.projects.id, {linked.tasks_link.id: [t1.id, t2.id]})

        await row_service.update_row(
            db_session, user_id, project.id, {linked.tasks_link.id: [t2.id]}
        )
        assert (await reload(project))[total.id] == 3

    @pytest.mark.asyncio
    async def test_target_change_only_touches_rollups_of_that_field(
        self, db_session, linked, make_field, make_row, row_service, user_id, reload
    ):
        points = await make_field(linked.tasks.id, "Points", FieldType.NUMBER)
        total = await make_field(
            linked.projects.id,
            "Total Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
        )
        top = await make_field(
            linked.projects.id,
            "Top Points",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=points.id,
            aggregation="max",
        )
        task = await make_row(linked.tasks.id, {linked.hours.id: 1, points.id: 8})
        project = await make_row(linked.projects.id, {linked.tasks_link.id: [task.id]})
        before = await reload(project)
        assert before[top.id] == 8

        # a planted value survives only if Top Points is left alone
        await write_row_data(db_session, project.id, lambda data: {**data, top.id: 99})

        await row_service.update_cell(db_session, user_id, task.id, linked.hours.id, 6)

        after = await reload(project)
        assert after[total.id] == 6
        assert after[top.id] == 99
        assert after[computed_at_key(top.id)] == before[computed_at_key(top.id)]

    @pytest.mark.asyncio
    async def test_rollup_failure_is_stored_as_marker(
        self, db_session, test_settings, gate, linked, make_field, make_row, reload
    ):
        total = await make_field(
            linked.projects.id,
            "Total Hours",
            FieldType.ROLLUP,
            relation_field_id=linked.tasks_link.id,
            target_field_id=linked.hours.id,
            aggregation="sum",
        )
        task = await make_row(linked.tasks.id, {linked.hours.id: 2})
        project = await make_row(linked.projects.id, {linked.tasks_link.id: [task.id]})
        stamp = (await reload(project))[computed_at_key(total.id)]

        broken = RecomputeDispatcher(
            settings=test_settings, relations=UnreachableRelations(gate)
        )
        result = await broken.compute_rollup_value(db_session, project.id, total)

        assert result.error == "link store offline"
        data = await reload(project)
        assert is_error_value(data[total.id])
        assert data[computed_at_key(total.id)] == stamp
