"""Tests for the Alembic migrations."""

from pathlib import Path

from alembic.migration import MigrationContext
from alembic.operations import Operations
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine, inspect

import tablegraph.models  # noqa: F401  registers mappers
from tablegraph.db.base import Base

MIGRATIONS = Path(__file__).resolve().parents[2] / "migrations"


class TestInitialRevision:
    """The migrated schema matches the models."""

    def test_single_head(self):
        script = ScriptDirectory(str(MIGRATIONS))
        assert len(script.get_heads()) == 1

    def test_upgrade_creates_model_schema(self):
        script = ScriptDirectory(str(MIGRATIONS))
        revision = script.get_revision("head")
        engine = create_engine("sqlite://")

        with engine.begin() as conn:
            with Operations.context(MigrationContext.configure(conn)):
                revision.module.upgrade()

            inspector = inspect(conn)
            assert set(inspector.get_table_names()) == set(Base.metadata.tables)
            for name, table in Base.metadata.tables.items():
                columns = {c["name"] for c in inspector.get_columns(name)}
                assert columns == {c.name for c in table.columns}, name
                indexes = {i["name"] for i in inspector.get_indexes(name)}
                assert indexes == {i.name for i in table.indexes}, name

        engine.dispose()
