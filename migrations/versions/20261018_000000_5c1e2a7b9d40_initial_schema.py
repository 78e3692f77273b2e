"""Initial schema: workspaces, tables, fields, rows, relation edges

Revision ID: 5c1e2a7b9d40
Revises:
Create Date: 2026-10-18 00:00:00+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

from tablegraph.db.procedures import PROCEDURES

# Revision identifiers, used by Alembic
revision: str = "5c1e2a7b9d40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "workspaces",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        *timestamps(),
    )

    op.create_table(
        "workspace_members",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "workspace_id",
            sa.String(36),
            sa.ForeignKey("workspaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        *timestamps(),
        sa.UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )
    op.create_index("ix_workspace_members_workspace_id", "workspace_members", ["workspace_id"])
    op.create_index("ix_workspace_members_user_id", "workspace_members", ["user_id"])

    op.create_table(
        "tables",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "workspace_id",
            sa.String(36),
            sa.ForeignKey("workspaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
        *timestamps(),
    )
    op.create_index("ix_tables_workspace_id", "tables", ["workspace_id"])

    op.create_table(
        "table_fields",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "table_id",
            sa.String(36),
            sa.ForeignKey("tables.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("field_type", sa.String(50), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.Column("width", sa.Float(), nullable=True),
        sa.Column("config", sa.Text(), nullable=False),
        *timestamps(),
    )
    op.create_index("ix_table_fields_table_id", "table_fields", ["table_id"])
    op.create_index("ix_table_fields_table_position", "table_fields", ["table_id", "position"])

    op.create_table(
        "table_rows",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "table_id",
            sa.String(36),
            sa.ForeignKey("tables.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("data", sa.Text(), nullable=False),
        sa.Column("order", sa.Float(), nullable=True),
        sa.Column("source_entity_id", sa.String(36), nullable=True),
        sa.Column("source_entity_type", sa.String(50), nullable=True),
        sa.Column("source_sync_mode", sa.String(20), nullable=True),
        sa.Column("edited", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column("updated_by", sa.String(255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *timestamps(),
    )
    op.create_index("ix_table_rows_table_id", "table_rows", ["table_id"])
    op.create_index("ix_table_rows_table_order", "table_rows", ["table_id", "order"])

    op.create_table(
        "table_relations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "from_table_id",
            sa.String(36),
            sa.ForeignKey("tables.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "from_field_id",
            sa.String(36),
            sa.ForeignKey("table_fields.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "from_row_id",
            sa.String(36),
            sa.ForeignKey("table_rows.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "to_table_id",
            sa.String(36),
            sa.ForeignKey("tables.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "to_row_id",
            sa.String(36),
            sa.ForeignKey("table_rows.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_by", sa.String(255), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "from_row_id", "from_field_id", "to_row_id", name="uq_table_relation_edge"
        ),
    )
    op.create_index(
        "ix_table_relations_from", "table_relations", ["from_row_id", "from_field_id"]
    )
    op.create_index("ix_table_relations_to_row", "table_relations", ["to_row_id"])

    # Bulk row procedures used by the remote bulk strategy
    if op.get_bind().dialect.name == "postgresql":
        for ddl in PROCEDURES.values():
            op.execute(sa.text(ddl))


def downgrade() -> None:
    """Downgrade database schema."""
    if op.get_bind().dialect.name == "postgresql":
        for name in PROCEDURES:
            op.execute(f"DROP FUNCTION IF EXISTS {name}")

    op.drop_table("table_relations")
    op.drop_table("table_rows")
    op.drop_table("table_fields")
    op.drop_table("tables")
    op.drop_table("workspace_members")
    op.drop_table("workspaces")
