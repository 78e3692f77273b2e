"""Row model - one record of a table with its values as JSON."""

import json
from typing import Any

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tablegraph.db.base import BaseModel


class TableRow(BaseModel):
    """
    A table row.

    ``data`` maps field ids to values. Computed fields also keep a
    ``<field_id>_computed_at`` timestamp next to their value. Rows mirrored
    from another entity carry its id and type; a ``snapshot`` mirror is
    flagged ``edited`` once a user changes it.
    """

    __tablename__ = "table_rows"

    table_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    data: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    order: Mapped[float | None] = mapped_column(Float, nullable=True)

    source_entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    source_entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    source_sync_mode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # bumped by every data write; writers compare-and-swap on it
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (Index("ix_table_rows_table_order", "table_id", "order"),)

    def __repr__(self) -> str:
        return f"<TableRow {self.id}>"

    def get_data(self) -> dict[str, Any]:
        """Parse the row data JSON."""
        try:
            value = json.loads(self.data or "{}")
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}

    def set_data(self, data: dict[str, Any]) -> None:
        """Serialize and store the row data."""
        self.data = json.dumps(data, default=str)

    @property
    def is_snapshot(self) -> bool:
        """Whether the row is a snapshot copy of an external entity."""
        return bool(self.source_entity_id) and self.source_sync_mode != "live"
