"""Relation edge model - the source of truth for row-to-row links."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from tablegraph.db.base import Base, UUIDMixin, utc_now


class TableRelation(Base, UUIDMixin):
    """
    A directed link ``(from_row, from_field) -> to_row``.

    The relation field's cell on ``from_row`` caches the list of ``to_row``
    ids; this table is authoritative.
    """

    __tablename__ = "table_relations"

    from_table_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tables.id", ondelete="CASCADE"), nullable=False
    )
    from_field_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("table_fields.id", ondelete="CASCADE"), nullable=False
    )
    from_row_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("table_rows.id", ondelete="CASCADE"), nullable=False
    )
    to_table_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tables.id", ondelete="CASCADE"), nullable=False
    )
    to_row_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("table_rows.id", ondelete="CASCADE"), nullable=False
    )
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("from_row_id", "from_field_id", "to_row_id", name="uq_table_relation_edge"),
        Index("ix_table_relations_from", "from_row_id", "from_field_id"),
        Index("ix_table_relations_to_row", "to_row_id"),
    )

    def __repr__(self) -> str:
        return f"<TableRelation {self.from_row_id}:{self.from_field_id} -> {self.to_row_id}>"
