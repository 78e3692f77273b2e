"""Field model - a typed column of a table."""

import json
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tablegraph.db.base import BaseModel


class FieldType(str, Enum):
    """Supported field types."""

    TEXT = "text"
    LONG_TEXT = "long_text"
    NUMBER = "number"
    SELECT = "select"
    MULTI_SELECT = "multi_select"
    STATUS = "status"
    PRIORITY = "priority"
    DATE = "date"
    CHECKBOX = "checkbox"
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"
    PERSON = "person"
    FILES = "files"
    CREATED_TIME = "created_time"
    LAST_EDITED_TIME = "last_edited_time"
    CREATED_BY = "created_by"
    LAST_EDITED_BY = "last_edited_by"
    FORMULA = "formula"
    RELATION = "relation"
    ROLLUP = "rollup"


class TableField(BaseModel):
    """
    A field definition.

    ``config`` holds the type-specific configuration as JSON text: the
    expression and dependencies of a formula, the relation and aggregation of
    a rollup, the related table and pairing of a relation.
    """

    __tablename__ = "table_fields"

    table_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    field_type: Mapped[str] = mapped_column(String(50), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    width: Mapped[float | None] = mapped_column(Float, nullable=True)
    config: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    __table_args__ = (Index("ix_table_fields_table_position", "table_id", "position"),)

    def __repr__(self) -> str:
        return f"<TableField {self.name} ({self.field_type})>"

    def get_config(self) -> dict[str, Any]:
        """Parse the config JSON."""
        try:
            value = json.loads(self.config or "{}")
        except json.JSONDecodeError:
            return {}
        return value if isinstance(value, dict) else {}

    def set_config(self, config: dict[str, Any]) -> None:
        """Serialize and store the config."""
        self.config = json.dumps(config)
