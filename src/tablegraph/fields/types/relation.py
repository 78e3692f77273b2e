"""Relation field type handler.

Relation cells hold the ids of linked rows in another table. The list is a
cache of the edge table, rewritten by every link sync.
"""

from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler

RELATION_TYPES = {"one_to_one", "one_to_many", "many_to_one", "many_to_many"}


def normalize_row_ids(value: Any) -> list[str]:
    """
    Turn a relation cell value into an ordered, de-duplicated id list.

    Accepts a single id, a list of ids, or ``{"id": ...}`` objects; empty
    entries are dropped.
    """
    if value is None or value == "":
        return []
    items = value if isinstance(value, (list, tuple)) else [value]

    seen: set[str] = set()
    ids: list[str] = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("id")
        if not item:
            continue
        row_id = str(item)
        if row_id not in seen:
            seen.add(row_id)
            ids.append(row_id)
    return ids


class RelationFieldHandler(BaseFieldTypeHandler):
    """
    Handler for relation fields.

    Options:
        related_table_id: Table the links point into (required)
        relation_type: one_to_one, one_to_many, many_to_one or many_to_many
        allow_multiple: Whether more than one row may be linked (default True)
        limit: Optional cap on the number of linked rows
        bidirectional: Whether links are mirrored on the related table
        reverse_field_id: The paired relation field in the related table
        display_field_id: Field of the related table used as the label
    """

    field_type = "relation"

    @classmethod
    def serialize(cls, value: Any) -> Any:
        return normalize_row_ids(value)

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        if value is None or value == "":
            return True
        if isinstance(value, str):
            return True
        if not isinstance(value, (list, tuple)):
            raise ValueError("Relation field requires a list of row ids")
        return True

    @classmethod
    def default(cls) -> Any:
        return []

    @classmethod
    def normalize_config(cls, config: dict[str, Any] | None) -> dict[str, Any]:
        """
        Normalize relation config, accepting the legacy key spellings.

        Raises:
            ValueError: If the related table is missing or a value is invalid
        """
        config = dict(config or {})
        related_table_id = (
            config.get("related_table_id")
            or config.get("relation_table_id")
            or config.get("linkedTableId")
        )
        if not related_table_id:
            raise ValueError("Relation field must specify related_table_id")

        relation_type = config.get("relation_type") or "many_to_many"
        if relation_type not in RELATION_TYPES:
            raise ValueError(f"Invalid relation_type '{relation_type}'")

        allow_multiple = config.get("allow_multiple")
        if allow_multiple is None:
            allow_multiple = relation_type in ("one_to_many", "many_to_many")

        limit = config.get("limit")
        if limit is not None:
            try:
                limit = int(limit)
            except (TypeError, ValueError):
                raise ValueError("Relation limit must be a positive integer")
            if limit < 1:
                raise ValueError("Relation limit must be a positive integer")

        normalized: dict[str, Any] = {
            "related_table_id": str(related_table_id),
            "relation_type": relation_type,
            "allow_multiple": bool(allow_multiple),
            "bidirectional": bool(config.get("bidirectional", False)),
            "limit": limit,
            "reverse_field_id": config.get("reverse_field_id") or config.get("reverseFieldId"),
            "display_field_id": config.get("display_field_id") or config.get("displayFieldId"),
        }
        return normalized

    @classmethod
    def cap_links(cls, row_ids: list[str], config: dict[str, Any]) -> list[str]:
        """Apply the single-link rule and the optional limit."""
        if not config.get("allow_multiple", True):
            row_ids = row_ids[:1]
        limit = config.get("limit")
        if limit:
            row_ids = row_ids[:limit]
        return row_ids
