"""Rollup field type handler.

Rollup fields aggregate one field of the rows linked through a relation
field, optionally filtered, into a single value.
"""

import json
import math
from statistics import median
from typing import Any

from tablegraph.fields.base import BaseFieldTypeHandler
from tablegraph.fields.types.date import parse_datetime, to_iso_string
from tablegraph.fields.types.number import to_number

MS_PER_DAY = 86_400_000


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def _display(value: Any) -> str:
    """String form used when joining values for display."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else _display(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True)
    return str(value)


def _identity_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _strict_equals(left: Any, right: Any) -> bool:
    """Equality without cross-type coercion: ``1 != "1"`` and ``True != 1``."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    numeric = (int, float)
    if isinstance(left, numeric) and isinstance(right, numeric):
        return left == right
    return type(left) is type(right) and left == right


class RollupFieldHandler(BaseFieldTypeHandler):
    """
    Handler for rollup fields.

    Options:
        relation_field_id: Relation field of this table to roll up through (required)
        target_field_id: Field of the related table to aggregate (required)
        aggregation: Aggregation name (default count)
        filter: Optional ``{"field_id", "operator", "value"}`` applied to the
            related rows before aggregating

    Counting aggregations look at every value; numeric ones coerce and drop
    non-numbers; date ones parse and drop unparseable values; display ones
    join string forms with ", ".
    """

    field_type = "rollup"

    AGGREGATIONS = (
        "count",
        "count_values",
        "count_empty",
        "count_unique",
        "percent_empty",
        "percent_not_empty",
        "sum",
        "average",
        "median",
        "min",
        "max",
        "range",
        "earliest_date",
        "latest_date",
        "date_range",
        "checked",
        "unchecked",
        "percent_checked",
        "show_unique",
        "show_original",
    )

    FILTER_OPERATORS = (
        "equals",
        "not_equals",
        "contains",
        "not_contains",
        "greater_than",
        "less_than",
        "greater_or_equal",
        "less_or_equal",
        "is_empty",
        "is_not_empty",
    )

    @classmethod
    def serialize(cls, value: Any) -> Any:
        return value

    @classmethod
    def validate(cls, value: Any, options: dict[str, Any] | None = None) -> bool:
        raise ValueError("Rollup fields are computed and cannot be edited")

    @classmethod
    def is_computed(cls) -> bool:
        return True

    @classmethod
    def normalize_config(cls, config: dict[str, Any] | None) -> dict[str, Any]:
        """
        Normalize rollup config, accepting the legacy key spellings.

        Raises:
            ValueError: If a required reference is missing or the aggregation
                or filter operator is unknown
        """
        config = dict(config or {})
        relation_field_id = config.get("relation_field_id") or config.get("relationFieldId")
        target_field_id = config.get("target_field_id") or config.get("relatedFieldId")
        if not relation_field_id:
            raise ValueError("Rollup field must specify relation_field_id")
        if not target_field_id:
            raise ValueError("Rollup field must specify target_field_id")

        aggregation = (config.get("aggregation") or "count").lower()
        if aggregation not in cls.AGGREGATIONS:
            raise ValueError(
                f"Invalid aggregation '{aggregation}'. Supported: {', '.join(cls.AGGREGATIONS)}"
            )

        normalized: dict[str, Any] = {
            "relation_field_id": str(relation_field_id),
            "target_field_id": str(target_field_id),
            "aggregation": aggregation,
        }

        row_filter = config.get("filter")
        if row_filter:
            if not isinstance(row_filter, dict) or not row_filter.get("field_id"):
                raise ValueError("Rollup filter must specify field_id")
            operator = row_filter.get("operator") or "equals"
            if operator not in cls.FILTER_OPERATORS:
                raise ValueError(f"Invalid filter operator '{operator}'")
            normalized["filter"] = {
                "field_id": str(row_filter["field_id"]),
                "operator": operator,
                "value": row_filter.get("value"),
            }
        return normalized

    # ==========================================================================
    # Filtering
    # ==========================================================================

    @classmethod
    def matches_filter(cls, value: Any, operator: str, filter_value: Any) -> bool:
        """
        Test one related row's value against a filter condition.

        Unknown operators let every row through.
        """
        if operator == "equals":
            return _strict_equals(value, filter_value)
        if operator == "not_equals":
            return not _strict_equals(value, filter_value)

        if operator in ("contains", "not_contains"):
            haystack = "" if value is None else _display(value)
            needle = "" if filter_value is None else _display(filter_value)
            found = needle.lower() in haystack.lower()
            return found if operator == "contains" else not found

        if operator in ("greater_than", "less_than", "greater_or_equal", "less_or_equal"):
            left = to_number(value)
            right = to_number(filter_value)
            if left is None or right is None:
                return False
            if operator == "greater_than":
                return left > right
            if operator == "less_than":
                return left < right
            if operator == "greater_or_equal":
                return left >= right
            return left <= right

        if operator == "is_empty":
            return _is_empty(value)
        if operator == "is_not_empty":
            return not _is_empty(value)

        return True

    @classmethod
    def apply_filter(
        cls,
        rows_data: list[dict[str, Any]],
        row_filter: dict[str, Any] | None,
    ) -> list[dict[str, Any]]:
        """Keep the related rows (as data dicts) that satisfy ``row_filter``."""
        if not row_filter or not row_filter.get("field_id"):
            return rows_data
        field_id = row_filter["field_id"]
        operator = row_filter.get("operator") or "equals"
        filter_value = row_filter.get("value")
        return [
            data
            for data in rows_data
            if cls.matches_filter(data.get(field_id), operator, filter_value)
        ]

    # ==========================================================================
    # Aggregation
    # ==========================================================================

    @classmethod
    def compute(cls, values: list[Any], aggregation: str) -> Any:
        """
        Aggregate the target values of the related rows.

        Args:
            values: One value per related row, None where the cell is unset
            aggregation: Aggregation name

        Returns:
            The aggregate, or None for unknown aggregations and for numeric or
            date aggregations with nothing to aggregate
        """
        aggregation = (aggregation or "").lower()
        total = len(values)
        present = [v for v in values if v is not None]

        if aggregation == "count":
            return total
        if aggregation == "count_values":
            return len([v for v in present if v != ""])
        if aggregation == "count_empty":
            return len([v for v in values if _is_empty(v)])
        if aggregation == "count_unique":
            return len({_identity_key(v) for v in present})
        if aggregation == "percent_empty":
            if not total:
                return 0
            return round_half_up(len([v for v in values if _is_empty(v)]) / total * 100)
        if aggregation == "percent_not_empty":
            if not total:
                return 0
            return round_half_up(len([v for v in values if not _is_empty(v)]) / total * 100)

        if aggregation in ("sum", "average", "median", "min", "max", "range"):
            return cls._numeric(aggregation, present)

        if aggregation in ("earliest_date", "latest_date", "date_range"):
            return cls._dates(aggregation, present)

        if aggregation == "checked":
            return len([v for v in values if v is True])
        if aggregation == "unchecked":
            return len([v for v in values if v is False or v is None])
        if aggregation == "percent_checked":
            if not total:
                return 0
            return round_half_up(len([v for v in values if v is True]) / total * 100)

        if aggregation == "show_unique":
            seen: set[str] = set()
            unique: list[str] = []
            for v in present:
                key = _identity_key(v)
                if key not in seen:
                    seen.add(key)
                    unique.append(_display(v))
            return ", ".join(unique)
        if aggregation == "show_original":
            return ", ".join(_display(v) for v in present)

        return None

    @classmethod
    def _numeric(cls, aggregation: str, values: list[Any]) -> Any:
        numbers = [n for n in (to_number(v) for v in values) if n is not None]

        if aggregation == "sum":
            return sum(numbers)
        if not numbers:
            return None
        if aggregation == "average":
            return sum(numbers) / len(numbers)
        if aggregation == "median":
            return median(numbers)
        if aggregation == "min":
            return min(numbers)
        if aggregation == "max":
            return max(numbers)
        return max(numbers) - min(numbers)

    @classmethod
    def _dates(cls, aggregation: str, values: list[Any]) -> Any:
        dates = [d for d in (parse_datetime(v) for v in values) if d is not None]
        if not dates:
            return None

        earliest = min(dates)
        latest = max(dates)
        if aggregation == "earliest_date":
            return to_iso_string(earliest)
        if aggregation == "latest_date":
            return to_iso_string(latest)
        delta_ms = (latest - earliest).total_seconds() * 1000
        return round_half_up(delta_ms / MS_PER_DAY)
