"""Unit tests for row data sanitization and relation cell helpers."""

import pytest

from tablegraph.fields import (
    computed_at_key,
    format_error_value,
    is_error_value,
    sanitize_row_data,
    strip_read_only,
)
from tablegraph.fields.types.checkbox import CheckboxFieldHandler
from tablegraph.fields.types.number import NumberFieldHandler, to_number
from tablegraph.fields.types.relation import RelationFieldHandler, normalize_row_ids


class TestSanitizeRowData:
    """Tests for sanitize_row_data."""

    def test_drops_unknown_keys(self):
        data = {"f1": 1, "gone": 2, "f2": None}
        assert sanitize_row_data(data, ["f1", "f2"]) == {"f1": 1, "f2": None}

    def test_keeps_computed_at_keys_of_deleted_fields(self):
        data = {"f1": 1, computed_at_key("old"): "2024-01-01T00:00:00.000Z"}
        assert sanitize_row_data(data, {"f1"}) == data

    def test_is_idempotent(self):
        """Sanitizing twice gives the same result as sanitizing once."""
        data = {"f1": 1, "x": 2, computed_at_key("f1"): "t"}
        once = sanitize_row_data(data, {"f1"})
        assert sanitize_row_data(once, {"f1"}) == once

    def test_empty_input(self):
        assert sanitize_row_data(None, {"f1"}) == {}
        assert sanitize_row_data({}, {"f1"}) == {}

    def test_does_not_mutate_input(self):
        data = {"f1": 1, "x": 2}
        sanitize_row_data(data, {"f1"})
        assert data == {"f1": 1, "x": 2}


class TestStripReadOnly:
    """Tests for strip_read_only."""

    def test_removes_computed_and_system_fields(self):
        types = {
            "name": "text",
            "total": "rollup",
            "calc": "formula",
            "created": "created_time",
            "editor": "last_edited_by",
        }
        data = {"name": "a", "total": 1, "calc": 2, "created": "t", "editor": "u"}
        assert strip_read_only(data, types) == {"name": "a"}

    def test_keeps_unknown_keys(self):
        """Unknown keys are left for sanitization to drop."""
        assert strip_read_only({"x": 1}, {}) == {"x": 1}


class TestErrorValues:
    def test_format_and_detect(self):
        assert format_error_value() == "#ERROR"
        assert format_error_value("Division by zero") == "#ERROR: Division by zero"
        assert is_error_value("#ERROR: Circular reference")
        assert not is_error_value("ERROR")
        assert not is_error_value(None)


class TestRelationCells:
    """Tests for relation cell normalization."""

    def test_normalize_row_ids(self):
        assert normalize_row_ids(None) == []
        assert normalize_row_ids("") == []
        assert normalize_row_ids("r1") == ["r1"]
        assert normalize_row_ids(["r1", {"id": "r2"}, "r1", None, ""]) == ["r1", "r2"]

    def test_cap_links_single(self):
        config = {"allow_multiple": False}
        assert RelationFieldHandler.cap_links(["a", "b"], config) == ["a"]

    def test_cap_links_limit(self):
        config = {"allow_multiple": True, "limit": 2}
        assert RelationFieldHandler.cap_links(["a", "b", "c"], config) == ["a", "b"]

    def test_normalize_config_requires_table(self):
        with pytest.raises(ValueError, match="related_table_id"):
            RelationFieldHandler.normalize_config({})

    def test_allow_multiple_follows_relation_type(self):
        config = RelationFieldHandler.normalize_config(
            {"related_table_id": "t", "relation_type": "many_to_one"}
        )
        assert config["allow_multiple"] is False
        assert config["bidirectional"] is False

    def test_rejects_bad_limit(self):
        with pytest.raises(ValueError, match="limit"):
            RelationFieldHandler.normalize_config({"related_table_id": "t", "limit": 0})


class TestValueValidation:
    def test_to_number(self):
        assert to_number("6") == 6
        assert to_number(" 2.5 ") == 2.5
        assert to_number(4.0) == 4
        assert to_number(True) == 1
        assert to_number("x") is None
        assert to_number("") is None

    def test_number_field_rejects_text(self):
        with pytest.raises(ValueError):
            NumberFieldHandler.validate("abc")
        with pytest.raises(ValueError):
            NumberFieldHandler.validate(True)
        assert NumberFieldHandler.validate("12")

    def test_checkbox_requires_bool(self):
        assert CheckboxFieldHandler.validate(True)
        with pytest.raises(ValueError):
            CheckboxFieldHandler.validate("yes")
