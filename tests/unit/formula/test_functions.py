"""Unit tests for built-in formula functions."""

from datetime import datetime, timezone

import pytest

from tablegraph.formula.functions import FORMULA_FUNCTIONS, register_function, to_text


def call(name, *args):
    return FORMULA_FUNCTIONS[name](*args)


class TestTextFunctions:
    def test_concat(self):
        assert call("CONCAT", "a", 1, None, True) == "a1true"

    def test_left_right_mid(self):
        assert call("LEFT", "abcdef", 2) == "ab"
        assert call("RIGHT", "abcdef", 2) == "ef"
        assert call("MID", "abcdef", 2, 3) == "bcd"

    def test_len_trim_case(self):
        assert call("LEN", "abc") == 3
        assert call("TRIM", "  x ") == "x"
        assert call("UPPER", "ab") == "AB"
        assert call("LOWER", "AB") == "ab"

    def test_find_is_one_based(self):
        assert call("FIND", "c", "abc") == 3
        assert call("FIND", "z", "abc") == 0

    def test_substitute_and_rept(self):
        assert call("SUBSTITUTE", "a-b-c", "-", "+") == "a+b+c"
        assert call("REPT", "ab", 3) == "ababab"

    def test_regex_match_rejects_bad_pattern(self):
        assert call("REGEX_MATCH", "abc123", r"\d+") is True
        with pytest.raises(ValueError):
            call("REGEX_MATCH", "abc", "(")

    def test_value_parses_formatted_numbers(self):
        assert call("VALUE", "1,234") == 1234
        assert call("VALUE", "50%") == 50


class TestNumericFunctions:
    def test_sum_flattens_lists_and_skips_text(self):
        assert call("SUM", 1, [2, "3"], "x", None) == 6

    def test_average_min_max_count(self):
        assert call("AVERAGE", 1, 2, 3, 4) == 2.5
        assert call("MIN", 3, 1, 2) == 1
        assert call("MAX", [3, 9], 2) == 9
        assert call("COUNT", 1, "a", None, 2) == 2
        assert call("AVERAGE") is None

    def test_round_half_up(self):
        assert call("ROUND", 2.5) == 3
        assert call("ROUND", 1.25, 1) == 1.3
        assert call("ROUND", None) is None

    def test_ceiling_floor_abs(self):
        assert call("CEILING", 1.2) == 2
        assert call("FLOOR", 1.8) == 1
        assert call("ABS", -3) == 3

    def test_mod_by_zero(self):
        with pytest.raises(ValueError):
            call("MOD", 1, 0)


class TestLogicalFunctions:
    def test_if(self):
        assert call("IF", True, "y", "n") == "y"
        assert call("IF", 0, "y", "n") == "n"
        assert call("IF", False, "y") is None

    def test_ifs(self):
        assert call("IFS", False, 1, True, 2) == 2
        assert call("IFS", False, 1) is None

    def test_switch_with_default(self):
        assert call("SWITCH", "b", "a", 1, "b", 2, 0) == 2
        assert call("SWITCH", "z", "a", 1, 0) == 0
        assert call("SWITCH", "z", "a", 1) is None

    def test_empty_and_isnumber(self):
        assert call("EMPTY", "") is True
        assert call("ISBLANK", []) is True
        assert call("ISNUMBER", 1) is True
        assert call("ISNUMBER", True) is False


class TestDateFunctions:
    def test_parts(self):
        assert call("YEAR", "2024-03-05") == 2024
        assert call("MONTH", "2024-03-05") == 3
        assert call("DAY", "2024-03-05") == 5

    def test_dateadd_and_datediff(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert call("DATEADD", start, 2, "days") == datetime(2024, 1, 3, tzinfo=timezone.utc)
        assert call("DATEDIFF", "2024-01-10", "2024-01-01", "days") == 9

    def test_invalid_date(self):
        with pytest.raises(ValueError):
            call("YEAR", "not a date")


class TestRegistry:
    def test_register_function_uses_upper_case_names(self):
        @register_function("double_it")
        def double_it(value):
            return value * 2

        try:
            assert FORMULA_FUNCTIONS["DOUBLE_IT"](4) == 8
        finally:
            FORMULA_FUNCTIONS.pop("DOUBLE_IT")

    def test_to_text(self):
        assert to_text(None) == ""
        assert to_text(False) == "false"
        assert to_text(3.0) == "3"
        assert to_text(["a", 1]) == "a, 1"
