"""Built-in formula functions.

Functions receive already-evaluated arguments. Raising ``ValueError`` or
``TypeError`` turns into an error marker in the cell.
"""

import math
import re
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

from tablegraph.fields.types.date import parse_datetime, to_iso_string
from tablegraph.fields.types.number import to_number

FormulaFunction = Callable[..., Any]

FORMULA_FUNCTIONS: dict[str, FormulaFunction] = {}


def register_function(*names: str) -> Callable[[FormulaFunction], FormulaFunction]:
    """Decorator registering a function under one or more names."""

    def decorator(func: FormulaFunction) -> FormulaFunction:
        for name in names:
            FORMULA_FUNCTIONS[name.upper()] = func
        return func

    return decorator


def to_text(value: Any) -> str:
    """String form of a value as it appears when concatenated."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return to_iso_string(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ", ".join(to_text(v) for v in value)
    return str(value)


def _number(value: Any, name: str = "value") -> int | float:
    number = to_number(value)
    if number is None:
        raise ValueError(f"{name} must be a number, got {value!r}")
    return number


def _numbers(args: tuple[Any, ...]) -> list[int | float]:
    flat: list[Any] = []
    for arg in args:
        if isinstance(arg, (list, tuple)):
            flat.extend(arg)
        else:
            flat.append(arg)
    return [n for n in (to_number(v) for v in flat if not isinstance(v, bool)) if n is not None]


def _datetime(value: Any) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == []


# =============================================================================
# Text
# =============================================================================


@register_function("CONCAT", "CONCATENATE")
def func_concat(*args: Any) -> str:
    return "".join(to_text(a) for a in args)


@register_function("LEFT")
def func_left(text: Any, count: Any = 1) -> str:
    return to_text(text)[: max(0, int(_number(count, "count")))]


@register_function("RIGHT")
def func_right(text: Any, count: Any = 1) -> str:
    n = int(_number(count, "count"))
    return to_text(text)[-n:] if n > 0 else ""


@register_function("MID")
def func_mid(text: Any, start: Any, count: Any) -> str:
    begin = max(1, int(_number(start, "start"))) - 1
    return to_text(text)[begin : begin + max(0, int(_number(count, "count")))]


@register_function("LEN")
def func_len(text: Any) -> int:
    return len(to_text(text))


@register_function("TRIM")
def func_trim(text: Any) -> str:
    return to_text(text).strip()


@register_function("LOWER")
def func_lower(text: Any) -> str:
    return to_text(text).lower()


@register_function("UPPER")
def func_upper(text: Any) -> str:
    return to_text(text).upper()


@register_function("SUBSTITUTE")
def func_substitute(text: Any, old: Any, new: Any) -> str:
    return to_text(text).replace(to_text(old), to_text(new))


@register_function("REPT")
def func_rept(text: Any, count: Any) -> str:
    return to_text(text) * max(0, int(_number(count, "count")))


@register_function("FIND")
def func_find(needle: Any, haystack: Any) -> int:
    """1-based position of ``needle``, 0 when absent."""
    return to_text(haystack).find(to_text(needle)) + 1


@register_function("CONTAINS")
def func_contains(haystack: Any, needle: Any) -> bool:
    return to_text(needle).lower() in to_text(haystack).lower()


@register_function("REGEX_MATCH")
def func_regex_match(text: Any, pattern: Any) -> bool:
    try:
        return re.search(to_text(pattern), to_text(text)) is not None
    except re.error as e:
        raise ValueError(f"Invalid pattern: {e}") from e


@register_function("TEXT", "STRING")
def func_text(value: Any) -> str:
    return to_text(value)


@register_function("VALUE", "NUMBER")
def func_value(value: Any) -> int | float | None:
    if isinstance(value, str):
        value = value.replace(",", "").strip().rstrip("%")
    return to_number(value)


# =============================================================================
# Numeric
# =============================================================================


@register_function("SUM", "ADD")
def func_sum(*args: Any) -> int | float:
    return sum(_numbers(args))


@register_function("AVERAGE", "AVG", "MEAN")
def func_average(*args: Any) -> float | None:
    numbers = _numbers(args)
    return sum(numbers) / len(numbers) if numbers else None


@register_function("MIN")
def func_min(*args: Any) -> int | float | None:
    numbers = _numbers(args)
    return min(numbers) if numbers else None


@register_function("MAX")
def func_max(*args: Any) -> int | float | None:
    numbers = _numbers(args)
    return max(numbers) if numbers else None


@register_function("COUNT")
def func_count(*args: Any) -> int:
    return len(_numbers(args))


@register_function("ROUND")
def func_round(value: Any, digits: Any = 0) -> int | float | None:
    if value is None:
        return None
    factor = 10 ** int(_number(digits, "digits"))
    result = math.floor(_number(value) * factor + 0.5) / factor
    return int(result) if result.is_integer() else result


@register_function("CEILING", "CEIL")
def func_ceiling(value: Any) -> int | None:
    return None if value is None else math.ceil(_number(value))


@register_function("FLOOR")
def func_floor(value: Any) -> int | None:
    return None if value is None else math.floor(_number(value))


@register_function("ABS")
def func_abs(value: Any) -> int | float | None:
    return None if value is None else abs(_number(value))


@register_function("SQRT")
def func_sqrt(value: Any) -> float:
    number = _number(value)
    if number < 0:
        raise ValueError("square root of a negative number")
    return math.sqrt(number)


@register_function("POWER", "POW")
def func_power(base: Any, exponent: Any) -> int | float:
    return _number(base, "base") ** _number(exponent, "exponent")


@register_function("MOD")
def func_mod(value: Any, divisor: Any) -> int | float:
    d = _number(divisor, "divisor")
    if d == 0:
        raise ValueError("division by zero")
    return _number(value) % d


# =============================================================================
# Logical
# =============================================================================


@register_function("IF")
def func_if(condition: Any, if_true: Any = None, if_false: Any = None) -> Any:
    return if_true if condition else if_false


@register_function("IFS")
def func_ifs(*args: Any) -> Any:
    for index in range(0, len(args) - 1, 2):
        if args[index]:
            return args[index + 1]
    return None


@register_function("SWITCH")
def func_switch(expression: Any, *cases: Any) -> Any:
    for index in range(0, len(cases) - 1, 2):
        if cases[index] == expression:
            return cases[index + 1]
    return cases[-1] if len(cases) % 2 == 1 else None


@register_function("AND")
def func_and(*args: Any) -> bool:
    return all(bool(a) for a in args)


@register_function("OR")
def func_or(*args: Any) -> bool:
    return any(bool(a) for a in args)


@register_function("NOT")
def func_not(value: Any) -> bool:
    return not value


@register_function("EMPTY", "ISBLANK")
def func_empty(value: Any) -> bool:
    return _is_blank(value)


@register_function("ISNUMBER")
def func_isnumber(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# =============================================================================
# Date
# =============================================================================


@register_function("NOW")
def func_now() -> datetime:
    return datetime.now(timezone.utc)


@register_function("TODAY")
def func_today() -> date:
    return datetime.now(timezone.utc).date()


@register_function("YEAR")
def func_year(value: Any) -> int:
    return _datetime(value).year


@register_function("MONTH")
def func_month(value: Any) -> int:
    return _datetime(value).month


@register_function("DAY")
def func_day(value: Any) -> int:
    return _datetime(value).day


@register_function("WEEKDAY")
def func_weekday(value: Any) -> int:
    """Day of week with Sunday as 0."""
    return (_datetime(value).weekday() + 1) % 7


_UNITS = {
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "weeks": 7 * 86400,
}


def _unit_seconds(unit: Any) -> int:
    key = to_text(unit).lower() or "days"
    if not key.endswith("s"):
        key += "s"
    if key not in _UNITS:
        raise ValueError(f"Unsupported unit: {unit!r}")
    return _UNITS[key]


@register_function("DATEADD", "DATE_ADD")
def func_dateadd(value: Any, amount: Any, unit: Any = "days") -> datetime:
    seconds = _number(amount, "amount") * _unit_seconds(unit)
    return _datetime(value) + timedelta(seconds=seconds)


@register_function("DATEDIFF", "DATE_BETWEEN", "DATETIME_DIFF")
def func_datediff(end: Any, start: Any, unit: Any = "days") -> int:
    """Whole units from ``start`` to ``end`` (negative when end is earlier)."""
    seconds = (_datetime(end) - _datetime(start)).total_seconds()
    return int(seconds / _unit_seconds(unit))


@register_function("FORMAT_DATE", "DATETIME_FORMAT")
def func_format_date(value: Any, pattern: Any = "%Y-%m-%d") -> str:
    return _datetime(value).strftime(to_text(pattern))
