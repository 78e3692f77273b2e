"""Formula evaluator.

Walks a parsed AST against the values of one row.
"""

import math
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any

from tablegraph.fields.types.date import parse_datetime
from tablegraph.fields.types.number import to_number
from tablegraph.formula.functions import FORMULA_FUNCTIONS, to_text
from tablegraph.formula.parser import (
    BinaryOpNode,
    BooleanNode,
    FieldRefNode,
    FunctionCallNode,
    NumberNode,
    StringNode,
    UnaryOpNode,
)

MAX_INT_EXPONENT = 1024


class FormulaEvaluationError(ValueError):
    """Raised when an expression cannot be evaluated for a row."""


class FormulaEvaluator:
    """
    Evaluates formula ASTs.

    Field references are resolved against ``values_by_id`` first and then
    against ``values_by_name`` using a case-insensitive match.
    """

    def __init__(
        self,
        values_by_id: Mapping[str, Any] | None = None,
        values_by_name: Mapping[str, Any] | None = None,
    ):
        self._by_id = values_by_id or {}
        self._by_name = {str(k).casefold(): v for k, v in (values_by_name or {}).items()}

    def evaluate(self, ast: Any) -> Any:
        return self._eval(ast)

    def resolve(self, reference: str) -> Any:
        """Value of the referenced field; unknown references are an error."""
        if reference in self._by_id:
            return self._by_id[reference]
        key = reference.casefold()
        if key in self._by_name:
            return self._by_name[key]
        raise FormulaEvaluationError(f"Unknown field: {reference}")

    def _eval(self, node: Any) -> Any:
        if isinstance(node, (NumberNode, StringNode, BooleanNode)):
            return node.value
        if isinstance(node, FieldRefNode):
            return self.resolve(node.field_name)
        if isinstance(node, FunctionCallNode):
            return self._eval_call(node)
        if isinstance(node, BinaryOpNode):
            return self._eval_binary(node)
        if isinstance(node, UnaryOpNode):
            return self._eval_unary(node)
        raise FormulaEvaluationError(f"Unsupported expression: {node!r}")

    def _eval_call(self, node: FunctionCallNode) -> Any:
        if node.name == "PROP":
            if len(node.arguments) != 1:
                raise FormulaEvaluationError("prop() takes exactly one argument")
            return self.resolve(to_text(self._eval(node.arguments[0])))

        func = FORMULA_FUNCTIONS.get(node.name)
        if func is None:
            raise FormulaEvaluationError(f"Unknown function: {node.name}")

        args = [self._eval(arg) for arg in node.arguments]
        try:
            return func(*args)
        except FormulaEvaluationError:
            raise
        except (TypeError, ValueError, ArithmeticError, OverflowError) as e:
            raise FormulaEvaluationError(f"{node.name}: {e}") from e

    def _eval_binary(self, node: BinaryOpNode) -> Any:
        op = node.operator
        left = self._eval(node.left)

        # short-circuit so the untaken side may reference empty values
        if op == "AND":
            return bool(left) and bool(self._eval(node.right))
        if op == "OR":
            return bool(left) or bool(self._eval(node.right))

        right = self._eval(node.right)

        if op == "&":
            return to_text(left) + to_text(right)
        if op in ("+", "-"):
            return self._add_or_subtract(op, left, right)
        if op in ("*", "/", "%", "^"):
            return self._arithmetic(op, left, right)
        if op == "=":
            return _equals(left, right)
        if op == "!=":
            return not _equals(left, right)
        if op in ("<", ">", "<=", ">="):
            return _compare(op, left, right)

        raise FormulaEvaluationError(f"Unknown operator: {op}")

    def _eval_unary(self, node: UnaryOpNode) -> Any:
        operand = self._eval(node.operand)
        if node.operator == "NOT":
            return not operand
        if node.operator == "-":
            if operand is None:
                return None
            number = to_number(operand)
            if number is None:
                raise FormulaEvaluationError(f"Cannot negate {operand!r}")
            return -number
        raise FormulaEvaluationError(f"Unknown unary operator: {node.operator}")

    def _add_or_subtract(self, op: str, left: Any, right: Any) -> Any:
        if left is None or right is None:
            if op == "+":
                return right if left is None else left
            return None

        left_date = left if isinstance(left, (date, datetime)) else None
        if left_date is not None:
            if op == "-" and isinstance(right, (date, datetime)):
                return (parse_datetime(left) - parse_datetime(right)).days
            days = to_number(right)
            if days is None:
                raise FormulaEvaluationError(f"Cannot offset a date by {right!r}")
            try:
                delta = timedelta(days=days)
                return left_date + delta if op == "+" else left_date - delta
            except OverflowError as e:
                raise FormulaEvaluationError("Date out of range") from e

        a, b = to_number(left), to_number(right)
        if a is None or b is None:
            if op == "+":
                return to_text(left) + to_text(right)
            raise FormulaEvaluationError(f"Cannot subtract {right!r} from {left!r}")
        return _finite(a + b if op == "+" else a - b)

    def _arithmetic(self, op: str, left: Any, right: Any) -> Any:
        if left is None or right is None:
            return None
        a, b = to_number(left), to_number(right)
        if a is None or b is None:
            raise FormulaEvaluationError(f"Operator {op} requires numbers")
        if op == "*":
            return _finite(a * b)
        if op == "^":
            try:
                # huge integer powers go through floats so they overflow instead of growing
                if isinstance(a, int) and isinstance(b, int) and abs(b) > MAX_INT_EXPONENT:
                    a = float(a)
                result = a**b
            except (OverflowError, ZeroDivisionError) as e:
                raise FormulaEvaluationError(f"Cannot raise {a!r} to {b!r}") from e
            if isinstance(result, complex):
                raise FormulaEvaluationError(f"Cannot raise {a!r} to {b!r}")
            return _finite(result)
        if b == 0:
            raise FormulaEvaluationError("Division by zero")
        if op == "/":
            try:
                result = _finite(a / b)
            except OverflowError as e:
                raise FormulaEvaluationError("Numeric overflow") from e
            return int(result) if isinstance(result, float) and result.is_integer() else result
        return a % b


def _finite(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        raise FormulaEvaluationError("Numeric overflow")
    return value


def _equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, (int, float)) or isinstance(right, (int, float)):
        a, b = to_number(left), to_number(right)
        if a is not None and b is not None:
            return a == b
    return left == right


def _compare(op: str, left: Any, right: Any) -> bool:
    if left is None or right is None:
        return False
    a, b = to_number(left), to_number(right)
    if a is None or b is None:
        da, db = parse_datetime(left), parse_datetime(right)
        if da is not None and db is not None:
            a, b = da, db
        else:
            a, b = to_text(left), to_text(right)
    if op == "<":
        return a < b
    if op == ">":
        return a > b
    if op == "<=":
        return a <= b
    return a >= b
