"""Formula parser.

Parses formula strings into a small AST of dataclass nodes using Lark.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError

from tablegraph.formula.grammar import FORMULA_GRAMMAR

_ESCAPE = re.compile(r"\\(.)")


# AST node types
@dataclass
class NumberNode:
    value: int | float


@dataclass
class StringNode:
    value: str


@dataclass
class BooleanNode:
    value: bool | None  # None is BLANK


@dataclass
class FieldRefNode:
    field_name: str


@dataclass
class FunctionCallNode:
    name: str
    arguments: list[Any]


@dataclass
class BinaryOpNode:
    operator: str
    left: Any
    right: Any


@dataclass
class UnaryOpNode:
    operator: str
    operand: Any


class FormulaSyntaxError(ValueError):
    """Raised when an expression cannot be parsed."""


def _binary(operator: str):
    @v_args(inline=True)
    def build(self, left, right):
        return BinaryOpNode(operator, left, right)

    return build


class FormulaTransformer(Transformer):
    """Turn the Lark parse tree into AST nodes."""

    @v_args(inline=True)
    def number(self, token):
        value = float(token)
        return NumberNode(int(value) if value.is_integer() and "e" not in token.lower() else value)

    @v_args(inline=True)
    def string(self, token):
        return StringNode(_ESCAPE.sub(r"\1", str(token)[1:-1]))

    @v_args(inline=True)
    def boolean(self, token):
        literal = str(token).upper()
        return BooleanNode({"TRUE": True, "FALSE": False}.get(literal))

    @v_args(inline=True)
    def field_ref(self, token):
        return FieldRefNode(str(token)[1:-1].strip())

    def call(self, items):
        name = str(items[0]).upper()
        arguments = items[1] if len(items) > 1 and items[1] is not None else []
        return FunctionCallNode(name, list(arguments))

    def arguments(self, items):
        return list(items)

    add = _binary("+")
    sub = _binary("-")
    mul = _binary("*")
    div = _binary("/")
    mod = _binary("%")
    pow = _binary("^")
    concat = _binary("&")
    eq = _binary("=")
    ne = _binary("!=")
    lt = _binary("<")
    gt = _binary(">")
    le = _binary("<=")
    ge = _binary(">=")
    and_op = _binary("AND")
    or_op = _binary("OR")

    @v_args(inline=True)
    def not_op(self, operand):
        return UnaryOpNode("NOT", operand)

    @v_args(inline=True)
    def neg(self, operand):
        return UnaryOpNode("-", operand)

    @v_args(inline=True)
    def pos(self, operand):
        return operand


@lru_cache(maxsize=1)
def _lark() -> Lark:
    return Lark(FORMULA_GRAMMAR, parser="lalr", transformer=FormulaTransformer())


def _first_line(error: Exception) -> str:
    text = str(error).strip()
    return text.splitlines()[0] if text else error.__class__.__name__


class FormulaParser:
    """
    Parser for formula expressions.

    The underlying LALR parser is built once per process.
    """

    def parse(self, formula: str) -> Any:
        """
        Parse a formula string into an AST.

        Raises:
            FormulaSyntaxError: If the expression is empty or malformed
        """
        if not formula or not formula.strip():
            raise FormulaSyntaxError("Formula is empty")
        try:
            return _lark().parse(formula)
        except LarkError as e:
            raise FormulaSyntaxError(f"Invalid formula syntax: {_first_line(e)}") from e

    def validate(self, formula: str) -> tuple[bool, str | None]:
        """Check syntax, returning ``(is_valid, error_message)``."""
        try:
            self.parse(formula)
        except FormulaSyntaxError as e:
            return False, str(e)
        return True, None

    def get_field_references(self, formula: str) -> list[str]:
        """
        Referenced field names or ids, in order of first appearance.

        Both ``{Name}`` references and ``prop("Name")`` calls count.
        """
        references: list[str] = []
        collect_references(self.parse(formula), references)
        return list(dict.fromkeys(references))


def collect_references(node: Any, references: list[str]) -> None:
    """Append every field reference under ``node`` to ``references``."""
    if isinstance(node, FieldRefNode):
        references.append(node.field_name)
    elif isinstance(node, BinaryOpNode):
        collect_references(node.left, references)
        collect_references(node.right, references)
    elif isinstance(node, UnaryOpNode):
        collect_references(node.operand, references)
    elif isinstance(node, FunctionCallNode):
        if node.name == "PROP" and node.arguments and isinstance(node.arguments[0], StringNode):
            references.append(node.arguments[0].value)
            return
        for argument in node.arguments:
            collect_references(argument, references)
