"""Formula engine facade used by the recompute dispatcher and field service."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol

from tablegraph.fields.types.date import to_iso_string
from tablegraph.formula.evaluator import FormulaEvaluationError, FormulaEvaluator
from tablegraph.formula.parser import FormulaParser, FormulaSyntaxError


class FieldLike(Protocol):
    id: str
    name: str


@dataclass
class FieldRef:
    """Bare id and name, for a field that is not stored yet."""

    id: str
    name: str


@dataclass
class FormulaResult:
    """Outcome of evaluating one formula for one row."""

    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _to_cell_value(value: Any) -> Any:
    """Make an evaluation result JSON-storable."""
    if isinstance(value, datetime):
        return to_iso_string(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (set, tuple)):
        return [_to_cell_value(v) for v in value]
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


class FormulaEngine:
    """
    Parse, evaluate and analyse formula expressions.

    References are written ``{Field Name}``, ``{field-id}`` or
    ``prop("Field Name")``. An id match wins over a name match; names match
    case-insensitively.
    """

    def __init__(self, parser: FormulaParser | None = None):
        self._parser = parser or FormulaParser()

    def validate(self, expression: str) -> str | None:
        """Return the syntax error message, or None when the expression parses."""
        ok, error = self._parser.validate(expression)
        return None if ok else error

    def extract_dependencies(self, expression: str, fields: Iterable[FieldLike]) -> list[str]:
        """
        Ids of the fields an expression references.

        Deterministic: ids come in order of first reference with duplicates
        removed. References to unknown fields are skipped, and an expression
        that does not parse has no dependencies.
        """
        try:
            references = self._parser.get_field_references(expression)
        except FormulaSyntaxError:
            return []

        fields = list(fields)
        by_id = {f.id: f.id for f in fields}
        by_name: dict[str, str] = {}
        for f in fields:
            by_name.setdefault(f.name.casefold(), f.id)

        resolved: list[str] = []
        for reference in references:
            field_id = by_id.get(reference) or by_name.get(reference.casefold())
            if field_id and field_id not in resolved:
                resolved.append(field_id)
        return resolved

    def evaluate(
        self,
        expression: str,
        row_data: Mapping[str, Any],
        fields: Iterable[FieldLike],
    ) -> FormulaResult:
        """
        Evaluate ``expression`` against one row.

        Never raises: syntax and evaluation failures come back in
        ``FormulaResult.error``.
        """
        fields = list(fields)
        values_by_id = {f.id: row_data.get(f.id) for f in fields}
        values_by_name: dict[str, Any] = {}
        for f in fields:
            values_by_name.setdefault(f.name.casefold(), row_data.get(f.id))

        try:
            ast = self._parser.parse(expression)
            value = FormulaEvaluator(values_by_id, values_by_name).evaluate(ast)
        except (FormulaSyntaxError, FormulaEvaluationError) as e:
            return FormulaResult(error=str(e))
        except RecursionError:
            return FormulaResult(error="Formula is nested too deeply")

        return FormulaResult(value=_to_cell_value(value))
