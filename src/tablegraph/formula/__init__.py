"""Formula engine for TableGraph.

Provides parsing, evaluation and dependency analysis of formula
expressions:
- Arithmetic (+, -, *, /, %, ^), comparison and & concatenation
- Logic (AND, OR, NOT) and functions (IF, SWITCH, ROUND, DATEADD, ...)
- Field references ({Field Name}) and prop("Field Name")
"""

from tablegraph.formula.dependencies import FormulaDependencyGraph
from tablegraph.formula.engine import FieldRef, FormulaEngine, FormulaResult
from tablegraph.formula.evaluator import FormulaEvaluationError, FormulaEvaluator
from tablegraph.formula.functions import FORMULA_FUNCTIONS, register_function
from tablegraph.formula.parser import FormulaParser, FormulaSyntaxError

__all__ = [
    "FORMULA_FUNCTIONS",
    "FieldRef",
    "FormulaDependencyGraph",
    "FormulaEngine",
    "FormulaEvaluationError",
    "FormulaEvaluator",
    "FormulaParser",
    "FormulaResult",
    "FormulaSyntaxError",
    "register_function",
]
