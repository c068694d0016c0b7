"""Expression evaluator for bindings, guards and formulas.

Expressions are not parsed into a tree.  They are classified by
substring tests in a fixed order and the first matching branch wins:

1. ``{path}``                         -> path lookup in the context
2. any of ``+ - * /``                 -> arithmetic over substituted paths
3. ``=== !== >= <= > <``              -> comparison of two operands
4. ``.length`` / ``.reduce`` / ``.filter`` -> collection helpers
5. literal: ``true``, ``false``, ``null``, ``undefined``, numbers, else the
   raw text as a string

The order is part of the language: ``"a+b=c"`` is arithmetic, and an
arithmetic expression containing ``>`` never reaches the comparison
branch.  Authored screens depend on this, so it must not be reordered.
"""

from __future__ import annotations

import ast
import math
import operator
import re
from collections.abc import Callable, Mapping
from typing import Any

from ._context import ExpressionContext
from ._log import RuntimeLog
from ._paths import get_path
from ._values import ExpressionEvaluationError

_BRACE_RE = re.compile(r"^\{([^}]+)\}$")
_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")
_ARITHMETIC_CHARS = ("+", "-", "*", "/")
_COMPARISON_OPS = ("===", "!==", ">=", "<=", ">", "<")
_COLLECTION_MARKERS = (".length", ".reduce", ".filter")

_SCOPE_PATH_RE = re.compile(r"(?:app|screen|local|params)(?:\.\w+)+")
_VARIABLE_RE = re.compile(r"\b(?:app|screen|local|params)\.[\w.]+\b")
_CALL_ARGS = r"\((?:[^()]|\([^()]*\))*\)"
_COLLECTION_TERM_RE = re.compile(
    r"\b(?:app|screen|local|params)(?:\.\w+)+?"
    r"\.(?:length\b|reduce" + _CALL_ARGS + r"|filter" + _CALL_ARGS + r")"
)
_ARITHMETIC_RE = re.compile(r"^[\d\s+\-*/().]+$")
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

# reduce((acc, item) => acc + item.a [* item.b], init)
_REDUCE_RE = re.compile(
    r"\.reduce\(\s*\(\s*(\w+)\s*,\s*(\w+)\s*\)\s*=>\s*\1\s*\+\s*"
    r"\2\.(\w+)(?:\s*\*\s*\2\.(\w+))?\s*,\s*([\d.]+)\s*\)\s*$"
)

_LITERALS: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}

_BINOPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
}


class ExpressionEvaluator:
    """Evaluates expression strings against an ``ExpressionContext``.

    ``evaluate`` never raises: internal failures are logged to *log* and
    yield ``None``.
    """

    def __init__(self, log: RuntimeLog | None = None) -> None:
        self.log = log if log is not None else RuntimeLog()

    def evaluate(self, expression: str, context: ExpressionContext | Mapping[str, Any]) -> Any:
        scope = context.as_mapping() if isinstance(context, ExpressionContext) else context
        try:
            return self._evaluate(expression, scope)
        except Exception as exc:
            self.log.log(f"Expression evaluation error: {exc}")
            return None

    def interpolate(self, text: str, context: ExpressionContext | Mapping[str, Any]) -> Any:
        """Evaluate *text*, then fill any ``{path}`` placeholders left in a string result."""
        value = self.evaluate(text, context)
        if not isinstance(value, str) or "{" not in value:
            return value
        scope = context.as_mapping() if isinstance(context, ExpressionContext) else context
        return _PLACEHOLDER_RE.sub(lambda m: _display(get_path(scope, m.group(1))), value)

    # -----------------------------------------------------------------------
    # Dispatch
    # -----------------------------------------------------------------------

    def _evaluate(self, expression: str, scope: Mapping[str, Any]) -> Any:
        if not isinstance(expression, str):
            raise ExpressionEvaluationError(
                f"expected a string expression, got {type(expression).__name__}"
            )

        match = _BRACE_RE.match(expression)
        if match:
            return get_path(scope, match.group(1))

        if any(ch in expression for ch in _ARITHMETIC_CHARS):
            return self._arithmetic(expression, scope)

        for op in _COMPARISON_OPS:
            if op in expression:
                return self._comparison(expression, op, scope)

        if any(marker in expression for marker in _COLLECTION_MARKERS):
            return self._collection(expression, scope)

        return _literal(expression)

    # -----------------------------------------------------------------------
    # Arithmetic
    # -----------------------------------------------------------------------

    def _arithmetic(self, expression: str, scope: Mapping[str, Any]) -> Any:
        processed = _COLLECTION_TERM_RE.sub(
            lambda m: _numeric_text(self._collection(m.group(0), scope)),
            expression,
        )
        processed = _VARIABLE_RE.sub(
            lambda m: _numeric_text(get_path(scope, m.group(0))),
            processed,
        )

        if not _ARITHMETIC_RE.match(processed):
            self.log.log(f"Invalid arithmetic expression: {expression!r}")
            return 0
        try:
            tree = ast.parse(processed.strip(), mode="eval")
            return _normalize(_eval_arith(tree.body))
        except (SyntaxError, ExpressionEvaluationError, OverflowError) as exc:
            self.log.log(f"Arithmetic evaluation failed for {expression!r}: {exc}")
            return 0

    # -----------------------------------------------------------------------
    # Comparison
    # -----------------------------------------------------------------------

    def _comparison(self, expression: str, op: str, scope: Mapping[str, Any]) -> bool:
        parts = expression.split(op)
        left = self._operand(parts[0].strip(), scope)
        right = self._operand(parts[1].strip(), scope)

        if op == "===":
            return _strict_equal(left, right)
        if op == "!==":
            return not _strict_equal(left, right)
        return _relational(op, left, right)

    def _operand(self, text: str, scope: Mapping[str, Any]) -> Any:
        value = self._evaluate(text, scope)
        # A bare scope path falls through to the string-literal branch;
        # as a comparison operand it means the value at that path.
        if value == text and isinstance(value, str) and _SCOPE_PATH_RE.fullmatch(text):
            return get_path(scope, text)
        return value

    # -----------------------------------------------------------------------
    # Collections
    # -----------------------------------------------------------------------

    def _collection(self, expression: str, scope: Mapping[str, Any]) -> Any:
        if ".length" in expression:
            array = get_path(scope, expression.replace(".length", "", 1))
            return len(array) if isinstance(array, list) else 0

        if ".reduce" in expression:
            array = get_path(scope, expression.split(".reduce")[0])
            if isinstance(array, list):
                return _reduce(expression, array)
            return None

        # .filter is recognised but has no implementation.
        self.log.log(f"Collection filter is not supported: {expression!r}")
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _literal(expression: str) -> Any:
    if expression in _LITERALS:
        return _LITERALS[expression]
    number = _to_number(expression)
    if number is not None:
        return number
    return expression


def _to_number(text: str) -> int | float | None:
    """Numeric value of *text* under loose number conversion, or None."""
    stripped = text.strip()
    if stripped == "":
        return 0
    if stripped in ("Infinity", "+Infinity"):
        return math.inf
    if stripped == "-Infinity":
        return -math.inf
    if not _NUMBER_RE.match(stripped):
        return None
    if re.fullmatch(r"[+-]?\d+", stripped):
        return int(stripped)
    return _normalize(float(stripped))


def _normalize(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _numeric_text(value: Any) -> str:
    """Text substituted for a path inside arithmetic; falsy values become 0."""
    if not value:
        return "0"
    if value is True:
        return "true"
    if isinstance(value, float):
        return repr(_normalize(value)) if math.isfinite(value) else "NaN"
    return str(value)


def _eval_arith(node: ast.expr) -> int | float:
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        operand = _eval_arith(node.operand)
        return -operand if isinstance(node.op, ast.USub) else operand
    if isinstance(node, ast.BinOp):
        left = _eval_arith(node.left)
        right = _eval_arith(node.right)
        if isinstance(node.op, ast.Div):
            return _divide(left, right)
        func = _BINOPS.get(type(node.op))
        if func is not None:
            return func(left, right)
    raise ExpressionEvaluationError(f"unsupported arithmetic node {type(node).__name__}")


def _divide(left: float, right: float) -> float:
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1, right)
    return left / right


def _reduce(expression: str, array: list) -> Any:
    """Sum reduction over a list of records.

    Supports ``(acc, item) => acc + item.a`` and ``acc + item.a * item.b``
    bodies; anything else sums ``price``.
    """
    match = _REDUCE_RE.search(expression)
    if match is None:
        return sum(_field_number(item, "price") for item in array)

    first, second, initial = match.group(3), match.group(4), match.group(5)
    total: Any = _to_number(initial) or 0
    for item in array:
        term = _field_number(item, first)
        if second is not None:
            term *= _field_number(item, second)
        total += term
    return _normalize(total)


def _field_number(item: Any, name: str) -> int | float:
    if isinstance(item, Mapping):
        value = item.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value:
            return value
    return 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if _is_number(left) and _is_number(right):
        return left == right
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return left is right
    return type(left) is type(right) and left == right


def _loose_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        number = _to_number(value)
        return math.nan if number is None else float(number)
    return math.nan


_RELATIONAL: dict[str, Callable[[Any, Any], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
}


def _relational(op: str, left: Any, right: Any) -> bool:
    compare = _RELATIONAL[op]
    if isinstance(left, str) and isinstance(right, str):
        return compare(left, right)
    left_num, right_num = _loose_number(left), _loose_number(right)
    if math.isnan(left_num) or math.isnan(right_num):
        return False
    return compare(left_num, right_num)


def is_truthy(value: Any) -> bool:
    """Truthiness as the authoring language defines it.

    Empty lists and dicts are truthy; NaN is falsy.
    """
    if value is None or value is False:
        return False
    if isinstance(value, (dict, list)):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _display(value: Any) -> str:
    if value is None:
        return ""
    if value is True or value is False:
        return "true" if value else "false"
    return str(_normalize(value))
