"""
Row Evaluator: applies a filter tree to data rows.

A row is any mapping of column id -> value. Evaluation walks the tree
depth-first and combines child results with the operator algebra.

Inactive leaves (disabled conditions, empty formulas, natural nodes with no
parsed result) contribute nothing:
    - variadic operators (AND, OR, XOR, NAND, NOR, NOT) drop them
    - positional operators (IF_THEN, IF_THEN_ELSE, IMPLIES, BICONDITIONAL,
      CUSTOM) read them as True, so letters keep their bindings
A group with no active children is itself inactive; at the root this means
"match everything".
"""

import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from multifilter.custom_logic import validate_custom_logic
from multifilter.errors import FilterEvaluationError, FormulaError
from multifilter.expressions import (
    BinaryExpression,
    BinaryOperator,
    Expression,
    Literal,
    PositionReference,
    UnaryExpression,
    UnaryOperator,
    VariableReference,
)
from multifilter.formula import CompiledFormula, compile_formula
from multifilter.model import (
    ConditionFilter,
    ConditionNode,
    FilterNode,
    FilterType,
    FormulaNode,
    GroupNode,
    NaturalNode,
)
from multifilter.operators import (
    POSITIONAL_OPERATORS,
    LogicalOperator,
    apply_negation,
    combine,
)

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


# =========================================================================
# VALUE COERCION
# =========================================================================


def _coerce(value: Any, filter_type: FilterType) -> Any:
    """Best-effort conversion of a comparison value to the filter's type."""
    if value is None:
        return None
    if filter_type == FilterType.NUMBER and isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    if filter_type == FilterType.DATE and isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    if filter_type == FilterType.DATE and isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if filter_type == FilterType.BOOLEAN and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1"):
            return True
        if lowered in ("false", "no", "0"):
            return False
    return value


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return not value
    return False


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    """Ordering comparisons are False when the values are not comparable."""

    def safe(actual: Any, expected: Any) -> bool:
        if actual is None or expected is None:
            return False
        try:
            return compare(actual, expected)
        except TypeError:
            return False

    return safe


def _text(value: Any) -> str:
    return "" if value is None else str(value).lower()


def _in_range(actual: Any, low: Any, high: Any) -> bool:
    if actual is None or low is None or high is None:
        return False
    try:
        return low <= actual <= high
    except TypeError:
        return False


def _regex(actual: Any, pattern: Any) -> bool:
    if actual is None:
        return False
    try:
        return re.search(str(pattern), str(actual)) is not None
    except re.error as e:
        raise FilterEvaluationError(f"Invalid regular expression {pattern!r}: {e}")


def _members(value: Any) -> Sequence[Any]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


_greater = _ordered(lambda a, b: a > b)
_greater_equal = _ordered(lambda a, b: a >= b)
_less = _ordered(lambda a, b: a < b)
_less_equal = _ordered(lambda a, b: a <= b)


CONDITION_OPERATORS: Dict[str, Callable[[Any, Any, Any], bool]] = {
    "equals": lambda a, v, _: a == v,
    "notEquals": lambda a, v, _: a != v,
    "greaterThan": lambda a, v, _: _greater(a, v),
    "greaterThanOrEqual": lambda a, v, _: _greater_equal(a, v),
    "lessThan": lambda a, v, _: _less(a, v),
    "lessThanOrEqual": lambda a, v, _: _less_equal(a, v),
    "contains": lambda a, v, _: a is not None and _text(v) in _text(a),
    "notContains": lambda a, v, _: a is None or _text(v) not in _text(a),
    "startsWith": lambda a, v, _: a is not None and _text(a).startswith(_text(v)),
    "endsWith": lambda a, v, _: a is not None and _text(a).endswith(_text(v)),
    "isEmpty": lambda a, v, _: _is_empty(a),
    "isNotEmpty": lambda a, v, _: not _is_empty(a),
    "regex": lambda a, v, _: _regex(a, v),
    "inRange": lambda a, v, hi: _in_range(a, v, hi),
    "between": lambda a, v, hi: _in_range(a, v, hi),
    "notInRange": lambda a, v, hi: a is not None and not _in_range(a, v, hi),
    "before": lambda a, v, _: _less(a, v),
    "after": lambda a, v, _: _greater(a, v),
    "in": lambda a, v, _: a in _members(v),
    "notIn": lambda a, v, _: a not in _members(v),
}


def evaluate_condition(actual: Any, condition: ConditionFilter) -> bool:
    """
    Test one cell value against a condition's operator and value.

    Unknown operators are evaluated as `equals`, matching the query
    backends' fallback.
    """
    check = CONDITION_OPERATORS.get(condition.operator)
    if check is None:
        logger.warning("Unknown condition operator %r, evaluating as equals", condition.operator)
        check = CONDITION_OPERATORS["equals"]

    filter_type = condition.filter_type
    value = condition.value
    if condition.operator in ("in", "notIn"):
        value = [_coerce(v, filter_type) for v in _members(value)]
    else:
        value = _coerce(value, filter_type)
    return bool(check(_coerce(actual, filter_type), value, _coerce(condition.value_to, filter_type)))


# =========================================================================
# EXPRESSION EVALUATION
# =========================================================================


def _truth(value: Any) -> bool:
    return bool(value)


def evaluate_expression(expr: Expression, row: Optional[Row] = None,
                        positions: Optional[Sequence[Optional[bool]]] = None) -> Any:
    """
    Evaluate an expression AST.

    Args:
        expr: Parsed custom logic or formula
        row: Column values for VariableReference lookups
        positions: Child results for PositionReference lookups. A missing
            or None entry (inactive child) reads as True.
    """
    if isinstance(expr, Literal):
        return expr.value

    if isinstance(expr, VariableReference):
        return (row or {}).get(expr.name)

    if isinstance(expr, PositionReference):
        values = positions or ()
        index = expr.index
        if index >= len(values) or values[index] is None:
            return True
        return values[index]

    if isinstance(expr, UnaryExpression):
        if expr.operator == UnaryOperator.NOT:
            return not _truth(evaluate_expression(expr.operand, row, positions))
        raise FilterEvaluationError(f"Unknown unary operator: {expr.operator}")

    if isinstance(expr, BinaryExpression):
        left = evaluate_expression(expr.left, row, positions)
        right = evaluate_expression(expr.right, row, positions)
        op = expr.operator

        if op == BinaryOperator.AND:
            return _truth(left) and _truth(right)
        if op == BinaryOperator.OR:
            return _truth(left) or _truth(right)
        if op == BinaryOperator.XOR:
            return _truth(left) != _truth(right)
        if op == BinaryOperator.NAND:
            return not (_truth(left) and _truth(right))
        if op == BinaryOperator.NOR:
            return not (_truth(left) or _truth(right))
        if op == BinaryOperator.IMPLIES:
            return (not _truth(left)) or _truth(right)
        if op == BinaryOperator.BICONDITIONAL:
            return _truth(left) == _truth(right)

        if op == BinaryOperator.EQUALS:
            return left == right
        if op == BinaryOperator.NOT_EQUALS:
            return left != right
        if op == BinaryOperator.GREATER_THAN:
            return _greater(left, right)
        if op == BinaryOperator.GREATER_EQUAL:
            return _greater_equal(left, right)
        if op == BinaryOperator.LESS_THAN:
            return _less(left, right)
        if op == BinaryOperator.LESS_EQUAL:
            return _less_equal(left, right)

        raise FilterEvaluationError(f"Unknown binary operator: {op}")

    raise TypeError(f"Unsupported Expression type: {type(expr)}")


def evaluate_custom(expr: Expression, values: Sequence[Optional[bool]]) -> bool:
    """Evaluate parsed custom logic over evaluated child results."""
    return _truth(evaluate_expression(expr, positions=values))


def custom_expression(group: GroupNode) -> Optional[Expression]:
    """
    The parsed custom logic of a CUSTOM group, or None when it is invalid.

    Uses the cached parse when present.
    """
    if group.compiled_logic is not None:
        return group.compiled_logic
    result = validate_custom_logic(group.custom_logic or "", len(group.children))
    return result.expression if result.valid else None


def compiled_formula(node: FormulaNode) -> CompiledFormula:
    """The node's compiled formula, recompiling a missing or stale cache."""
    if node.compiled is not None and node.compiled.original_formula == node.formula:
        return node.compiled
    return compile_formula(node.formula)


# =========================================================================
# TREE EVALUATION
# =========================================================================


def _evaluate_group(group: GroupNode, row: Row) -> Optional[bool]:
    results = [_evaluate_node(child, row) for child in group.children]
    if all(r is None for r in results):
        return None

    if group.operator == LogicalOperator.CUSTOM:
        expr = custom_expression(group)
        if expr is not None:
            return apply_negation(evaluate_custom(expr, results), group.negated)
        logger.warning("Group %s has invalid custom logic %r; combining with AND",
                       group.id, group.custom_logic)
        combined = combine(LogicalOperator.AND, [r for r in results if r is not None])
        return apply_negation(combined, group.negated)

    if group.operator in POSITIONAL_OPERATORS:
        values = [True if r is None else r for r in results]
    else:
        values = [r for r in results if r is not None]
    return apply_negation(combine(group.operator, values), group.negated)


def _evaluate_node(node: FilterNode, row: Row) -> Optional[bool]:
    """Evaluate one node; None means the node is inactive."""
    if isinstance(node, GroupNode):
        return _evaluate_group(node, row)

    if isinstance(node, ConditionNode):
        if not node.enabled:
            return None
        return evaluate_condition(row.get(node.column_id), node.filter)

    if isinstance(node, FormulaNode):
        if not node.formula.strip():
            return None
        try:
            compiled = compiled_formula(node)
        except FormulaError as e:
            raise FilterEvaluationError(f"Formula cannot be evaluated: {e.message}", node_id=node.id)
        return _truth(evaluate_expression(compiled.ast, row))

    if isinstance(node, NaturalNode):
        if node.parsed is None:
            return None
        if not node.parsed.conditions:
            return None
        return all(
            evaluate_condition(row.get(c.column_id), ConditionFilter(operator=c.operator, value=c.value))
            for c in node.parsed.conditions
        )

    raise TypeError(f"Unsupported node type: {type(node)}")


def evaluate(node: FilterNode, row: Row) -> bool:
    """
    Evaluate a filter tree against one row.

    A tree with no active conditions matches every row.

    Raises:
        FilterEvaluationError: A formula does not compile or a regex is invalid
    """
    result = _evaluate_node(node, row)
    return True if result is None else result


def filter_rows(root: FilterNode, rows: Iterable[Row]) -> List[Row]:
    """Rows the filter matches, in input order."""
    return [row for row in rows if evaluate(root, row)]
