"""
Natural-language backend: restates a filter as an English sentence.

    age is greater than 18 and (status equals 'active' or priority equals 'high')

Groups are joined with "and" / "or", or the operator name lowercased for
the other operators; nested groups are parenthesized.
"""

from typing import Any, Dict, List, Optional, Sequence

from multifilter.backends.base import GeneratedQuery, QueryGenerator, is_wrapped
from multifilter.expressions import (
    BinaryExpression,
    BinaryOperator,
    Expression,
    Literal,
    PositionReference,
    UnaryExpression,
    VariableReference,
)
from multifilter.model import ConditionFilter
from multifilter.operators import LogicalOperator

NATURAL_PHRASES: Dict[str, str] = {
    "equals": "equals",
    "notEquals": "does not equal",
    "greaterThan": "is greater than",
    "greaterThanOrEqual": "is at least",
    "lessThan": "is less than",
    "lessThanOrEqual": "is at most",
    "contains": "contains",
    "notContains": "does not contain",
    "startsWith": "starts with",
    "endsWith": "ends with",
    "isEmpty": "is empty",
    "isNotEmpty": "is not empty",
    "regex": "matches pattern",
    "before": "is before",
    "after": "is after",
    "in": "is one of",
    "notIn": "is not one of",
    "between": "is between",
    "inRange": "is between",
    "notInRange": "is not between",
}

_NO_VALUE = {"isEmpty", "isNotEmpty"}
_RANGE = {"between", "inRange", "notInRange"}

_COMPARISON_PHRASES = {
    BinaryOperator.EQUALS: "equals",
    BinaryOperator.NOT_EQUALS: "does not equal",
    BinaryOperator.GREATER_THAN: "is greater than",
    BinaryOperator.GREATER_EQUAL: "is at least",
    BinaryOperator.LESS_THAN: "is less than",
    BinaryOperator.LESS_EQUAL: "is at most",
}

_CONNECTIVES = {
    BinaryOperator.AND: "and",
    BinaryOperator.OR: "or",
    BinaryOperator.XOR: "xor",
    BinaryOperator.NAND: "nand",
    BinaryOperator.NOR: "nor",
    BinaryOperator.IMPLIES: "implies",
    BinaryOperator.BICONDITIONAL: "if and only if",
}


def format_value(value: Any) -> str:
    if value is None:
        return "nothing"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return f"'{value}'"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "(" + ", ".join(format_value(v) for v in value) + ")"
    return str(value)


def connective(operator: LogicalOperator) -> str:
    if operator == LogicalOperator.AND:
        return "and"
    if operator == LogicalOperator.OR:
        return "or"
    return operator.value.lower()


class NaturalLanguageGenerator(QueryGenerator):
    target = "natural"

    def condition(self, column_id: str, condition: ConditionFilter) -> str:
        op = condition.operator
        phrase = NATURAL_PHRASES.get(op)
        if phrase is None:
            self.warn(f"Operator '{op}' on {column_id} has no phrase; using 'matches'")
            phrase = "matches"
        if op in _NO_VALUE:
            return f"{column_id} {phrase}"
        if op in _RANGE:
            return f"{column_id} {phrase} {format_value(condition.value)} and {format_value(condition.value_to)}"
        return f"{column_id} {phrase} {format_value(condition.value)}"

    def join(self, operator: LogicalOperator, parts: List[str], nested: bool) -> str:
        if len(parts) == 1 and operator in (LogicalOperator.AND, LogicalOperator.OR):
            return parts[0]
        body = f" {connective(operator)} ".join(parts)
        if len(parts) == 1:
            body = f"{connective(operator)} {body}"
        return f"({body})" if nested else body

    def positional(self, operator: LogicalOperator, parts: Sequence[Optional[str]], nested: bool) -> str:
        values = ["true" if p is None else p for p in parts]
        if operator == LogicalOperator.IF_THEN and len(values) == 2:
            body = f"if {values[0]} then {values[1]}"
        elif operator == LogicalOperator.IF_THEN_ELSE and len(values) == 3:
            body = f"if {values[0]} then {values[1]} otherwise {values[2]}"
        else:
            body = f" {connective(operator).replace('_', ' ')} ".join(values)
        return f"({body})" if nested else body

    def expression(self, expr: Expression, parts: Optional[Sequence[Optional[str]]]) -> str:
        if isinstance(expr, PositionReference):
            values = parts or ()
            if expr.index >= len(values) or values[expr.index] is None:
                return "true"
            return values[expr.index]

        if isinstance(expr, VariableReference):
            return expr.name

        if isinstance(expr, Literal):
            return format_value(expr.value)

        if isinstance(expr, UnaryExpression):
            return self.negate(self.expression(expr.operand, parts))

        if isinstance(expr, BinaryExpression):
            left = self.expression(expr.left, parts)
            right = self.expression(expr.right, parts)
            if expr.operator in _COMPARISON_PHRASES:
                return f"{left} {_COMPARISON_PHRASES[expr.operator]} {right}"
            return f"({left} {_CONNECTIVES[expr.operator]} {right})"

        raise TypeError(f"Unsupported Expression type: {type(expr)}")

    def negate(self, part: str) -> str:
        if is_wrapped(part):
            return f"not {part}"
        return f"not ({part})"

    def finish(self, body: Optional[str]) -> GeneratedQuery:
        return GeneratedQuery(target=self.target, query=body or "", warnings=tuple(self.warnings))


def generate_natural_language(root) -> GeneratedQuery:
    """
    Restate a filter tree in English.

    Disabled conditions are left out entirely; an empty tree yields "".
    """
    return NaturalLanguageGenerator().generate(root)
