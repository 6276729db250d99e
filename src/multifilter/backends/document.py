"""
Document-query backend (Mongo-shaped).

Each group becomes {"$<operator lowercased>": [children...]} and each
condition {column: {"$op": placeholder}}. The output describes the query's
shape; condition values are replaced by a placeholder unless
`bind_values=True`.

CUSTOM groups are translated through their parsed expression into $and,
$or and $nor. A negated group becomes {"$nor": [group]}.
"""

from typing import Any, Dict, List, Optional, Sequence

from multifilter.backends.base import GeneratedQuery, QueryGenerator
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

DOCUMENT_OPERATORS: Dict[str, str] = {
    "equals": "$eq",
    "notEquals": "$ne",
    "greaterThan": "$gt",
    "greaterThanOrEqual": "$gte",
    "lessThan": "$lt",
    "lessThanOrEqual": "$lte",
    "before": "$lt",
    "after": "$gt",
    "contains": "$regex",
    "regex": "$regex",
    "in": "$in",
    "notIn": "$nin",
}

_COMPARISON_DOCUMENT = {
    BinaryOperator.EQUALS: "$eq",
    BinaryOperator.NOT_EQUALS: "$ne",
    BinaryOperator.GREATER_THAN: "$gt",
    BinaryOperator.GREATER_EQUAL: "$gte",
    BinaryOperator.LESS_THAN: "$lt",
    BinaryOperator.LESS_EQUAL: "$lte",
}

# Swapped when a formula puts the literal on the left: 18 < age -> age > 18
_MIRRORED = {
    "$eq": "$eq",
    "$ne": "$ne",
    "$gt": "$lt",
    "$gte": "$lte",
    "$lt": "$gt",
    "$lte": "$gte",
}


def _nor(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {"$nor": [doc]}


class DocumentQueryGenerator(QueryGenerator):
    target = "document"

    def __init__(self, placeholder: Any = "value", bind_values: bool = False):
        super().__init__()
        self.placeholder = placeholder
        self.bind_values = bind_values

    def value(self, value: Any) -> Any:
        return value if self.bind_values else self.placeholder

    def condition(self, column_id: str, condition: ConditionFilter) -> Dict[str, Any]:
        op = DOCUMENT_OPERATORS.get(condition.operator)
        if op is None:
            self.warn(f"Operator '{condition.operator}' on {column_id} has no document mapping; using '$eq'")
            op = "$eq"
        if op in ("$in", "$nin") and self.bind_values:
            value = condition.value
            value = list(value) if isinstance(value, (list, tuple, set, frozenset)) else [value]
            return {column_id: {op: value}}
        return {column_id: {op: self.value(condition.value)}}

    def join(self, operator: LogicalOperator, parts: List[Dict[str, Any]], nested: bool) -> Dict[str, Any]:
        return {f"${operator.value.lower()}": list(parts)}

    def positional(self, operator: LogicalOperator, parts: Sequence[Optional[Dict[str, Any]]],
                   nested: bool) -> Dict[str, Any]:
        # Inactive children keep their slot as the match-all document.
        return {f"${operator.value.lower()}": [{} if p is None else p for p in parts]}

    def expression(self, expr: Expression, parts: Optional[Sequence[Optional[Dict[str, Any]]]]) -> Dict[str, Any]:
        if isinstance(expr, PositionReference):
            values = parts or ()
            if expr.index >= len(values) or values[expr.index] is None:
                return {}
            return values[expr.index]

        if isinstance(expr, UnaryExpression):
            return _nor(self.expression(expr.operand, parts))

        if isinstance(expr, BinaryExpression):
            op = expr.operator
            if op in _COMPARISON_DOCUMENT:
                return self._comparison(expr)

            left = self.expression(expr.left, parts)
            right = self.expression(expr.right, parts)
            if op == BinaryOperator.AND:
                return {"$and": [left, right]}
            if op == BinaryOperator.OR:
                return {"$or": [left, right]}
            if op == BinaryOperator.NOR:
                return {"$nor": [left, right]}
            if op == BinaryOperator.NAND:
                return _nor({"$and": [left, right]})
            if op == BinaryOperator.XOR:
                return {"$or": [{"$and": [left, _nor(right)]}, {"$and": [_nor(left), right]}]}
            if op == BinaryOperator.IMPLIES:
                return {"$or": [_nor(left), right]}
            if op == BinaryOperator.BICONDITIONAL:
                return {"$or": [{"$and": [left, right]}, {"$nor": [left, right]}]}

        if isinstance(expr, VariableReference):
            # A bare column in a formula tests truthiness.
            return {expr.name: {"$eq": self.value(True)}}

        if isinstance(expr, Literal):
            return {} if expr.value else {"$expr": False}

        raise TypeError(f"Unsupported Expression type: {type(expr)}")

    def _comparison(self, expr: BinaryExpression) -> Dict[str, Any]:
        op = _COMPARISON_DOCUMENT[expr.operator]
        left, right = expr.left, expr.right
        if isinstance(left, VariableReference) and isinstance(right, Literal):
            return {left.name: {op: self.value(right.value)}}
        if isinstance(left, Literal) and isinstance(right, VariableReference):
            return {right.name: {_MIRRORED[op]: self.value(left.value)}}
        return {"$expr": {op: [self._operand(left), self._operand(right)]}}

    def _operand(self, expr: Expression) -> Any:
        if isinstance(expr, VariableReference):
            return f"${expr.name}"
        if isinstance(expr, Literal):
            return self.value(expr.value)
        self.warn("Nested comparison in formula has no document form; comparing as null")
        return None

    def negate(self, part: Dict[str, Any]) -> Dict[str, Any]:
        return _nor(part)

    def finish(self, body: Optional[Dict[str, Any]]) -> GeneratedQuery:
        return GeneratedQuery(
            target=self.target,
            query=body if body is not None else {"$and": []},
            warnings=tuple(self.warnings),
        )


def generate_document_query(root, placeholder: Any = "value", bind_values: bool = False) -> GeneratedQuery:
    """
    Translate a filter tree into a document query.

    An empty tree yields {"$and": []}; nested empty groups are dropped.
    """
    return DocumentQueryGenerator(placeholder, bind_values).generate(root)
