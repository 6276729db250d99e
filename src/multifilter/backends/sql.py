"""
SQL-like backend.

Produces a WHERE-clause body with placeholders plus the collected values:

    age > ? AND status = ?          params: [18, "active"]

Paramstyles:
    - 'qmark'    -> ?, params is a list
    - 'pyformat' -> %(p1)s, params is a dict

Groups are parenthesized when nested. Operators without an SQL keyword are
expanded: NAND -> NOT (a AND b), NOR -> NOT (a OR b), IMPLIES -> (NOT a OR b).
Column operators without a mapping fall back to `=` and add a warning.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

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

SQL_OPERATORS: Dict[str, str] = {
    "equals": "=",
    "notEquals": "!=",
    "greaterThan": ">",
    "greaterThanOrEqual": ">=",
    "lessThan": "<",
    "lessThanOrEqual": "<=",
    "before": "<",
    "after": ">",
    "contains": "LIKE",
    "startsWith": "LIKE",
    "endsWith": "LIKE",
    "notContains": "NOT LIKE",
    "in": "IN",
    "notIn": "NOT IN",
    "isEmpty": "IS NULL",
    "isNotEmpty": "IS NOT NULL",
    "between": "BETWEEN",
    "inRange": "BETWEEN",
    "notInRange": "NOT BETWEEN",
}

_COMPARISON_SQL = {
    BinaryOperator.EQUALS: "=",
    BinaryOperator.NOT_EQUALS: "!=",
    BinaryOperator.GREATER_THAN: ">",
    BinaryOperator.GREATER_EQUAL: ">=",
    BinaryOperator.LESS_THAN: "<",
    BinaryOperator.LESS_EQUAL: "<=",
}

_ALWAYS_TRUE = "1=1"

# Stands in for a placeholder until parameters are numbered.
_MARK = "\x00"

_UNQUOTED_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def quote_identifier(name: str) -> str:
    """Quote a column name unless it is a plain identifier. Doubles internal quotes."""
    if _UNQUOTED_IDENT_RE.match(name):
        return name
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


def _escape_like(value: str) -> str:
    """Escape \\, % and _ in LIKE patterns (used with ESCAPE '\\')."""
    value = value.replace("\\", "\\\\")
    return value.replace("%", "\\%").replace("_", "\\_")


def _like_pattern(value: Any, operator: str) -> str:
    lit = _escape_like("" if value is None else str(value))
    if operator == "startsWith":
        return f"{lit}%"
    if operator == "endsWith":
        return f"%{lit}"
    return f"%{lit}%"


def _in_values(raw: Any) -> List[Any]:
    """Accepts a comma-delimited string or a sequence."""
    if raw is None:
        return []
    if isinstance(raw, str):
        return [s.strip() for s in raw.split(",") if s.strip() != ""]
    if isinstance(raw, (list, tuple, set, frozenset)):
        return list(raw)
    return [raw]


class _ParamSink:
    """
    Collects params and returns the correct placeholder per paramstyle.
    """

    def __init__(self, paramstyle: str = "qmark", prefix: str = "p", start_index: int = 1):
        if paramstyle not in {"qmark", "pyformat"}:
            raise ValueError("paramstyle must be 'qmark' or 'pyformat'")
        self.paramstyle = paramstyle
        self.prefix = prefix
        self.next_idx = start_index
        self.params_list: List[Any] = []
        self.params_dict: Dict[str, Any] = {}

    def add(self, value: Any) -> str:
        if self.paramstyle == "qmark":
            self.params_list.append(value)
            return "?"
        name = f"{self.prefix}{self.next_idx}"
        self.next_idx += 1
        self.params_dict[name] = value
        return f"%({name})s"

    def bundle(self) -> Union[List[Any], Dict[str, Any]]:
        return self.params_list if self.paramstyle == "qmark" else self.params_dict


@dataclass(frozen=True)
class _Clause:
    """
    SQL text with a marker per bound value.

    Custom logic may repeat or reorder children ("B AND A", "A AND (B OR B)"),
    so values travel with their clause and placeholders are assigned once the
    final text order is known.
    """

    text: str
    values: Tuple[Any, ...] = ()

    @classmethod
    def bound(cls, value: Any) -> "_Clause":
        return cls(_MARK, (value,))


def _concat(*pieces: Union[str, _Clause]) -> _Clause:
    text: List[str] = []
    values: List[Any] = []
    for piece in pieces:
        if isinstance(piece, _Clause):
            text.append(piece.text)
            values.extend(piece.values)
        else:
            text.append(piece)
    return _Clause("".join(text), tuple(values))


def _joined(separator: str, clauses: Sequence[_Clause]) -> _Clause:
    pieces: List[Union[str, _Clause]] = []
    for i, clause in enumerate(clauses):
        if i:
            pieces.append(separator)
        pieces.append(clause)
    return _concat(*pieces)


_ALWAYS_TRUE_CLAUSE = _Clause(_ALWAYS_TRUE)


class SqlGenerator(QueryGenerator):
    target = "sql"

    def __init__(self, paramstyle: str = "qmark"):
        super().__init__()
        # Fail fast on an unknown paramstyle.
        _ParamSink(paramstyle)
        self.paramstyle = paramstyle

    def condition(self, column_id: str, condition: ConditionFilter) -> _Clause:
        col = quote_identifier(column_id)
        op = condition.operator
        keyword = SQL_OPERATORS.get(op)
        if keyword is None:
            self.warn(f"Operator '{op}' on {column_id} has no SQL mapping; using '='")
            keyword = "="

        if keyword in ("IS NULL", "IS NOT NULL"):
            return _Clause(f"{col} {keyword}")

        if keyword in ("LIKE", "NOT LIKE"):
            pattern = _Clause.bound(_like_pattern(condition.value, op))
            return _concat(f"{col} {keyword} ", pattern, " ESCAPE '\\'")

        if keyword in ("IN", "NOT IN"):
            vals = _in_values(condition.value)
            if not vals:
                # IN () is always false; NOT IN () is always true
                return _Clause("1=0") if keyword == "IN" else _ALWAYS_TRUE_CLAUSE
            placeholders = _joined(", ", [_Clause.bound(v) for v in vals])
            return _concat(f"{col} {keyword} (", placeholders, ")")

        if keyword in ("BETWEEN", "NOT BETWEEN"):
            return _concat(
                f"{col} {keyword} ", _Clause.bound(condition.value),
                " AND ", _Clause.bound(condition.value_to),
            )

        return _concat(f"{col} {keyword} ", _Clause.bound(condition.value))

    def join(self, operator: LogicalOperator, parts: List[_Clause], nested: bool) -> _Clause:
        if len(parts) == 1 and operator in (LogicalOperator.AND, LogicalOperator.OR, LogicalOperator.XOR):
            return parts[0]

        if operator == LogicalOperator.OR:
            body = _joined(" OR ", parts)
        elif operator == LogicalOperator.XOR:
            body = _joined(" XOR ", parts)
        elif operator in (LogicalOperator.NAND, LogicalOperator.NOT):
            return _concat("NOT (", _joined(" AND ", parts), ")")
        elif operator == LogicalOperator.NOR:
            return _concat("NOT (", _joined(" OR ", parts), ")")
        else:
            body = _joined(" AND ", parts)
        return _concat("(", body, ")") if nested else body

    def expression(self, expr: Expression, parts: Optional[Sequence[Optional[_Clause]]]) -> _Clause:
        if isinstance(expr, PositionReference):
            values = parts or ()
            if expr.index >= len(values) or values[expr.index] is None:
                return _ALWAYS_TRUE_CLAUSE
            return values[expr.index]

        if isinstance(expr, VariableReference):
            return _Clause(quote_identifier(expr.name))

        if isinstance(expr, Literal):
            return _Clause.bound(expr.value)

        if isinstance(expr, UnaryExpression):
            return self.negate(self.expression(expr.operand, parts))

        if isinstance(expr, BinaryExpression):
            op = expr.operator
            left = self.expression(expr.left, parts)

            if op in _COMPARISON_SQL:
                if isinstance(expr.right, Literal) and expr.right.value is None:
                    if op == BinaryOperator.EQUALS:
                        return _concat(left, " IS NULL")
                    if op == BinaryOperator.NOT_EQUALS:
                        return _concat(left, " IS NOT NULL")
                return _concat(left, f" {_COMPARISON_SQL[op]} ", self.expression(expr.right, parts))

            right = self.expression(expr.right, parts)
            if op == BinaryOperator.AND:
                return _concat("(", left, " AND ", right, ")")
            if op == BinaryOperator.OR:
                return _concat("(", left, " OR ", right, ")")
            if op == BinaryOperator.XOR:
                return _concat("(", left, " XOR ", right, ")")
            if op == BinaryOperator.NAND:
                return _concat("NOT (", left, " AND ", right, ")")
            if op == BinaryOperator.NOR:
                return _concat("NOT (", left, " OR ", right, ")")
            if op == BinaryOperator.IMPLIES:
                return _concat("(", self.negate(left), " OR ", right, ")")
            if op == BinaryOperator.BICONDITIONAL:
                return _concat("((", left, ") = (", right, "))")

        raise TypeError(f"Unsupported Expression type: {type(expr)}")

    def negate(self, part: _Clause) -> _Clause:
        if is_wrapped(part.text):
            return _concat("NOT ", part)
        return _concat("NOT (", part, ")")

    def finish(self, body: Optional[_Clause]) -> GeneratedQuery:
        sink = _ParamSink(self.paramstyle)
        text = ""
        if body is not None:
            pieces = body.text.split(_MARK)
            text = pieces[0] + "".join(
                sink.add(value) + piece for value, piece in zip(body.values, pieces[1:])
            )
        return GeneratedQuery(
            target=self.target,
            query=text,
            params=sink.bundle(),
            warnings=tuple(self.warnings),
        )


def generate_sql(root, paramstyle: str = "qmark") -> GeneratedQuery:
    """
    Translate a filter tree into a WHERE-clause body.

    An empty tree (or one whose conditions are all disabled) yields "".
    """
    return SqlGenerator(paramstyle).generate(root)


def sql_preview(root, table: str = "data", paramstyle: str = "qmark") -> GeneratedQuery:
    """Full SELECT statement for preview panes."""
    where = generate_sql(root, paramstyle)
    statement = f"SELECT * FROM {quote_identifier(table)}"
    if where.query:
        statement += f" WHERE {where.query}"
    return GeneratedQuery(
        target=where.target,
        query=statement,
        params=where.params,
        warnings=where.warnings,
    )
