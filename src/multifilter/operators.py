"""
Logical Operator Algebra

The closed set of group operators and their truth tables.

Every function here works on already-evaluated child results (booleans).
Nothing in this module knows about nodes, rows or query targets.
"""

from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple


class LogicalOperator(str, Enum):
    """
    Operators a GroupNode can combine its children with.

    NOT is kept for compatibility with stored filters; negation is
    normally expressed with the group's `negated` flag.
    """

    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    XOR = "XOR"
    NAND = "NAND"
    NOR = "NOR"
    IF_THEN = "IF_THEN"
    IF_THEN_ELSE = "IF_THEN_ELSE"
    IMPLIES = "IMPLIES"
    BICONDITIONAL = "BICONDITIONAL"
    CUSTOM = "CUSTOM"


# Exact child counts. Operators not listed here are variadic.
FIXED_ARITY: Dict[LogicalOperator, int] = {
    LogicalOperator.XOR: 2,
    LogicalOperator.NAND: 2,
    LogicalOperator.NOR: 2,
    LogicalOperator.IF_THEN: 2,
    LogicalOperator.IMPLIES: 2,
    LogicalOperator.BICONDITIONAL: 2,
    LogicalOperator.IF_THEN_ELSE: 3,
}

# Advisory minimum for variadic operators.
MIN_CHILDREN: Dict[LogicalOperator, int] = {
    LogicalOperator.AND: 2,
    LogicalOperator.OR: 2,
}

# Children are addressed by position, so order matters and a disabled
# child is substituted rather than dropped.
POSITIONAL_OPERATORS = frozenset({
    LogicalOperator.IF_THEN,
    LogicalOperator.IF_THEN_ELSE,
    LogicalOperator.IMPLIES,
    LogicalOperator.BICONDITIONAL,
    LogicalOperator.CUSTOM,
})

OPERATOR_SYMBOLS: Dict[LogicalOperator, str] = {
    LogicalOperator.AND: "∧",
    LogicalOperator.OR: "∨",
    LogicalOperator.NOT: "¬",
    LogicalOperator.XOR: "⊕",
    LogicalOperator.NAND: "↑",
    LogicalOperator.NOR: "↓",
    LogicalOperator.IF_THEN: "→",
    LogicalOperator.IF_THEN_ELSE: "?:",
    LogicalOperator.IMPLIES: "⟹",
    LogicalOperator.BICONDITIONAL: "⟺",
    LogicalOperator.CUSTOM: "{ }",
}

# Relative evaluation cost per operator, used by the performance estimate.
OPERATOR_COST: Dict[LogicalOperator, int] = {
    LogicalOperator.AND: 1,
    LogicalOperator.OR: 1,
    LogicalOperator.NOT: 1,
    LogicalOperator.XOR: 2,
    LogicalOperator.NAND: 2,
    LogicalOperator.NOR: 2,
    LogicalOperator.IF_THEN: 3,
    LogicalOperator.IF_THEN_ELSE: 4,
    LogicalOperator.IMPLIES: 3,
    LogicalOperator.BICONDITIONAL: 4,
    LogicalOperator.CUSTOM: 5,
}


def parse_operator(value) -> LogicalOperator:
    """Accept an enum member or its string value (case-insensitive)."""
    if isinstance(value, LogicalOperator):
        return value
    try:
        return LogicalOperator(str(value).upper())
    except ValueError:
        raise ValueError(f"Unknown logical operator: {value!r}")


def arity_bounds(operator: LogicalOperator) -> Tuple[int, Optional[int]]:
    """Return (minimum, maximum) child counts; maximum None means unbounded."""
    if operator in FIXED_ARITY:
        n = FIXED_ARITY[operator]
        return n, n
    return MIN_CHILDREN.get(operator, 0), None


def describe_arity(operator: LogicalOperator) -> str:
    low, high = arity_bounds(operator)
    if high is None:
        return f"{low}+" if low else "any number of"
    return f"exactly {high}"


def combine(operator: LogicalOperator, values: Sequence[bool]) -> bool:
    """
    Combine evaluated child results with a non-CUSTOM operator.

    Positional operators read missing trailing children as True, so an
    incomplete group never constrains more than its present children.
    CUSTOM groups are combined by evaluating their parsed expression
    instead; see evaluator.evaluate_custom.
    """
    vals: List[bool] = [bool(v) for v in values]

    def at(i: int) -> bool:
        return vals[i] if i < len(vals) else True

    if operator == LogicalOperator.AND:
        return all(vals)
    if operator == LogicalOperator.OR:
        return any(vals)
    if operator == LogicalOperator.NOT:
        # Children are AND-combined first, then negated.
        return not all(vals)
    if operator == LogicalOperator.XOR:
        return sum(vals) == 1
    if operator == LogicalOperator.NAND:
        return not all(vals)
    if operator == LogicalOperator.NOR:
        return not any(vals)
    if operator in (LogicalOperator.IF_THEN, LogicalOperator.IMPLIES):
        return (not at(0)) or at(1)
    if operator == LogicalOperator.IF_THEN_ELSE:
        return at(1) if at(0) else at(2)
    if operator == LogicalOperator.BICONDITIONAL:
        return at(0) == at(1)
    raise ValueError(f"Operator {operator.value} cannot be combined positionally")


def apply_negation(result: bool, negated: bool) -> bool:
    """The group's `negated` flag always applies after combination."""
    return (not result) if negated else result
