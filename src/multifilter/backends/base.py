"""
Shared traversal for query backends.

Every backend walks the tree the same way (depth-first, skipping inactive
leaves) and only decides how a clause is spelled. A backend renders four
things:

    condition(column_id, filter)     one column test
    join(operator, parts, nested)    variadic group (AND, OR, XOR, NAND, NOR, NOT)
    expression(expr, parts)          positional group or custom logic AST,
                                     or a formula AST (parts is None)
    negate(part)                     the group's `negated` flag

Backends never raise for a structurally valid tree. Anything they cannot
translate faithfully becomes a documented fallback plus a warning in the
GeneratedQuery.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from multifilter.errors import FormulaError
from multifilter.evaluator import compiled_formula, custom_expression
from multifilter.expressions import (
    BinaryExpression,
    BinaryOperator,
    Expression,
    PositionReference,
    UnaryExpression,
    UnaryOperator,
)
from multifilter.model import (
    ConditionFilter,
    ConditionNode,
    FilterNode,
    FormulaNode,
    GroupNode,
    NaturalNode,
)
from multifilter.operators import POSITIONAL_OPERATORS, LogicalOperator

logger = logging.getLogger(__name__)

Part = Any


@dataclass(frozen=True)
class GeneratedQuery:
    """
    Output of a backend.

    Properties:
        target: "sql", "document" or "natural"
        query: SQL text, document dict, or sentence
        params: Bound values (SQL only): a list for qmark, a dict for pyformat
        warnings: Lossy fallbacks taken while translating. A query with
            warnings is a preview, not something to execute as-is.
    """

    target: str
    query: Any
    params: Union[List[Any], Dict[str, Any], None] = None
    warnings: Tuple[str, ...] = ()

    @property
    def is_faithful(self) -> bool:
        return not self.warnings


def is_wrapped(text: str) -> bool:
    """Whether the opening parenthesis at the start closes at the very end."""
    if not text.startswith("("):
        return False
    depth = 0
    for i, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i == len(text) - 1
    return False


_A, _B, _C = PositionReference("A"), PositionReference("B"), PositionReference("C")

# Positional operators as expressions over child letters.
POSITIONAL_EXPRESSIONS: Dict[LogicalOperator, Expression] = {
    LogicalOperator.IF_THEN: BinaryExpression(BinaryOperator.IMPLIES, _A, _B),
    LogicalOperator.IMPLIES: BinaryExpression(BinaryOperator.IMPLIES, _A, _B),
    LogicalOperator.BICONDITIONAL: BinaryExpression(BinaryOperator.BICONDITIONAL, _A, _B),
    LogicalOperator.IF_THEN_ELSE: BinaryExpression(
        BinaryOperator.OR,
        BinaryExpression(BinaryOperator.AND, _A, _B),
        BinaryExpression(BinaryOperator.AND, UnaryExpression(UnaryOperator.NOT, _A), _C),
    ),
}


class QueryGenerator(ABC):
    """Template for one translation target. Warnings reset on every generate() call."""

    target = ""

    def __init__(self):
        self.warnings: List[str] = []

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            logger.warning("%s backend: %s", self.target, message)
            self.warnings.append(message)

    # ---------------------------------------------------------------------
    # Traversal
    # ---------------------------------------------------------------------

    def render(self, node: FilterNode, nested: bool) -> Optional[Part]:
        """Render one node; None means it contributes nothing."""
        if isinstance(node, GroupNode):
            return self.render_group(node, nested)

        if isinstance(node, ConditionNode):
            if not node.enabled:
                return None
            return self.condition(node.column_id, node.filter)

        if isinstance(node, FormulaNode):
            if not node.formula.strip():
                return None
            try:
                compiled = compiled_formula(node)
            except FormulaError as e:
                self.warn(f"Formula node {node.id} skipped: {e.message}")
                return None
            return self.expression(compiled.ast, None)

        if isinstance(node, NaturalNode):
            if node.parsed is None or not node.parsed.conditions:
                return None
            parts = [
                self.condition(c.column_id, ConditionFilter(operator=c.operator, value=c.value))
                for c in node.parsed.conditions
            ]
            if len(parts) == 1:
                return parts[0]
            return self.join(LogicalOperator.AND, parts, nested)

        raise TypeError(f"Unsupported node type: {type(node)}")

    def render_group(self, group: GroupNode, nested: bool) -> Optional[Part]:
        rendered = [self.render(child, True) for child in group.children]
        if all(part is None for part in rendered):
            return None

        if group.operator == LogicalOperator.CUSTOM:
            expr = custom_expression(group)
            if expr is None:
                self.warn(f"Group {group.id} has invalid custom logic; rendered as AND")
                part = self.join(LogicalOperator.AND, [p for p in rendered if p is not None], nested)
            else:
                part = self.expression(expr, rendered)
        elif group.operator in POSITIONAL_OPERATORS:
            part = self.positional(group.operator, rendered, nested)
        else:
            part = self.join(group.operator, [p for p in rendered if p is not None], nested)

        return self.negate(part) if group.negated else part

    def positional(self, operator: LogicalOperator, parts: Sequence[Optional[Part]], nested: bool) -> Part:
        """Positional groups default to their expression form."""
        return self.expression(POSITIONAL_EXPRESSIONS[operator], parts)

    def generate(self, root: GroupNode) -> GeneratedQuery:
        self.warnings = []
        body = self.render(root, False)
        return self.finish(body)

    # ---------------------------------------------------------------------
    # Target-specific spelling
    # ---------------------------------------------------------------------

    @abstractmethod
    def condition(self, column_id: str, condition: ConditionFilter) -> Part:
        ...

    @abstractmethod
    def join(self, operator: LogicalOperator, parts: List[Part], nested: bool) -> Part:
        ...

    @abstractmethod
    def expression(self, expr: Expression, parts: Optional[Sequence[Optional[Part]]]) -> Part:
        ...

    @abstractmethod
    def negate(self, part: Part) -> Part:
        ...

    @abstractmethod
    def finish(self, body: Optional[Part]) -> GeneratedQuery:
        ...
