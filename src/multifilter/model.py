"""
Core Filter Model Objects

Defines the data structures of a multi-filter:
    - Condition nodes (one column, one operator, one value)
    - Group nodes (children combined by a logical operator)
    - Formula nodes (free-text expression over columns)
    - Natural nodes (free-text query, interpreted externally)
    - MultiFilterModel (root container)

ARCHITECTURAL RULE:
    These objects:
        - Are immutable (frozen dataclasses, tuple children)
        - Are shared structurally between history snapshots
        - Know nothing about rendering, SQL or storage
        - Never evaluate themselves

    Changing a node means building a new node with dataclasses.replace()
    and a new path of parents up to the root. tree.py does this.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Tuple, Union

from multifilter.expressions import Expression
from multifilter.formula import CompiledFormula
from multifilter.operators import LogicalOperator


class NodeType(str, Enum):
    GROUP = "group"
    CONDITION = "condition"
    FORMULA = "formula"
    NATURAL = "natural"


class FilterType(str, Enum):
    """Value type of a condition's payload."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SET = "set"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Position:
    """
    2-D canvas coordinate owned by the UI.

    Irrelevant to evaluation, but persisted with the node.
    """

    x: float = 0.0
    y: float = 0.0


@dataclass(frozen=True)
class NodeMetadata:
    """Presentation-only data. Never affects evaluation or generation."""

    label: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None
    collapsed: bool = False


@dataclass(frozen=True)
class ConditionFilter:
    """
    Operator + typed value payload of a condition.

    Properties:
        filter_type: text / number / date / boolean / set
        operator: Column operator name, e.g. "equals", "greaterThan",
            "contains", "in". Unknown names are carried, not rejected;
            query backends fall back to equality and report it.
        value: Comparison value (a sequence for set operators)
        value_to: Upper bound for range operators (inRange, between)
    """

    filter_type: FilterType = FilterType.TEXT
    operator: str = "equals"
    value: Any = None
    value_to: Any = None


@dataclass(frozen=True)
class ParsedCondition:
    column_id: str
    operator: str
    value: Any = None
    confidence: float = 1.0


@dataclass(frozen=True)
class ParsedNaturalQuery:
    """
    Result of an external natural-language interpretation.

    The engine never produces this itself; it only carries it and folds
    its conditions into evaluation and query generation.
    """

    original_query: str
    intent: str = "filter"
    conditions: Tuple[ParsedCondition, ...] = ()
    confidence: float = 0.0


# =========================================================================
# NODE VARIANTS
# =========================================================================


@dataclass(frozen=True)
class GroupNode:
    """
    Combines its children with a logical operator.

    Properties:
        operator: LogicalOperator
        negated: Apply NOT after combining the children
        custom_logic: Expression over child position letters, used only
            when operator is CUSTOM (e.g. "A AND (B OR C)")
        children: Ordered children. Order matters for IF_THEN, IF_THEN_ELSE,
            IMPLIES, BICONDITIONAL and CUSTOM.
        compiled_logic: Parsed custom_logic, cached by the session when the
            text validates. Dropped whenever custom_logic or children change.
    """

    id: str
    operator: LogicalOperator = LogicalOperator.AND
    negated: bool = False
    custom_logic: Optional[str] = None
    children: Tuple["FilterNode", ...] = ()
    position: Position = field(default_factory=Position)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)
    compiled_logic: Optional[Expression] = field(default=None, compare=False, repr=False)

    node_type = NodeType.GROUP


@dataclass(frozen=True)
class ConditionNode:
    """
    Tests one column against one operator/value.

    Disabled conditions stay in the tree (soft delete) but are skipped by
    evaluation and every query backend. `weight` is carried for external
    scoring only; boolean evaluation ignores it.
    """

    id: str
    column_id: str
    filter: ConditionFilter = field(default_factory=ConditionFilter)
    enabled: bool = True
    weight: float = 1.0
    position: Position = field(default_factory=Position)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)

    node_type = NodeType.CONDITION

    def __post_init__(self):
        if self.weight <= 0:
            raise ValueError(f"Condition weight must be positive, got {self.weight}")


@dataclass(frozen=True)
class FormulaNode:
    """Free-text formula; `compiled` caches the parse of `formula`."""

    id: str
    formula: str = ""
    compiled: Optional[CompiledFormula] = field(default=None, compare=False, repr=False)
    position: Position = field(default_factory=Position)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)

    node_type = NodeType.FORMULA


@dataclass(frozen=True)
class NaturalNode:
    """
    Natural language query.

    `parsed` stays None until an external interpreter supplies a result;
    until then the node constrains nothing.
    """

    id: str
    query: str = ""
    parsed: Optional[ParsedNaturalQuery] = None
    confidence: float = 0.0
    suggestions: Tuple[str, ...] = ()
    position: Position = field(default_factory=Position)
    metadata: NodeMetadata = field(default_factory=NodeMetadata)

    node_type = NodeType.NATURAL

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be within 0..1, got {self.confidence}")


FilterNode = Union[GroupNode, ConditionNode, FormulaNode, NaturalNode]

NODE_CLASSES = (GroupNode, ConditionNode, FormulaNode, NaturalNode)


def is_active(node: FilterNode) -> bool:
    """
    Whether a leaf participates in evaluation and generation.

    Groups are always active; an empty group simply contributes nothing.
    """
    if isinstance(node, ConditionNode):
        return node.enabled
    if isinstance(node, FormulaNode):
        return bool(node.formula.strip())
    if isinstance(node, NaturalNode):
        return node.parsed is not None
    if isinstance(node, GroupNode):
        return True
    raise TypeError(f"Unsupported node type: {type(node)}")


# =========================================================================
# ROOT AGGREGATE
# =========================================================================


@dataclass(frozen=True)
class FilterComplexity:
    node_count: int = 1
    max_depth: int = 1
    operator_diversity: int = 1
    estimated_performance: str = "excellent"
    optimization_suggestions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PerformanceMetrics:
    """
    Static performance estimate.

    Properties:
        tier: excellent / good / fair / poor (same scale as complexity)
        cost_score: Sum of per-node and per-operator evaluation costs
        optimization_level: 0-10, higher means less room to optimize
    """

    tier: str = "excellent"
    cost_score: int = 0
    optimization_level: int = 10


@dataclass(frozen=True)
class ModelMetadata:
    name: Optional[str] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()
    complexity: Optional[FilterComplexity] = None
    performance: Optional[PerformanceMetrics] = None


@dataclass(frozen=True)
class MultiFilterModel:
    """
    Root container of one column's (or context's) filter.

    Properties:
        column_id: Column or context this filter belongs to
        root_node: Always a GroupNode, never removed
        version: Bumped on every structural change
        created_at / modified_at: UTC timestamps
        metadata: Name/tags plus denormalized complexity and performance
            snapshots for consumers that must not recompute. Both are None
            whenever they may not describe root_node.

    INVARIANTS:
        - Root is a GroupNode
        - Node ids are unique within the model
        - Every node belongs to exactly one model
    """

    column_id: str
    root_node: GroupNode
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    modified_at: datetime = field(default_factory=utcnow)
    metadata: ModelMetadata = field(default_factory=ModelMetadata)

    def __post_init__(self):
        if not isinstance(self.root_node, GroupNode):
            raise TypeError("The root node of a MultiFilterModel must be a GroupNode")

    def with_root(self, root: GroupNode, now: Optional[datetime] = None) -> "MultiFilterModel":
        """New model with a changed tree: version bumped, timestamp refreshed, stored analysis cleared."""
        return replace(
            self,
            root_node=root,
            version=self.version + 1,
            modified_at=now or utcnow(),
            metadata=replace(self.metadata, complexity=None, performance=None),
        )
