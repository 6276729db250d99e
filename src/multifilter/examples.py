"""
Example filter builders for demos and tests.

Builds a small order-grid filter that exercises every node type and the
main operator families:

    root (AND)
    ├── age > 18
    ├── status = 'active'
    ├── group (OR)
    │   ├── priority = 'high'
    │   └── region in ('EU', 'US')
    ├── group (CUSTOM "A AND (B OR NOT C)")
    │   ├── amount >= 100
    │   ├── vip = true
    │   └── notes contains 'refund'
    └── formula: score >= 50 OR tier = 'gold'
"""
from multifilter.model import (
    ConditionFilter,
    ConditionNode,
    FilterType,
    FormulaNode,
    GroupNode,
    ModelMetadata,
    MultiFilterModel,
)
from multifilter.operators import LogicalOperator


def condition(node_id: str, column_id: str, operator: str, value=None,
              filter_type: FilterType = FilterType.TEXT, enabled: bool = True,
              value_to=None) -> ConditionNode:
    return ConditionNode(
        id=node_id,
        column_id=column_id,
        enabled=enabled,
        filter=ConditionFilter(filter_type=filter_type, operator=operator, value=value, value_to=value_to),
    )


def build_simple_filter() -> GroupNode:
    """age > 18 AND status = 'active'"""
    return GroupNode(
        id="root",
        operator=LogicalOperator.AND,
        children=(
            condition("age", "age", "greaterThan", 18, FilterType.NUMBER),
            condition("status", "status", "equals", "active"),
        ),
    )


def build_example_orders_filter() -> MultiFilterModel:
    priority_group = GroupNode(
        id="priority-group",
        operator=LogicalOperator.OR,
        children=(
            condition("priority", "priority", "equals", "high"),
            condition("region", "region", "in", ["EU", "US"], FilterType.SET),
        ),
    )

    custom_group = GroupNode(
        id="custom-group",
        operator=LogicalOperator.CUSTOM,
        custom_logic="A AND (B OR NOT C)",
        children=(
            condition("amount", "amount", "greaterThanOrEqual", 100, FilterType.NUMBER),
            condition("vip", "vip", "equals", True, FilterType.BOOLEAN),
            condition("notes", "notes", "contains", "refund"),
        ),
    )

    root = GroupNode(
        id="root",
        operator=LogicalOperator.AND,
        children=(
            condition("age", "age", "greaterThan", 18, FilterType.NUMBER),
            condition("status", "status", "equals", "active"),
            priority_group,
            custom_group,
            FormulaNode(id="score-formula", formula="score >= 50 OR tier = 'gold'"),
        ),
    )

    return MultiFilterModel(
        column_id="orders",
        root_node=root,
        metadata=ModelMetadata(name="Example Orders Filter", tags=("example",)),
    )


def build_example_rows():
    return [
        {"age": 34, "status": "active", "priority": "high", "region": "APAC",
         "amount": 250, "vip": True, "notes": "", "score": 70, "tier": "silver"},
        {"age": 17, "status": "active", "priority": "high", "region": "EU",
         "amount": 250, "vip": True, "notes": "", "score": 70, "tier": "silver"},
        {"age": 40, "status": "active", "priority": "low", "region": "US",
         "amount": 120, "vip": False, "notes": "refund requested", "score": 10, "tier": "gold"},
        {"age": 52, "status": "inactive", "priority": "high", "region": "EU",
         "amount": 500, "vip": True, "notes": "", "score": 90, "tier": "gold"},
        {"age": 29, "status": "active", "priority": "low", "region": "EU",
         "amount": 180, "vip": True, "notes": "", "score": 60, "tier": "silver"},
    ]
