"""
Complexity Analyzer: live diagnostics of a filter tree.

This module provides lightweight, read-only analysis of a group subtree:
    - Node count, group nesting depth, operator diversity
    - Performance tier from configurable thresholds
    - Optimization suggestions when limits are crossed
    - Static cost estimate from per-operator weights

It runs after every mutation to back a live UI indicator, so every metric
is a single pass over the tree. It never modifies the tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Set

from multifilter.config import ComplexityPolicy
from multifilter.model import (
    ConditionNode,
    FilterComplexity,
    FilterNode,
    FormulaNode,
    GroupNode,
    NaturalNode,
    PerformanceMetrics,
)
from multifilter.operators import OPERATOR_COST, LogicalOperator

# Leaf evaluation cost, relative to the operator weights.
LEAF_COST = {
    ConditionNode: 1,
    FormulaNode: 3,
    NaturalNode: 2,
}


@dataclass
class TreeMetrics:
    """Raw counts gathered in one traversal."""
    node_count: int = 0
    max_depth: int = 0
    operators: Set[LogicalOperator] = field(default_factory=set)
    cost: int = 0
    disabled_conditions: int = 0
    custom_groups: int = 0


def _collect(node: FilterNode, metrics: TreeMetrics, depth: int) -> None:
    metrics.node_count += 1

    if isinstance(node, GroupNode):
        metrics.max_depth = max(metrics.max_depth, depth)
        metrics.operators.add(node.operator)
        metrics.cost += OPERATOR_COST.get(node.operator, 1)
        if node.operator == LogicalOperator.CUSTOM:
            metrics.custom_groups += 1
        for child in node.children:
            _collect(child, metrics, depth + 1)

    elif isinstance(node, ConditionNode):
        if node.enabled:
            metrics.cost += LEAF_COST[ConditionNode]
        else:
            metrics.disabled_conditions += 1

    elif isinstance(node, (FormulaNode, NaturalNode)):
        metrics.cost += LEAF_COST[type(node)]

    else:
        raise TypeError(f"Unsupported node type: {type(node)}")


def collect_metrics(root: GroupNode) -> TreeMetrics:
    metrics = TreeMetrics()
    _collect(root, metrics, 1)
    return metrics


@dataclass
class ComplexityReport:
    """Mutable builder for a FilterComplexity."""
    node_count: int = 0
    max_depth: int = 0
    operator_diversity: int = 0
    estimated_performance: str = "excellent"
    suggestions: List[str] = field(default_factory=list)

    def add_suggestion(self, msg: str) -> None:
        if msg not in self.suggestions:
            self.suggestions.append(msg)

    def freeze(self) -> FilterComplexity:
        return FilterComplexity(
            node_count=self.node_count,
            max_depth=self.max_depth,
            operator_diversity=self.operator_diversity,
            estimated_performance=self.estimated_performance,
            optimization_suggestions=tuple(self.suggestions),
        )


def analyze_complexity(root: GroupNode, policy: Optional[ComplexityPolicy] = None) -> FilterComplexity:
    """
    Compute complexity metrics of a group subtree.

    - node_count: every node including the root group
    - max_depth: longest chain of nested groups (1 for a flat group)
    - operator_diversity: distinct operators across all groups
    - estimated_performance: tier from `policy` by node count
    - optimization_suggestions: one hint per exceeded policy limit
    """
    policy = policy or ComplexityPolicy()
    metrics = collect_metrics(root)

    report = ComplexityReport(
        node_count=metrics.node_count,
        max_depth=metrics.max_depth,
        operator_diversity=len(metrics.operators),
        estimated_performance=policy.tier(metrics.node_count),
    )

    if report.node_count > policy.max_node_count:
        report.add_suggestion(
            f"Consider removing redundant conditions ({report.node_count} nodes)"
        )
    if report.max_depth > policy.max_depth:
        report.add_suggestion(
            f"Consider flattening nested groups (depth {report.max_depth})"
        )
    if report.operator_diversity > policy.max_operator_diversity:
        report.add_suggestion(
            f"Consider consolidating logical operators ({report.operator_diversity} in use)"
        )

    return report.freeze()


def estimate_performance(root: GroupNode, policy: Optional[ComplexityPolicy] = None) -> PerformanceMetrics:
    """
    Static cost estimate.

    cost_score sums the operator weights of all groups and the leaf costs
    of active leaves. optimization_level starts at 10 and loses a point for
    each disabled condition left in the tree, each CUSTOM group, and each
    level of nesting beyond the policy's depth limit.
    """
    policy = policy or ComplexityPolicy()
    metrics = collect_metrics(root)

    penalty = metrics.disabled_conditions + metrics.custom_groups
    penalty += max(0, metrics.max_depth - policy.max_depth)

    return PerformanceMetrics(
        tier=policy.tier(metrics.node_count),
        cost_score=metrics.cost,
        optimization_level=max(0, 10 - penalty),
    )
