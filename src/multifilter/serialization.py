"""
Serialization helpers for filter models (MultiFilterModel, nodes).

Provides JSON/YAML round-trip via an intermediate dict representation.
Keys are camelCase so that exported state is interchangeable with the
grid's own filter JSON. Derived caches (compiled formulas, compiled custom
logic) are not stored; they are rebuilt on demand after import.

Every exported document carries `schemaVersion`. Documents from a newer
schema are rejected rather than half-read.
"""
from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Optional

import yaml

from multifilter.errors import MultiFilterError, StateImportError
from multifilter.model import (
    ConditionFilter,
    ConditionNode,
    FilterComplexity,
    FilterNode,
    FilterType,
    FormulaNode,
    GroupNode,
    ModelMetadata,
    MultiFilterModel,
    NaturalNode,
    NodeMetadata,
    NodeType,
    ParsedCondition,
    ParsedNaturalQuery,
    PerformanceMetrics,
    Position,
)
from multifilter.operators import parse_operator
from multifilter.tree import check_arity, duplicate_ids, walk

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def _value_to_dict(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_value_to_dict(v) for v in value]
    return value


def _datetime_from(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def position_to_dict(p: Position) -> Dict[str, Any]:
    return {"x": p.x, "y": p.y}


def position_from_dict(d: Optional[Dict[str, Any]]) -> Position:
    if not d:
        return Position()
    return Position(x=d.get("x", 0.0), y=d.get("y", 0.0))


def metadata_to_dict(m: NodeMetadata) -> Dict[str, Any]:
    return {
        "label": m.label,
        "description": m.description,
        "color": m.color,
        "collapsed": m.collapsed,
    }


def metadata_from_dict(d: Optional[Dict[str, Any]]) -> NodeMetadata:
    if not d:
        return NodeMetadata()
    return NodeMetadata(
        label=d.get("label"),
        description=d.get("description"),
        color=d.get("color"),
        collapsed=bool(d.get("collapsed", False)),
    )


def parsed_to_dict(p: Optional[ParsedNaturalQuery]) -> Optional[Dict[str, Any]]:
    if p is None:
        return None
    return {
        "originalQuery": p.original_query,
        "intent": p.intent,
        "conditions": [
            {
                "columnId": c.column_id,
                "operator": c.operator,
                "value": _value_to_dict(c.value),
                "confidence": c.confidence,
            }
            for c in p.conditions
        ],
        "confidence": p.confidence,
    }


def parsed_from_dict(d: Optional[Dict[str, Any]]) -> Optional[ParsedNaturalQuery]:
    if d is None:
        return None
    return ParsedNaturalQuery(
        original_query=d.get("originalQuery", ""),
        intent=d.get("intent", "filter"),
        conditions=tuple(
            ParsedCondition(
                column_id=c["columnId"],
                operator=c["operator"],
                value=c.get("value"),
                confidence=c.get("confidence", 1.0),
            )
            for c in d.get("conditions", [])
        ),
        confidence=d.get("confidence", 0.0),
    )


def node_to_dict(node: FilterNode) -> Dict[str, Any]:
    d: Dict[str, Any] = {"id": node.id, "type": node.node_type.value}

    if isinstance(node, GroupNode):
        d.update({
            "operator": node.operator.value,
            "negated": node.negated,
            "customLogic": node.custom_logic,
            "children": [node_to_dict(c) for c in node.children],
        })
    elif isinstance(node, ConditionNode):
        d.update({
            "columnId": node.column_id,
            "enabled": node.enabled,
            "weight": node.weight,
            "filter": {
                "filterType": node.filter.filter_type.value,
                "operator": node.filter.operator,
                "value": _value_to_dict(node.filter.value),
                "valueTo": _value_to_dict(node.filter.value_to),
            },
        })
    elif isinstance(node, FormulaNode):
        d["formula"] = node.formula
    elif isinstance(node, NaturalNode):
        d.update({
            "query": node.query,
            "parsed": parsed_to_dict(node.parsed),
            "confidence": node.confidence,
            "suggestions": list(node.suggestions),
        })
    else:
        raise TypeError(f"Unsupported node type: {type(node)}")

    d["position"] = position_to_dict(node.position)
    d["metadata"] = metadata_to_dict(node.metadata)
    return d


def node_from_dict(d: Dict[str, Any]) -> FilterNode:
    node_type = NodeType(d["type"])
    common = {
        "id": d["id"],
        "position": position_from_dict(d.get("position")),
        "metadata": metadata_from_dict(d.get("metadata")),
    }

    if node_type == NodeType.GROUP:
        return GroupNode(
            operator=parse_operator(d.get("operator", "AND")),
            negated=bool(d.get("negated", False)),
            custom_logic=d.get("customLogic"),
            children=tuple(node_from_dict(c) for c in d.get("children", [])),
            **common,
        )
    if node_type == NodeType.CONDITION:
        f = d.get("filter") or {}
        return ConditionNode(
            column_id=d["columnId"],
            enabled=bool(d.get("enabled", True)),
            weight=d.get("weight", 1.0),
            filter=ConditionFilter(
                filter_type=FilterType(f.get("filterType", "text")),
                operator=f.get("operator", "equals"),
                value=f.get("value"),
                value_to=f.get("valueTo"),
            ),
            **common,
        )
    if node_type == NodeType.FORMULA:
        return FormulaNode(formula=d.get("formula", ""), **common)
    if node_type == NodeType.NATURAL:
        return NaturalNode(
            query=d.get("query", ""),
            parsed=parsed_from_dict(d.get("parsed")),
            confidence=d.get("confidence", 0.0),
            suggestions=tuple(d.get("suggestions", [])),
            **common,
        )
    raise TypeError(f"Unsupported node type: {node_type}")


def _complexity_to_dict(c: Optional[FilterComplexity]) -> Optional[Dict[str, Any]]:
    if c is None:
        return None
    return {
        "nodeCount": c.node_count,
        "maxDepth": c.max_depth,
        "operatorDiversity": c.operator_diversity,
        "estimatedPerformance": c.estimated_performance,
        "optimizationSuggestions": list(c.optimization_suggestions),
    }


def _complexity_from_dict(d: Optional[Dict[str, Any]]) -> Optional[FilterComplexity]:
    if d is None:
        return None
    return FilterComplexity(
        node_count=d["nodeCount"],
        max_depth=d["maxDepth"],
        operator_diversity=d["operatorDiversity"],
        estimated_performance=d["estimatedPerformance"],
        optimization_suggestions=tuple(d.get("optimizationSuggestions", [])),
    )


def _performance_to_dict(p: Optional[PerformanceMetrics]) -> Optional[Dict[str, Any]]:
    if p is None:
        return None
    return {"tier": p.tier, "costScore": p.cost_score, "optimizationLevel": p.optimization_level}


def _performance_from_dict(d: Optional[Dict[str, Any]]) -> Optional[PerformanceMetrics]:
    if d is None:
        return None
    return PerformanceMetrics(
        tier=d["tier"],
        cost_score=d["costScore"],
        optimization_level=d["optimizationLevel"],
    )


def model_to_dict(m: MultiFilterModel) -> Dict[str, Any]:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "columnId": m.column_id,
        "rootNode": node_to_dict(m.root_node),
        "version": m.version,
        "createdAt": m.created_at.isoformat(),
        "modifiedAt": m.modified_at.isoformat(),
        "metadata": {
            "name": m.metadata.name,
            "description": m.metadata.description,
            "tags": list(m.metadata.tags),
            "complexity": _complexity_to_dict(m.metadata.complexity),
            "performance": _performance_to_dict(m.metadata.performance),
        },
    }


def model_from_dict(d: Dict[str, Any]) -> MultiFilterModel:
    """
    Rebuild a model from its dict form.

    Raises:
        StateImportError: Newer schema, missing keys, bad values, a non-group
            root, a group holding more children than its operator allows,
            or duplicate node ids
    """
    if not isinstance(d, dict):
        raise StateImportError(f"Filter state must be a mapping, got {type(d).__name__}")

    schema = d.get("schemaVersion", SCHEMA_VERSION)
    if not isinstance(schema, int) or schema > SCHEMA_VERSION:
        raise StateImportError(
            f"Unsupported schemaVersion {schema!r} (this engine reads up to {SCHEMA_VERSION})"
        )

    try:
        root = node_from_dict(d["rootNode"])
        if not isinstance(root, GroupNode):
            raise StateImportError("Root node must be a group", node_id=root.id)
        for node in walk(root):
            if isinstance(node, GroupNode):
                check_arity(node)
        meta = d.get("metadata") or {}
        kwargs: Dict[str, Any] = {
            "column_id": d["columnId"],
            "root_node": root,
            "version": int(d.get("version", 1)),
            "metadata": ModelMetadata(
                name=meta.get("name"),
                description=meta.get("description"),
                tags=tuple(meta.get("tags", [])),
                complexity=_complexity_from_dict(meta.get("complexity")),
                performance=_performance_from_dict(meta.get("performance")),
            ),
        }
        if d.get("createdAt"):
            kwargs["created_at"] = _datetime_from(d["createdAt"])
        if d.get("modifiedAt"):
            kwargs["modified_at"] = _datetime_from(d["modifiedAt"])
        model = MultiFilterModel(**kwargs)
    except StateImportError:
        raise
    except MultiFilterError as e:
        raise StateImportError(f"Invalid filter state: {e.message}", node_id=e.node_id)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StateImportError(f"Invalid filter state: {e!r}")

    dupes = duplicate_ids(model.root_node)
    if dupes:
        raise StateImportError(f"Duplicate node ids: {', '.join(sorted(dupes))}")

    return model


def export_state(m: MultiFilterModel) -> Dict[str, Any]:
    """Plain serializable snapshot of a model."""
    return model_to_dict(m)


def import_state(d: Dict[str, Any]) -> MultiFilterModel:
    model = model_from_dict(d)
    logger.info("Imported filter for %s (version %d)", model.column_id, model.version)
    return model


def model_to_json(m: MultiFilterModel) -> str:
    return json.dumps(model_to_dict(m), sort_keys=True)


def model_from_json(s: str) -> MultiFilterModel:
    try:
        d = json.loads(s)
    except json.JSONDecodeError as e:
        raise StateImportError(f"Invalid JSON: {e}")
    return import_state(d)


def model_to_yaml(m: MultiFilterModel) -> str:
    return yaml.safe_dump(model_to_dict(m), sort_keys=False, allow_unicode=True)


def model_from_yaml(s: str) -> MultiFilterModel:
    try:
        d = yaml.safe_load(s)
    except yaml.YAMLError as e:
        raise StateImportError(f"Invalid YAML: {e}")
    return import_state(d)
