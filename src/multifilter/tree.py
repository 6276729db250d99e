"""
Tree Operations: structural queries and mutations over the node tree.

All mutations are pure: they take a root GroupNode and return a new root,
copying only the path from the root to the changed node. Untouched
subtrees are shared with the previous tree, which is what makes history
snapshots cheap.

A rejected operation raises a TreeError subclass before anything is built,
so the caller's tree is never partially mutated.
"""

from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

from multifilter.custom_logic import validate_custom_logic
from multifilter.errors import (
    CannotRemoveRootError,
    DuplicateNodeIdError,
    FormulaError,
    InvalidArityError,
    InvalidPatchError,
    MalformedHierarchyError,
    NodeNotFoundError,
)
from multifilter.formula import compile_formula
from multifilter.model import (
    ConditionNode,
    FilterNode,
    FilterType,
    FormulaNode,
    GroupNode,
    NaturalNode,
    NodeType,
    Position,
)
from multifilter.operators import (
    FIXED_ARITY,
    OPERATOR_SYMBOLS,
    LogicalOperator,
    arity_bounds,
    describe_arity,
    parse_operator,
)


def new_node_id() -> str:
    return "node-" + uuid.uuid4().hex[:9]


_NODE_CLASS_BY_TYPE = {
    NodeType.GROUP: GroupNode,
    NodeType.CONDITION: ConditionNode,
    NodeType.FORMULA: FormulaNode,
    NodeType.NATURAL: NaturalNode,
}


def create_node(node_type: Union[NodeType, str], id_factory: Callable[[], str] = new_node_id,
                **fields: Any) -> FilterNode:
    """
    Build a node from a creation request (type + initial field values).

    Field values are coerced the same way as update patches. A condition
    needs `column_id`.

    Raises:
        InvalidPatchError: unknown type, unknown field, or invalid value
    """
    try:
        cls = _NODE_CLASS_BY_TYPE[NodeType(node_type)]
    except ValueError:
        raise InvalidPatchError(f"Unknown node type: {node_type!r}")

    node_id = fields.pop("id", None) or id_factory()
    if cls is ConditionNode:
        if not fields.get("column_id"):
            raise InvalidPatchError("A condition needs a column_id", node_id=node_id)
        template = ConditionNode(id=node_id, column_id=fields["column_id"])
    else:
        template = cls(id=node_id)
    values = _coerce_patch(template, fields)
    try:
        return dataclasses.replace(template, **values)
    except (TypeError, ValueError) as e:
        raise InvalidPatchError(str(e), node_id=node_id)


# =========================================================================
# TRAVERSAL
# =========================================================================


def iter_children(node: FilterNode) -> Tuple[FilterNode, ...]:
    if isinstance(node, GroupNode):
        return node.children
    if isinstance(node, (ConditionNode, FormulaNode, NaturalNode)):
        return ()
    raise TypeError(f"Unsupported node type: {type(node)}")


def walk(node: FilterNode) -> Iterator[FilterNode]:
    """Pre-order traversal."""
    yield node
    for child in iter_children(node):
        yield from walk(child)


def flatten(root: FilterNode) -> List[FilterNode]:
    """All nodes in pre-order (root first, children in document order)."""
    return list(walk(root))


def find(root: FilterNode, node_id: str) -> Optional[FilterNode]:
    for node in walk(root):
        if node.id == node_id:
            return node
    return None


def find_parent(root: GroupNode, node_id: str) -> Optional[GroupNode]:
    """The group directly containing `node_id`, or None for the root/unknown id."""
    for node in walk(root):
        if isinstance(node, GroupNode) and any(c.id == node_id for c in node.children):
            return node
    return None


def find_path(root: FilterNode, node_id: str) -> Optional[List[FilterNode]]:
    """Nodes from the root down to `node_id` inclusive."""
    if root.id == node_id:
        return [root]
    for child in iter_children(root):
        path = find_path(child, node_id)
        if path is not None:
            return [root] + path
    return None


def collect_ids(root: FilterNode) -> List[str]:
    return [node.id for node in walk(root)]


def duplicate_ids(root: FilterNode) -> Set[str]:
    seen: Set[str] = set()
    dupes: Set[str] = set()
    for node_id in collect_ids(root):
        if node_id in seen:
            dupes.add(node_id)
        seen.add(node_id)
    return dupes


def ensure_unique_ids(root: FilterNode) -> None:
    dupes = duplicate_ids(root)
    if dupes:
        raise DuplicateNodeIdError(sorted(dupes)[0])


# =========================================================================
# ARITY
# =========================================================================


def check_arity(group: GroupNode, exact: bool = False) -> None:
    """
    Enforce the operator's child count.

    Args:
        group: Group to check
        exact: Also reject fixed-arity groups holding fewer children than
            their arity. Insert and remove only enforce the maximum, so a
            positional group can be filled one child at a time.

    Raises:
        InvalidArityError
    """
    count = len(group.children)
    _, high = arity_bounds(group.operator)
    if high is not None and count > high:
        raise InvalidArityError(group.id, group.operator.value, describe_arity(group.operator), count)
    if exact and group.operator in FIXED_ARITY and count != FIXED_ARITY[group.operator]:
        raise InvalidArityError(group.id, group.operator.value, describe_arity(group.operator), count)


# =========================================================================
# MUTATIONS
# =========================================================================


def _replace_in_tree(node: FilterNode, target_id: str, new_node: FilterNode) -> FilterNode:
    """Copy the path to `target_id`; siblings off the path are shared."""
    if node.id == target_id:
        return new_node
    if not isinstance(node, GroupNode):
        return node
    children = node.children
    for i, child in enumerate(children):
        if child.id == target_id or (isinstance(child, GroupNode) and find(child, target_id) is not None):
            updated = _replace_in_tree(child, target_id, new_node)
            # Same positions, so a cached custom logic parse stays valid.
            return dataclasses.replace(node, children=children[:i] + (updated,) + children[i + 1:])
    return node


def _with_children(group: GroupNode, children: Tuple[FilterNode, ...]) -> GroupNode:
    # Letters in custom logic bind to positions, so a cached parse is only
    # valid for the child list it was validated against.
    return dataclasses.replace(group, children=children, compiled_logic=None)


def _require_group(root: GroupNode, group_id: str) -> GroupNode:
    node = find(root, group_id)
    if node is None:
        raise NodeNotFoundError(group_id)
    if not isinstance(node, GroupNode):
        raise NodeNotFoundError(group_id, f"Node {group_id} is not a group")
    return node


def insert(root: GroupNode, parent_id: str, node: FilterNode, index: Optional[int] = None) -> GroupNode:
    """
    Insert `node` (with its subtree) under the group `parent_id`.

    Args:
        index: Position among the parent's children; None appends.
            Follows list.insert semantics for out-of-range values.

    Raises:
        NodeNotFoundError: parent missing or not a group
        DuplicateNodeIdError: an id in `node`'s subtree already exists
        InvalidArityError: parent would exceed its operator's arity
    """
    parent = _require_group(root, parent_id)

    existing = set(collect_ids(root))
    ensure_unique_ids(node)
    for node_id in collect_ids(node):
        if node_id in existing:
            raise DuplicateNodeIdError(node_id)
    for group in walk(node):
        if isinstance(group, GroupNode):
            check_arity(group)

    children = list(parent.children)
    if index is None:
        children.append(node)
    else:
        children.insert(index, node)
    new_parent = _with_children(parent, tuple(children))
    check_arity(new_parent)

    return _replace_in_tree(root, parent_id, new_parent)


def remove(root: GroupNode, node_id: str) -> Tuple[GroupNode, FilterNode]:
    """
    Remove a node and its entire subtree.

    Returns:
        (new root, removed subtree)

    Raises:
        CannotRemoveRootError, NodeNotFoundError
    """
    if node_id == root.id:
        raise CannotRemoveRootError(node_id)
    parent = find_parent(root, node_id)
    if parent is None:
        raise NodeNotFoundError(node_id)

    removed = next(c for c in parent.children if c.id == node_id)
    new_parent = _with_children(parent, tuple(c for c in parent.children if c.id != node_id))
    return _replace_in_tree(root, parent.id, new_parent), removed


_IMMUTABLE_FIELDS = {"id"}


def _coerce_value(node: FilterNode, key: str, value: Any) -> Any:
    if key == "operator" and isinstance(node, GroupNode):
        return parse_operator(value)
    if key in ("children", "suggestions"):
        return tuple(value)
    if key == "position" and isinstance(value, Mapping):
        return Position(**value)
    if key == "metadata" and isinstance(value, Mapping):
        return dataclasses.replace(node.metadata, **value)
    if key == "filter" and isinstance(value, Mapping):
        value = dict(value)
        if "filter_type" in value:
            value["filter_type"] = FilterType(value["filter_type"])
        return dataclasses.replace(node.filter, **value)
    return value


def _coerce_patch(node: FilterNode, patch: Mapping[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in dataclasses.fields(node)}
    values: Dict[str, Any] = {}
    for key, value in patch.items():
        if key in _IMMUTABLE_FIELDS:
            raise InvalidPatchError(f"Field '{key}' cannot be patched", node_id=node.id)
        if key not in names:
            raise InvalidPatchError(
                f"{type(node).__name__} has no field '{key}'", node_id=node.id
            )
        try:
            values[key] = _coerce_value(node, key, value)
        except (TypeError, ValueError) as e:
            raise InvalidPatchError(f"Invalid value for '{key}': {e}", node_id=node.id)
    return values


def update(root: GroupNode, node_id: str, patch: Mapping[str, Any]) -> Tuple[GroupNode, FilterNode]:
    """
    Apply a partial field patch to one node.

    Derived caches follow their source fields: changing `formula` drops the
    compiled formula, changing `custom_logic` or `children` drops the
    compiled custom logic, and changing `query` drops the parsed result.

    A patch touching a group's `operator` or `children` must leave a
    fixed-arity group with exactly its arity.

    A patch may set CUSTOM without `custom_logic`. Until the text is set,
    validate_tree reports the group as EmptyExpression, and evaluation and
    generation combine its children with AND.

    Returns:
        (new root, updated node)

    Raises:
        NodeNotFoundError, InvalidPatchError, InvalidArityError,
        DuplicateNodeIdError
    """
    node = find(root, node_id)
    if node is None:
        raise NodeNotFoundError(node_id)

    values = _coerce_patch(node, patch)

    if isinstance(node, FormulaNode) and "formula" in values and "compiled" not in values:
        if values["formula"] != node.formula:
            values["compiled"] = None
    if isinstance(node, GroupNode) and "compiled_logic" not in values:
        if ("custom_logic" in values and values["custom_logic"] != node.custom_logic) or "children" in values:
            values["compiled_logic"] = None
    if isinstance(node, NaturalNode) and "query" in values and "parsed" not in values:
        if values["query"] != node.query:
            values["parsed"] = None

    try:
        updated = dataclasses.replace(node, **values)
    except (TypeError, ValueError) as e:
        raise InvalidPatchError(str(e), node_id=node_id)

    if isinstance(updated, GroupNode):
        check_arity(updated, exact="operator" in values or "children" in values)
        if "children" in values:
            other_ids = set(collect_ids(root)) - set(collect_ids(node))
            ensure_unique_ids(updated)
            for child_id in collect_ids(updated):
                if child_id in other_ids:
                    raise DuplicateNodeIdError(child_id)

    return _replace_in_tree(root, node_id, updated), updated


def move(root: GroupNode, node_id: str, new_parent_id: str, index: Optional[int] = None) -> GroupNode:
    """
    Re-parent or reorder a node: the tree form of a drag-and-drop.

    `index` refers to the target parent's children after the node has been
    taken out.

    Raises:
        CannotRemoveRootError, NodeNotFoundError, MalformedHierarchyError,
        InvalidArityError
    """
    node = find(root, node_id)
    if node is None:
        raise NodeNotFoundError(node_id)
    if find(node, new_parent_id) is not None:
        raise MalformedHierarchyError(
            f"Cannot move {node_id} into its own subtree ({new_parent_id})", node_id=node_id
        )
    without, removed = remove(root, node_id)
    return insert(without, new_parent_id, removed, index)


def copy_subtree(node: FilterNode, id_factory: Callable[[], str] = new_node_id,
                 position: Optional[Position] = None) -> FilterNode:
    """Deep copy with fresh ids for the node and all its descendants."""
    changes: Dict[str, Any] = {"id": id_factory()}
    if position is not None:
        changes["position"] = position
    if isinstance(node, GroupNode):
        changes["children"] = tuple(copy_subtree(c, id_factory) for c in node.children)
        # Copied children keep their order, so the cached parse stays valid.
        changes["compiled_logic"] = node.compiled_logic
    return dataclasses.replace(node, **changes)


# =========================================================================
# FLAT FORM
# =========================================================================


@dataclass(frozen=True)
class FlatNode:
    """
    One node of the flat representation produced by layout editors.

    `node` may be a GroupNode whose `children` are stale or empty; only
    parent pointers and `index` decide the rebuilt structure.
    """

    node: FilterNode
    parent_id: Optional[str]
    index: Optional[int] = None


def flatten_with_parents(root: GroupNode) -> List[FlatNode]:
    """Pre-order flat form with parent pointers and sibling indexes."""
    result: List[FlatNode] = []

    def visit(node: FilterNode, parent_id: Optional[str], index: Optional[int]) -> None:
        result.append(FlatNode(node=node, parent_id=parent_id, index=index))
        for i, child in enumerate(iter_children(node)):
            visit(child, node.id, i)

    visit(root, None, None)
    return result


def rebuild_from_flat(entries: Sequence[FlatNode]) -> GroupNode:
    """
    Reassemble the canonical tree from a flat list with parent pointers.

    Siblings are ordered by `index` when given, otherwise by their order
    in `entries`.

    Raises:
        MalformedHierarchyError: no root or several roots, a non-group root,
            a parent that is missing or not a group, or a cycle
        DuplicateNodeIdError: two entries share an id
        InvalidArityError: a rebuilt group exceeds its operator's arity
    """
    by_id: Dict[str, FlatNode] = {}
    for entry in entries:
        if entry.node.id in by_id:
            raise DuplicateNodeIdError(entry.node.id)
        by_id[entry.node.id] = entry

    roots = [e for e in entries if e.parent_id is None]
    if len(roots) != 1:
        raise MalformedHierarchyError(f"Expected exactly one root, found {len(roots)}")
    root_entry = roots[0]
    if not isinstance(root_entry.node, GroupNode):
        raise MalformedHierarchyError("Root entry must be a group", node_id=root_entry.node.id)

    children_of: Dict[str, List[Tuple[int, int, FlatNode]]] = {}
    for order, entry in enumerate(entries):
        if entry.parent_id is None:
            continue
        parent = by_id.get(entry.parent_id)
        if parent is None:
            raise MalformedHierarchyError(
                f"Parent {entry.parent_id} of {entry.node.id} does not exist", node_id=entry.node.id
            )
        if not isinstance(parent.node, GroupNode):
            raise MalformedHierarchyError(
                f"Parent {entry.parent_id} of {entry.node.id} is not a group", node_id=entry.node.id
            )
        sort_key = entry.index if entry.index is not None else order
        children_of.setdefault(entry.parent_id, []).append((sort_key, order, entry))

    visited: Set[str] = set()

    def build(entry: FlatNode) -> FilterNode:
        visited.add(entry.node.id)
        if not isinstance(entry.node, GroupNode):
            return entry.node
        kids = sorted(children_of.get(entry.node.id, []), key=lambda item: (item[0], item[1]))
        group = _with_children(entry.node, tuple(build(k[2]) for k in kids))
        check_arity(group)
        return group

    root = build(root_entry)

    unreachable = [node_id for node_id in by_id if node_id not in visited]
    if unreachable:
        raise MalformedHierarchyError(
            f"Cycle or detached nodes in hierarchy: {', '.join(sorted(unreachable))}",
            node_id=sorted(unreachable)[0],
        )
    return root


# =========================================================================
# VALIDATION REPORT
# =========================================================================


@dataclass(frozen=True)
class TreeIssue:
    node_id: str
    code: str
    message: str


def validate_tree(root: GroupNode) -> List[TreeIssue]:
    """
    Report every invariant violation without raising.

    Used before applying or exporting a filter. Incomplete positional
    groups and single-child AND/OR groups are reported here because the
    editor allows them transiently.
    """
    issues: List[TreeIssue] = []

    for node_id in sorted(duplicate_ids(root)):
        issues.append(TreeIssue(node_id, "DUPLICATE_ID", f"Duplicate node id: {node_id}"))

    for node in walk(root):
        if isinstance(node, GroupNode):
            count = len(node.children)
            low, high = arity_bounds(node.operator)
            if node.operator in FIXED_ARITY and count != high:
                issues.append(TreeIssue(
                    node.id, "INVALID_ARITY",
                    f"{node.operator.value} requires {describe_arity(node.operator)} children, has {count}",
                ))
            elif node is not root and low and count < low:
                issues.append(TreeIssue(
                    node.id, "FEW_CHILDREN",
                    f"{node.operator.value} group has {count} child(ren); {low}+ expected",
                ))
            if node.operator == LogicalOperator.CUSTOM:
                result = validate_custom_logic(node.custom_logic or "", count)
                if not result.valid:
                    issues.append(TreeIssue(node.id, result.error.value, result.message))
        elif isinstance(node, FormulaNode) and node.formula.strip():
            try:
                compile_formula(node.formula)
            except FormulaError as e:
                issues.append(TreeIssue(node.id, e.code, e.message))

    return issues


# =========================================================================
# OUTLINE
# =========================================================================


def _outline_label(node: FilterNode) -> str:
    if isinstance(node, GroupNode):
        label = f"{OPERATOR_SYMBOLS[node.operator]} {node.operator.value}"
        if node.operator == LogicalOperator.CUSTOM:
            label += f" [{node.custom_logic or ''}]"
        return f"NOT {label}" if node.negated else label
    if isinstance(node, ConditionNode):
        f = node.filter
        label = f"{node.column_id} {f.operator} {f.value!r}"
        if f.value_to is not None:
            label += f"..{f.value_to!r}"
        return label if node.enabled else f"{label} (disabled)"
    if isinstance(node, FormulaNode):
        return f"= {node.formula}"
    if isinstance(node, NaturalNode):
        return f'"{node.query}"' if node.parsed is not None else f'"{node.query}" (not interpreted)'
    raise TypeError(f"Unsupported node type: {type(node)}")


def outline(root: FilterNode, indent: str = "  ") -> str:
    """
    Indented one-line-per-node rendering, for logs and terminals.

        ∧ AND
          age greaterThan 18
          ∨ OR
            priority equals 'high'
    """
    lines: List[str] = []

    def visit(node: FilterNode, depth: int) -> None:
        lines.append(f"{indent * depth}{_outline_label(node)}")
        for child in iter_children(node):
            visit(child, depth + 1)

    visit(root, 0)
    return "\n".join(lines)
