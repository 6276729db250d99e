"""
Tests for tree operations.

These tests verify:
    - find / flatten (pre-order)
    - insert / remove / update / move / copy
    - Arity invariant on every mutation
    - Rejected operations leave the tree unchanged
    - flatten -> rebuild round trip, cycle and multi-root rejection
    - validate_tree reports
"""

import pytest
from multifilter.custom_logic import parse_custom_logic
from multifilter.errors import (
    CannotRemoveRootError,
    DuplicateNodeIdError,
    InvalidArityError,
    InvalidPatchError,
    MalformedHierarchyError,
    NodeNotFoundError,
)
from multifilter.examples import build_example_orders_filter, condition
from multifilter.formula import compile_formula
from multifilter.model import (
    ConditionNode,
    FilterType,
    FormulaNode,
    GroupNode,
    NaturalNode,
    Position,
)
from multifilter.operators import LogicalOperator
from multifilter.tree import (
    FlatNode,
    collect_ids,
    copy_subtree,
    create_node,
    find,
    find_parent,
    find_path,
    flatten,
    flatten_with_parents,
    insert,
    move,
    outline,
    rebuild_from_flat,
    remove,
    update,
    validate_tree,
)


@pytest.fixture
def root():
    return build_example_orders_filter().root_node


def xor_group(n_children=2, group_id="xor"):
    return GroupNode(
        id=group_id,
        operator=LogicalOperator.XOR,
        children=tuple(condition(f"{group_id}-{i}", "col", "equals", i) for i in range(n_children)),
    )


def counter_ids():
    state = {"n": 0}

    def next_id():
        state["n"] += 1
        return f"new-{state['n']}"

    return next_id


class TestQueries:
    """Test find() and flatten()."""

    def test_find(self, root):
        assert find(root, "vip").column_id == "vip"
        assert find(root, "missing") is None

    def test_flatten_is_preorder(self, root):
        """Root first, then each child followed by its subtree."""
        ids = [n.id for n in flatten(root)]
        assert ids == [
            "root", "age", "status",
            "priority-group", "priority", "region",
            "custom-group", "amount", "vip", "notes",
            "score-formula",
        ]

    def test_find_parent(self, root):
        assert find_parent(root, "vip").id == "custom-group"
        assert find_parent(root, "root") is None

    def test_find_path(self, root):
        assert [n.id for n in find_path(root, "vip")] == ["root", "custom-group", "vip"]
        assert find_path(root, "missing") is None


class TestInsert:
    """Test insert()."""

    def test_append(self, root):
        new_root = insert(root, "priority-group", condition("new", "x", "equals", 1))
        assert [c.id for c in find(new_root, "priority-group").children] == ["priority", "region", "new"]

    def test_insert_at_index(self, root):
        new_root = insert(root, "root", condition("first", "x", "equals", 1), index=0)
        assert new_root.children[0].id == "first"

    def test_original_tree_unchanged(self, root):
        """Insert returns a new tree; the input is untouched."""
        before = flatten(root)
        insert(root, "root", condition("new", "x", "equals", 1))
        assert flatten(root) == before

    def test_untouched_subtrees_are_shared(self, root):
        """Only the path to the changed node is copied."""
        new_root = insert(root, "priority-group", condition("new", "x", "equals", 1))
        assert find(new_root, "custom-group") is find(root, "custom-group")
        assert find(new_root, "priority-group") is not find(root, "priority-group")

    def test_parent_not_found(self, root):
        with pytest.raises(NodeNotFoundError):
            insert(root, "missing", condition("new", "x", "equals", 1))

    def test_parent_not_a_group(self, root):
        with pytest.raises(NodeNotFoundError):
            insert(root, "age", condition("new", "x", "equals", 1))

    def test_duplicate_id(self, root):
        with pytest.raises(DuplicateNodeIdError):
            insert(root, "root", condition("age", "age", "equals", 1))

    def test_fixed_arity_maximum(self):
        """A third child cannot be inserted into an XOR group."""
        tree = GroupNode(id="root", children=(xor_group(),))
        with pytest.raises(InvalidArityError):
            insert(tree, "xor", condition("third", "x", "equals", 3))

    def test_positional_group_fills_one_child_at_a_time(self):
        """Under-filled fixed-arity groups are allowed while building."""
        tree = GroupNode(id="root", children=(GroupNode(id="if", operator=LogicalOperator.IF_THEN),))
        tree = insert(tree, "if", condition("a", "x", "equals", 1))
        tree = insert(tree, "if", condition("b", "x", "equals", 2))
        assert len(find(tree, "if").children) == 2


class TestRemove:
    """Test remove()."""

    def test_remove_subtree(self, root):
        new_root, removed = remove(root, "priority-group")
        assert removed.id == "priority-group"
        assert find(new_root, "priority") is None
        assert find(new_root, "region") is None

    def test_cannot_remove_root(self, root):
        with pytest.raises(CannotRemoveRootError):
            remove(root, "root")

    def test_not_found(self, root):
        with pytest.raises(NodeNotFoundError):
            remove(root, "missing")

    def test_remove_drops_parent_logic_cache(self):
        """Letters shift when a child is removed, so the cached parse goes."""
        group = GroupNode(
            id="g", operator=LogicalOperator.CUSTOM, custom_logic="A OR B",
            children=(condition("a", "x", "equals", 1), condition("b", "x", "equals", 2)),
            compiled_logic=parse_custom_logic("A OR B"),
        )
        tree = GroupNode(id="root", children=(group,))
        new_root, _ = remove(tree, "a")
        assert find(new_root, "g").compiled_logic is None


class TestUpdate:
    """Test update() patches."""

    def test_patch_condition(self, root):
        new_root, node = update(root, "age", {"enabled": False})
        assert not node.enabled
        assert not find(new_root, "age").enabled
        assert find(root, "age").enabled

    def test_patch_filter_with_mapping(self, root):
        """A filter patch merges into the existing filter."""
        _, node = update(root, "age", {"filter": {"value": 21}})
        assert node.filter.value == 21
        assert node.filter.operator == "greaterThan"
        assert node.filter.filter_type == FilterType.NUMBER

    def test_operator_string_is_parsed(self, root):
        _, node = update(root, "priority-group", {"operator": "and"})
        assert node.operator == LogicalOperator.AND

    def test_xor_with_three_children_rejected(self):
        """Setting XOR on a three-child group fails and leaves the tree unchanged."""
        group = GroupNode(
            id="g", operator=LogicalOperator.OR,
            children=tuple(condition(f"c{i}", "x", "equals", i) for i in range(3)),
        )
        tree = GroupNode(id="root", children=(group,))
        with pytest.raises(InvalidArityError):
            update(tree, "g", {"operator": LogicalOperator.XOR})
        assert find(tree, "g").operator == LogicalOperator.OR
        assert len(find(tree, "g").children) == 3

    def test_switch_to_custom_before_logic_is_typed(self, root):
        """CUSTOM without text is accepted; validate_tree flags it until the text arrives."""
        new_root, node = update(root, "priority-group", {"operator": "CUSTOM"})
        assert node.operator == LogicalOperator.CUSTOM
        assert node.custom_logic is None
        assert [(i.node_id, i.code) for i in validate_tree(new_root)] == [("priority-group", "EmptyExpression")]

        fixed_root, _ = update(new_root, "priority-group", {"custom_logic": "A OR B"})
        assert validate_tree(fixed_root) == []

    def test_children_patch_on_xor_must_be_exact(self):
        """Replacing an XOR group's children with one child is rejected."""
        tree = GroupNode(id="root", children=(xor_group(),))
        with pytest.raises(InvalidArityError):
            update(tree, "xor", {"children": [condition("only", "x", "equals", 1)]})

    def test_unknown_field(self, root):
        with pytest.raises(InvalidPatchError):
            update(root, "age", {"colour": "red"})

    def test_id_cannot_be_patched(self, root):
        with pytest.raises(InvalidPatchError):
            update(root, "age", {"id": "other"})

    def test_invalid_value(self, root):
        with pytest.raises(InvalidPatchError):
            update(root, "age", {"weight": -1})
        with pytest.raises(InvalidPatchError):
            update(root, "priority-group", {"operator": "SOMETIMES"})

    def test_not_found(self, root):
        with pytest.raises(NodeNotFoundError):
            update(root, "missing", {"enabled": False})

    def test_formula_change_drops_compiled_cache(self):
        node = FormulaNode(id="f", formula="a = 1", compiled=compile_formula("a = 1"))
        tree = GroupNode(id="root", children=(node,))
        _, updated = update(tree, "f", {"formula": "a = 2"})
        assert updated.compiled is None

    def test_query_change_drops_parsed_result(self):
        from multifilter.model import ParsedNaturalQuery

        node = NaturalNode(id="n", query="old", parsed=ParsedNaturalQuery(original_query="old"))
        tree = GroupNode(id="root", children=(node,))
        _, updated = update(tree, "n", {"query": "new"})
        assert updated.parsed is None


class TestMoveAndCopy:
    """Test move() and copy_subtree()."""

    def test_move_between_groups(self, root):
        new_root = move(root, "age", "priority-group", index=0)
        assert find_parent(new_root, "age").id == "priority-group"
        assert find(new_root, "priority-group").children[0].id == "age"

    def test_reorder_within_group(self, root):
        new_root = move(root, "score-formula", "root", index=0)
        assert new_root.children[0].id == "score-formula"
        assert len(new_root.children) == len(root.children)

    def test_move_into_own_subtree(self, root):
        with pytest.raises(MalformedHierarchyError):
            move(root, "custom-group", "custom-group")

    def test_copy_has_fresh_ids(self, root):
        """Copies share structure but no ids."""
        copy = copy_subtree(find(root, "custom-group"), counter_ids(), position=Position(20, 20))
        assert copy.id == "new-1"
        assert [c.id for c in copy.children] == ["new-2", "new-3", "new-4"]
        assert copy.custom_logic == "A AND (B OR NOT C)"
        assert copy.position == Position(20, 20)
        assert not set(collect_ids(copy)) & set(collect_ids(root))


class TestCreateNode:
    """Test create_node() creation requests."""

    def test_condition_request(self):
        node = create_node("condition", counter_ids(), column_id="age",
                           filter={"filter_type": "number", "operator": "lessThan", "value": 65})
        assert isinstance(node, ConditionNode)
        assert node.id == "new-1"
        assert node.filter.filter_type == FilterType.NUMBER

    def test_group_request(self):
        node = create_node("group", counter_ids(), operator="or")
        assert node.operator == LogicalOperator.OR

    def test_condition_needs_column(self):
        with pytest.raises(InvalidPatchError):
            create_node("condition", counter_ids())

    def test_unknown_type(self):
        with pytest.raises(InvalidPatchError):
            create_node("widget", counter_ids())


class TestFlatForm:
    """Test flatten_with_parents() and rebuild_from_flat()."""

    def test_round_trip(self, root):
        """rebuild_from_flat(flatten_with_parents(tree)) == tree."""
        assert rebuild_from_flat(flatten_with_parents(root)) == root

    def test_rebuild_ignores_stale_children(self):
        """Only parent pointers decide structure."""
        entries = [
            FlatNode(GroupNode(id="root", children=(condition("stale", "x", "equals", 0),)), None),
            FlatNode(condition("b", "x", "equals", 2), "root", index=1),
            FlatNode(condition("a", "x", "equals", 1), "root", index=0),
        ]
        rebuilt = rebuild_from_flat(entries)
        assert [c.id for c in rebuilt.children] == ["a", "b"]

    def test_multiple_roots(self):
        entries = [FlatNode(GroupNode(id="r1"), None), FlatNode(GroupNode(id="r2"), None)]
        with pytest.raises(MalformedHierarchyError):
            rebuild_from_flat(entries)

    def test_no_root(self):
        with pytest.raises(MalformedHierarchyError):
            rebuild_from_flat([FlatNode(GroupNode(id="a"), "b"), FlatNode(GroupNode(id="b"), "a")])

    def test_cycle(self):
        """A cycle detached from the root is rejected."""
        entries = [
            FlatNode(GroupNode(id="root"), None),
            FlatNode(GroupNode(id="a"), "b"),
            FlatNode(GroupNode(id="b"), "a"),
        ]
        with pytest.raises(MalformedHierarchyError):
            rebuild_from_flat(entries)

    def test_missing_parent(self):
        entries = [FlatNode(GroupNode(id="root"), None), FlatNode(condition("a", "x", "equals", 1), "ghost")]
        with pytest.raises(MalformedHierarchyError):
            rebuild_from_flat(entries)

    def test_parent_must_be_group(self):
        entries = [
            FlatNode(GroupNode(id="root"), None),
            FlatNode(condition("a", "x", "equals", 1), "root"),
            FlatNode(condition("b", "x", "equals", 1), "a"),
        ]
        with pytest.raises(MalformedHierarchyError):
            rebuild_from_flat(entries)

    def test_duplicate_ids(self):
        entries = [FlatNode(GroupNode(id="root"), None), FlatNode(GroupNode(id="root"), "root")]
        with pytest.raises(DuplicateNodeIdError):
            rebuild_from_flat(entries)

    def test_rebuilt_arity_checked(self):
        entries = [FlatNode(GroupNode(id="root", operator=LogicalOperator.NAND), None)] + [
            FlatNode(condition(f"c{i}", "x", "equals", i), "root") for i in range(3)
        ]
        with pytest.raises(InvalidArityError):
            rebuild_from_flat(entries)


class TestValidateTree:
    """Test validate_tree() reports."""

    def test_valid_example(self, root):
        assert validate_tree(root) == []

    def test_incomplete_positional_group(self):
        tree = GroupNode(id="root", children=(
            GroupNode(id="ite", operator=LogicalOperator.IF_THEN_ELSE,
                      children=(condition("a", "x", "equals", 1),)),
        ))
        issues = validate_tree(tree)
        assert [(i.node_id, i.code) for i in issues] == [("ite", "INVALID_ARITY")]

    def test_single_child_or_is_advisory(self):
        tree = GroupNode(id="root", children=(
            condition("a", "x", "equals", 1),
            GroupNode(id="or", operator=LogicalOperator.OR, children=(condition("b", "x", "equals", 1),)),
        ))
        assert [i.code for i in validate_tree(tree)] == ["FEW_CHILDREN"]

    def test_invalid_custom_logic(self):
        tree = GroupNode(id="root", operator=LogicalOperator.CUSTOM, custom_logic="A AND C",
                         children=(condition("a", "x", "equals", 1), condition("b", "x", "equals", 1)))
        assert [i.code for i in validate_tree(tree)] == ["UndefinedReference"]

    def test_empty_custom_logic(self):
        tree = GroupNode(id="root", operator=LogicalOperator.CUSTOM)
        assert [i.code for i in validate_tree(tree)] == ["EmptyExpression"]

    def test_broken_formula(self):
        tree = GroupNode(id="root", children=(FormulaNode(id="f", formula="a >"),))
        assert [i.code for i in validate_tree(tree)] == ["COMPILATION_ERROR"]

    def test_duplicate_ids(self):
        tree = GroupNode(id="root", children=(condition("a", "x", "equals", 1), condition("a", "y", "equals", 2)))
        assert "DUPLICATE_ID" in [i.code for i in validate_tree(tree)]

    def test_replace_keeps_tree_valid(self, root):
        """Example patches keep the example tree valid."""
        new_root, _ = update(root, "custom-group", {"custom_logic": "A OR B"})
        assert validate_tree(new_root) == []


class TestOutline:
    def test_outline(self):
        """One indented line per node, groups labelled with their glyph."""
        tree = GroupNode(id="root", children=(
            condition("age", "age", "greaterThan", 18),
            GroupNode(id="or", operator=LogicalOperator.OR, negated=True, children=(
                condition("a", "status", "equals", "active", enabled=False),
                FormulaNode(id="f", formula="score > 5"),
            )),
        ))
        assert outline(tree) == (
            "∧ AND\n"
            "  age greaterThan 18\n"
            "  NOT ∨ OR\n"
            "    status equals 'active' (disabled)\n"
            "    = score > 5"
        )
