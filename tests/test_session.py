"""
Tests for FilterSession, the owning mutation layer.

These tests verify:
    - Each accepted edit saves history and bumps the version
    - A rejected edit saves nothing and leaves the model unchanged
    - Undo/redo restore exact snapshots
    - Complexity and performance are recomputed lazily
    - Custom logic editing returns validation results
    - Export/import and the external ports
"""

from datetime import datetime, timedelta, timezone

import pytest
from multifilter.config import config_from_dict
from multifilter.errors import (
    CannotRemoveRootError,
    InvalidArityError,
    InvalidPatchError,
    LogicErrorKind,
    StateImportError,
)
from multifilter.examples import build_example_orders_filter, build_example_rows, condition
from multifilter.model import GroupNode, NaturalNode, ParsedCondition, ParsedNaturalQuery
from multifilter.operators import LogicalOperator
from multifilter.ports import FilterSuggestion, NaturalLanguageInterpreter, SuggestionEngine
from multifilter.session import FilterSession, new_model
from multifilter.tree import collect_ids


class Counter:
    def __init__(self, prefix="n"):
        self.prefix = prefix
        self.count = 0

    def __call__(self):
        self.count += 1
        return f"{self.prefix}{self.count}"


class TickingClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class FakeInterpreter(NaturalLanguageInterpreter):
    def __init__(self, confidence=0.8):
        self.confidence = confidence

    def parse(self, text):
        return ParsedNaturalQuery(
            original_query=text,
            conditions=(ParsedCondition("amount", "greaterThan", 100),),
            confidence=self.confidence,
        )


class FailingInterpreter(NaturalLanguageInterpreter):
    def parse(self, text):
        raise ConnectionError("interpreter unavailable")


class FixedSuggestions(SuggestionEngine):
    def suggest(self, model):
        return [FilterSuggestion("simplify", f"Simplify {model.column_id}", 0.5)]


@pytest.fixture
def session():
    return FilterSession(model=build_example_orders_filter(), id_factory=Counter(), clock=TickingClock())


class TestEdits:
    """Structural edits through the session."""

    def test_new_session_has_empty_root(self):
        session = FilterSession(column_id="orders", id_factory=Counter("root-"))
        assert session.root == GroupNode(id="root-1")
        assert session.model.column_id == "orders"

    def test_add_node_bumps_version(self, session):
        version = session.model.version
        session.add_node(condition("new", "x", "equals", 1), "priority-group")
        assert session.model.version == version + 1
        assert session.find("new") is not None
        assert session.can_undo

    def test_modified_at_uses_clock(self, session):
        session.set_enabled("age", False)
        assert session.model.modified_at == datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc)

    def test_create_and_add(self, session):
        node = session.create_node("condition", column_id="tier", filter={"value": "gold"})
        assert node.id == "n1"
        assert session.find("n1") is None
        session.add_node(node)
        assert session.root.children[-1].id == "n1"

    def test_copy_lands_after_original(self, session):
        copy = session.copy_node("priority-group")
        ids = [c.id for c in session.root.children]
        assert ids[ids.index("priority-group") + 1] == copy.id
        assert copy.position.x == 20.0
        assert [c.id for c in copy.children] == ["n2", "n3"]

    def test_move(self, session):
        session.move_node("age", "custom-group", index=0)
        assert session.find("custom-group").children[0].id == "age"

    def test_set_negated(self, session):
        session.set_negated("priority-group", True)
        assert session.get("priority-group").negated
        assert session.to_sql().query.count("NOT (priority") == 1

    def test_clear(self, session):
        session.clear()
        assert session.root.children == ()
        assert session.root.id == "root"
        assert session.undo()
        assert len(session.root.children) == 5


class TestRejectedEdits:
    """A rejected edit leaves no trace."""

    def test_xor_with_three_children(self, session):
        before = session.model
        with pytest.raises(InvalidArityError):
            session.set_operator("custom-group", "XOR")
        assert session.model is before
        assert not session.can_undo

    def test_remove_root(self, session):
        with pytest.raises(CannotRemoveRootError):
            session.remove_node("root")
        assert not session.can_undo

    def test_bad_patch(self, session):
        with pytest.raises(InvalidPatchError):
            session.update_node("age", {"colour": "red"})
        assert session.model.version == 1


class TestHistory:
    def test_undo_after_insert_restores_snapshot(self, session):
        """Undo right after an insert restores the exact previous model."""
        before = session.model
        session.add_node(condition("new", "x", "equals", 1))
        assert session.undo()
        assert session.model is before
        assert collect_ids(session.root) == collect_ids(before.root_node)

    def test_redo(self, session):
        session.remove_node("priority-group")
        after = session.model
        session.undo()
        assert session.redo()
        assert session.model is after

    def test_nothing_to_undo(self, session):
        assert not session.undo()
        assert not session.redo()

    def test_history_size_from_config(self):
        session = FilterSession(config=config_from_dict({"history_size": 1}), id_factory=Counter())
        session.add_node(condition("a", "x", "equals", 1))
        session.add_node(condition("b", "x", "equals", 2))
        assert session.undo()
        assert not session.undo()


class TestAnalysis:
    def test_lazy_recompute(self, session):
        """Metrics are stale after an edit until they are read."""
        assert session.is_stale
        assert session.complexity().node_count == 11
        assert session.performance().cost_score == 17
        assert not session.is_stale

        session.add_node(condition("new", "x", "equals", 1))
        assert session.is_stale
        assert session.complexity().node_count == 12

    def test_stored_metrics_follow_the_tree(self, session):
        """model.metadata holds the live figures, or None until they are read."""
        session.import_state(session.export_state())
        assert session.model.metadata.complexity is None

        session.add_node(condition("new", "x", "equals", 1))
        assert session.model.metadata.complexity is None
        assert session.model.metadata.performance is None

        assert session.complexity().node_count == 12
        assert session.model.metadata.complexity == session.complexity()
        assert session.model.metadata.performance == session.performance()

    def test_validate(self, session):
        assert session.validate() == []


class TestCustomLogic:
    """set_custom_logic() stores the text and reports validity."""

    def test_valid_logic(self):
        session = FilterSession(id_factory=Counter())
        session.add_node(GroupNode(id="g", operator=LogicalOperator.CUSTOM, children=(
            condition("a", "x", "equals", 1), condition("b", "y", "equals", 2),
        )))
        result = session.set_custom_logic("g", "A AND (B OR B)")
        assert result.valid
        assert session.get("g").compiled_logic is not None

    def test_invalid_logic_is_stored(self):
        session = FilterSession(id_factory=Counter())
        session.add_node(GroupNode(id="g", operator=LogicalOperator.CUSTOM, children=(
            condition("a", "x", "equals", 1), condition("b", "y", "equals", 2),
        )))
        result = session.set_custom_logic("g", "A AND (B")
        assert result.error == LogicErrorKind.UNMATCHED_OPENING_PAREN
        assert session.get("g").custom_logic == "A AND (B"
        assert session.get("g").compiled_logic is None

    def test_not_a_group(self, session):
        with pytest.raises(InvalidPatchError):
            session.set_custom_logic("age", "A")


class TestOutputs:
    def test_queries(self, session):
        assert session.to_sql().query.startswith("age > ? AND status = ?")
        assert session.sql_preview(table="orders").query.startswith("SELECT * FROM orders WHERE")
        assert session.to_document_query().query["$and"][0] == {"age": {"$gt": "value"}}
        assert session.to_natural_language().query.startswith("age is greater than 18")

    def test_config_paramstyle(self):
        config = config_from_dict({"sql": {"paramstyle": "pyformat"}})
        session = FilterSession(model=build_example_orders_filter(), config=config)
        assert session.to_sql().query.startswith("age > %(p1)s")

    def test_disabled_condition_left_out_of_sentence(self, session):
        session.set_enabled("status", False)
        assert "status" not in session.to_natural_language().query

    def test_filter_rows(self, session):
        rows = build_example_rows()
        assert session.filter_rows(rows) == [rows[0], rows[4]]
        assert session.evaluate(rows[0])


class TestPersistence:
    def test_export_includes_metrics(self, session):
        state = session.export_state()
        assert state["metadata"]["complexity"]["nodeCount"] == 11
        assert state["metadata"]["performance"]["costScore"] == 17

    def test_import_is_undoable(self, session):
        other = new_model("customers", root_id="other-root")
        session.import_state(FilterSession(model=other).export_state())
        assert session.model.column_id == "customers"
        assert session.undo()
        assert session.model.column_id == "orders"

    def test_failed_import_changes_nothing(self, session):
        before = session.model
        with pytest.raises(StateImportError):
            session.import_state({"schemaVersion": 99})
        assert session.model is before
        assert not session.can_undo


class TestPorts:
    """External interpreter and suggestion ports."""

    def add_natural(self, session):
        session.add_node(NaturalNode(id="nl", query="orders over 100"))

    def test_default_interpreter_understands_nothing(self, session):
        self.add_natural(session)
        node = session.interpret_natural("nl")
        assert node.parsed.conditions == ()
        assert node.confidence == 0.0

    def test_interpreter_result_is_applied(self):
        session = FilterSession(model=build_example_orders_filter(), interpreter=FakeInterpreter())
        self.add_natural(session)
        node = session.interpret_natural("nl")
        assert node.confidence == 0.8
        assert "amount is greater than 100" in session.to_natural_language().query

    def test_confidence_is_clamped(self):
        session = FilterSession(model=build_example_orders_filter(), interpreter=FakeInterpreter(1.7))
        self.add_natural(session)
        assert session.interpret_natural("nl").confidence == 1.0

    def test_failing_interpreter(self):
        session = FilterSession(model=build_example_orders_filter(), interpreter=FailingInterpreter())
        self.add_natural(session)
        version = session.model.version
        with pytest.raises(ConnectionError):
            session.interpret_natural("nl")
        assert session.model.version == version
        assert session.get("nl").parsed is None

    def test_wrong_node_type(self, session):
        with pytest.raises(InvalidPatchError):
            session.interpret_natural("age")

    def test_suggestions(self):
        session = FilterSession(model=build_example_orders_filter(), suggestion_engine=FixedSuggestions())
        assert session.suggestions()[0].description == "Simplify orders"
        assert FilterSession().suggestions() == []
