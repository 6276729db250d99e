"""
FilterSession: the owning mutation layer.

A session holds one MultiFilterModel and is the only place it changes.
Every edit goes through the same steps:

    1. compute the new root with a pure tree operation (may raise)
    2. save the current model to history
    3. swap in model.with_root(new_root): version bumped, modifiedAt refreshed
    4. mark complexity/performance stale

A rejected edit raises at step 1, so nothing is saved and the model is
unchanged. Complexity and performance are recomputed lazily on the next
read and written back into model.metadata; until then both stored fields
are None.

The session is single-threaded. External services (natural-language
interpretation, suggestions) are called synchronously through ports; a
failing port raises to the caller and leaves the model untouched.
"""

import dataclasses
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from multifilter import tree
from multifilter.backends import (
    GeneratedQuery,
    generate_document_query,
    generate_natural_language,
    generate_sql,
    sql_preview,
)
from multifilter.complexity import analyze_complexity, estimate_performance
from multifilter.config import EngineConfig
from multifilter.custom_logic import ValidationResult, validate_custom_logic
from multifilter.errors import InvalidPatchError, NodeNotFoundError
from multifilter.evaluator import Row, evaluate, filter_rows
from multifilter.history import HistoryManager
from multifilter.model import (
    FilterComplexity,
    FilterNode,
    GroupNode,
    ModelMetadata,
    MultiFilterModel,
    NaturalNode,
    NodeType,
    ParsedNaturalQuery,
    PerformanceMetrics,
    Position,
    utcnow,
)
from multifilter.operators import LogicalOperator, parse_operator
from multifilter.ports import (
    FilterSuggestion,
    NaturalLanguageInterpreter,
    NullInterpreter,
    NullSuggestionEngine,
    SuggestionEngine,
)
from multifilter.serialization import export_state, import_state
from multifilter.tree import TreeIssue, new_node_id

logger = logging.getLogger(__name__)

# Offset applied to a copied node so it does not sit on top of the original.
COPY_OFFSET = 20.0


def new_model(column_id: str, root_id: Optional[str] = None, name: Optional[str] = None) -> MultiFilterModel:
    """Empty model: a root AND group with no children."""
    return MultiFilterModel(
        column_id=column_id,
        root_node=GroupNode(id=root_id or new_node_id()),
        metadata=ModelMetadata(name=name),
    )


class FilterSession:
    """
    Edit session over one filter.

    Args:
        model: Starting model; a new empty one is created when omitted
        column_id: Column of the new model (ignored when `model` is given)
        config: Engine configuration
        interpreter / suggestion_engine: External ports (no-op by default)
        clock: Source of modification timestamps
        id_factory: Source of node ids for created and copied nodes
    """

    def __init__(
        self,
        model: Optional[MultiFilterModel] = None,
        column_id: str = "default",
        config: Optional[EngineConfig] = None,
        interpreter: Optional[NaturalLanguageInterpreter] = None,
        suggestion_engine: Optional[SuggestionEngine] = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_node_id,
    ):
        self.config = config or EngineConfig()
        self.interpreter = interpreter or NullInterpreter()
        self.suggestion_engine = suggestion_engine or NullSuggestionEngine()
        self.clock = clock
        self.id_factory = id_factory
        self.history: HistoryManager[MultiFilterModel] = HistoryManager(self.config.history_size)
        self._model = model or new_model(column_id, root_id=id_factory())
        self._complexity: Optional[FilterComplexity] = None
        self._performance: Optional[PerformanceMetrics] = None
        self._store_analysis()

    # ---------------------------------------------------------------------
    # State
    # ---------------------------------------------------------------------

    @property
    def model(self) -> MultiFilterModel:
        return self._model

    @property
    def root(self) -> GroupNode:
        return self._model.root_node

    @property
    def is_stale(self) -> bool:
        """True until complexity/performance are recomputed after an edit."""
        return self._complexity is None or self._performance is None

    def find(self, node_id: str) -> Optional[FilterNode]:
        return tree.find(self.root, node_id)

    def get(self, node_id: str) -> FilterNode:
        node = self.find(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def _invalidate(self) -> None:
        self._complexity = None
        self._performance = None
        self._store_analysis()

    def _store_analysis(self) -> None:
        """Mirror the cached analysis into the model's denormalized metadata."""
        metadata = self._model.metadata
        if metadata.complexity is self._complexity and metadata.performance is self._performance:
            return
        self._model = dataclasses.replace(
            self._model,
            metadata=dataclasses.replace(
                metadata, complexity=self._complexity, performance=self._performance
            ),
        )

    def _commit(self, new_root: GroupNode, action: str) -> None:
        self.history.save(self._model)
        self._model = self._model.with_root(new_root, now=self.clock())
        self._invalidate()
        logger.debug("%s -> version %d", action, self._model.version)

    def _replace_model(self, model: MultiFilterModel, action: str) -> None:
        self.history.save(self._model)
        self._model = model
        self._invalidate()
        logger.debug("%s -> version %d", action, self._model.version)

    # ---------------------------------------------------------------------
    # Structural edits
    # ---------------------------------------------------------------------

    def create_node(self, node_type: Union[NodeType, str], **fields: Any) -> FilterNode:
        """Build a detached node with a fresh id. Does not touch the model."""
        return tree.create_node(node_type, self.id_factory, **fields)

    def add_node(self, node: FilterNode, parent_id: Optional[str] = None,
                 index: Optional[int] = None) -> FilterNode:
        """Insert `node` under `parent_id` (the root when omitted)."""
        new_root = tree.insert(self.root, parent_id or self.root.id, node, index)
        self._commit(new_root, f"add {node.node_type.value} {node.id}")
        return node

    def remove_node(self, node_id: str) -> FilterNode:
        new_root, removed = tree.remove(self.root, node_id)
        self._commit(new_root, f"remove {node_id}")
        return removed

    def update_node(self, node_id: str, patch: Mapping[str, Any]) -> FilterNode:
        new_root, updated = tree.update(self.root, node_id, patch)
        self._commit(new_root, f"update {node_id} {sorted(patch)}")
        return updated

    def move_node(self, node_id: str, new_parent_id: str, index: Optional[int] = None) -> None:
        new_root = tree.move(self.root, node_id, new_parent_id, index)
        self._commit(new_root, f"move {node_id} -> {new_parent_id}")

    def copy_node(self, node_id: str, parent_id: Optional[str] = None) -> FilterNode:
        """
        Duplicate a subtree with fresh ids.

        The copy lands right after the original in the same group, or at the
        end of `parent_id` when given. Copying the root places the copy
        inside the root.
        """
        original = self.get(node_id)
        copy = tree.copy_subtree(
            original,
            self.id_factory,
            position=Position(original.position.x + COPY_OFFSET, original.position.y + COPY_OFFSET),
        )

        index = None
        if parent_id is None:
            parent = tree.find_parent(self.root, node_id) or self.root
            parent_id = parent.id
            if parent.id != node_id:
                index = [c.id for c in parent.children].index(node_id) + 1

        new_root = tree.insert(self.root, parent_id, copy, index)
        self._commit(new_root, f"copy {node_id} -> {copy.id}")
        return copy

    def set_operator(self, group_id: str, operator: Union[LogicalOperator, str]) -> GroupNode:
        return self.update_node(group_id, {"operator": parse_operator(operator)})

    def set_negated(self, group_id: str, negated: bool) -> GroupNode:
        return self.update_node(group_id, {"negated": bool(negated)})

    def set_custom_logic(self, group_id: str, text: str) -> ValidationResult:
        """
        Store custom logic text and validate it against the group's children.

        The text is stored even when invalid so the user can keep editing;
        the returned ValidationResult carries the inline message. A valid
        parse is cached on the group.
        """
        group = self.get(group_id)
        if not isinstance(group, GroupNode):
            raise InvalidPatchError(f"Node {group_id} is not a group", node_id=group_id)
        result = validate_custom_logic(text, len(group.children))
        self.update_node(group_id, {"custom_logic": text, "compiled_logic": result.expression})
        if not result.valid:
            logger.debug("custom logic for %s invalid: %s", group_id, result.message)
        return result

    def set_enabled(self, node_id: str, enabled: bool) -> FilterNode:
        return self.update_node(node_id, {"enabled": bool(enabled)})

    def clear(self) -> None:
        """Remove every node below the root and reset the root to AND."""
        new_root = dataclasses.replace(
            self.root,
            operator=LogicalOperator.AND,
            negated=False,
            custom_logic=None,
            children=(),
            compiled_logic=None,
        )
        self._commit(new_root, "clear")

    # ---------------------------------------------------------------------
    # History
    # ---------------------------------------------------------------------

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def undo(self) -> bool:
        previous = self.history.undo(self._model)
        if previous is None:
            return False
        self._model = previous
        self._invalidate()
        logger.debug("undo -> version %d", self._model.version)
        return True

    def redo(self) -> bool:
        following = self.history.redo(self._model)
        if following is None:
            return False
        self._model = following
        self._invalidate()
        logger.debug("redo -> version %d", self._model.version)
        return True

    # ---------------------------------------------------------------------
    # Analysis
    # ---------------------------------------------------------------------

    def complexity(self) -> FilterComplexity:
        if self._complexity is None:
            self._complexity = analyze_complexity(self.root, self.config.complexity)
            self._store_analysis()
        return self._complexity

    def performance(self) -> PerformanceMetrics:
        if self._performance is None:
            self._performance = estimate_performance(self.root, self.config.complexity)
            self._store_analysis()
        return self._performance

    def validate(self) -> List[TreeIssue]:
        return tree.validate_tree(self.root)

    # ---------------------------------------------------------------------
    # Query generation and evaluation
    # ---------------------------------------------------------------------

    def to_sql(self, paramstyle: Optional[str] = None) -> GeneratedQuery:
        return generate_sql(self.root, paramstyle or self.config.sql.paramstyle)

    def sql_preview(self, table: Optional[str] = None) -> GeneratedQuery:
        return sql_preview(self.root, table or self.config.sql.table, self.config.sql.paramstyle)

    def to_document_query(self, bind_values: bool = False) -> GeneratedQuery:
        return generate_document_query(self.root, self.config.document.placeholder, bind_values)

    def to_natural_language(self) -> GeneratedQuery:
        return generate_natural_language(self.root)

    def evaluate(self, row: Row) -> bool:
        return evaluate(self.root, row)

    def filter_rows(self, rows: Iterable[Row]) -> List[Row]:
        return filter_rows(self.root, rows)

    # ---------------------------------------------------------------------
    # Persistence
    # ---------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        """Snapshot with current complexity and performance denormalized into metadata."""
        self.complexity()
        self.performance()
        return export_state(self._model)

    def import_state(self, state: Dict[str, Any]) -> MultiFilterModel:
        """
        Replace the model with an exported snapshot. Undoable.

        Raises:
            StateImportError: The snapshot is invalid; the model is unchanged
        """
        model = import_state(state)
        self._replace_model(model, f"import {model.column_id}")
        return model

    # ---------------------------------------------------------------------
    # External ports
    # ---------------------------------------------------------------------

    def apply_natural_result(self, node_id: str, parsed: ParsedNaturalQuery) -> NaturalNode:
        """Fill a natural node's parsed slot with an interpreter result."""
        node = self.get(node_id)
        if not isinstance(node, NaturalNode):
            raise InvalidPatchError(f"Node {node_id} is not a natural language node", node_id=node_id)
        confidence = min(1.0, max(0.0, parsed.confidence))
        return self.update_node(node_id, {"parsed": parsed, "confidence": confidence})

    def interpret_natural(self, node_id: str) -> NaturalNode:
        """
        Run the interpreter on a natural node's query and store the result.

        Interpreter errors propagate; the node keeps its previous state.
        """
        node = self.get(node_id)
        if not isinstance(node, NaturalNode):
            raise InvalidPatchError(f"Node {node_id} is not a natural language node", node_id=node_id)
        parsed = self.interpreter.parse(node.query)
        return self.apply_natural_result(node_id, parsed)

    def suggestions(self) -> List[FilterSuggestion]:
        return list(self.suggestion_engine.suggest(self._model))
