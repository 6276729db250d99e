"""
Exception taxonomy for the filter engine.

Structural errors come from tree operations and always leave the tree
unchanged. Expression errors come from the custom logic and formula
parsers; they are converted to validation results at the editing boundary
and only escape as exceptions from the low-level parse functions.
"""

from enum import Enum
from typing import Optional


class MultiFilterError(Exception):
    """Base class for every error raised by the engine."""

    code = "MULTI_FILTER_ERROR"

    def __init__(self, message: str, node_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.node_id = node_id


# =========================================================================
# STRUCTURAL ERRORS
# =========================================================================


class TreeError(MultiFilterError):
    """Raised by tree operations. The tree is never partially mutated."""

    code = "TREE_ERROR"


class NodeNotFoundError(TreeError):
    code = "NOT_FOUND"

    def __init__(self, node_id: str, message: Optional[str] = None):
        super().__init__(message or f"Node not found: {node_id}", node_id=node_id)


class CannotRemoveRootError(TreeError):
    code = "CANNOT_REMOVE_ROOT"

    def __init__(self, node_id: str):
        super().__init__(f"The root group cannot be removed: {node_id}", node_id=node_id)


class InvalidArityError(TreeError):
    code = "INVALID_ARITY"

    def __init__(self, node_id: str, operator: str, expected: str, actual: int):
        super().__init__(
            f"{operator} group {node_id} requires {expected} children, got {actual}",
            node_id=node_id,
        )
        self.operator = operator
        self.expected = expected
        self.actual = actual


class MalformedHierarchyError(TreeError):
    code = "MALFORMED_HIERARCHY"


class DuplicateNodeIdError(TreeError):
    code = "DUPLICATE_ID"

    def __init__(self, node_id: str):
        super().__init__(f"Duplicate node id: {node_id}", node_id=node_id)


class InvalidPatchError(TreeError):
    """Patch names a field the node does not have, or an invalid value."""

    code = "INVALID_PATCH"


# =========================================================================
# EXPRESSION ERRORS
# =========================================================================


class LogicErrorKind(Enum):
    """Reasons a custom logic string can be rejected."""

    EMPTY_EXPRESSION = "EmptyExpression"
    INVALID_CHARACTER = "InvalidCharacter"
    UNMATCHED_OPENING_PAREN = "UnmatchedOpeningParen"
    UNMATCHED_CLOSING_PAREN = "UnmatchedClosingParen"
    INVALID_SYNTAX = "InvalidSyntax"
    UNDEFINED_REFERENCE = "UndefinedReference"


class CustomLogicError(MultiFilterError):
    code = "CUSTOM_LOGIC_ERROR"

    def __init__(self, kind: LogicErrorKind, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.position = position


class FormulaError(MultiFilterError):
    """Raised when a formula node's text cannot be compiled."""

    code = "COMPILATION_ERROR"


# =========================================================================
# EVALUATION / PERSISTENCE / CONFIG
# =========================================================================


class FilterEvaluationError(MultiFilterError):
    code = "EVALUATION_ERROR"


class StateImportError(MultiFilterError):
    code = "IMPORT_ERROR"


class ConfigError(MultiFilterError):
    code = "CONFIG_ERROR"
