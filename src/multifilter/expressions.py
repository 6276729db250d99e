"""
Expression System

Custom logic strings ("A AND (B OR C)") and formula node text
("age > 18 AND status = 'active'") are both compiled into the same small
Abstract Syntax Tree before anything evaluates or translates them.

ARCHITECTURAL RULE:
    Parsers produce these objects, evaluators and query backends consume
    them. Nothing downstream of a parser ever re-reads the raw string.
"""

from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Union


class Expression(ABC):
    """
    Base class for all AST expressions.

    This class is structure only.

    DO NOT:
        - Add evaluation logic here (belongs in evaluator.py)
        - Add string renderings (belongs in backends)
    """
    pass


class BinaryOperator(Enum):
    """
    Binary operators supported in expressions.

    The logical members mirror the group operator algebra so that a custom
    logic string can use the same vocabulary as the operator picker.
    """

    # Logical operators
    AND = "AND"
    OR = "OR"
    XOR = "XOR"
    NAND = "NAND"
    NOR = "NOR"
    IMPLIES = "IMPLIES"
    BICONDITIONAL = "BICONDITIONAL"

    # Comparison operators (formula nodes only)
    EQUALS = "=="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    GREATER_EQUAL = ">="
    LESS_THAN = "<"
    LESS_EQUAL = "<="

    @property
    def is_logical(self) -> bool:
        return self in LOGICAL_BINARY_OPERATORS


LOGICAL_BINARY_OPERATORS = frozenset({
    BinaryOperator.AND,
    BinaryOperator.OR,
    BinaryOperator.XOR,
    BinaryOperator.NAND,
    BinaryOperator.NOR,
    BinaryOperator.IMPLIES,
    BinaryOperator.BICONDITIONAL,
})


@dataclass(frozen=True)
class BinaryExpression(Expression):
    """
    Represents a binary logical or comparison expression.

    Example:
        A AND (B OR C)

    Becomes:
        BinaryExpression(
            operator=BinaryOperator.AND,
            left=PositionReference("A"),
            right=BinaryExpression(
                operator=BinaryOperator.OR,
                left=PositionReference("B"),
                right=PositionReference("C"),
            ),
        )
    """

    operator: BinaryOperator
    left: "Expression"
    right: "Expression"


class UnaryOperator(Enum):
    NOT = "NOT"


@dataclass(frozen=True)
class UnaryExpression(Expression):
    """
    Represents a unary operation.

    Example:
        NOT (status == 'closed')
    """

    operator: UnaryOperator
    operand: Expression


@dataclass(frozen=True)
class PositionReference(Expression):
    """
    References a group child by position letter.

    "A" is the first child in document order, "B" the second, and so on.
    Whether the letter is bound to an existing child is checked by the
    custom logic validator, not here.
    """

    letter: str

    @property
    def index(self) -> int:
        return ord(self.letter) - ord("A")


@dataclass(frozen=True)
class VariableReference(Expression):
    """
    References a row column by name (formula nodes).

    The engine does not resolve column names; it carries them.
    """

    name: str


@dataclass(frozen=True)
class Literal(Expression):
    """
    Represents a literal constant value.

    Examples:
        - 18
        - 'active'
        - True
    """

    value: Union[int, float, str, bool, None]
