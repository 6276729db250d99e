"""
Formula Parser (FormulaNode text -> Expression AST).

Formula nodes hold Excel-like free text over row columns:

    age > 18 AND (status = 'active' OR priority = 'high')

Syntax Notes:
    - Keywords are case-insensitive: AND, OR, NOT, TRUE, FALSE, NULL
    - Symbolic aliases: & (AND), | (OR), ! (NOT)
    - = and == both mean EQUALS; != and <> both mean NOT_EQUALS
    - Strings use single or double quotes
    - OR binds loosest, then AND, then NOT, then comparisons
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from multifilter.errors import FormulaError
from multifilter.expressions import (
    Expression,
    BinaryExpression,
    BinaryOperator,
    VariableReference,
    Literal,
    UnaryExpression,
    UnaryOperator,
)


@dataclass(frozen=True)
class CompiledFormula:
    """
    Cached parse result of a FormulaNode.

    Properties:
        original_formula: The text this was compiled from. A cache whose
            text differs from the node's current formula is stale.
        ast: Parsed expression
        dependencies: Column names referenced by the formula
    """

    original_formula: str
    ast: Expression
    dependencies: Tuple[str, ...] = field(default_factory=tuple)


_TOKEN_RE = re.compile(
    r"""
    \s*(
        '(?:[^'\\]|\\.)*'              # single-quoted string
      | "(?:[^"\\]|\\.)*"              # double-quoted string
      | ==|!=|<>|<=|>=|=|<|>           # comparisons
      | &&|\|\||&|\||!                 # symbolic logic
      | \(|\)
      | -?(?:\d+(?:\.\d*)?|\.\d+)      # numbers
      | [A-Za-z_][A-Za-z0-9_.]*        # identifiers and keywords
    )
    """,
    re.VERBOSE,
)

_COMPARISONS = {
    "=": BinaryOperator.EQUALS,
    "==": BinaryOperator.EQUALS,
    "!=": BinaryOperator.NOT_EQUALS,
    "<>": BinaryOperator.NOT_EQUALS,
    ">": BinaryOperator.GREATER_THAN,
    ">=": BinaryOperator.GREATER_EQUAL,
    "<": BinaryOperator.LESS_THAN,
    "<=": BinaryOperator.LESS_EQUAL,
}

_NUMBER_RE = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)$")
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def _tokenize(formula: str) -> List[str]:
    """Tokenize formula text; any unrecognised character is an error."""
    tokens: List[str] = []
    pos = 0
    text = formula.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise FormulaError(f"Unexpected character at position {pos}: {text[pos:pos + 10]!r}")
        tokens.append(match.group(1))
        pos = match.end()
    if not tokens:
        raise FormulaError(f"No valid tokens in formula: {formula!r}")
    return tokens


def _is_word(token: str, word: str) -> bool:
    return token.upper() == word


def _parse_or_expression(tokens: List[str], pos: int) -> tuple:
    """Parse OR expression (lowest precedence)."""
    left, pos = _parse_and_expression(tokens, pos)

    while pos < len(tokens) and (_is_word(tokens[pos], "OR") or tokens[pos] in ("|", "||")):
        pos += 1
        right, pos = _parse_and_expression(tokens, pos)
        left = BinaryExpression(BinaryOperator.OR, left, right)

    return left, pos


def _parse_and_expression(tokens: List[str], pos: int) -> tuple:
    """Parse AND expression."""
    left, pos = _parse_unary_expression(tokens, pos)

    while pos < len(tokens) and (_is_word(tokens[pos], "AND") or tokens[pos] in ("&", "&&")):
        pos += 1
        right, pos = _parse_unary_expression(tokens, pos)
        left = BinaryExpression(BinaryOperator.AND, left, right)

    return left, pos


def _parse_unary_expression(tokens: List[str], pos: int) -> tuple:
    """Parse unary expression (NOT)."""
    if pos < len(tokens) and (_is_word(tokens[pos], "NOT") or tokens[pos] == "!"):
        pos += 1
        expr, pos = _parse_unary_expression(tokens, pos)
        return UnaryExpression(UnaryOperator.NOT, expr), pos

    return _parse_comparison_expression(tokens, pos)


def _parse_comparison_expression(tokens: List[str], pos: int) -> tuple:
    """Parse comparison expression (=, ==, !=, <>, <, >, <=, >=)."""
    left, pos = _parse_primary_expression(tokens, pos)

    if pos < len(tokens) and tokens[pos] in _COMPARISONS:
        op = _COMPARISONS[tokens[pos]]
        pos += 1
        right, pos = _parse_primary_expression(tokens, pos)
        left = BinaryExpression(op, left, right)

    return left, pos


def _unquote(token: str) -> str:
    body = token[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def _parse_primary_expression(tokens: List[str], pos: int) -> tuple:
    """Parse primary expression (literal, column reference, or parenthesized)."""
    if pos >= len(tokens):
        raise FormulaError("Unexpected end of formula")

    token = tokens[pos]

    if token == "(":
        expr, pos = _parse_or_expression(tokens, pos + 1)
        if pos >= len(tokens) or tokens[pos] != ")":
            raise FormulaError("Missing closing parenthesis")
        return expr, pos + 1

    if token[0] in ("'", '"'):
        return Literal(_unquote(token)), pos + 1

    if _NUMBER_RE.match(token):
        value = float(token)
        if value.is_integer() and "." not in token:
            value = int(token)
        return Literal(value), pos + 1

    if _IDENT_RE.match(token):
        upper = token.upper()
        if upper == "TRUE":
            return Literal(True), pos + 1
        if upper == "FALSE":
            return Literal(False), pos + 1
        if upper == "NULL":
            return Literal(None), pos + 1
        if upper in ("AND", "OR", "NOT"):
            raise FormulaError(f"Unexpected keyword: {token}")
        return VariableReference(token), pos + 1

    raise FormulaError(f"Unexpected token: {token}")


def parse_formula(formula: str) -> Expression:
    """
    Parse formula text into an Expression AST.

    Raises:
        FormulaError: If the text is empty or malformed
    """
    if not formula or not formula.strip():
        raise FormulaError("Formula is empty")

    tokens = _tokenize(formula)
    ast, remaining = _parse_or_expression(tokens, 0)
    if remaining < len(tokens):
        raise FormulaError(f"Unexpected tokens after parsing: {tokens[remaining:]}")
    return ast


def formula_dependencies(expr: Optional[Expression]) -> Set[str]:
    """Extract all column names referenced by an expression."""
    if expr is None:
        return set()
    if isinstance(expr, VariableReference):
        return {expr.name}
    if isinstance(expr, BinaryExpression):
        return formula_dependencies(expr.left) | formula_dependencies(expr.right)
    if isinstance(expr, UnaryExpression):
        return formula_dependencies(expr.operand)
    return set()


def compile_formula(formula: str) -> CompiledFormula:
    """Parse a formula and package it with its column dependencies."""
    ast = parse_formula(formula)
    return CompiledFormula(
        original_formula=formula,
        ast=ast,
        dependencies=tuple(sorted(formula_dependencies(ast))),
    )


__all__ = [
    "CompiledFormula",
    "parse_formula",
    "compile_formula",
    "formula_dependencies",
]
