"""
Custom Logic Parser & Validator

Turns a user-typed expression over a group's children, such as

    A AND (B OR NOT C)

into a validated Expression AST. Letters bind to the group's children in
document order (A = first child).

Validation runs in a fixed order and stops at the first failure:
    1. Character check after stripping keywords   -> InvalidCharacter
    2. Parenthesis balance (running counter)       -> Unmatched*Paren
    3. Recursive-descent parse                     -> InvalidSyntax
    4. Reference check against the child count     -> UndefinedReference

Precedence, tightest first:
    NOT  >  AND, NAND  >  OR, NOR, XOR  >  IMPLIES, BICONDITIONAL

Besides the keywords, the display glyphs are accepted so an expression can
round-trip through the operator picker:
    &  AND      |  OR      !  -  NOT
    ⊕  XOR      ↑  NAND    ↓  NOR
    →  ⟹  IMPLIES          ⟺  BICONDITIONAL
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from multifilter.errors import CustomLogicError, LogicErrorKind
from multifilter.expressions import (
    Expression,
    BinaryExpression,
    BinaryOperator,
    UnaryExpression,
    UnaryOperator,
    PositionReference,
)


MAX_REFERENCES = 26

_KEYWORD_STRIP_RE = re.compile(r"NAND|NOR|NOT|AND|XOR|OR")
_ALLOWED_CHAR_RE = re.compile(r"[A-Z\s&|()\-!→⟹⟺⊕↑↓]")

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<keyword>(?:NAND|NOR|NOT|AND|XOR|OR)(?![A-Z]))
  | (?P<letter>[A-Z])
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<symbol>&&?|\|\|?|[!\-→⟹⟺⊕↑↓])
    """,
    re.VERBOSE,
)

_SYMBOL_TO_KEYWORD = {
    "&": "AND",
    "&&": "AND",
    "|": "OR",
    "||": "OR",
    "!": "NOT",
    "-": "NOT",
    "⊕": "XOR",
    "↑": "NAND",
    "↓": "NOR",
    "→": "IMPLIES",
    "⟹": "IMPLIES",
    "⟺": "BICONDITIONAL",
}

# Binary operator levels, loosest first.
_LEVELS: List[Tuple[BinaryOperator, ...]] = [
    (BinaryOperator.IMPLIES, BinaryOperator.BICONDITIONAL),
    (BinaryOperator.OR, BinaryOperator.NOR, BinaryOperator.XOR),
    (BinaryOperator.AND, BinaryOperator.NAND),
]


@dataclass(frozen=True)
class Token:
    kind: str  # "op", "letter", "lparen", "rparen"
    value: str
    pos: int


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating a custom logic string.

    `expression` is the compiled AST and is only set when `valid` is True.
    An invalid result never raises: the UI shows `message` inline and keeps
    the user's text.
    """

    valid: bool
    message: str
    error: Optional[LogicErrorKind] = None
    position: Optional[int] = None
    expression: Optional[Expression] = None


def position_letter(index: int) -> str:
    """Letter bound to the child at `index` (0 -> "A")."""
    if not 0 <= index < MAX_REFERENCES:
        raise ValueError(f"Child index {index} has no position letter")
    return chr(ord("A") + index)


def _check_characters(text: str) -> None:
    stripped = _KEYWORD_STRIP_RE.sub(lambda m: " " * len(m.group(0)), text)
    for pos, char in enumerate(stripped):
        if not _ALLOWED_CHAR_RE.match(char):
            raise CustomLogicError(
                LogicErrorKind.INVALID_CHARACTER,
                f"Contains invalid character {char!r} at position {pos}. "
                "Use A-Z for conditions and logical operators.",
                position=pos,
            )


def _check_parentheses(text: str) -> None:
    depth = 0
    opened: List[int] = []
    for pos, char in enumerate(text):
        if char == "(":
            depth += 1
            opened.append(pos)
        elif char == ")":
            depth -= 1
            if depth < 0:
                raise CustomLogicError(
                    LogicErrorKind.UNMATCHED_CLOSING_PAREN,
                    "Unmatched closing parenthesis.",
                    position=pos,
                )
            opened.pop()
    if depth > 0:
        raise CustomLogicError(
            LogicErrorKind.UNMATCHED_OPENING_PAREN,
            "Unmatched opening parenthesis.",
            position=opened[-1],
        )


def tokenize(text: str) -> List[Token]:
    """Split a custom logic string into tokens. Symbols become keywords."""
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise CustomLogicError(
                LogicErrorKind.INVALID_SYNTAX,
                f"Unexpected input at position {pos}: {text[pos:pos + 10]!r}",
                position=pos,
            )
        kind = match.lastgroup
        value = match.group(0)
        if kind == "keyword":
            tokens.append(Token("op", value, pos))
        elif kind == "symbol":
            tokens.append(Token("op", _SYMBOL_TO_KEYWORD[value], pos))
        elif kind in ("letter", "lparen", "rparen"):
            tokens.append(Token(kind, value, pos))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, tokens: List[Token], text: str):
        self.tokens = tokens
        self.text = text
        self.pos = 0

    def peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def error(self, message: str, token: Optional[Token] = None) -> CustomLogicError:
        where = token.pos if token is not None else len(self.text)
        return CustomLogicError(LogicErrorKind.INVALID_SYNTAX, message, position=where)

    def parse(self) -> Expression:
        expr = self.parse_level(0)
        token = self.peek()
        if token is not None:
            raise self.error(f"Unexpected {token.value!r} at position {token.pos}", token)
        return expr

    def parse_level(self, level: int) -> Expression:
        if level == len(_LEVELS):
            return self.parse_unary()

        left = self.parse_level(level + 1)
        operators = {op.value: op for op in _LEVELS[level]}
        token = self.peek()
        while token is not None and token.kind == "op" and token.value in operators:
            self.pos += 1
            if level == 0:
                # Implication chains are right-associative.
                right = self.parse_level(level)
            else:
                right = self.parse_level(level + 1)
            left = BinaryExpression(operators[token.value], left, right)
            token = self.peek()
        return left

    def parse_unary(self) -> Expression:
        token = self.peek()
        if token is not None and token.kind == "op" and token.value == "NOT":
            self.pos += 1
            return UnaryExpression(UnaryOperator.NOT, self.parse_unary())
        return self.parse_primary()

    def parse_primary(self) -> Expression:
        token = self.peek()
        if token is None:
            raise self.error("Unexpected end of expression")
        if token.kind == "letter":
            self.pos += 1
            return PositionReference(token.value)
        if token.kind == "lparen":
            self.pos += 1
            expr = self.parse_level(0)
            closing = self.peek()
            if closing is None or closing.kind != "rparen":
                raise self.error("Missing closing parenthesis", closing)
            self.pos += 1
            return expr
        raise self.error(f"Expected a condition letter or '(' at position {token.pos}, got {token.value!r}", token)


def referenced_positions(expr: Expression) -> Set[str]:
    """Collect every position letter used in an expression."""
    if isinstance(expr, PositionReference):
        return {expr.letter}
    if isinstance(expr, BinaryExpression):
        return referenced_positions(expr.left) | referenced_positions(expr.right)
    if isinstance(expr, UnaryExpression):
        return referenced_positions(expr.operand)
    return set()


def parse_custom_logic(text: str, child_count: Optional[int] = None) -> Expression:
    """
    Validate and parse a custom logic string.

    Args:
        text: Raw expression typed by the user
        child_count: Number of children in the owning group. When given,
            letters beyond it are rejected as UndefinedReference.

    Returns:
        Expression AST

    Raises:
        CustomLogicError: With `kind` naming the first failed check
    """
    if text is None or not text.strip():
        raise CustomLogicError(LogicErrorKind.EMPTY_EXPRESSION, "Custom logic is empty.")

    _check_characters(text)
    _check_parentheses(text)
    tokens = tokenize(text)
    expr = _Parser(tokens, text).parse()

    if child_count is not None:
        undefined = sorted(
            letter for letter in referenced_positions(expr)
            if ord(letter) - ord("A") >= child_count
        )
        if undefined:
            first = next(t for t in tokens if t.kind == "letter" and t.value == undefined[0])
            raise CustomLogicError(
                LogicErrorKind.UNDEFINED_REFERENCE,
                f"Undefined reference: {', '.join(undefined)} "
                f"(group has {child_count} condition{'s' if child_count != 1 else ''}).",
                position=first.pos,
            )
    return expr


def validate_custom_logic(text: str, child_count: Optional[int] = None) -> ValidationResult:
    """Validation boundary: never raises, always returns a ValidationResult."""
    try:
        expr = parse_custom_logic(text, child_count)
    except CustomLogicError as e:
        return ValidationResult(valid=False, message=e.message, error=e.kind, position=e.position)
    return ValidationResult(valid=True, message="Expression is valid.", expression=expr)


_FORMAT_WORDS = {
    BinaryOperator.AND: "AND",
    BinaryOperator.OR: "OR",
    BinaryOperator.XOR: "XOR",
    BinaryOperator.NAND: "NAND",
    BinaryOperator.NOR: "NOR",
    BinaryOperator.IMPLIES: "→",
    BinaryOperator.BICONDITIONAL: "⟺",
}


def format_custom_logic(expr: Expression) -> str:
    """Render an AST back to canonical custom logic text (fully parenthesized)."""
    if isinstance(expr, PositionReference):
        return expr.letter
    if isinstance(expr, UnaryExpression):
        return f"NOT {format_custom_logic(expr.operand)}"
    if isinstance(expr, BinaryExpression):
        word = _FORMAT_WORDS.get(expr.operator)
        if word is None:
            raise TypeError(f"Not a logical operator: {expr.operator}")
        return f"({format_custom_logic(expr.left)} {word} {format_custom_logic(expr.right)})"
    raise TypeError(f"Unsupported Expression type: {type(expr)}")
