"""
Tests for the formula parser.

Formula nodes hold Excel-like text; these tests check the AST it compiles to.
"""

import pytest
from multifilter.errors import FormulaError
from multifilter.expressions import (
    BinaryExpression,
    BinaryOperator,
    Literal,
    UnaryExpression,
    VariableReference,
)
from multifilter.formula import compile_formula, formula_dependencies, parse_formula


class TestFormulaParsing:
    """Test parse_formula()."""

    def test_simple_comparison(self):
        """age > 18 becomes a comparison of a column and a literal."""
        assert parse_formula("age > 18") == BinaryExpression(
            BinaryOperator.GREATER_THAN, VariableReference("age"), Literal(18)
        )

    def test_equals_aliases(self):
        """= and == both mean EQUALS; <> and != both mean NOT_EQUALS."""
        assert parse_formula("a = 1") == parse_formula("a == 1")
        assert parse_formula("a <> 1") == parse_formula("a != 1")

    def test_strings(self):
        expr = parse_formula("status = 'active'")
        assert expr.right == Literal("active")
        assert parse_formula('name = "O\\"Neil"').right == Literal('O"Neil')

    def test_or_binds_loosest(self):
        """a = 1 AND b = 2 OR c = 3 parses as (a AND b) OR c."""
        expr = parse_formula("a = 1 AND b = 2 OR c = 3")
        assert expr.operator == BinaryOperator.OR
        assert expr.left.operator == BinaryOperator.AND

    def test_not_and_parentheses(self):
        expr = parse_formula("NOT (a = 1 OR b = 2)")
        assert isinstance(expr, UnaryExpression)
        assert expr.operand.operator == BinaryOperator.OR

    def test_keywords_case_insensitive(self):
        """and/or/not/true/false/null work in any case."""
        expr = parse_formula("flag = true and not other = null")
        assert expr.operator == BinaryOperator.AND
        assert expr.left.right == Literal(True)

    def test_numbers(self):
        assert parse_formula("x > 2.5").right == Literal(2.5)
        assert parse_formula("x > -3").right == Literal(-3)

    def test_dotted_identifiers(self):
        assert parse_formula("order.total >= 100").left == VariableReference("order.total")


class TestFormulaErrors:
    """Malformed formulas raise FormulaError."""

    @pytest.mark.parametrize("text", ["", "   ", "a >", "(a = 1", "a = 1)", "a # 1", "AND a"])
    def test_malformed(self, text):
        with pytest.raises(FormulaError):
            parse_formula(text)


class TestCompile:
    def test_dependencies(self):
        """compile_formula() collects referenced columns, sorted."""
        compiled = compile_formula("score >= 50 OR tier = 'gold' AND score < 90")
        assert compiled.dependencies == ("score", "tier")
        assert compiled.original_formula.startswith("score")

    def test_dependencies_of_none(self):
        assert formula_dependencies(None) == set()
