"""
Tests for the logical operator algebra.

These tests verify:
    - Truth tables of every non-CUSTOM operator
    - Missing positional children read as True
    - Negation applies after combination
    - Arity table and operator parsing
"""

import pytest
from multifilter.operators import (
    FIXED_ARITY,
    POSITIONAL_OPERATORS,
    LogicalOperator,
    apply_negation,
    arity_bounds,
    combine,
    describe_arity,
    parse_operator,
)


class TestTruthTables:
    """Test combine() for each operator."""

    def test_and(self):
        """AND is true only when all children are true."""
        assert combine(LogicalOperator.AND, [True, True, True])
        assert not combine(LogicalOperator.AND, [True, False, True])

    def test_or(self):
        """OR is true when any child is true."""
        assert combine(LogicalOperator.OR, [False, True])
        assert not combine(LogicalOperator.OR, [False, False])

    def test_xor(self):
        """XOR is true iff exactly one child is true."""
        assert combine(LogicalOperator.XOR, [True, False])
        assert combine(LogicalOperator.XOR, [False, True])
        assert not combine(LogicalOperator.XOR, [True, True])
        assert not combine(LogicalOperator.XOR, [False, False])

    def test_nand_nor(self):
        """NAND and NOR negate AND and OR."""
        assert combine(LogicalOperator.NAND, [True, False])
        assert not combine(LogicalOperator.NAND, [True, True])
        assert combine(LogicalOperator.NOR, [False, False])
        assert not combine(LogicalOperator.NOR, [True, False])

    def test_not_negates_and_of_children(self):
        """NOT combines children with AND first, then negates."""
        assert not combine(LogicalOperator.NOT, [True])
        assert combine(LogicalOperator.NOT, [True, False])

    @pytest.mark.parametrize("op", [LogicalOperator.IF_THEN, LogicalOperator.IMPLIES])
    def test_implication(self, op):
        """IF_THEN and IMPLIES share the truth table NOT a OR b."""
        assert combine(op, [True, True])
        assert not combine(op, [True, False])
        assert combine(op, [False, True])
        assert combine(op, [False, False])

    def test_if_then_else(self):
        """IF_THEN_ELSE picks the second child when the first is true, else the third."""
        assert combine(LogicalOperator.IF_THEN_ELSE, [True, True, False])
        assert not combine(LogicalOperator.IF_THEN_ELSE, [True, False, True])
        assert combine(LogicalOperator.IF_THEN_ELSE, [False, False, True])

    def test_biconditional(self):
        """BICONDITIONAL is equality of the two children."""
        assert combine(LogicalOperator.BICONDITIONAL, [False, False])
        assert not combine(LogicalOperator.BICONDITIONAL, [True, False])

    def test_missing_positional_children_are_true(self):
        """An incomplete positional group never constrains more than its present children."""
        assert combine(LogicalOperator.IF_THEN, [True])
        assert combine(LogicalOperator.IF_THEN_ELSE, [False, False])

    def test_custom_cannot_be_combined(self):
        """CUSTOM needs its parsed expression."""
        with pytest.raises(ValueError):
            combine(LogicalOperator.CUSTOM, [True])


class TestNegation:
    def test_negation_after_combination(self):
        """negated flips the combined result."""
        assert apply_negation(combine(LogicalOperator.AND, [True, True]), True) is False
        assert apply_negation(False, False) is False


class TestArity:
    """Test the arity table."""

    def test_fixed_arity_table(self):
        """Binary operators take 2 children, IF_THEN_ELSE takes 3."""
        for op in (LogicalOperator.XOR, LogicalOperator.NAND, LogicalOperator.NOR,
                   LogicalOperator.BICONDITIONAL, LogicalOperator.IMPLIES, LogicalOperator.IF_THEN):
            assert FIXED_ARITY[op] == 2
        assert FIXED_ARITY[LogicalOperator.IF_THEN_ELSE] == 3

    def test_bounds(self):
        """Variadic operators have no maximum."""
        assert arity_bounds(LogicalOperator.AND) == (2, None)
        assert arity_bounds(LogicalOperator.CUSTOM) == (0, None)
        assert arity_bounds(LogicalOperator.XOR) == (2, 2)

    def test_describe(self):
        assert describe_arity(LogicalOperator.IF_THEN_ELSE) == "exactly 3"
        assert describe_arity(LogicalOperator.OR) == "2+"

    def test_positional_operators(self):
        """Order-sensitive operators are marked positional."""
        assert LogicalOperator.CUSTOM in POSITIONAL_OPERATORS
        assert LogicalOperator.AND not in POSITIONAL_OPERATORS


class TestParseOperator:
    def test_case_insensitive(self):
        """Operator names parse regardless of case."""
        assert parse_operator("xor") is LogicalOperator.XOR
        assert parse_operator(LogicalOperator.AND) is LogicalOperator.AND

    def test_unknown(self):
        with pytest.raises(ValueError):
            parse_operator("MAYBE")
