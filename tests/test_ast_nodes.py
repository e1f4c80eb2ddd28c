# tests/test_ast_nodes.py
"""
Tests for AST construction, rendering and identifier collection.
"""

import dataclasses

import pytest

from gcl_oracle.ast_nodes import (
    Assign,
    LogicOp,
    Neg,
    Num,
    Seq,
    Skip,
    Var,
    conj,
    disj,
    free_arrays,
    free_variables,
    seq,
)
from tests.conftest import (
    FALSE,
    TRUE,
    add,
    and_,
    array_sum,
    assign,
    assign_at,
    at,
    branch_on_x,
    do,
    factorial,
    gt,
    le,
    lt,
    mul,
    not_,
    or_,
    pow_,
    prog,
    sub,
)


class TestRendering:

    def test_sequence(self):
        assert str(prog(assign("x", 1), assign("y", add("x", 1)))) == "x := 1 ; y := x + 1"

    def test_left_associative_operators(self):
        assert str(sub(sub("a", "b"), "c")) == "a - b - c"
        assert str(sub("a", sub("b", "c"))) == "a - (b - c)"

    def test_precedence(self):
        assert str(mul(add(1, 2), 3)) == "(1 + 2) * 3"
        assert str(add(1, mul(2, 3))) == "1 + 2 * 3"

    def test_power_is_right_associative(self):
        assert str(pow_(2, pow_(3, 2))) == "2 ^ 3 ^ 2"
        assert str(pow_(pow_(2, 3), 2)) == "(2 ^ 3) ^ 2"

    def test_negatives(self):
        assert str(Neg(Var("x"))) == "-x"
        assert str(pow_(Num(-2), 2)) == "(-2) ^ 2"
        assert str(Neg(add("x", 1))) == "-(x + 1)"

    def test_booleans(self):
        assert str(not_(gt("x", 0))) == "!(x > 0)"
        assert str(and_(or_(gt("x", 0), TRUE), FALSE)) == "(x > 0 || true) && false"
        assert str(not_(FALSE)) == "!false"

    def test_arrays(self):
        assert str(assign_at("A", "i", at("A", add("i", 1)))) == "A[i] := A[i + 1]"

    def test_choice(self):
        assert str(branch_on_x()) == "if x > 0 -> y := 1 [] x <= 0 -> y := 2 fi"
        assert str(do((lt("i", 3), Skip()))) == "do i < 3 -> skip od"


class TestConstruction:

    def test_seq_empty_is_skip(self):
        assert seq() == Skip()

    def test_seq_single(self):
        stmt = assign("x", 1)
        assert seq(stmt) is stmt

    def test_seq_is_right_nested(self):
        s = seq(assign("a", 1), assign("b", 2), assign("c", 3))
        assert isinstance(s, Seq)
        assert s.first == assign("a", 1)
        assert isinstance(s.second, Seq)
        assert s.second.second == assign("c", 3)

    def test_strict_connectives(self):
        assert conj(TRUE, FALSE).op is LogicOp.STRICT_AND
        assert disj(TRUE, FALSE).op is LogicOp.STRICT_OR
        assert str(conj(gt("x", 0), not_(FALSE))) == "x > 0 & !false"

    def test_nodes_are_frozen(self):
        stmt = Assign("x", Num(1))
        with pytest.raises(dataclasses.FrozenInstanceError):
            stmt.var = "y"

    def test_structural_equality(self):
        assert factorial() == factorial()
        assert hash(branch_on_x()) == hash(branch_on_x())


class TestFreeIdentifiers:

    def test_first_occurrence_order(self):
        assert free_variables(factorial()) == ["y", "x"]

    def test_arrays_separate_from_variables(self):
        assert free_variables(array_sum()) == ["i", "s"]
        assert free_arrays(array_sum()) == ["A"]

    def test_assignment_target_counts(self):
        assert free_variables(assign("x", 1)) == ["x"]
        assert free_arrays(assign_at("B", 0, 1)) == ["B"]

    def test_expression(self):
        assert free_variables(le(add("b", "a"), at("C", "b"))) == ["b", "a"]
        assert free_arrays(le(add("b", "a"), at("C", "b"))) == ["C"]

    def test_deep_sequence_does_not_recurse(self):
        stmt = seq(*[assign(f"v{i % 7}", i) for i in range(5000)])
        assert len(free_variables(stmt)) == 7
