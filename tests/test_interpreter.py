# tests/test_interpreter.py
"""
Tests for concrete execution: expression semantics, single runs and
exhaustive exploration.
"""

import pytest

from gcl_oracle.ast_nodes import ArithOp, Logic, LogicOp, Neg, Num, Skip, Var
from gcl_oracle.compiler import compile_program
from gcl_oracle.config import AnalysisConfig
from gcl_oracle.errors import (
    ArithmeticOverflowError,
    DivisionByZeroError,
    IndexOutOfBoundsError,
    NegativeExponentError,
    NondeterminismError,
    UnknownIdentifierError,
)
from gcl_oracle.interpreter import (
    INT64_MAX,
    INT64_MIN,
    Interpreter,
    Memory,
    Outcome,
    apply_action,
    apply_arith,
    evaluate_arith,
    evaluate_bool,
    next_configurations,
)
from gcl_oracle.program_graph import AssignAction, BoolCheck, Determinism
from tests.conftest import (
    FALSE,
    TRUE,
    add,
    and_,
    array_sum,
    assign,
    assign_at,
    at,
    both_true,
    div,
    do,
    eq,
    factorial,
    gt,
    if_,
    memory,
    prog,
)

NONDET = Determinism.NON_DETERMINISTIC


class TestArithmetic:

    @pytest.mark.parametrize("left, right, expected", [
        (7, 2, 3),
        (-7, 2, -3),
        (7, -2, -3),
        (-7, -2, 3),
        (0, 5, 0),
    ])
    def test_division_truncates_toward_zero(self, left, right, expected):
        assert apply_arith(ArithOp.DIV, left, right) == expected

    def test_division_by_zero(self):
        with pytest.raises(DivisionByZeroError):
            apply_arith(ArithOp.DIV, 1, 0)

    def test_min_divided_by_minus_one_overflows(self):
        with pytest.raises(ArithmeticOverflowError):
            apply_arith(ArithOp.DIV, INT64_MIN, -1)

    @pytest.mark.parametrize("op, left, right", [
        (ArithOp.ADD, INT64_MAX, 1),
        (ArithOp.SUB, INT64_MIN, 1),
        (ArithOp.MUL, 2 ** 32, 2 ** 32),
        (ArithOp.POW, 2, 63),
        (ArithOp.POW, 2, 64),
        (ArithOp.POW, 3, 1000),
    ])
    def test_overflow(self, op, left, right):
        with pytest.raises(ArithmeticOverflowError):
            apply_arith(op, left, right)

    @pytest.mark.parametrize("left, right, expected", [
        (2, 10, 1024),
        (0, 0, 1),
        (0, 3, 0),
        (1, 10 ** 6, 1),
        (-1, 64, 1),
        (-1, 65, -1),
        (-2, 63, INT64_MIN),
        (5, 0, 1),
    ])
    def test_power(self, left, right, expected):
        assert apply_arith(ArithOp.POW, left, right) == expected

    def test_negative_exponent(self):
        with pytest.raises(NegativeExponentError):
            apply_arith(ArithOp.POW, 2, -1)

    def test_negating_minimum_overflows(self):
        with pytest.raises(ArithmeticOverflowError):
            evaluate_arith(Neg(Var("x")), memory(x=INT64_MIN))


class TestExpressions:

    def test_variables_and_arrays(self):
        mem = memory(arrays={"A": [10, 20, 30]}, i=1)
        assert evaluate_arith(add(at("A", "i"), "i"), mem) == 21

    def test_index_out_of_bounds(self):
        with pytest.raises(IndexOutOfBoundsError):
            evaluate_arith(at("A", 3), memory(arrays={"A": [1, 2, 3]}))
        with pytest.raises(IndexOutOfBoundsError):
            evaluate_arith(at("A", -1), memory(arrays={"A": [1]}))

    def test_unknown_identifier(self):
        with pytest.raises(UnknownIdentifierError):
            evaluate_arith(Var("nope"), memory())
        with pytest.raises(UnknownIdentifierError):
            evaluate_arith(at("B", 0), memory())

    def test_short_circuit(self):
        crashes = eq(div(1, 0), 0)
        assert evaluate_bool(and_(FALSE, crashes), memory()) is False
        assert evaluate_bool(Logic(LogicOp.OR, TRUE, crashes), memory()) is True

    def test_strict_connectives_evaluate_both_sides(self):
        crashes = eq(div(1, 0), 0)
        with pytest.raises(DivisionByZeroError):
            evaluate_bool(Logic(LogicOp.STRICT_AND, FALSE, crashes), memory())
        with pytest.raises(DivisionByZeroError):
            evaluate_bool(Logic(LogicOp.STRICT_OR, TRUE, crashes), memory())


class TestActions:

    def test_assignment_copies(self):
        before = memory(x=1)
        after = apply_action(AssignAction("x", Num(2)), before)
        assert before.variables == {"x": 1}
        assert after.variables == {"x": 2}

    def test_false_guard_blocks(self):
        assert apply_action(BoolCheck(gt("x", 0)), memory(x=0)) is None

    def test_unknown_target(self):
        with pytest.raises(UnknownIdentifierError):
            apply_action(AssignAction("y", Num(1)), memory(x=0))

    def test_failing_edge_is_not_enabled(self):
        pg = compile_program(assign("x", div(1, "y")))
        assert next_configurations(pg, pg.start, memory(x=0, y=0)) == []

    def test_freeze_thaw(self):
        mem = memory(arrays={"A": [1, 2]}, y=2, x=1)
        assert mem.freeze() == memory(arrays={"A": [1, 2]}, x=1, y=2).freeze()
        assert Memory.thaw(mem.freeze()) == mem


class TestRun:

    def test_factorial(self):
        pg = compile_program(factorial())
        result = Interpreter().run(pg, memory(x=5, y=0))
        assert result.outcome is Outcome.TERMINATED
        assert result.memory.variables == {"x": 0, "y": 120}
        assert result.node == pg.end
        assert result.steps == len(result.trace)

    def test_trace_records_each_step(self):
        pg = compile_program(prog(assign("x", 1), assign("y", 2)))
        result = Interpreter().run(pg, memory(x=0, y=0))
        assert [str(s.action) for s in result.trace] == ["x := 1", "y := 2"]
        assert [s.target for s in result.trace] == [1, 2]
        assert [m.variables for m in result.memories] == [{"x": 1, "y": 0}, {"x": 1, "y": 2}]

    def test_initial_memory_untouched(self):
        init = memory(x=3, y=0)
        Interpreter().run(compile_program(factorial()), init)
        assert init.variables == {"x": 3, "y": 0}

    def test_arrays(self):
        pg = compile_program(array_sum())
        result = Interpreter().run(pg, memory(arrays={"A": [4, -1, 7]}, i=9, s=9))
        assert result.outcome is Outcome.TERMINATED
        assert result.memory.variables == {"i": 3, "s": 10}

    def test_array_assignment(self):
        pg = compile_program(assign_at("A", 1, 5))
        result = Interpreter().run(pg, memory(arrays={"A": [0, 0]}))
        assert result.memory.arrays == {"A": [0, 5]}

    def test_division_by_zero_gets_stuck(self):
        pg = compile_program(assign("x", div(1, "y")))
        result = Interpreter().run(pg, memory(x=0, y=0))
        assert result.outcome is Outcome.STUCK
        assert result.node == 0
        assert isinstance(result.error, DivisionByZeroError)
        assert "division by zero" in result.summary()

    def test_no_guard_holds(self):
        pg = compile_program(if_((gt("x", 0), Skip())))
        result = Interpreter().run(pg, memory(x=0))
        assert result.outcome is Outcome.STUCK
        assert result.error is None

    def test_step_bound(self):
        pg = compile_program(do((TRUE, Skip())))
        result = Interpreter().run(pg, memory(), max_steps=3)
        assert result.outcome is Outcome.TIMEOUT
        assert result.steps == 3
        assert result.node == 1

    def test_config_bound(self):
        pg = compile_program(do((TRUE, Skip())))
        result = Interpreter(AnalysisConfig(max_steps=5)).run(pg, memory())
        assert result.outcome is Outcome.TIMEOUT
        assert result.steps == 5

    def test_deterministic_run_rejects_choice(self):
        pg = compile_program(both_true(), NONDET)
        with pytest.raises(NondeterminismError):
            Interpreter().run(pg, memory(x=0))

    def test_nondeterministic_run_takes_first_edge(self):
        pg = compile_program(both_true(), NONDET)
        result = Interpreter().run(pg, memory(x=0), NONDET)
        assert result.memory.variables == {"x": 1}

    def test_chooser(self):
        pg = compile_program(both_true(), NONDET)
        result = Interpreter().run(pg, memory(x=0), NONDET, choose=lambda ts: ts[-1])
        assert result.memory.variables == {"x": 2}

    def test_deterministic_graphs_enable_one_edge(self, sample_program):
        pg = compile_program(sample_program)
        init = memory(
            arrays={name: [1, 2, 3] for name in pg.arrays()},
            **{name: 2 for name in pg.variables()},
        )
        first = Interpreter().run(pg, init)
        second = Interpreter().run(pg, init)
        assert first.outcome is Outcome.TERMINATED
        assert first.trace == second.trace
        assert [m.freeze() for m in first.memories] == [m.freeze() for m in second.memories]
        before = [init] + first.memories[:-1]
        for step, mem in zip(first.trace, before):
            assert len(next_configurations(pg, step.node, mem)) == 1

    def test_deterministic_compilation_picks_first_guard(self):
        pg = compile_program(both_true())
        result = Interpreter().run(pg, memory(x=0))
        assert result.memory.variables == {"x": 1}


class TestExplore:

    def test_all_branches(self):
        pg = compile_program(both_true(), NONDET)
        result = Interpreter().explore(pg, memory(x=0))
        assert result.outcomes == {Outcome.TERMINATED}
        assert sorted(m.variables["x"] for m in result.final_memories()) == [1, 2]
        assert result.states_explored == 5
        assert not result.truncated

    def test_path_bound(self):
        pg = compile_program(both_true(), NONDET)
        result = Interpreter().explore(pg, memory(x=0), max_paths=1)
        assert len(result.runs) == 1
        assert result.truncated

    def test_step_bound(self):
        pg = compile_program(do((TRUE, assign("x", add("x", 1)))))
        result = Interpreter().explore(pg, memory(x=0), max_steps=4)
        assert [r.outcome for r in result.runs] == [Outcome.TIMEOUT]
        assert not result.truncated

    def test_stuck_and_terminated(self):
        stmt = if_((TRUE, assign("x", div(1, "y"))), (TRUE, assign("x", 2)))
        pg = compile_program(stmt, NONDET)
        result = Interpreter().explore(pg, memory(x=0, y=0))
        assert result.outcomes == {Outcome.TERMINATED, Outcome.STUCK}
        stuck = [r for r in result.runs if r.outcome is Outcome.STUCK]
        assert isinstance(stuck[0].error, DivisionByZeroError)

    def test_cycle_is_reported_as_timeout(self):
        pg = compile_program(do((TRUE, assign("x", 0))))
        result = Interpreter().explore(pg, memory(x=0))
        assert result.outcomes == {Outcome.TIMEOUT}
        (run,) = result.runs
        assert run.node == pg.start
        assert run.trace[-1].target == pg.start
        assert run.steps == len(run.trace) == 2
        assert not result.truncated

    def test_diverging_branch_is_kept(self):
        stmt = if_((TRUE, do((TRUE, assign("x", 0)))), (TRUE, assign("x", 5)))
        pg = compile_program(stmt, NONDET)
        result = Interpreter().explore(pg, memory(x=0))
        assert result.outcomes == {Outcome.TERMINATED, Outcome.TIMEOUT}
        assert [m.variables for m in result.final_memories()] == [{"x": 5}]

    def test_merging_paths_are_not_cycles(self):
        stmt = if_((TRUE, assign("x", 1)), (TRUE, assign("x", 1)))
        pg = compile_program(stmt, NONDET)
        result = Interpreter().explore(pg, memory(x=0))
        assert [r.outcome for r in result.runs] == [Outcome.TERMINATED]

    def test_traces_lead_to_final_state(self):
        pg = compile_program(factorial())
        result = Interpreter().explore(pg, memory(x=3, y=0))
        (run,) = result.runs
        assert run.trace[-1].target == pg.end
        assert run.memory.variables == {"x": 0, "y": 6}

    def test_summary(self):
        pg = compile_program(both_true(), NONDET)
        text = Interpreter().explore(pg, memory(x=0)).summary()
        assert text.startswith("Terminated: 2")
