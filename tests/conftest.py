# tests/conftest.py
"""
Shared fixtures and AST builders for gcl-oracle tests.

The builders keep test programs close to GCL surface syntax::

    prog(assign("x", 1), if_((gt("x", 0), assign("y", 1))))
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple, Union

import pytest

from gcl_oracle.ast_nodes import (
    AExpr,
    ArithOp,
    ArrayAssign,
    ArrayRef,
    Assign,
    BExpr,
    BinOp,
    BoolLit,
    Do,
    GuardedCommand,
    If,
    Logic,
    LogicOp,
    Not,
    Num,
    Rel,
    RelOp,
    Skip,
    Statement,
    Var,
    seq,
)
from gcl_oracle.interpreter import Memory
from gcl_oracle.program_graph import BoolCheck, Edge, ProgramGraph

Operand = Union[int, str, AExpr]


# ── Expression builders ──────────────────────────────────────────

def a(x: Operand) -> AExpr:
    """Coerce ints to ``Num`` and strings to ``Var``."""
    if isinstance(x, int):
        return Num(x)
    if isinstance(x, str):
        return Var(x)
    return x


def add(l: Operand, r: Operand) -> BinOp:
    return BinOp(ArithOp.ADD, a(l), a(r))


def sub(l: Operand, r: Operand) -> BinOp:
    return BinOp(ArithOp.SUB, a(l), a(r))


def mul(l: Operand, r: Operand) -> BinOp:
    return BinOp(ArithOp.MUL, a(l), a(r))


def div(l: Operand, r: Operand) -> BinOp:
    return BinOp(ArithOp.DIV, a(l), a(r))


def pow_(l: Operand, r: Operand) -> BinOp:
    return BinOp(ArithOp.POW, a(l), a(r))


def at(array: str, index: Operand) -> ArrayRef:
    return ArrayRef(array, a(index))


def rel(op: RelOp, l: Operand, r: Operand) -> Rel:
    return Rel(op, a(l), a(r))


def eq(l: Operand, r: Operand) -> Rel:
    return rel(RelOp.EQ, l, r)


def lt(l: Operand, r: Operand) -> Rel:
    return rel(RelOp.LT, l, r)


def le(l: Operand, r: Operand) -> Rel:
    return rel(RelOp.LE, l, r)


def gt(l: Operand, r: Operand) -> Rel:
    return rel(RelOp.GT, l, r)


def ge(l: Operand, r: Operand) -> Rel:
    return rel(RelOp.GE, l, r)


def and_(l: BExpr, r: BExpr) -> Logic:
    return Logic(LogicOp.AND, l, r)


def or_(l: BExpr, r: BExpr) -> Logic:
    return Logic(LogicOp.OR, l, r)


def not_(b: BExpr) -> Not:
    return Not(b)


TRUE = BoolLit(True)
FALSE = BoolLit(False)


# ── Statement builders ───────────────────────────────────────────

def assign(var: str, expr: Operand) -> Assign:
    return Assign(var, a(expr))


def assign_at(array: str, index: Operand, value: Operand) -> ArrayAssign:
    return ArrayAssign(array, a(index), a(value))


def _guards(branches: Iterable[Tuple[BExpr, Statement]]) -> Tuple[GuardedCommand, ...]:
    return tuple(GuardedCommand(g, body) for g, body in branches)


def if_(*branches: Tuple[BExpr, Statement]) -> If:
    return If(_guards(branches))


def do(*branches: Tuple[BExpr, Statement]) -> Do:
    return Do(_guards(branches))


def prog(*statements: Statement) -> Statement:
    return seq(*statements)


def memory(arrays: Optional[Dict[str, List[int]]] = None, **variables: int) -> Memory:
    return Memory(dict(variables), {k: list(v) for k, v in (arrays or {}).items()})


# ── Graph helpers ────────────────────────────────────────────────

def swap_guard_targets(pg: ProgramGraph, node: int) -> ProgramGraph:
    """Copy of *pg* where the first two guard edges out of *node* trade targets."""
    guards = [i for i, e in enumerate(pg.edges) if e.source == node and isinstance(e.action, BoolCheck)]
    assert len(guards) >= 2, "need two guard edges to swap"
    i, j = guards[0], guards[1]
    edges = list(pg.edges)
    edges[i] = Edge(pg.edges[i].source, pg.edges[i].action, pg.edges[j].target)
    edges[j] = Edge(pg.edges[j].source, pg.edges[j].action, pg.edges[i].target)
    return ProgramGraph(pg.start, pg.end, edges, determinism=pg.determinism)


def reversed_ids(pg: ProgramGraph) -> ProgramGraph:
    """Renumbered copy: node ``n`` becomes ``100 - n``."""
    return pg.relabel({n: 100 - n for n in pg.nodes})


# ── Sample programs ──────────────────────────────────────────────

def factorial() -> Statement:
    """``y := 1 ; do x > 0 -> y := y * x ; x := x - 1 od``"""
    return prog(
        assign("y", 1),
        do((gt("x", 0), prog(assign("y", mul("y", "x")), assign("x", sub("x", 1))))),
    )


def branch_on_x() -> Statement:
    """``if x > 0 -> y := 1 [] x <= 0 -> y := 2 fi``"""
    return if_(
        (gt("x", 0), assign("y", 1)),
        (le("x", 0), assign("y", 2)),
    )


def both_true() -> Statement:
    """``if true -> x := 1 [] true -> x := 2 fi``"""
    return if_((TRUE, assign("x", 1)), (TRUE, assign("x", 2)))


def array_sum() -> Statement:
    """``i := 0 ; s := 0 ; do i < 3 -> s := s + A[i] ; i := i + 1 od``"""
    return prog(
        assign("i", 0),
        assign("s", 0),
        do((lt("i", 3), prog(assign("s", add("s", at("A", "i"))), assign("i", add("i", 1))))),
    )


SAMPLE_PROGRAMS = {
    "skip": Skip(),
    "sequence": prog(assign("x", 1), assign("y", add("x", 1))),
    "branch": branch_on_x(),
    "factorial": factorial(),
    "nested": prog(
        do((gt("x", 0), if_(
            (gt("y", "x"), assign("y", sub("y", "x"))),
            (le("y", "x"), assign("x", sub("x", "y"))),
        ))),
        if_((eq("y", 0), Skip()), (gt("y", 0), assign("y", 0))),
    ),
    "arrays": array_sum(),
}


@pytest.fixture(params=sorted(SAMPLE_PROGRAMS))
def sample_program(request) -> Statement:
    return SAMPLE_PROGRAMS[request.param]
