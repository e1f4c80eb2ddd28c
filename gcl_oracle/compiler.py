"""
gcl_oracle.compiler
===================

Structural translation of a GCL statement into a :class:`ProgramGraph`.

Composition rules
-----------------
    skip                 one ``SkipAction`` edge s -> t
    x := a / A[i] := a   one assignment edge s -> t
    S1 ; S2              S1 from s to a fresh q, S2 from q to t
    if GC fi             GC from s to t
    do GC od             GC from s back to s, plus an exit edge s -> t
    b -> S               ``BoolCheck`` edge s -> fresh q, then S from q to t

For a choice ``b1 -> S1 [] ... [] bn -> Sn`` the compiler emits one guard
edge per branch.  In Deterministic mode branch *i* is guarded by
``bi & !(b(i-1) | ... | b1 | false)`` so only the first true guard in
declaration order is enabled; in NonDeterministic mode it is guarded by
``bi`` verbatim.  The exit edge of a ``do`` loop carries the negation of
every guard.

The result is renumbered in reverse post-order, so two compilations of
the same program produce identical graphs.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence, Set

from gcl_oracle.ast_nodes import (
    ArrayAssign,
    Assign,
    BExpr,
    BoolLit,
    Do,
    GuardedCommand,
    If,
    Not,
    Seq,
    Skip,
    Statement,
    conj,
    disj,
    free_arrays,
    free_variables,
)
from gcl_oracle.errors import (
    ArityMismatchError,
    CompileError,
    EmptyGuardError,
    UnboundIdentifierError,
)
from gcl_oracle.program_graph import (
    ArrayAssignAction,
    AssignAction,
    BoolCheck,
    Determinism,
    ProgramGraph,
    SkipAction,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Declaration checks
# ---------------------------------------------------------------------------


def check_declarations(
    stmt: Statement,
    variables: Optional[Iterable[str]] = None,
    arrays: Optional[Iterable[str]] = None,
) -> None:
    """Raise :class:`CompileError` for unbound or mis-used identifiers.

    A name used both as a scalar and as an array is always an error.
    Unbound references are only checked against the declarations that are
    actually supplied.
    """
    used_vars = free_variables(stmt)
    used_arrs = free_arrays(stmt)

    for name in used_vars:
        if name in used_arrs:
            raise ArityMismatchError(name)

    if variables is not None:
        declared: Set[str] = set(variables)
        for name in used_vars:
            if name not in declared:
                raise UnboundIdentifierError(name, "variable")
    if arrays is not None:
        declared_arrs: Set[str] = set(arrays)
        for name in used_arrs:
            if name not in declared_arrs:
                raise UnboundIdentifierError(name, "array")


# ---------------------------------------------------------------------------
# Graph builder
# ---------------------------------------------------------------------------


class _GraphBuilder:
    """Emits edges for one program; nodes are renumbered afterwards."""

    START = 0
    END = 1

    def __init__(self, determinism: Determinism) -> None:
        self.determinism = determinism
        self.graph = ProgramGraph(self.START, self.END, determinism=determinism)
        self._next_node = 2

    def fresh(self) -> int:
        nid = self._next_node
        self._next_node += 1
        return nid

    def statement(self, stmt: Statement, s: int, t: int) -> None:
        # Seq chains are walked iteratively; nesting depth then only grows
        # with if/do nesting
        while isinstance(stmt, Seq):
            q = self.fresh()
            self.statement(stmt.first, s, q)
            stmt, s = stmt.second, q

        if isinstance(stmt, Skip):
            self.graph.add_edge(s, SkipAction(), t)
        elif isinstance(stmt, Assign):
            self.graph.add_edge(s, AssignAction(stmt.var, stmt.expr), t)
        elif isinstance(stmt, ArrayAssign):
            self.graph.add_edge(
                s, ArrayAssignAction(stmt.array, stmt.index, stmt.value), t
            )
        elif isinstance(stmt, If):
            if not stmt.guards:
                raise EmptyGuardError("if")
            self.guarded(stmt.guards, s, t)
            self.graph.set_join_point(s, t)
        elif isinstance(stmt, Do):
            if not stmt.guards:
                raise EmptyGuardError("do")
            done = self.guarded(stmt.guards, s, s)
            self.graph.add_edge(s, BoolCheck(done), t)
            self.graph.set_join_point(s, t)
        else:
            raise CompileError(f"cannot compile {type(stmt).__name__} as a statement")

    def guarded(
        self, guards: Sequence[GuardedCommand], s: int, t: int
    ) -> BExpr:
        """Emit the branches of a choice; return the "no guard holds" condition."""
        if self.determinism is Determinism.DETERMINISTIC:
            prev: BExpr = BoolLit(False)
            for gc in guards:
                q = self.fresh()
                self.graph.add_edge(s, BoolCheck(conj(gc.guard, Not(prev))), q)
                self.statement(gc.body, q, t)
                prev = disj(gc.guard, prev)
            return Not(prev)

        done: Optional[BExpr] = None
        for gc in guards:
            q = self.fresh()
            self.graph.add_edge(s, BoolCheck(gc.guard), q)
            self.statement(gc.body, q, t)
            negated = Not(gc.guard)
            done = negated if done is None else conj(done, negated)
        return done if done is not None else BoolLit(True)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def compile_program(
    stmt: Statement,
    determinism: Determinism = Determinism.DETERMINISTIC,
    *,
    variables: Optional[Iterable[str]] = None,
    arrays: Optional[Iterable[str]] = None,
) -> ProgramGraph:
    """Compile *stmt* into a program graph.

    Parameters
    ----------
    stmt : Statement
        Program to compile.
    determinism : Determinism
        Guard encoding for ``if``/``do`` choices.
    variables, arrays : iterable of str, optional
        Declared identifiers.  When given, any other reference raises
        :class:`~gcl_oracle.errors.UnboundIdentifierError`.

    Returns
    -------
    ProgramGraph
        Graph with start node ``0`` and end node ``len(graph) - 1``.
    """
    determinism = Determinism.parse(determinism)
    check_declarations(stmt, variables, arrays)

    builder = _GraphBuilder(determinism)
    builder.statement(stmt, builder.START, builder.END)
    graph = builder.graph.renumber_reverse_post_order()

    logger.debug(
        "compiled %s program: %d nodes, %d edges",
        determinism.value, len(graph), len(graph.edges),
    )
    return graph


__all__ = ["check_declarations", "compile_program"]
