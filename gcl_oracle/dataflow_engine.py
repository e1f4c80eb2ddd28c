"""
gcl_oracle.dataflow_engine
==========================

A generic, lattice-based forward dataflow framework operating over
program graphs.

Theory
------
A dataflow analysis is defined by:

1.  A **lattice** ``(L, ⊑, ⊥, ⊔)``: a partially-ordered set with a least
    element ``⊥`` and a join (least upper bound) operator ``⊔``.
2.  An **edge transfer function** ``f : Edge × L → L`` giving the fact
    that flows into an edge's target from the fact at its source.
3.  An **initial value** for the start node.

The engine iterates until a **fixpoint** is reached: no node's fact grows
when the transfer functions of its incoming edges are re-applied.  For a
finite-height lattice and monotone transfer functions this terminates;
``max_iterations`` still bounds the loop so a non-monotone client is
reported as ``converged=False`` rather than hanging.

Worklist
--------
The worklist is an explicit FIFO queue plus a membership set; there is
no recursion, so deeply nested loops cannot exhaust the Python stack.

Public API
----------
    Lattice          - abstract base for lattice definitions
    PowersetLattice  - ``(2^U, ⊆, ∅, ∪)``
    DataflowResult   - node → fact map plus convergence statistics
    WorklistSolver   - the fixpoint engine
"""

from __future__ import annotations

import abc
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import (
    Callable,
    Deque,
    Dict,
    FrozenSet,
    Generic,
    Mapping,
    Optional,
    Set,
    TypeVar,
)

from gcl_oracle.program_graph import Edge, ProgramGraph

logger = logging.getLogger(__name__)


# ===========================================================================
# TYPE VARIABLES
# ===========================================================================

L = TypeVar("L")          # Lattice value type


# ===========================================================================
# LATTICE — ABSTRACT BASE
# ===========================================================================

class Lattice(abc.ABC, Generic[L]):
    """Abstract base class for a dataflow lattice.

    A lattice must provide:

    - ``bottom()``   → the least element ⊥.
    - ``join(a, b)`` → the least upper bound ``a ⊔ b``.
    - ``leq(a, b)``  → ``True`` iff ``a ⊑ b``.
    """

    @abc.abstractmethod
    def bottom(self) -> L:
        """Return the least element ⊥."""
        ...

    @abc.abstractmethod
    def join(self, a: L, b: L) -> L:
        """Return the least upper bound ``a ⊔ b``."""
        ...

    @abc.abstractmethod
    def leq(self, a: L, b: L) -> bool:
        """Return ``True`` iff ``a ⊑ b``."""
        ...

    def eq(self, a: L, b: L) -> bool:
        """Equality: ``a = b`` iff ``a ⊑ b`` and ``b ⊑ a``."""
        return self.leq(a, b) and self.leq(b, a)

    def is_bottom(self, a: L) -> bool:
        return self.eq(a, self.bottom())


class PowersetLattice(Lattice[FrozenSet]):
    """Powerset lattice: ``(2^U, ⊆, ∅, ∪)``."""

    def bottom(self) -> FrozenSet:
        return frozenset()

    def join(self, a: FrozenSet, b: FrozenSet) -> FrozenSet:
        return a | b

    def leq(self, a: FrozenSet, b: FrozenSet) -> bool:
        return a <= b


# ===========================================================================
# DATAFLOW RESULT
# ===========================================================================

@dataclass
class DataflowResult(Generic[L]):
    """Container for dataflow analysis results.

    Attributes
    ----------
    facts : dict
        Map from node → fact at the node (join over incoming edges).
    iterations : int
        Number of worklist pops performed.
    converged : bool
        Whether the analysis reached a fixpoint (vs. hitting the limit).
    elapsed_seconds : float
        Wall-clock time.
    """
    facts: Dict[int, L] = field(default_factory=dict)
    iterations: int = 0
    converged: bool = False
    elapsed_seconds: float = 0.0


EdgeTransfer = Callable[[Edge, L], L]


# ===========================================================================
# WORKLIST SOLVER
# ===========================================================================

class WorklistSolver(Generic[L]):
    """Forward fixpoint engine over a :class:`ProgramGraph`.

    Parameters
    ----------
    pg : ProgramGraph
        The graph to analyse; read only.
    lattice : Lattice[L]
        The dataflow lattice.
    transfer : callable(edge, L) → L
        Edge transfer function.
    initial_value : L
        Fact at the start node.
    max_iterations : int
        Safety bound on worklist pops.
    """

    def __init__(
        self,
        pg: ProgramGraph,
        lattice: Lattice[L],
        transfer: EdgeTransfer,
        initial_value: L,
        max_iterations: int = 1_000_000,
    ) -> None:
        self.pg = pg
        self.lattice = lattice
        self.transfer = transfer
        self.initial_value = initial_value
        self.max_iterations = max_iterations

    def solve(self, seed: Optional[Mapping[int, L]] = None) -> DataflowResult[L]:
        """Run the analysis to fixpoint.

        Parameters
        ----------
        seed : mapping of node → L, optional
            Starting facts, joined with the initial value at the start
            node.  Seeding the solver with its own fixpoint yields the
            same fixpoint.
        """
        t0 = time.monotonic()
        lat = self.lattice
        pg = self.pg

        facts: Dict[int, L] = {n: lat.bottom() for n in pg.nodes}
        if seed:
            for node, fact in seed.items():
                facts[node] = lat.join(facts.get(node, lat.bottom()), fact)
        facts[pg.start] = lat.join(facts[pg.start], self.initial_value)

        # start first, then every seeded node that already carries a fact
        worklist: Deque[int] = deque([pg.start])
        in_worklist: Set[int] = {pg.start}
        for node in pg.nodes:
            if node not in in_worklist and not lat.is_bottom(facts[node]):
                worklist.append(node)
                in_worklist.add(node)

        iterations = 0
        while worklist and iterations < self.max_iterations:
            node = worklist.popleft()
            in_worklist.discard(node)
            iterations += 1
            fact = facts[node]

            for edge in pg.outgoing(node):
                produced = self.transfer(edge, fact)
                current = facts.get(edge.target, lat.bottom())
                if lat.leq(produced, current):
                    continue
                facts[edge.target] = lat.join(current, produced)
                if edge.target not in in_worklist:
                    worklist.append(edge.target)
                    in_worklist.add(edge.target)

        converged = not worklist
        elapsed = time.monotonic() - t0
        if converged:
            logger.debug(
                "fixpoint reached after %d iterations (%.3fs)", iterations, elapsed
            )
        else:
            logger.warning(
                "fixpoint not reached within %d iterations", self.max_iterations
            )
        return DataflowResult(
            facts=facts,
            iterations=iterations,
            converged=converged,
            elapsed_seconds=elapsed,
        )


__all__ = [
    "Lattice",
    "PowersetLattice",
    "DataflowResult",
    "WorklistSolver",
]
