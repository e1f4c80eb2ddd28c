"""
gcl_oracle/security_analysis.py
═══════════════════════════════

Information-flow (security) analysis for GCL program graphs.

Every variable is given a security class, and a lattice of classes says
which way information may flow.  The analysis collects the flows a
program actually induces and reports those the lattice does not permit.

Flows
─────

    explicit   x := e           (y, x) for every y in fv(e)
               A[i] := e        (y, A) for every y in fv(i) ∪ fv(e)
    implicit   b -> ... x := e  (y, x) for every y in fv(b), for every
                                assignment in the region controlled by b

The region controlled by a guard edge is the set of nodes reachable from
the edge's target without passing through the control node or its join
point (where the branches of the ``if``/``do`` meet again).  Regions of
nested guards nest, so an assignment collects the variables of every
enclosing guard.

Flows are collected in one pass over the graph, nodes in id order and
edges in insertion order; the first discovery of a flow fixes its
position in the output.

Lattice
───────

    ┌─────────────────────────────────────────────────────────────┐
    │  pairs     [("public", "private")]                          │
    │  closure   reflexive + transitive over every mentioned class │
    │  allowed   (a, b) classified, with class(a) ⊑ class(b)       │
    │  violation actual − allowed                                  │
    └─────────────────────────────────────────────────────────────┘

A variable may always flow to itself; an unclassified variable is left
out of ``allowed`` and may flow nowhere else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from gcl_oracle.ast_nodes import Statement, free_variables, free_arrays
from gcl_oracle.compiler import compile_program
from gcl_oracle.config import AnalysisConfig, resolve
from gcl_oracle.program_graph import (
    ArrayAssignAction,
    AssignAction,
    BoolCheck,
    Determinism,
    ProgramGraph,
)

logger = logging.getLogger(__name__)

Classification = Dict[str, str]


# ═══════════════════════════════════════════════════════════════════════════
# FLOWS AND LATTICE
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Flow:
    """Information may flow from ``source`` to ``target``."""
    source: str
    target: str

    def as_list(self) -> List[str]:
        return [self.source, self.target]

    def __str__(self) -> str:
        return f"{self.source} → {self.target}"


class SecurityLattice:
    """Security classes ordered by the pairs ``(lower, higher)``.

    Only the reflexive-transitive closure of the pairs is ever consulted.
    Reflexivity covers the classes the pairs mention, so under the empty
    lattice even two variables sharing a class may not exchange values.
    """

    def __init__(self, pairs: Iterable[Tuple[str, str]] = ()) -> None:
        self.pairs: List[Tuple[str, str]] = [(a, b) for a, b in pairs]
        self._closure: Optional[FrozenSet[Tuple[str, str]]] = None

    @classmethod
    def chain(cls, *classes: str) -> "SecurityLattice":
        """Totally ordered lattice ``classes[0] ⊑ classes[1] ⊑ ...``."""
        return cls(zip(classes, classes[1:]))

    def classes(self) -> List[str]:
        seen: Dict[str, None] = {}
        for a, b in self.pairs:
            seen.setdefault(a, None)
            seen.setdefault(b, None)
        return list(seen)

    def closure(self) -> FrozenSet[Tuple[str, str]]:
        if self._closure is None:
            succ: Dict[str, Set[str]] = {c: set() for c in self.classes()}
            for a, b in self.pairs:
                succ[a].add(b)
            related: Set[Tuple[str, str]] = set()
            for c in succ:
                # every class reachable from c, including c itself
                seen = {c}
                stack = [c]
                while stack:
                    cur = stack.pop()
                    for nxt in succ[cur]:
                        if nxt not in seen:
                            seen.add(nxt)
                            stack.append(nxt)
                related.update((c, d) for d in seen)
            self._closure = frozenset(related)
        return self._closure

    def allows(self, lower: str, higher: str) -> bool:
        return (lower, higher) in self.closure()

    def __repr__(self) -> str:
        return f"SecurityLattice({self.pairs!r})"


# ═══════════════════════════════════════════════════════════════════════════
# INPUT / RESULT
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class SecurityAnalysisInput:
    lattice: SecurityLattice
    classification: Classification = field(default_factory=dict)


@dataclass
class SecurityAnalysisResult:
    actual: List[Flow] = field(default_factory=list)
    allowed: List[Flow] = field(default_factory=list)
    violations: List[Flow] = field(default_factory=list)

    @property
    def is_secure(self) -> bool:
        return not self.violations

    def summary(self) -> str:
        verdict = "secure" if self.is_secure else "insecure"
        return (
            f"{verdict}: {len(self.actual)} actual flow(s), "
            f"{len(self.violations)} violation(s)"
        )


# ═══════════════════════════════════════════════════════════════════════════
# FLOW EXTRACTION
# ═══════════════════════════════════════════════════════════════════════════

def _ordered_union(into: List[str], names: Iterable[str]) -> None:
    for name in names:
        if name not in into:
            into.append(name)


def implicit_contexts(pg: ProgramGraph) -> Dict[int, List[str]]:
    """Map each node to the guard variables that control reaching it."""
    contexts: Dict[int, List[str]] = {}
    for control in pg.nodes:
        guards = [e for e in pg.outgoing(control) if isinstance(e.action, BoolCheck)]
        if not guards:
            continue
        join = pg.join_point(control)
        stop = {control} if join is None else {control, join}
        for edge in guards:
            if edge.target in stop:
                continue
            guard_vars = free_variables(edge.action.guard) + free_arrays(edge.action.guard)
            if not guard_vars:
                continue
            for node in sorted(pg.reachable_from(edge.target, stop)):
                _ordered_union(contexts.setdefault(node, []), guard_vars)
    return contexts


def actual_flows(pg: ProgramGraph) -> List[Flow]:
    """Explicit and implicit flows of *pg* in discovery order."""
    contexts = implicit_contexts(pg)
    flows: Dict[Flow, None] = {}
    for node in pg.nodes:
        for edge in pg.outgoing(node):
            action = edge.action
            if isinstance(action, AssignAction):
                target = action.var
                sources = free_variables(action.expr) + free_arrays(action.expr)
            elif isinstance(action, ArrayAssignAction):
                target = action.array
                sources = []
                for expr in (action.index, action.value):
                    _ordered_union(sources, free_variables(expr) + free_arrays(expr))
            else:
                continue
            for src in sources:
                flows.setdefault(Flow(src, target), None)
            for src in contexts.get(node, ()):
                flows.setdefault(Flow(src, target), None)
    return list(flows)


def allowed_flows(
    names: Sequence[str],
    classification: Mapping[str, str],
    lattice: SecurityLattice,
) -> List[Flow]:
    """Ordered pairs of classified *names* whose classes the lattice orders.

    Unclassified names never appear; their self-flows are exempted when
    violations are computed instead.
    """
    classified = [name for name in names if name in classification]
    return [
        Flow(a, b)
        for a in classified
        for b in classified
        if lattice.allows(classification[a], classification[b])
    ]


# ═══════════════════════════════════════════════════════════════════════════
# ANALYSIS
# ═══════════════════════════════════════════════════════════════════════════

class SecurityAnalysis:
    """Single-pass information-flow check."""

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = resolve(config)

    def run(self, pg: ProgramGraph, analysis_input: SecurityAnalysisInput) -> SecurityAnalysisResult:
        names: List[str] = []
        _ordered_union(names, pg.variables())
        _ordered_union(names, pg.arrays())
        _ordered_union(names, analysis_input.classification)

        actual = actual_flows(pg)
        allowed = allowed_flows(names, analysis_input.classification, analysis_input.lattice)
        permitted = set(allowed)
        violations = [
            f for f in actual if f not in permitted and f.source != f.target
        ]

        result = SecurityAnalysisResult(actual, allowed, violations)
        logger.info("security analysis: %s", result.summary())
        for flow in violations:
            logger.debug("violation: %s", flow)
        return result

    def analyze(
        self,
        stmt: Statement,
        analysis_input: SecurityAnalysisInput,
        determinism: Determinism = Determinism.DETERMINISTIC,
    ) -> SecurityAnalysisResult:
        return self.run(compile_program(stmt, determinism), analysis_input)


__all__ = [
    "Classification",
    "Flow",
    "SecurityLattice",
    "SecurityAnalysisInput",
    "SecurityAnalysisResult",
    "implicit_contexts",
    "actual_flows",
    "allowed_flows",
    "SecurityAnalysis",
]
