"""
gcl_oracle.program_graph
========================

The Program Graph (PG): a control-flow automaton whose edges carry GCL
actions.  Every analysis in the package (interpretation, sign analysis,
security analysis, trace equivalence) consumes this one model.

Public API
----------
    Determinism       - Deterministic / NonDeterministic compilation mode
    AssignAction      - ``x := a``
    ArrayAssignAction - ``A[i] := a``
    BoolCheck         - crossing the edge requires the guard to hold
    SkipAction        - no-op
    Edge              - (source, action, target)
    ProgramGraph      - nodes, edges and graph queries

Implementation notes
--------------------
* Nodes are plain integers.  After compilation the start node is ``0``,
  intermediate nodes are numbered ``1..`` in reverse post-order and the
  end node takes the last id.  Ids carry no meaning beyond that; two
  graphs that differ only by a renaming are behaviourally equal.
* Edges are kept in insertion order, and ``outgoing(node)`` preserves
  that order.  The interpreter's "first enabled edge" choice and the
  security analysis' discovery order both rely on it.
* A graph is treated as read-only once compiled.  ``relabel`` and
  ``renumber_reverse_post_order`` return new graphs.
"""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    Union,
)

from gcl_oracle.ast_nodes import (
    AExpr,
    BExpr,
    free_arrays,
    free_variables,
)
from gcl_oracle.errors import AnalysisError, ErrorCodes

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Determinism
# ---------------------------------------------------------------------------


class Determinism(enum.Enum):
    """How guarded choices are compiled and executed."""

    DETERMINISTIC = "Deterministic"
    NON_DETERMINISTIC = "NonDeterministic"

    @classmethod
    def parse(cls, value: Union[str, "Determinism"]) -> "Determinism":
        if isinstance(value, cls):
            return value
        for member in cls:
            if value in (member.value, member.name):
                return member
        raise ValueError(f"unknown determinism {value!r}")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssignAction:
    var: str
    expr: AExpr

    def __str__(self) -> str:
        return f"{self.var} := {self.expr}"


@dataclass(frozen=True)
class ArrayAssignAction:
    array: str
    index: AExpr
    value: AExpr

    def __str__(self) -> str:
        return f"{self.array}[{self.index}] := {self.value}"


@dataclass(frozen=True)
class BoolCheck:
    guard: BExpr

    def __str__(self) -> str:
        return str(self.guard)


@dataclass(frozen=True)
class SkipAction:
    def __str__(self) -> str:
        return "skip"


Action = Union[AssignAction, ArrayAssignAction, BoolCheck, SkipAction]


def action_variables(action: Action) -> List[str]:
    """Scalar variables read or written by *action*."""
    if isinstance(action, AssignAction):
        names = [action.var]
        names += [v for v in free_variables(action.expr) if v != action.var]
        return names
    if isinstance(action, ArrayAssignAction):
        names = free_variables(action.index)
        names += [v for v in free_variables(action.value) if v not in names]
        return names
    if isinstance(action, BoolCheck):
        return free_variables(action.guard)
    return []


def action_arrays(action: Action) -> List[str]:
    """Arrays read or written by *action*."""
    if isinstance(action, AssignAction):
        return free_arrays(action.expr)
    if isinstance(action, ArrayAssignAction):
        names = [action.array]
        for expr in (action.index, action.value):
            names += [a for a in free_arrays(expr) if a not in names]
        return names
    if isinstance(action, BoolCheck):
        return free_arrays(action.guard)
    return []


# ---------------------------------------------------------------------------
# Edge
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Edge:
    source: int
    action: Action
    target: int

    def __str__(self) -> str:
        return f"{self.source} --[{self.action}]--> {self.target}"


# ---------------------------------------------------------------------------
# ProgramGraph
# ---------------------------------------------------------------------------


class ProgramGraph:
    """Control-flow automaton for one GCL program.

    Attributes
    ----------
    start : int
        Distinguished start node.
    end : int
        Distinguished end node.
    edges : list[Edge]
        All edges in insertion order.
    determinism : Determinism or None
        Mode the graph was compiled in, ``None`` for graphs built by hand
        or received from an external producer.
    """

    def __init__(
        self,
        start: int,
        end: int,
        edges: Iterable[Edge] = (),
        *,
        determinism: Optional[Determinism] = None,
        join_points: Optional[Mapping[int, int]] = None,
    ) -> None:
        self.start = start
        self.end = end
        self.determinism = determinism
        self.edges: List[Edge] = []
        self._nodes: Set[int] = {start, end}
        self._outgoing: Dict[int, List[Edge]] = defaultdict(list)
        self._incoming: Dict[int, List[Edge]] = defaultdict(list)
        # control node -> node where its branches merge again
        self._join_points: Dict[int, int] = dict(join_points or {})
        self._ipdom_cache: Optional[Dict[int, Optional[int]]] = None
        for e in edges:
            self._register(e)

    # ----- graph mutation ---------------------------------------------------

    def _register(self, e: Edge) -> Edge:
        self.edges.append(e)
        self._nodes.add(e.source)
        self._nodes.add(e.target)
        self._outgoing[e.source].append(e)
        self._incoming[e.target].append(e)
        self._ipdom_cache = None
        return e

    def add_edge(self, source: int, action: Action, target: int) -> Edge:
        """Create an edge, register it and return it."""
        return self._register(Edge(source, action, target))

    def set_join_point(self, control: int, join: int) -> None:
        self._join_points[control] = join

    # ----- queries ----------------------------------------------------------

    @property
    def nodes(self) -> List[int]:
        return sorted(self._nodes)

    def outgoing(self, node: int) -> List[Edge]:
        return list(self._outgoing.get(node, ()))

    def incoming(self, node: int) -> List[Edge]:
        return list(self._incoming.get(node, ()))

    def successors(self, node: int) -> List[int]:
        return [e.target for e in self._outgoing.get(node, ())]

    def reachable_from(
        self, start: int, stop: Iterable[int] = ()
    ) -> Set[int]:
        """Return the set of nodes reachable from *start*.

        Nodes in *stop* are never entered (unless *start* is one of them),
        so the result is the region bounded by them.
        """
        blocked = set(stop)
        visited: Set[int] = set()
        worklist = [start]
        while worklist:
            n = worklist.pop()
            if n in visited:
                continue
            visited.add(n)
            for e in self._outgoing.get(n, ()):
                if e.target not in blocked:
                    worklist.append(e.target)
        return visited

    def variables(self) -> List[str]:
        """Scalar variables mentioned by any edge, first-occurrence order."""
        seen: Dict[str, None] = {}
        for e in self.edges:
            for name in action_variables(e.action):
                seen.setdefault(name, None)
        return list(seen)

    def arrays(self) -> List[str]:
        seen: Dict[str, None] = {}
        for e in self.edges:
            for name in action_arrays(e.action):
                seen.setdefault(name, None)
        return list(seen)

    @property
    def is_deterministic_by_construction(self) -> bool:
        return self.determinism is Determinism.DETERMINISTIC

    def node_name(self, node: int) -> str:
        if node == self.start:
            return "q▷"
        if node == self.end:
            return "q◀"
        return f"q{node}"

    # ----- invariants -------------------------------------------------------

    def check_invariants(self) -> None:
        """Raise :class:`AnalysisError` when the graph is malformed.

        Every node must have an outgoing edge unless it is the end node,
        and the end node must be reachable from the start node.
        """
        for n in self.nodes:
            if n != self.end and not self._outgoing.get(n):
                raise AnalysisError(
                    f"node {self.node_name(n)} has no outgoing edge",
                    ErrorCodes.MALFORMED_GRAPH,
                    detail={"node": n},
                )
        if self.end not in self.reachable_from(self.start):
            raise AnalysisError(
                "end node is not reachable from the start node",
                ErrorCodes.MALFORMED_GRAPH,
            )

    # ----- post-dominators / join points ------------------------------------

    def post_dominators(self) -> Dict[int, Set[int]]:
        """Compute post-dominator sets (dominators on the reverse graph)."""
        all_nodes = set(self._nodes)
        pdom: Dict[int, Set[int]] = {self.end: {self.end}}
        for n in self._nodes:
            if n != self.end:
                pdom[n] = set(all_nodes)
        changed = True
        while changed:
            changed = False
            for n in self.nodes:
                if n == self.end:
                    continue
                succs = self.successors(n)
                if not succs:
                    new_pdom = {n}
                else:
                    new_pdom = set.intersection(*(pdom[s] for s in succs))
                    new_pdom = new_pdom | {n}
                if new_pdom != pdom[n]:
                    pdom[n] = new_pdom
                    changed = True
        return pdom

    def immediate_post_dominator(self, node: int) -> Optional[int]:
        if self._ipdom_cache is None:
            pdom = self.post_dominators()
            ipdom: Dict[int, Optional[int]] = {}
            for n, doms in pdom.items():
                strict = doms - {n}
                # the immediate one is post-dominated by all the others
                ipdom[n] = next(
                    (d for d in strict if strict <= pdom[d]), None
                )
            self._ipdom_cache = ipdom
        return self._ipdom_cache.get(node)

    def join_point(self, node: int) -> Optional[int]:
        """Node where the branches leaving *node* merge again.

        Compiled graphs record it for every ``if``/``do`` control node;
        other graphs fall back to the immediate post-dominator.
        """
        if node in self._join_points:
            return self._join_points[node]
        return self.immediate_post_dominator(node)

    # ----- renaming ---------------------------------------------------------

    def relabel(self, mapping: Mapping[int, int]) -> "ProgramGraph":
        """Return a copy whose nodes are renamed through *mapping*.

        Nodes missing from *mapping* keep their id.
        """
        def m(n: int) -> int:
            return mapping.get(n, n)

        renamed = ProgramGraph(
            m(self.start),
            m(self.end),
            (Edge(m(e.source), e.action, m(e.target)) for e in self.edges),
            determinism=self.determinism,
            join_points={m(c): m(j) for c, j in self._join_points.items()},
        )
        if len(renamed._nodes) != len(self._nodes):
            raise AnalysisError("relabelling is not injective on the graph's nodes")
        return renamed

    def reverse_post_order(self) -> List[int]:
        """Depth-first reverse post-order from the start node, edge order."""
        visited: Set[int] = {self.start}
        post: List[int] = []
        stack = [(self.start, iter(self.successors(self.start)))]
        while stack:
            node, it = stack[-1]
            advanced = False
            for succ in it:
                if succ not in visited:
                    visited.add(succ)
                    stack.append((succ, iter(self.successors(succ))))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                post.append(node)
        post.reverse()
        return post

    def renumber_reverse_post_order(self) -> "ProgramGraph":
        """Start becomes 0, the rest follow in reverse post-order, end is last."""
        order = [n for n in self.reverse_post_order() if n not in (self.start, self.end)]
        unreachable = [
            n for n in self.nodes
            if n not in order and n not in (self.start, self.end)
        ]
        if unreachable:
            logger.debug("renumbering %d unreachable nodes", len(unreachable))
        mapping = {self.start: 0}
        for idx, n in enumerate(order + unreachable, start=1):
            mapping[n] = idx
        mapping[self.end] = len(mapping)
        return self.relabel(mapping)

    # ----- serialisation helpers --------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation of this graph."""
        lines = ["digraph G {"]
        if title:
            lines.append(f'  label="{title}";')
        lines.append("  node [shape=circle, fontname=monospace, fontsize=10];")
        for n in self.nodes:
            lines.append(f'  {n} [label="{self.node_name(n)}"];')
        for e in self.edges:
            lbl = str(e.action).replace('"', '\\"')
            style = ", style=dashed" if isinstance(e.action, BoolCheck) else ""
            lines.append(f'  {e.source} -> {e.target} [label="{lbl}"{style}];')
        lines.append("}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return (
            f"ProgramGraph(nodes={len(self._nodes)}, edges={len(self.edges)}, "
            f"start={self.start}, end={self.end})"
        )


__all__ = [
    "Determinism",
    "AssignAction",
    "ArrayAssignAction",
    "BoolCheck",
    "SkipAction",
    "Action",
    "action_variables",
    "action_arrays",
    "Edge",
    "ProgramGraph",
]
