"""
gcl_oracle.concurrency
======================

Parallel composition of program graphs.

``par C1 [] C2 [] ... rap`` runs its components over one shared memory.
Each component is compiled to its own :class:`ProgramGraph`; a parallel
configuration pairs one node per component with the shared memory, and a
step lets exactly one component take one of its enabled edges
(interleaving semantics).  The composition is final once every component
sits on its end node.

Public API
----------
    ParallelProgramGraph         - tuple of component graphs
    ParallelConfiguration        - node per component plus shared memory
    ParallelTransition           - which component moved, and where to
    next_parallel_configurations - every interleaved step from a configuration
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from gcl_oracle.ast_nodes import Statement
from gcl_oracle.compiler import compile_program
from gcl_oracle.errors import AnalysisError, ErrorCodes
from gcl_oracle.interpreter import FrozenMemory, Memory, next_configurations
from gcl_oracle.program_graph import Determinism, Edge, ProgramGraph

logger = logging.getLogger(__name__)


class ParallelProgramGraph:
    """Components of a parallel program, one graph each.

    Parameters
    ----------
    graphs : sequence of ProgramGraph
        At least one component.  A single component behaves exactly like
        the sequential graph.
    """

    def __init__(self, graphs: Iterable[ProgramGraph]) -> None:
        self.graphs: Tuple[ProgramGraph, ...] = tuple(graphs)
        if not self.graphs:
            raise AnalysisError(
                "a parallel program needs at least one component",
                ErrorCodes.MALFORMED_GRAPH,
            )

    @classmethod
    def compile(
        cls,
        components: Sequence[Statement],
        determinism: Determinism = Determinism.DETERMINISTIC,
    ) -> "ParallelProgramGraph":
        """Compile every component with the same determinism mode."""
        return cls(compile_program(stmt, determinism) for stmt in components)

    @property
    def start(self) -> Tuple[int, ...]:
        return tuple(pg.start for pg in self.graphs)

    @property
    def end(self) -> Tuple[int, ...]:
        return tuple(pg.end for pg in self.graphs)

    def is_final(self, nodes: Sequence[int]) -> bool:
        return tuple(nodes) == self.end

    def variables(self) -> List[str]:
        seen: Dict[str, None] = {}
        for pg in self.graphs:
            for name in pg.variables():
                seen.setdefault(name, None)
        return list(seen)

    def arrays(self) -> List[str]:
        seen: Dict[str, None] = {}
        for pg in self.graphs:
            for name in pg.arrays():
                seen.setdefault(name, None)
        return list(seen)

    def node_names(self, nodes: Sequence[int]) -> List[str]:
        return [pg.node_name(n) for pg, n in zip(self.graphs, nodes)]

    def check_invariants(self) -> None:
        for pg in self.graphs:
            pg.check_invariants()

    def to_dot(self) -> str:
        """One cluster per component; node ids are prefixed by the index."""
        lines = ["digraph G {", "  node [shape=circle, fontname=monospace, fontsize=10];"]
        for i, pg in enumerate(self.graphs):
            lines.append(f"  subgraph cluster_{i} {{")
            lines.append(f'    label="component {i}";')
            for n in pg.nodes:
                lines.append(f'    "{i}_{n}" [label="{pg.node_name(n)}"];')
            for e in pg.edges:
                lbl = str(e.action).replace('"', '\\"')
                lines.append(f'    "{i}_{e.source}" -> "{i}_{e.target}" [label="{lbl}"];')
            lines.append("  }")
        lines.append("}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.graphs)

    def __repr__(self) -> str:
        return f"ParallelProgramGraph(components={len(self.graphs)})"


@dataclass(frozen=True)
class ParallelConfiguration:
    """Hashable snapshot: one node per component and the shared memory."""
    nodes: Tuple[int, ...]
    memory: FrozenMemory

    @classmethod
    def of(cls, nodes: Sequence[int], memory: Memory) -> "ParallelConfiguration":
        return cls(tuple(nodes), memory.freeze())

    def thaw(self) -> Memory:
        return Memory.thaw(self.memory)

    def describe(self, ppg: ParallelProgramGraph) -> str:
        return f"({', '.join(ppg.node_names(self.nodes))}) {self.thaw()}"


@dataclass(frozen=True)
class ParallelTransition:
    component: int
    edge: Edge
    target: ParallelConfiguration


def next_parallel_configurations(
    ppg: ParallelProgramGraph, config: ParallelConfiguration
) -> List[ParallelTransition]:
    """Every step a single component can take from *config*.

    Components are tried in order and each contributes its enabled edges
    in insertion order, so the result is deterministic.
    """
    memory = config.thaw()
    steps: List[ParallelTransition] = []
    for index, (pg, node) in enumerate(zip(ppg.graphs, config.nodes)):
        if node == pg.end:
            continue
        for t in next_configurations(pg, node, memory):
            nodes = list(config.nodes)
            nodes[index] = t.edge.target
            steps.append(
                ParallelTransition(index, t.edge, ParallelConfiguration.of(nodes, t.memory))
            )
    return steps


__all__ = [
    "ParallelProgramGraph",
    "ParallelConfiguration",
    "ParallelTransition",
    "next_parallel_configurations",
]
