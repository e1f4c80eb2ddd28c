"""
gcl_oracle.model_checking
=========================

Explicit-state exploration of a program's transition system.

:func:`check_model` enumerates every configuration reachable from an
initial memory, breadth first, and records

  - the transition system itself (configuration → enabled steps),
  - the **stuck states**: configurations that are not final and have no
    enabled step (a deadlock for a parallel program, a failed guard or
    runtime error for a sequential one),
  - the final configurations reached.

Sequential graphs are explored as one-component parallel graphs, so both
share one code path.  Exploration is bounded by a depth (BFS layers) and
an optional state count; hitting either marks the result ``truncated``
and the stuck-state list is then only a lower bound.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple, Union

from gcl_oracle.concurrency import (
    ParallelConfiguration,
    ParallelProgramGraph,
    ParallelTransition,
    next_parallel_configurations,
)
from gcl_oracle.config import AnalysisConfig, resolve
from gcl_oracle.interpreter import Memory
from gcl_oracle.program_graph import ProgramGraph

logger = logging.getLogger(__name__)

System = Union[ProgramGraph, ParallelProgramGraph]


def as_parallel(system: System) -> ParallelProgramGraph:
    if isinstance(system, ParallelProgramGraph):
        return system
    return ParallelProgramGraph([system])


@dataclass
class CheckedModel:
    """Reachable fragment of the transition system."""
    graph: ParallelProgramGraph
    initial: ParallelConfiguration
    transitions: Dict[ParallelConfiguration, List[ParallelTransition]] = field(default_factory=dict)
    stuck_states: List[ParallelConfiguration] = field(default_factory=list)
    final_states: List[ParallelConfiguration] = field(default_factory=list)
    depth_reached: int = 0
    truncated: bool = False
    # configuration -> (predecessor, step) along a shortest path
    _parents: Dict[
        ParallelConfiguration, Optional[Tuple[ParallelConfiguration, ParallelTransition]]
    ] = field(default_factory=dict, init=False, repr=False)

    @property
    def num_states(self) -> int:
        return len(self._parents)

    @property
    def num_transitions(self) -> int:
        return sum(len(steps) for steps in self.transitions.values())

    @property
    def is_stuck_free(self) -> bool:
        return not self.stuck_states

    def path_to(self, config: ParallelConfiguration) -> Optional[List[ParallelTransition]]:
        """Shortest sequence of steps from the initial configuration."""
        if config not in self._parents:
            return None
        path: List[ParallelTransition] = []
        link = self._parents[config]
        while link is not None:
            config, step = link
            path.append(step)
            link = self._parents[config]
        path.reverse()
        return path

    def summary(self) -> str:
        verdict = "no stuck states" if self.is_stuck_free else f"{len(self.stuck_states)} stuck state(s)"
        more = " (truncated)" if self.truncated else ""
        return (
            f"{verdict}; {self.num_states} states, {self.num_transitions} transitions, "
            f"{len(self.final_states)} final{more}"
        )


def check_model(
    system: System,
    memory: Memory,
    max_depth: Optional[int] = None,
    config: Optional[AnalysisConfig] = None,
) -> CheckedModel:
    """Explore every configuration of *system* reachable from *memory*.

    Parameters
    ----------
    system : ProgramGraph or ParallelProgramGraph
    memory : Memory
        Shared initial memory; every component starts at its start node.
    max_depth : int, optional
        Number of BFS layers to expand; defaults to ``config.max_steps``.
    config : AnalysisConfig, optional
        ``max_states`` bounds the number of configurations kept.
    """
    cfg = resolve(config)
    depth_bound = cfg.max_steps if max_depth is None else max_depth
    ppg = as_parallel(system)
    initial = ParallelConfiguration.of(ppg.start, memory)
    model = CheckedModel(ppg, initial)
    model._parents[initial] = None

    queue: Deque[Tuple[ParallelConfiguration, int]] = deque([(initial, 0)])
    while queue:
        current, depth = queue.popleft()
        model.depth_reached = max(model.depth_reached, depth)

        steps = next_parallel_configurations(ppg, current)
        if not steps:
            if ppg.is_final(current.nodes):
                model.final_states.append(current)
            else:
                logger.debug("stuck state %s", current.describe(ppg))
                model.stuck_states.append(current)
            continue
        if depth >= depth_bound:
            model.truncated = True
            continue

        model.transitions[current] = steps
        for step in steps:
            succ = step.target
            if succ in model._parents:
                continue
            if cfg.max_states is not None and model.num_states >= cfg.max_states:
                model.truncated = True
                break
            model._parents[succ] = (current, step)
            queue.append((succ, depth + 1))

    if model.truncated:
        logger.warning("model exploration truncated after %d states", model.num_states)
    logger.info("model check: %s", model.summary())
    return model


__all__ = [
    "System",
    "as_parallel",
    "CheckedModel",
    "check_model",
]
