"""
gcl_oracle.trace_equivalence
============================

Behavioural comparison of two program graphs whose node ids are
unrelated, for example a reference graph and a graph produced by a
student's compiler.

Algorithm
---------
A breadth-first, lock-step exploration over *pairings*
``(reference node, candidate node, memory)``.  At each pairing the
multiset of **effects** (the memory each enabled edge produces) is
computed on both sides:

* equal multisets keep the pairing alive, and it advances to every pair
  of successors that produce the same effect;
* different multisets prune the pairing.

Guard syntax never matters, only whether an edge is enabled and what it
does to memory.  Pairings are deduplicated across the whole search, so
per memory the work is bounded by the product of both graphs' node
counts.

The graphs are judged non-equivalent when

* a configuration on either side loses every pairing in a step, or
* a pairing reaches a final state on one side only, or the final
  outcomes differ (Terminated vs Stuck).

Reaching the step bound with live pairings is reported as a ``Timeout``
in lock-step, i.e. equivalent within the bound.

Pruning by effects alone is an approximation of graph isomorphism: two
pairings that coincidentally agree on a step can hide a later mismatch
reached through another pairing.  A backtracking search over pairings
would close that gap at exponential cost.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from gcl_oracle.config import AnalysisConfig, resolve
from gcl_oracle.interpreter import (
    FrozenMemory,
    Memory,
    Outcome,
    Transition,
    next_configurations,
)
from gcl_oracle.program_graph import ProgramGraph

logger = logging.getLogger(__name__)

Pairing = Tuple[int, int, FrozenMemory]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class EquivalenceResult:
    """Verdict of :meth:`TraceEquivalenceChecker.check`.

    ``outcome`` is the common final outcome when the graphs are
    equivalent (``Timeout`` when the bound was hit) and ``None`` otherwise.
    """
    equivalent: bool
    outcome: Optional[Outcome]
    steps: int
    reason: str = ""
    pairings: int = 0

    def summary(self) -> str:
        verdict = "equivalent" if self.equivalent else "not equivalent"
        tail = f": {self.reason}" if self.reason else ""
        return f"{verdict} after {self.steps} step(s), {self.pairings} pairing(s){tail}"


@dataclass
class TraceValidation:
    """Verdict of :func:`validate_trace`."""
    valid: bool
    steps: int
    terminated: bool = False
    reason: str = ""
    nodes: List[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Checker
# ---------------------------------------------------------------------------


def _status(pg: ProgramGraph, node: int, enabled: List[Transition]) -> Optional[Outcome]:
    if node == pg.end:
        return Outcome.TERMINATED
    if not enabled:
        return Outcome.STUCK
    return None


def _effects(enabled: List[Transition]) -> Counter:
    return Counter(t.memory.freeze() for t in enabled)


class TraceEquivalenceChecker:
    """Lock-step BFS comparison of two program graphs.

    Parameters
    ----------
    config : AnalysisConfig, optional
        ``max_steps`` bounds the search depth, ``max_pairings`` the number
        of distinct pairings visited.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = resolve(config)

    def check(
        self,
        reference: ProgramGraph,
        candidate: ProgramGraph,
        memory: Memory,
        max_steps: Optional[int] = None,
    ) -> EquivalenceResult:
        """Compare *candidate* with *reference* from *memory*.

        The candidate usually comes from an external producer, so it is
        checked first: a malformed candidate raises
        :class:`~gcl_oracle.errors.AnalysisError` instead of being judged.
        """
        candidate.check_invariants()
        bound = self.config.max_steps if max_steps is None else max_steps
        start: Pairing = (reference.start, candidate.start, memory.freeze())
        layer: Set[Pairing] = {start}
        visited: Set[Pairing] = {start}
        final: Set[Outcome] = set()
        # configurations with at least one surviving pairing so far
        ref_alive: Set[Tuple[int, FrozenMemory]] = set()
        cand_alive: Set[Tuple[int, FrozenMemory]] = set()
        steps = 0

        def verdict(equivalent: bool, outcome: Optional[Outcome], reason: str = "") -> EquivalenceResult:
            result = EquivalenceResult(equivalent, outcome, steps, reason, len(visited))
            logger.info("trace equivalence: %s", result.summary())
            return result

        while layer:
            if steps >= bound:
                return verdict(True, Outcome.TIMEOUT, f"step bound {bound} reached")
            if len(visited) > self.config.max_pairings:
                return verdict(
                    True, Outcome.TIMEOUT,
                    f"pairing bound {self.config.max_pairings} reached",
                )

            ref_configs: Set[Tuple[int, FrozenMemory]] = set()
            cand_configs: Set[Tuple[int, FrozenMemory]] = set()
            next_layer: Set[Pairing] = set()
            mismatch = ""

            for r, c, frozen in sorted(layer):
                ref_configs.add((r, frozen))
                cand_configs.add((c, frozen))
                mem = Memory.thaw(frozen)
                r_enabled = [] if r == reference.end else next_configurations(reference, r, mem)
                c_enabled = [] if c == candidate.end else next_configurations(candidate, c, mem)
                r_status = _status(reference, r, r_enabled)
                c_status = _status(candidate, c, c_enabled)

                if r_status is not None or c_status is not None:
                    if r_status is c_status:
                        ref_alive.add((r, frozen))
                        cand_alive.add((c, frozen))
                        final.add(r_status)
                    elif not mismatch:
                        mismatch = (
                            f"{reference.node_name(r)} is {_describe(r_status)} but "
                            f"{candidate.node_name(c)} is {_describe(c_status)}"
                        )
                    continue

                if _effects(r_enabled) != _effects(c_enabled):
                    if not mismatch:
                        mismatch = (
                            f"enabled actions differ at {reference.node_name(r)} / "
                            f"{candidate.node_name(c)}"
                        )
                    logger.debug("pruned pairing (%d, %d)", r, c)
                    continue

                ref_alive.add((r, frozen))
                cand_alive.add((c, frozen))
                by_effect: Dict[FrozenMemory, List[int]] = {}
                for t in c_enabled:
                    by_effect.setdefault(t.memory.freeze(), []).append(t.edge.target)
                for t in r_enabled:
                    effect = t.memory.freeze()
                    for c_next in by_effect.get(effect, ()):
                        pairing = (t.edge.target, c_next, effect)
                        if pairing not in visited:
                            visited.add(pairing)
                            next_layer.add(pairing)

            lost = (ref_configs - ref_alive) | (cand_configs - cand_alive)
            if lost:
                return verdict(
                    False, None,
                    f"no pairing survives step {steps}: {mismatch}" if mismatch
                    else f"no pairing survives step {steps}",
                )
            layer = next_layer
            steps += 1

        if Outcome.STUCK in final:
            return verdict(True, Outcome.STUCK)
        if not final:
            # every pairing revisits an earlier one: both sides loop forever
            return verdict(True, Outcome.TIMEOUT, "both graphs cycle in lock-step")
        return verdict(True, Outcome.TERMINATED)


def _describe(status: Optional[Outcome]) -> str:
    return "running" if status is None else status.value


# ---------------------------------------------------------------------------
# Trace validation
# ---------------------------------------------------------------------------


def validate_trace(
    pg: ProgramGraph,
    memory: Memory,
    trace: Sequence[Memory],
) -> TraceValidation:
    """Check that *trace* is a valid execution prefix of *pg*.

    *trace* lists the memory after each step, as a student interpreter
    would report it.  Every configuration consistent with the trace so
    far is tracked, so non-deterministic graphs are handled without
    guessing which edge was taken.
    """
    configs: Set[Tuple[int, FrozenMemory]] = {(pg.start, memory.freeze())}
    for idx, expected in enumerate(trace):
        wanted = expected.freeze()
        following: Set[Tuple[int, FrozenMemory]] = set()
        for node, frozen in configs:
            for t in next_configurations(pg, node, Memory.thaw(frozen)):
                if t.memory.freeze() == wanted:
                    following.add((t.edge.target, wanted))
        if not following:
            return TraceValidation(
                False, idx,
                reason=f"the traces do not match after {idx} step(s)",
                nodes=sorted(n for n, _ in configs),
            )
        configs = following
    nodes = sorted(n for n, _ in configs)
    return TraceValidation(True, len(trace), terminated=pg.end in nodes, nodes=nodes)


__all__ = [
    "EquivalenceResult",
    "TraceValidation",
    "TraceEquivalenceChecker",
    "validate_trace",
]
