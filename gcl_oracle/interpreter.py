"""
gcl_oracle.interpreter
======================

Concrete execution of a :class:`ProgramGraph` over a :class:`Memory`.

Public API
----------
    Memory               - variable and array store, copied on write
    evaluate_arith       - value of an arithmetic expression
    evaluate_bool        - truth value of a boolean expression
    apply_action         - memory after an action, ``None`` if blocked
    next_configurations  - enabled (edge, memory) transitions at a node
    Interpreter          - single runs and exhaustive exploration
    Outcome              - Terminated / Stuck / Timeout
    ExecutionResult      - outcome, trace and final memory of one run
    ExplorationResult    - every outcome reachable within the bounds

Semantics
---------
Integers are signed 64-bit.  ``/`` truncates toward zero and ``^``
requires a non-negative exponent.  Division by zero, negative exponents,
overflow, out-of-bounds indexing and unknown identifiers raise a
:class:`~gcl_oracle.errors.GclRuntimeError`.  An edge whose action raises
is not enabled.  When no edge is enabled at a node other than the end
node the run is ``Stuck``, and the error that disabled the last
candidate edge is kept on the result.

``&&`` and ``||`` short-circuit; ``&`` and ``|`` evaluate both operands,
so an error in either operand disables the edge.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Callable,
    Deque,
    Dict,
    FrozenSet,
    List,
    Optional,
    Sequence,
    Tuple,
)

from gcl_oracle.ast_nodes import (
    AExpr,
    ArithOp,
    ArrayRef,
    BExpr,
    BinOp,
    BoolLit,
    Logic,
    LogicOp,
    Neg,
    Not,
    Num,
    Rel,
    RelOp,
    Var,
)
from gcl_oracle.config import AnalysisConfig, resolve
from gcl_oracle.errors import (
    ArithmeticOverflowError,
    CompileError,
    DivisionByZeroError,
    GclRuntimeError,
    IndexOutOfBoundsError,
    NegativeExponentError,
    NondeterminismError,
    UnknownIdentifierError,
)
from gcl_oracle.program_graph import (
    Action,
    ArrayAssignAction,
    AssignAction,
    BoolCheck,
    Determinism,
    Edge,
    ProgramGraph,
    SkipAction,
)

logger = logging.getLogger(__name__)

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------

FrozenMemory = Tuple[Tuple[Tuple[str, int], ...], Tuple[Tuple[str, Tuple[int, ...]], ...]]


@dataclass
class Memory:
    """Variable and array store.

    Actions never mutate a memory in place; they return an updated copy,
    so memories recorded in a trace stay valid.
    """
    variables: Dict[str, int] = field(default_factory=dict)
    arrays: Dict[str, List[int]] = field(default_factory=dict)

    @classmethod
    def zero(cls, pg: ProgramGraph) -> "Memory":
        """All-zero variables and empty arrays for every name in *pg*."""
        return cls(
            {name: 0 for name in pg.variables()},
            {name: [] for name in pg.arrays()},
        )

    def copy(self) -> "Memory":
        return Memory(
            dict(self.variables),
            {name: list(values) for name, values in self.arrays.items()},
        )

    def assign(self, name: str, value: int) -> "Memory":
        if name not in self.variables:
            raise UnknownIdentifierError(name, "variable")
        updated = self.copy()
        updated.variables[name] = value
        return updated

    def assign_element(self, name: str, index: int, value: int) -> "Memory":
        values = self.arrays.get(name)
        if values is None:
            raise UnknownIdentifierError(name, "array")
        if not 0 <= index < len(values):
            raise IndexOutOfBoundsError(name, index)
        updated = self.copy()
        updated.arrays[name][index] = value
        return updated

    def freeze(self) -> FrozenMemory:
        """Hashable snapshot, equal for equal memories."""
        return (
            tuple(sorted(self.variables.items())),
            tuple(sorted((k, tuple(v)) for k, v in self.arrays.items())),
        )

    @classmethod
    def thaw(cls, frozen: FrozenMemory) -> "Memory":
        variables, arrays = frozen
        return cls(dict(variables), {k: list(v) for k, v in arrays})

    def to_dict(self) -> Dict[str, Dict]:
        return {
            "variables": dict(self.variables),
            "arrays": {k: list(v) for k, v in self.arrays.items()},
        }

    def __str__(self) -> str:
        parts = [f"{k} = {v}" for k, v in self.variables.items()]
        parts += [f"{k} = {v}" for k, v in self.arrays.items()]
        return "{" + ", ".join(parts) + "}"


# ---------------------------------------------------------------------------
# Expression semantics
# ---------------------------------------------------------------------------


def _checked(value: int, op: str) -> int:
    if value < INT64_MIN or value > INT64_MAX:
        raise ArithmeticOverflowError(op)
    return value


def _divide(left: int, right: int) -> int:
    if right == 0:
        raise DivisionByZeroError()
    quotient = abs(left) // abs(right)
    if (left < 0) != (right < 0):
        quotient = -quotient
    return _checked(quotient, f"{left} / {right}")


def _power(base: int, exponent: int) -> int:
    if exponent < 0:
        raise NegativeExponentError(exponent)
    if base in (0, 1):
        return base if exponent > 0 else 1
    if base == -1:
        return 1 if exponent % 2 == 0 else -1
    if exponent >= 64:
        raise ArithmeticOverflowError(f"{base} ^ {exponent}")
    return _checked(base ** exponent, f"{base} ^ {exponent}")


def apply_arith(op: ArithOp, left: int, right: int) -> int:
    """Concrete arithmetic; shared with the sign analysis."""
    if op is ArithOp.ADD:
        return _checked(left + right, f"{left} + {right}")
    if op is ArithOp.SUB:
        return _checked(left - right, f"{left} - {right}")
    if op is ArithOp.MUL:
        return _checked(left * right, f"{left} * {right}")
    if op is ArithOp.DIV:
        return _divide(left, right)
    return _power(left, right)


def negate(value: int) -> int:
    return _checked(-value, f"-{value}")


def compare(op: RelOp, left: int, right: int) -> bool:
    if op is RelOp.EQ:
        return left == right
    if op is RelOp.NE:
        return left != right
    if op is RelOp.LT:
        return left < right
    if op is RelOp.LE:
        return left <= right
    if op is RelOp.GT:
        return left > right
    return left >= right


def read_element(memory: Memory, name: str, index: int) -> int:
    values = memory.arrays.get(name)
    if values is None:
        raise UnknownIdentifierError(name, "array")
    if not 0 <= index < len(values):
        raise IndexOutOfBoundsError(name, index)
    return values[index]


def evaluate_arith(expr: AExpr, memory: Memory) -> int:
    if isinstance(expr, Num):
        return _checked(expr.value, str(expr.value))
    if isinstance(expr, Var):
        try:
            return memory.variables[expr.name]
        except KeyError:
            raise UnknownIdentifierError(expr.name, "variable") from None
    if isinstance(expr, ArrayRef):
        return read_element(memory, expr.array, evaluate_arith(expr.index, memory))
    if isinstance(expr, Neg):
        return negate(evaluate_arith(expr.expr, memory))
    if isinstance(expr, BinOp):
        return apply_arith(
            expr.op,
            evaluate_arith(expr.left, memory),
            evaluate_arith(expr.right, memory),
        )
    raise CompileError(f"not an arithmetic expression: {expr!r}")


def evaluate_bool(expr: BExpr, memory: Memory) -> bool:
    if isinstance(expr, BoolLit):
        return expr.value
    if isinstance(expr, Rel):
        return compare(
            expr.op,
            evaluate_arith(expr.left, memory),
            evaluate_arith(expr.right, memory),
        )
    if isinstance(expr, Not):
        return not evaluate_bool(expr.expr, memory)
    if isinstance(expr, Logic):
        left = evaluate_bool(expr.left, memory)
        if expr.op is LogicOp.AND:
            return left and evaluate_bool(expr.right, memory)
        if expr.op is LogicOp.OR:
            return left or evaluate_bool(expr.right, memory)
        right = evaluate_bool(expr.right, memory)
        if expr.op is LogicOp.STRICT_AND:
            return left and right
        return left or right
    raise CompileError(f"not a boolean expression: {expr!r}")


def apply_action(action: Action, memory: Memory) -> Optional[Memory]:
    """Memory after *action*, or ``None`` when a guard is false.

    Raises :class:`GclRuntimeError` when evaluation fails.
    """
    if isinstance(action, SkipAction):
        return memory
    if isinstance(action, BoolCheck):
        return memory if evaluate_bool(action.guard, memory) else None
    if isinstance(action, AssignAction):
        return memory.assign(action.var, evaluate_arith(action.expr, memory))
    if isinstance(action, ArrayAssignAction):
        index = evaluate_arith(action.index, memory)
        value = evaluate_arith(action.value, memory)
        return memory.assign_element(action.array, index, value)
    raise CompileError(f"unknown action {action!r}")


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Transition:
    """An enabled edge together with the memory it produces."""
    edge: Edge
    memory: Memory = field(compare=False, hash=False)


def enabled_transitions(
    pg: ProgramGraph, node: int, memory: Memory
) -> Tuple[List[Transition], List[GclRuntimeError]]:
    """Enabled transitions at *node* and the errors that disabled others."""
    enabled: List[Transition] = []
    errors: List[GclRuntimeError] = []
    for edge in pg.outgoing(node):
        try:
            result = apply_action(edge.action, memory)
        except GclRuntimeError as exc:
            logger.debug("edge %s disabled: %s", edge, exc)
            errors.append(exc)
            continue
        if result is not None:
            enabled.append(Transition(edge, result))
    return enabled, errors


def next_configurations(
    pg: ProgramGraph, node: int, memory: Memory
) -> List[Transition]:
    return enabled_transitions(pg, node, memory)[0]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class Outcome(Enum):
    TERMINATED = "Terminated"
    STUCK = "Stuck"
    TIMEOUT = "Timeout"


@dataclass(frozen=True)
class TraceStep:
    """One executed edge: where it left from, what it did, what it produced."""
    node: int
    action: Action
    target: int
    memory: Memory = field(compare=False, hash=False)

    def __str__(self) -> str:
        return f"{self.node} --[{self.action}]--> {self.target} {self.memory}"


@dataclass
class ExecutionResult:
    outcome: Outcome
    trace: List[TraceStep]
    memory: Memory
    steps: int
    node: int
    error: Optional[GclRuntimeError] = None

    @property
    def memories(self) -> List[Memory]:
        return [step.memory for step in self.trace]

    def summary(self) -> str:
        line = f"{self.outcome.value} after {self.steps} step(s) at node {self.node}"
        if self.error is not None:
            line += f" ({self.error})"
        return line


@dataclass
class ExplorationResult:
    """Every distinct final configuration reached by exhaustive execution."""
    runs: List[ExecutionResult] = field(default_factory=list)
    states_explored: int = 0
    truncated: bool = False

    @property
    def outcomes(self) -> FrozenSet[Outcome]:
        return frozenset(run.outcome for run in self.runs)

    def final_memories(self, outcome: Outcome = Outcome.TERMINATED) -> List[Memory]:
        return [run.memory for run in self.runs if run.outcome is outcome]

    def summary(self) -> str:
        counts: Dict[str, int] = {}
        for run in self.runs:
            counts[run.outcome.value] = counts.get(run.outcome.value, 0) + 1
        body = ", ".join(f"{k}: {v}" for k, v in sorted(counts.items())) or "no runs"
        more = " (truncated)" if self.truncated else ""
        return f"{body}; {self.states_explored} states explored{more}"


Chooser = Callable[[Sequence[Transition]], Transition]


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


class Interpreter:
    """Runs program graphs concretely.

    Parameters
    ----------
    config : AnalysisConfig, optional
        Supplies the default step and path bounds.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = resolve(config)

    def run(
        self,
        pg: ProgramGraph,
        memory: Memory,
        determinism: Determinism = Determinism.DETERMINISTIC,
        max_steps: Optional[int] = None,
        choose: Optional[Chooser] = None,
    ) -> ExecutionResult:
        """Execute one run from the start node.

        In Deterministic mode more than one enabled edge raises
        :class:`~gcl_oracle.errors.NondeterminismError`.  In
        NonDeterministic mode the first enabled edge is taken, or the one
        returned by *choose*.
        """
        determinism = Determinism.parse(determinism)
        bound = self.config.max_steps if max_steps is None else max_steps
        node = pg.start
        current = memory.copy()
        trace: List[TraceStep] = []
        steps = 0

        while True:
            if node == pg.end:
                outcome, error = Outcome.TERMINATED, None
                break
            enabled, errors = enabled_transitions(pg, node, current)
            if not enabled:
                outcome = Outcome.STUCK
                error = errors[-1] if errors else None
                break
            if steps >= bound:
                outcome, error = Outcome.TIMEOUT, None
                break
            if determinism is Determinism.DETERMINISTIC and len(enabled) > 1:
                raise NondeterminismError(node, len(enabled))
            chosen = choose(enabled) if (choose and len(enabled) > 1) else enabled[0]
            trace.append(
                TraceStep(node, chosen.edge.action, chosen.edge.target, chosen.memory)
            )
            node, current = chosen.edge.target, chosen.memory
            steps += 1

        logger.debug("run finished: %s after %d steps", outcome.value, steps)
        return ExecutionResult(outcome, trace, current, steps, node, error)

    def explore(
        self,
        pg: ProgramGraph,
        memory: Memory,
        max_steps: Optional[int] = None,
        max_paths: Optional[int] = None,
    ) -> ExplorationResult:
        """Breadth-first exploration of every enabled edge.

        The frontier holds (node, memory) states; a state reached twice is
        expanded once, so each result carries the shortest trace to its
        final configuration.  States still enabled at the step bound are
        reported as ``Timeout``.  An edge leading back to a state on its own
        trace closes a cycle, so that path is reported as ``Timeout`` as
        well; revisiting a state reached along another path is not.
        """
        step_bound = self.config.max_steps if max_steps is None else max_steps
        path_bound = self.config.max_paths if max_paths is None else max_paths
        state_bound = self.config.max_states

        Key = Tuple[int, FrozenMemory]
        start_key: Key = (pg.start, memory.freeze())
        parents: Dict[Key, Optional[Tuple[Key, TraceStep]]] = {start_key: None}
        queue: Deque[Tuple[int, Memory, int]] = deque([(pg.start, memory.copy(), 0)])
        result = ExplorationResult()

        def trace_to(key: Key) -> List[TraceStep]:
            steps: List[TraceStep] = []
            link = parents[key]
            while link is not None:
                key, step = link
                steps.append(step)
                link = parents[key]
            steps.reverse()
            return steps

        def on_trace(target: Key, key: Key) -> bool:
            current: Optional[Key] = key
            while current is not None:
                if current == target:
                    return True
                link = parents[current]
                current = link[0] if link is not None else None
            return False

        def finish(node: int, mem: Memory, depth: int, outcome: Outcome,
                   error: Optional[GclRuntimeError] = None) -> bool:
            key = (node, mem.freeze())
            result.runs.append(
                ExecutionResult(outcome, trace_to(key), mem, depth, node, error)
            )
            return len(result.runs) >= path_bound

        while queue:
            node, mem, depth = queue.popleft()
            result.states_explored += 1

            if node == pg.end:
                if finish(node, mem, depth, Outcome.TERMINATED):
                    break
                continue
            enabled, errors = enabled_transitions(pg, node, mem)
            if not enabled:
                if finish(node, mem, depth, Outcome.STUCK, errors[-1] if errors else None):
                    break
                continue
            if depth >= step_bound:
                if finish(node, mem, depth, Outcome.TIMEOUT):
                    break
                continue

            key = (node, mem.freeze())
            done = False
            for t in enabled:
                succ_key = (t.edge.target, t.memory.freeze())
                if succ_key in parents:
                    if on_trace(succ_key, key):
                        step = TraceStep(node, t.edge.action, t.edge.target, t.memory)
                        result.runs.append(ExecutionResult(
                            Outcome.TIMEOUT, trace_to(key) + [step], t.memory,
                            depth + 1, t.edge.target,
                        ))
                        if len(result.runs) >= path_bound:
                            done = True
                            break
                    continue
                if state_bound is not None and len(parents) >= state_bound:
                    result.truncated = True
                    break
                parents[succ_key] = (key, TraceStep(node, t.edge.action, t.edge.target, t.memory))
                queue.append((t.edge.target, t.memory, depth + 1))
            if done:
                break

        if queue:
            result.truncated = True
        if result.truncated:
            logger.warning(
                "exploration truncated after %d states (%d runs)",
                result.states_explored, len(result.runs),
            )
        logger.info("exploration: %s", result.summary())
        return result


__all__ = [
    "INT64_MIN",
    "INT64_MAX",
    "Memory",
    "FrozenMemory",
    "apply_arith",
    "negate",
    "compare",
    "read_element",
    "evaluate_arith",
    "evaluate_bool",
    "apply_action",
    "Transition",
    "enabled_transitions",
    "next_configurations",
    "Outcome",
    "TraceStep",
    "ExecutionResult",
    "ExplorationResult",
    "Interpreter",
]
