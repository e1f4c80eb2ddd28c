"""
gcl_oracle.sign_analysis
========================

Sign abstract interpretation over program graphs.

Abstract domain
---------------
A :class:`SignAssignment` maps every variable to one :class:`Sign` and
every array to the set of signs its elements may have.  The analysis
computes, per node, the set of sign assignments that may reach it: a
powerset lattice ordered by inclusion and joined by union, solved with
:class:`~gcl_oracle.dataflow_engine.WorklistSolver`.

Abstract operators
------------------
Operators are not tabulated.  Each sign is mapped to concrete
representatives::

    Positive -> {1, 2}      Zero -> {0}      Negative -> {-1, -2}

and the concrete operator from :mod:`gcl_oracle.interpreter` is applied
to every combination.  The signs of the results form the abstract result.
Combinations that raise a runtime error (division by zero, negative
exponent) are dropped, mirroring the interpreter, where such an edge is
not enabled.

    >>> sorted(s.value for s in abstract_binop(ArithOp.SUB, {Sign.POSITIVE}, {Sign.POSITIVE}))
    ['Negative', 'Positive', 'Zero']
"""

from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass, field
from typing import (
    AbstractSet,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
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
    Statement,
    Var,
)
from gcl_oracle.compiler import compile_program
from gcl_oracle.config import AnalysisConfig, resolve
from gcl_oracle.dataflow_engine import PowersetLattice, WorklistSolver
from gcl_oracle.errors import (
    CompileError,
    GclRuntimeError,
    IncompleteAssignmentError,
    UnknownIdentifierError,
)
from gcl_oracle.interpreter import Memory, Outcome, apply_arith, compare, negate
from gcl_oracle.program_graph import (
    ArrayAssignAction,
    AssignAction,
    BoolCheck,
    Determinism,
    Edge,
    ProgramGraph,
    SkipAction,
)

logger = logging.getLogger(__name__)


# ===========================================================================
# SIGNS
# ===========================================================================

class Sign(enum.Enum):
    POSITIVE = "Positive"
    ZERO = "Zero"
    NEGATIVE = "Negative"

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]

    def __str__(self) -> str:
        return self.symbol


_SYMBOLS = {Sign.POSITIVE: "+", Sign.ZERO: "0", Sign.NEGATIVE: "-"}

_REPRESENTATIVES: Dict[Sign, Tuple[int, ...]] = {
    Sign.POSITIVE: (1, 2),
    Sign.ZERO: (0,),
    Sign.NEGATIVE: (-1, -2),
}

ALL_SIGNS: FrozenSet[Sign] = frozenset(Sign)

# fixed order for reports and JSON
_ORDER = {Sign.POSITIVE: 0, Sign.ZERO: 1, Sign.NEGATIVE: 2}


def sign_of(value: int) -> Sign:
    if value > 0:
        return Sign.POSITIVE
    if value < 0:
        return Sign.NEGATIVE
    return Sign.ZERO


def representatives(signs: Iterable[Sign]) -> List[int]:
    return [n for s in sorted(signs, key=_ORDER.get) for n in _REPRESENTATIVES[s]]


def sorted_signs(signs: Iterable[Sign]) -> List[Sign]:
    return sorted(signs, key=_ORDER.get)


# ===========================================================================
# SIGN ASSIGNMENT
# ===========================================================================

@dataclass(frozen=True)
class SignAssignment:
    """Immutable, hashable abstract memory.

    Entries are stored sorted by name so that equal assignments compare
    and hash equal regardless of construction order.
    """
    variables: Tuple[Tuple[str, Sign], ...] = ()
    arrays: Tuple[Tuple[str, FrozenSet[Sign]], ...] = ()

    @classmethod
    def of(
        cls,
        variables: Optional[Mapping[str, Sign]] = None,
        arrays: Optional[Mapping[str, Iterable[Sign]]] = None,
    ) -> "SignAssignment":
        return cls(
            tuple(sorted((variables or {}).items())),
            tuple(sorted((k, frozenset(v)) for k, v in (arrays or {}).items())),
        )

    @classmethod
    def abstract(cls, memory: Memory) -> "SignAssignment":
        """Abstraction of a concrete memory."""
        return cls.of(
            {k: sign_of(v) for k, v in memory.variables.items()},
            {k: {sign_of(x) for x in v} for k, v in memory.arrays.items()},
        )

    @property
    def variable_map(self) -> Dict[str, Sign]:
        return dict(self.variables)

    @property
    def array_map(self) -> Dict[str, FrozenSet[Sign]]:
        return dict(self.arrays)

    def variable(self, name: str) -> Sign:
        for k, v in self.variables:
            if k == name:
                return v
        raise UnknownIdentifierError(name, "variable")

    def array(self, name: str) -> FrozenSet[Sign]:
        for k, v in self.arrays:
            if k == name:
                return v
        raise UnknownIdentifierError(name, "array")

    def with_variable(self, name: str, sign: Sign) -> "SignAssignment":
        updated = self.variable_map
        updated[name] = sign
        return SignAssignment(tuple(sorted(updated.items())), self.arrays)

    def with_array(self, name: str, signs: Iterable[Sign]) -> "SignAssignment":
        updated = self.array_map
        updated[name] = frozenset(signs)
        return SignAssignment(self.variables, tuple(sorted(updated.items())))

    def covers(self, memory: Memory) -> bool:
        """True when *memory* is in the concretisation of this assignment."""
        for name, value in memory.variables.items():
            if self.variable_map.get(name) is not sign_of(value):
                return False
        arrays = self.array_map
        for name, values in memory.arrays.items():
            if not {sign_of(x) for x in values} <= arrays.get(name, frozenset()):
                return False
        return True

    def missing(self, variables: Iterable[str], arrays: Iterable[str]) -> List[str]:
        have_vars = self.variable_map
        have_arrs = self.array_map
        return [v for v in variables if v not in have_vars] + [
            a for a in arrays if a not in have_arrs
        ]

    def sort_key(self) -> Tuple:
        return (
            tuple((k, _ORDER[v]) for k, v in self.variables),
            tuple((k, tuple(sorted(_ORDER[s] for s in v))) for k, v in self.arrays),
        )

    def __str__(self) -> str:
        parts = [f"{k} = {v}" for k, v in self.variables]
        parts += [
            f"{k} = {{{', '.join(str(s) for s in sorted_signs(v))}}}"
            for k, v in self.arrays
        ]
        return "[" + ", ".join(parts) + "]"


# ===========================================================================
# ABSTRACT EXPRESSION SEMANTICS
# ===========================================================================

def abstract_binop(op: ArithOp, left: AbstractSet[Sign], right: AbstractSet[Sign]) -> Set[Sign]:
    result: Set[Sign] = set()
    for a, b in itertools.product(representatives(left), representatives(right)):
        try:
            result.add(sign_of(apply_arith(op, a, b)))
        except GclRuntimeError:
            continue
    return result


def abstract_rel(op: RelOp, left: AbstractSet[Sign], right: AbstractSet[Sign]) -> Set[bool]:
    return {
        compare(op, a, b)
        for a, b in itertools.product(representatives(left), representatives(right))
    }


def abstract_logic(op: LogicOp, left: AbstractSet[bool], right: AbstractSet[bool]) -> Set[bool]:
    if op is LogicOp.AND:
        # right-hand side is only evaluated when the left is true
        result = {False} if False in left else set()
        if True in left:
            result |= set(right)
        return result
    if op is LogicOp.OR:
        result = {True} if True in left else set()
        if False in left:
            result |= set(right)
        return result
    if op is LogicOp.STRICT_AND:
        return {a and b for a, b in itertools.product(left, right)}
    return {a or b for a, b in itertools.product(left, right)}


def _index_may_be_valid(signs: AbstractSet[Sign]) -> bool:
    return Sign.ZERO in signs or Sign.POSITIVE in signs


def eval_sign(expr: AExpr, sa: SignAssignment) -> Set[Sign]:
    """Possible signs of *expr* under *sa*; empty if evaluation always fails."""
    if isinstance(expr, Num):
        return {sign_of(expr.value)}
    if isinstance(expr, Var):
        return {sa.variable(expr.name)}
    if isinstance(expr, ArrayRef):
        if _index_may_be_valid(eval_sign(expr.index, sa)):
            return set(sa.array(expr.array))
        return set()
    if isinstance(expr, Neg):
        result: Set[Sign] = set()
        for n in representatives(eval_sign(expr.expr, sa)):
            result.add(sign_of(negate(n)))
        return result
    if isinstance(expr, BinOp):
        return abstract_binop(expr.op, eval_sign(expr.left, sa), eval_sign(expr.right, sa))
    raise CompileError(f"not an arithmetic expression: {expr!r}")


def eval_bool(expr: BExpr, sa: SignAssignment) -> Set[bool]:
    """Possible truth values of *expr* under *sa*."""
    if isinstance(expr, BoolLit):
        return {expr.value}
    if isinstance(expr, Rel):
        return abstract_rel(expr.op, eval_sign(expr.left, sa), eval_sign(expr.right, sa))
    if isinstance(expr, Not):
        return {not b for b in eval_bool(expr.expr, sa)}
    if isinstance(expr, Logic):
        return abstract_logic(expr.op, eval_bool(expr.left, sa), eval_bool(expr.right, sa))
    raise CompileError(f"not a boolean expression: {expr!r}")


# ===========================================================================
# RESULT
# ===========================================================================

@dataclass
class SignAnalysisInput:
    determinism: Determinism
    assignment: SignAssignment


@dataclass
class SignAnalysisResult:
    """Per-node fixpoint sets of sign assignments."""
    facts: Dict[int, FrozenSet[SignAssignment]]
    outcome: Outcome
    iterations: int
    graph: Optional[ProgramGraph] = field(default=None, repr=False)

    @property
    def converged(self) -> bool:
        return self.outcome is Outcome.TERMINATED

    def at(self, node: int) -> List[SignAssignment]:
        """Assignments reaching *node* in a stable order."""
        return sorted(self.facts.get(node, frozenset()), key=SignAssignment.sort_key)

    def at_end(self) -> List[SignAssignment]:
        if self.graph is None:
            raise ValueError("result carries no graph")
        return self.at(self.graph.end)


# ===========================================================================
# ANALYSIS
# ===========================================================================

class SignAnalysis:
    """Sign analysis driver.

    Parameters
    ----------
    config : AnalysisConfig, optional
        ``max_iterations`` bounds the fixpoint computation; hitting it
        yields a ``Timeout`` outcome.
    """

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = resolve(config)
        self.lattice = PowersetLattice()

    # ----- transfer functions ----------------------------------------------

    def transfer_one(self, edge: Edge, sa: SignAssignment) -> Set[SignAssignment]:
        action = edge.action
        if isinstance(action, SkipAction):
            return {sa}
        if isinstance(action, BoolCheck):
            return {sa} if True in eval_bool(action.guard, sa) else set()
        if isinstance(action, AssignAction):
            return {sa.with_variable(action.var, s) for s in eval_sign(action.expr, sa)}
        if isinstance(action, ArrayAssignAction):
            if not _index_may_be_valid(eval_sign(action.index, sa)):
                return set()
            values = eval_sign(action.value, sa)
            current = sa.array(action.array)
            out: Set[SignAssignment] = set()
            # the overwritten element may or may not have been the last of its sign
            for removed in [None, *current]:
                remaining = current - {removed} if removed is not None else current
                for s in values:
                    out.add(sa.with_array(action.array, remaining | {s}))
            return out
        raise CompileError(f"unknown action {action!r}")

    def transfer(
        self, edge: Edge, fact: FrozenSet[SignAssignment]
    ) -> FrozenSet[SignAssignment]:
        out: Set[SignAssignment] = set()
        for sa in fact:
            out |= self.transfer_one(edge, sa)
        return frozenset(out)

    # ----- drivers ----------------------------------------------------------

    def solver(self, pg: ProgramGraph, initial: SignAssignment) -> WorklistSolver:
        missing = initial.missing(pg.variables(), pg.arrays())
        if missing:
            raise IncompleteAssignmentError(missing)
        return WorklistSolver(
            pg,
            self.lattice,
            self.transfer,
            frozenset({initial}),
            max_iterations=self.config.max_iterations,
        )

    def run(
        self,
        pg: ProgramGraph,
        initial: SignAssignment,
        seed: Optional[Mapping[int, FrozenSet[SignAssignment]]] = None,
    ) -> SignAnalysisResult:
        result = self.solver(pg, initial).solve(seed)
        outcome = Outcome.TERMINATED if result.converged else Outcome.TIMEOUT
        logger.info(
            "sign analysis: %s after %d iterations", outcome.value, result.iterations
        )
        return SignAnalysisResult(
            facts=result.facts,
            outcome=outcome,
            iterations=result.iterations,
            graph=pg,
        )

    def analyze(self, stmt: Statement, analysis_input: SignAnalysisInput) -> SignAnalysisResult:
        """Compile *stmt* in the input's mode and run the analysis."""
        pg = compile_program(stmt, analysis_input.determinism)
        return self.run(pg, analysis_input.assignment)


__all__ = [
    "Sign",
    "ALL_SIGNS",
    "sign_of",
    "representatives",
    "sorted_signs",
    "SignAssignment",
    "abstract_binop",
    "abstract_rel",
    "abstract_logic",
    "eval_sign",
    "eval_bool",
    "SignAnalysisInput",
    "SignAnalysisResult",
    "SignAnalysis",
]
