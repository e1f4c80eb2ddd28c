# gcl_oracle/ast_nodes.py
"""
GCL Abstract Syntax Tree node definitions.

Nodes are immutable and owned by the tree that contains them, so they are
safe to share between compiled graphs, analyses and reports.  ``str(node)``
renders canonical Guarded Commands surface syntax, which is what traces,
DOT labels and reports show.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple, Union


# ── Operators ────────────────────────────────────────────────────

class ArithOp(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    POW = "^"


class RelOp(Enum):
    EQ = "="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


class LogicOp(Enum):
    AND = "&&"          # short-circuit
    OR = "||"           # short-circuit
    STRICT_AND = "&"
    STRICT_OR = "|"


# binding strength used when rendering
_ARITH_PREC = {
    ArithOp.ADD: 1,
    ArithOp.SUB: 1,
    ArithOp.MUL: 2,
    ArithOp.DIV: 2,
    ArithOp.POW: 3,
}
_NEG_PREC = 4
_ATOM_PREC = 5

_LOGIC_PREC = {
    LogicOp.OR: 1,
    LogicOp.STRICT_OR: 1,
    LogicOp.AND: 2,
    LogicOp.STRICT_AND: 2,
}
_NOT_PREC = 3


def _wrap(text: str, prec: int, needed: int) -> str:
    return f"({text})" if prec < needed else text


# ── Arithmetic Expressions ───────────────────────────────────────

@dataclass(frozen=True)
class Num:
    value: int

    def __str__(self):
        return str(self.value)


@dataclass(frozen=True)
class Var:
    name: str

    def __str__(self):
        return self.name


@dataclass(frozen=True)
class ArrayRef:
    array: str
    index: "AExpr"

    def __str__(self):
        return f"{self.array}[{self.index}]"


@dataclass(frozen=True)
class Neg:
    expr: "AExpr"

    def __str__(self):
        return "-" + _wrap(str(self.expr), _arith_prec(self.expr), _ATOM_PREC)


@dataclass(frozen=True)
class BinOp:
    op: ArithOp
    left: "AExpr"
    right: "AExpr"

    def __str__(self):
        prec = _ARITH_PREC[self.op]
        # ^ is right-associative, the others associate to the left
        if self.op is ArithOp.POW:
            lhs = _wrap(str(self.left), _arith_prec(self.left), _ATOM_PREC)
            rhs = _wrap(str(self.right), _arith_prec(self.right), prec)
        else:
            lhs = _wrap(str(self.left), _arith_prec(self.left), prec)
            rhs = _wrap(str(self.right), _arith_prec(self.right), prec + 1)
        return f"{lhs} {self.op.value} {rhs}"


AExpr = Union[Num, Var, ArrayRef, Neg, BinOp]


def _arith_prec(expr: AExpr) -> int:
    if isinstance(expr, BinOp):
        return _ARITH_PREC[expr.op]
    if isinstance(expr, Neg):
        return _NEG_PREC
    if isinstance(expr, Num) and expr.value < 0:
        return _NEG_PREC
    return _ATOM_PREC


# ── Boolean Expressions ──────────────────────────────────────────

@dataclass(frozen=True)
class BoolLit:
    value: bool

    def __str__(self):
        return "true" if self.value else "false"


@dataclass(frozen=True)
class Rel:
    op: RelOp
    left: AExpr
    right: AExpr

    def __str__(self):
        return f"{self.left} {self.op.value} {self.right}"


@dataclass(frozen=True)
class Not:
    expr: "BExpr"

    def __str__(self):
        return "!" + _wrap(str(self.expr), _bool_prec(self.expr), _ATOM_PREC)


@dataclass(frozen=True)
class Logic:
    op: LogicOp
    left: "BExpr"
    right: "BExpr"

    def __str__(self):
        prec = _LOGIC_PREC[self.op]
        lhs = _wrap(str(self.left), _bool_prec(self.left), prec)
        rhs = _wrap(str(self.right), _bool_prec(self.right), prec + 1)
        return f"{lhs} {self.op.value} {rhs}"


BExpr = Union[BoolLit, Rel, Not, Logic]


def _bool_prec(expr: BExpr) -> int:
    if isinstance(expr, Logic):
        return _LOGIC_PREC[expr.op]
    if isinstance(expr, Not):
        return _NOT_PREC
    if isinstance(expr, Rel):
        # a relation binds tighter than any connective but needs parens under !
        return _NOT_PREC
    return _ATOM_PREC


# ── Statements ───────────────────────────────────────────────────

@dataclass(frozen=True)
class Skip:
    def __str__(self):
        return "skip"


@dataclass(frozen=True)
class Assign:
    var: str
    expr: AExpr

    def __str__(self):
        return f"{self.var} := {self.expr}"


@dataclass(frozen=True)
class ArrayAssign:
    array: str
    index: AExpr
    value: AExpr

    def __str__(self):
        return f"{self.array}[{self.index}] := {self.value}"


@dataclass(frozen=True)
class Seq:
    first: "Statement"
    second: "Statement"

    def __str__(self):
        return f"{self.first} ; {self.second}"


@dataclass(frozen=True)
class GuardedCommand:
    guard: BExpr
    body: "Statement"

    def __str__(self):
        return f"{self.guard} -> {self.body}"


def _choice(guards: Tuple[GuardedCommand, ...]) -> str:
    return " [] ".join(str(gc) for gc in guards)


@dataclass(frozen=True)
class If:
    guards: Tuple[GuardedCommand, ...]

    def __str__(self):
        return f"if {_choice(self.guards)} fi"


@dataclass(frozen=True)
class Do:
    guards: Tuple[GuardedCommand, ...]

    def __str__(self):
        return f"do {_choice(self.guards)} od"


Statement = Union[Skip, Assign, ArrayAssign, Seq, If, Do]
Node = Union[Statement, GuardedCommand, AExpr, BExpr]


# ── Construction Helpers ─────────────────────────────────────────

def seq(*statements: Statement) -> Statement:
    """Right-nested sequential composition; ``seq()`` is ``skip``."""
    if not statements:
        return Skip()
    result = statements[-1]
    for stmt in reversed(statements[:-1]):
        result = Seq(stmt, result)
    return result


def conj(left: BExpr, right: BExpr) -> Logic:
    return Logic(LogicOp.STRICT_AND, left, right)


def disj(left: BExpr, right: BExpr) -> Logic:
    return Logic(LogicOp.STRICT_OR, left, right)


# ── Identifier Collection ────────────────────────────────────────

def _collect(node: Node, variables: List[str], arrays: List[str]) -> None:
    # explicit stack, first-occurrence order
    stack: List[Node] = [node]
    while stack:
        cur = stack.pop()
        children: List[Node] = []
        if isinstance(cur, Var):
            _append_unique(variables, cur.name)
        elif isinstance(cur, ArrayRef):
            _append_unique(arrays, cur.array)
            children = [cur.index]
        elif isinstance(cur, Assign):
            _append_unique(variables, cur.var)
            children = [cur.expr]
        elif isinstance(cur, ArrayAssign):
            _append_unique(arrays, cur.array)
            children = [cur.index, cur.value]
        elif isinstance(cur, (BinOp, Rel, Logic)):
            children = [cur.left, cur.right]
        elif isinstance(cur, (Neg, Not)):
            children = [cur.expr]
        elif isinstance(cur, Seq):
            children = [cur.first, cur.second]
        elif isinstance(cur, GuardedCommand):
            children = [cur.guard, cur.body]
        elif isinstance(cur, (If, Do)):
            children = list(cur.guards)
        stack.extend(reversed(children))


def _append_unique(items: List[str], name: str) -> None:
    if name not in items:
        items.append(name)


def free_variables(node: Node) -> List[str]:
    """Scalar variable names occurring in *node*, in first-occurrence order."""
    variables: List[str] = []
    _collect(node, variables, [])
    return variables


def free_arrays(node: Node) -> List[str]:
    """Array names occurring in *node*, in first-occurrence order."""
    arrays: List[str] = []
    _collect(node, [], arrays)
    return arrays


__all__ = [
    "ArithOp", "RelOp", "LogicOp",
    "Num", "Var", "ArrayRef", "Neg", "BinOp", "AExpr",
    "BoolLit", "Rel", "Not", "Logic", "BExpr",
    "Skip", "Assign", "ArrayAssign", "Seq", "GuardedCommand", "If", "Do",
    "Statement", "Node",
    "seq", "conj", "disj", "free_variables", "free_arrays",
]
