# gcl_oracle/errors.py
"""
GCL Oracle Error Types

Structured exceptions raised by the compiler, the concrete interpreter and
the analyses.  Every error carries an :class:`ErrorCode` so that grading
harnesses can match failures without parsing messages.

Error Hierarchy:
────────────────
    GclError (base)
    ├── CompileError               - malformed AST, aborts compilation
    │   ├── UnboundIdentifierError - reference outside the declarations
    │   ├── ArityMismatchError     - name used both as scalar and array
    │   └── EmptyGuardError        - if/do without guarded commands
    ├── GclRuntimeError            - expression evaluation failure
    │   ├── DivisionByZeroError
    │   ├── NegativeExponentError
    │   ├── ArithmeticOverflowError
    │   ├── IndexOutOfBoundsError
    │   └── UnknownIdentifierError
    ├── AnalysisError              - invariant violation in a graph or input
    │   ├── NondeterminismError    - several enabled edges in Deterministic mode
    │   └── IncompleteAssignmentError
    └── MarshalError               - malformed JSON at the process boundary

Error Codes:
────────────
    GCL-1000..1999  compile errors
    GCL-5000..5999  runtime errors
    GCL-7000..7999  analysis errors
    GCL-8000..8999  marshalling errors

A ``GclRuntimeError`` never escapes an interpreter run: it disables the
edge whose action raised it, and the run ends ``Stuck`` with the error
attached to the result.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any, Dict, Optional


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorPhase(Enum):
    """Pipeline phase where the error occurred."""

    COMPILE = "compile"
    RUNTIME = "runtime"
    ANALYSIS = "analysis"
    MARSHAL = "marshal"


class ErrorCode:
    """
    Structured error code of the form ``GCL-NNNN``.

    Codes compare by number so they can be used as dictionary keys and in
    ``==`` checks inside tests.
    """

    __slots__ = ("number", "phase", "title")

    def __init__(self, number: int, phase: ErrorPhase, title: str) -> None:
        self.number = number
        self.phase = phase
        self.title = title

    @property
    def code(self) -> str:
        return f"GCL-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code}, {self.phase.value}, {self.title!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.number == other.number
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.number)


class ErrorCodes:
    """Predefined error codes."""

    # ═══════════════════════════════════════════════════════════════════════
    # COMPILE ERRORS (1000-1999)
    # ═══════════════════════════════════════════════════════════════════════

    UNBOUND_IDENTIFIER = ErrorCode(1000, ErrorPhase.COMPILE, "unbound identifier")
    ARITY_MISMATCH = ErrorCode(1001, ErrorPhase.COMPILE, "arity mismatch")
    EMPTY_GUARDS = ErrorCode(1002, ErrorPhase.COMPILE, "empty guarded command")
    UNSUPPORTED_NODE = ErrorCode(1003, ErrorPhase.COMPILE, "unsupported AST node")

    # ═══════════════════════════════════════════════════════════════════════
    # RUNTIME ERRORS (5000-5999)
    # ═══════════════════════════════════════════════════════════════════════

    DIVISION_BY_ZERO = ErrorCode(5000, ErrorPhase.RUNTIME, "division by zero")
    NEGATIVE_EXPONENT = ErrorCode(5001, ErrorPhase.RUNTIME, "negative exponent")
    ARITHMETIC_OVERFLOW = ErrorCode(5002, ErrorPhase.RUNTIME, "arithmetic overflow")
    INDEX_OUT_OF_BOUNDS = ErrorCode(5003, ErrorPhase.RUNTIME, "index out of bounds")
    UNKNOWN_IDENTIFIER = ErrorCode(5004, ErrorPhase.RUNTIME, "unknown identifier")

    # ═══════════════════════════════════════════════════════════════════════
    # ANALYSIS ERRORS (7000-7999)
    # ═══════════════════════════════════════════════════════════════════════

    INVARIANT_VIOLATION = ErrorCode(7000, ErrorPhase.ANALYSIS, "invariant violation")
    NONDETERMINISM = ErrorCode(7001, ErrorPhase.ANALYSIS, "nondeterministic step")
    INCOMPLETE_ASSIGNMENT = ErrorCode(7002, ErrorPhase.ANALYSIS, "incomplete assignment")
    MALFORMED_GRAPH = ErrorCode(7003, ErrorPhase.ANALYSIS, "malformed program graph")

    # ═══════════════════════════════════════════════════════════════════════
    # MARSHALLING ERRORS (8000-8999)
    # ═══════════════════════════════════════════════════════════════════════

    MALFORMED_INPUT = ErrorCode(8000, ErrorPhase.MARSHAL, "malformed input")


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION BASE
# ═══════════════════════════════════════════════════════════════════════════════

class GclError(Exception):
    """
    Base exception for all GCL oracle errors.

    Carries a structured :class:`ErrorCode` and optional free-form detail
    that is preserved in :meth:`to_dict`.
    """

    default_code: ErrorCode = ErrorCodes.INVARIANT_VIOLATION

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        *,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail = dict(detail or {})

    @property
    def phase(self) -> ErrorPhase:
        return self.code.phase

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation."""
        out: Dict[str, Any] = {
            "code": self.code.code,
            "phase": self.phase.value,
            "message": self.message,
        }
        if self.detail:
            out["detail"] = self.detail
        return out

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


# ═══════════════════════════════════════════════════════════════════════════════
# COMPILE ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class CompileError(GclError):
    """Malformed AST; compilation is aborted."""

    default_code = ErrorCodes.UNSUPPORTED_NODE


class UnboundIdentifierError(CompileError):
    default_code = ErrorCodes.UNBOUND_IDENTIFIER

    def __init__(self, name: str, kind: str = "variable") -> None:
        super().__init__(
            f"{kind} '{name}' is not declared",
            detail={"name": name, "kind": kind},
        )
        self.name = name
        self.kind = kind


class ArityMismatchError(CompileError):
    """A name is used as a scalar in one place and as an array in another."""

    default_code = ErrorCodes.ARITY_MISMATCH

    def __init__(self, name: str) -> None:
        super().__init__(
            f"'{name}' is used both as a variable and as an array",
            detail={"name": name},
        )
        self.name = name


class EmptyGuardError(CompileError):
    default_code = ErrorCodes.EMPTY_GUARDS

    def __init__(self, construct: str) -> None:
        super().__init__(
            f"'{construct}' requires at least one guarded command",
            detail={"construct": construct},
        )


# ═══════════════════════════════════════════════════════════════════════════════
# RUNTIME ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class GclRuntimeError(GclError):
    """Expression evaluation failed; disables the edge being evaluated."""

    default_code = ErrorCodes.DIVISION_BY_ZERO


class DivisionByZeroError(GclRuntimeError):
    default_code = ErrorCodes.DIVISION_BY_ZERO

    def __init__(self) -> None:
        super().__init__("division by zero")


class NegativeExponentError(GclRuntimeError):
    default_code = ErrorCodes.NEGATIVE_EXPONENT

    def __init__(self, exponent: int) -> None:
        super().__init__(
            f"negative exponent {exponent}", detail={"exponent": exponent}
        )


class ArithmeticOverflowError(GclRuntimeError):
    default_code = ErrorCodes.ARITHMETIC_OVERFLOW

    def __init__(self, operation: str) -> None:
        super().__init__(
            f"an arithmetic operation overflowed: {operation}",
            detail={"operation": operation},
        )


class IndexOutOfBoundsError(GclRuntimeError):
    default_code = ErrorCodes.INDEX_OUT_OF_BOUNDS

    def __init__(self, array: str, index: int) -> None:
        super().__init__(
            f"index {index} in '{array}' is out-of-bounds",
            detail={"array": array, "index": index},
        )


class UnknownIdentifierError(GclRuntimeError):
    default_code = ErrorCodes.UNKNOWN_IDENTIFIER

    def __init__(self, name: str, kind: str = "variable") -> None:
        super().__init__(
            f"{kind} '{name}' not found in memory",
            detail={"name": name, "kind": kind},
        )


# ═══════════════════════════════════════════════════════════════════════════════
# ANALYSIS ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class AnalysisError(GclError):
    """
    An invariant of the graph or of the analysis input does not hold.

    Usually indicates a bug in compilation or an ill-formed graph handed
    over by an external producer; never silently ignored.
    """

    default_code = ErrorCodes.INVARIANT_VIOLATION


class NondeterminismError(AnalysisError):
    default_code = ErrorCodes.NONDETERMINISM

    def __init__(self, node: int, enabled: int) -> None:
        super().__init__(
            f"{enabled} edges enabled at node {node} in Deterministic mode",
            detail={"node": node, "enabled": enabled},
        )
        self.node = node
        self.enabled = enabled


class IncompleteAssignmentError(AnalysisError):
    default_code = ErrorCodes.INCOMPLETE_ASSIGNMENT

    def __init__(self, missing: Any) -> None:
        names = sorted(missing)
        super().__init__(
            f"no abstract value for {', '.join(names)}",
            detail={"missing": names},
        )
        self.missing = names


# ═══════════════════════════════════════════════════════════════════════════════
# MARSHALLING ERRORS
# ═══════════════════════════════════════════════════════════════════════════════

class MarshalError(GclError):
    default_code = ErrorCodes.MALFORMED_INPUT


__all__ = [
    "ErrorPhase",
    "ErrorCode",
    "ErrorCodes",
    "GclError",
    "CompileError",
    "UnboundIdentifierError",
    "ArityMismatchError",
    "EmptyGuardError",
    "GclRuntimeError",
    "DivisionByZeroError",
    "NegativeExponentError",
    "ArithmeticOverflowError",
    "IndexOutOfBoundsError",
    "UnknownIdentifierError",
    "AnalysisError",
    "NondeterminismError",
    "IncompleteAssignmentError",
    "MarshalError",
]
