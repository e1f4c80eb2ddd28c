"""gcl_oracle — reference analyses for Guarded Commands (GCL) programs.

The package compiles a GCL abstract syntax tree into a program graph and
runs every analysis on that one model.

Submodules
----------
ast_nodes
    Immutable AST: arithmetic and boolean expressions, statements,
    guarded commands.
program_graph
    ``ProgramGraph``: nodes, action-labelled edges, join points,
    post-dominators and DOT output.
compiler
    AST → program graph in Deterministic or NonDeterministic mode.
interpreter
    Concrete execution: single runs and exhaustive exploration with
    ``Terminated`` / ``Stuck`` / ``Timeout`` outcomes.
dataflow_engine
    Generic worklist fixpoint over program graphs.
sign_analysis
    Sign abstract interpretation.
security_analysis
    Explicit and implicit information flows checked against a
    security lattice.
trace_equivalence
    Behavioural comparison of two graphs with unrelated node ids, and
    validation of reported traces.
concurrency
    Parallel composition of program graphs with interleaving steps.
model_checking
    Explicit-state exploration reporting stuck states.
serialization
    JSON documents exchanged at the process boundary.
errors
    Exception hierarchy with ``GCL-XXXX`` error codes.

Usage
-----
Command-line::

    gcl-oracle sign program.json --input signs.json
    python -m gcl_oracle --help

Programmatic::

    from gcl_oracle import compile_program, SignAnalysis, SignAssignment, Sign
    from gcl_oracle.ast_nodes import Assign, Num

    pg = compile_program(Assign("x", Num(1)))
    result = SignAnalysis().run(pg, SignAssignment.of({"x": Sign.ZERO}))
"""

from __future__ import annotations

import logging

__version__: str = "0.1.0"

from gcl_oracle.compiler import check_declarations, compile_program  # noqa: E402
from gcl_oracle.concurrency import ParallelProgramGraph  # noqa: E402
from gcl_oracle.config import AnalysisConfig  # noqa: E402
from gcl_oracle.errors import (  # noqa: E402
    AnalysisError,
    CompileError,
    GclError,
    GclRuntimeError,
    MarshalError,
)
from gcl_oracle.interpreter import (  # noqa: E402
    ExecutionResult,
    ExplorationResult,
    Interpreter,
    Memory,
    Outcome,
)
from gcl_oracle.model_checking import CheckedModel, check_model  # noqa: E402
from gcl_oracle.program_graph import Determinism, Edge, ProgramGraph  # noqa: E402
from gcl_oracle.security_analysis import (  # noqa: E402
    Flow,
    SecurityAnalysis,
    SecurityAnalysisInput,
    SecurityAnalysisResult,
    SecurityLattice,
)
from gcl_oracle.sign_analysis import (  # noqa: E402
    Sign,
    SignAnalysis,
    SignAnalysisInput,
    SignAnalysisResult,
    SignAssignment,
)
from gcl_oracle.trace_equivalence import (  # noqa: E402
    EquivalenceResult,
    TraceEquivalenceChecker,
    validate_trace,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__: list[str] = [
    "__version__",
    "check_declarations",
    "compile_program",
    "AnalysisConfig",
    "GclError",
    "CompileError",
    "GclRuntimeError",
    "AnalysisError",
    "MarshalError",
    "Memory",
    "Interpreter",
    "Outcome",
    "ExecutionResult",
    "ExplorationResult",
    "Determinism",
    "Edge",
    "ProgramGraph",
    "Flow",
    "SecurityLattice",
    "SecurityAnalysis",
    "SecurityAnalysisInput",
    "SecurityAnalysisResult",
    "Sign",
    "SignAssignment",
    "SignAnalysis",
    "SignAnalysisInput",
    "SignAnalysisResult",
    "EquivalenceResult",
    "TraceEquivalenceChecker",
    "validate_trace",
    "ParallelProgramGraph",
    "CheckedModel",
    "check_model",
]
