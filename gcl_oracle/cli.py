#!/usr/bin/env python3
"""gcl_oracle/cli.py — command-line entry point for the GCL analysis core.

Usage examples
--------------
    # Compile a program (AST JSON) and print its program graph
    gcl-oracle graph program.json --format dot

    # Run the concrete interpreter
    gcl-oracle interpreter program.json --input memory.json

    # Explore every non-deterministic branch
    gcl-oracle interpreter program.json --input memory.json --explore

    # Sign analysis
    gcl-oracle sign program.json --input signs.json --format json

    # Security analysis
    gcl-oracle security program.json --input lattice.json

    # Compare a graph produced elsewhere against the reference compilation
    gcl-oracle equivalence program.json --candidate graph.json --input memory.json

    # Check a reported execution trace
    gcl-oracle validate program.json --input memory.json --trace trace.json

    # Stuck states of two programs running in parallel
    gcl-oracle model-check left.json right.json --input memory.json

Exit codes
----------
    0   Success.
    1   The program or an input failed a compile-time or analysis check.
    2   Infrastructure failure (missing file, malformed JSON, etc.).
    3   Violation found: insecure flow, non-equivalent graphs, invalid trace,
        stuck states.

``python -m gcl_oracle`` runs the same entry point.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import Any, Optional, Sequence, TextIO

from gcl_oracle import __version__
from gcl_oracle.compiler import compile_program
from gcl_oracle.concurrency import ParallelProgramGraph
from gcl_oracle.config import AnalysisConfig
from gcl_oracle.errors import GclError, MarshalError
from gcl_oracle.interpreter import Interpreter
from gcl_oracle.model_checking import check_model
from gcl_oracle.program_graph import Determinism, ProgramGraph
from gcl_oracle.reporter import Reporter
from gcl_oracle.security_analysis import SecurityAnalysis
from gcl_oracle.serialization import (
    ast_from_json,
    checked_model_to_json,
    determinism_from_json,
    dump_json,
    equivalence_result_to_json,
    execution_result_to_json,
    exploration_result_to_json,
    graph_from_json,
    graph_to_json,
    interpreter_input_from_json,
    load_json,
    security_input_from_json,
    security_result_to_json,
    sign_input_from_json,
    sign_result_to_json,
    trace_from_json,
    trace_validation_to_json,
)
from gcl_oracle.sign_analysis import SignAnalysis
from gcl_oracle.trace_equivalence import TraceEquivalenceChecker, validate_trace

_log = logging.getLogger("gcl_oracle")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_VIOLATION: int = 3


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``gcl_oracle`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("gcl_oracle")
    # repeated main() calls in one process replace the previous handler
    for old in list(root.handlers):
        root.removeHandler(old)
    root.setLevel(level)
    root.addHandler(handler)


def _read_text(raw: str, label: str) -> str:
    """Contents of *raw*; ``"-"`` reads standard input."""
    if raw == "-":
        return sys.stdin.read()
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p.read_text(encoding="utf-8")


def _read_json(raw: str, label: str) -> Any:
    return load_json(_read_text(raw, label), label)


def _open_output(dest: Optional[str]) -> TextIO:
    """``None`` or ``"-"`` → ``sys.stdout``; otherwise open *dest* for writing."""
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _emit_json(doc: Any, dest: Optional[str]) -> None:
    out = _open_output(dest)
    try:
        out.write(dump_json(doc) + "\n")
    finally:
        if out is not sys.stdout:
            out.close()


def _reporter(dest: Optional[str], colour: Optional[bool]) -> Reporter:
    return Reporter(_open_output(dest), colour=colour)


def _config(args: argparse.Namespace) -> AnalysisConfig:
    return AnalysisConfig().with_overrides(
        max_steps=getattr(args, "max_steps", None),
        max_iterations=getattr(args, "max_iterations", None),
        max_paths=getattr(args, "max_paths", None),
        max_pairings=getattr(args, "max_pairings", None),
        max_states=getattr(args, "max_states", None),
    )


def _mode(args: argparse.Namespace, default: Determinism) -> Determinism:
    """``--determinism`` when given, else *default* (usually from the input)."""
    if getattr(args, "determinism", None):
        return determinism_from_json(args.determinism)
    return default


def _compile(args: argparse.Namespace, determinism: Determinism) -> ProgramGraph:
    program = ast_from_json(_read_json(args.program, "program"))
    return compile_program(program, determinism)


# ===========================================================================
# Sub-command implementations
# ===========================================================================

# ---------------------------------------------------------------------------
# graph
# ---------------------------------------------------------------------------

def cmd_graph(args: argparse.Namespace) -> int:
    """Compile a program and print its program graph."""
    pg = _compile(args, _mode(args, Determinism.DETERMINISTIC))
    if args.format == "json":
        _emit_json(graph_to_json(pg), args.output)
    elif args.format == "dot":
        out = _open_output(args.output)
        try:
            out.write(pg.to_dot(title=Path(args.program).name) + "\n")
        finally:
            if out is not sys.stdout:
                out.close()
    else:
        rep = _reporter(args.output, args.colour)
        rep.graph(pg)
        rep.close()
    return EXIT_OK


# ---------------------------------------------------------------------------
# interpreter
# ---------------------------------------------------------------------------

def cmd_interpreter(args: argparse.Namespace) -> int:
    """Run the concrete interpreter, or explore every branch with ``--explore``."""
    determinism, memory, bound = interpreter_input_from_json(_read_json(args.input, "input"))
    determinism = _mode(args, determinism)
    pg = _compile(args, determinism)
    interp = Interpreter(_config(args))
    max_steps = args.max_steps if args.max_steps is not None else bound

    if args.explore:
        explored = interp.explore(pg, memory, max_steps=max_steps)
        if args.format == "json":
            _emit_json(exploration_result_to_json(explored, pg), args.output)
        else:
            rep = _reporter(args.output, args.colour)
            rep.exploration(explored, pg)
            rep.close()
        return EXIT_OK

    result = interp.run(pg, memory, determinism, max_steps=max_steps)
    if args.format == "json":
        _emit_json(execution_result_to_json(result, pg), args.output)
    else:
        rep = _reporter(args.output, args.colour)
        rep.execution(result, pg)
        rep.close()
    return EXIT_OK


# ---------------------------------------------------------------------------
# sign
# ---------------------------------------------------------------------------

def cmd_sign(args: argparse.Namespace) -> int:
    """Sign analysis of a program from an initial sign assignment."""
    analysis_input = sign_input_from_json(_read_json(args.input, "input"))
    pg = _compile(args, _mode(args, analysis_input.determinism))
    result = SignAnalysis(_config(args)).run(pg, analysis_input.assignment)
    if args.format == "json":
        _emit_json(sign_result_to_json(result, pg), args.output)
    else:
        rep = _reporter(args.output, args.colour)
        rep.signs(result, pg)
        rep.close()
    return EXIT_OK


# ---------------------------------------------------------------------------
# security
# ---------------------------------------------------------------------------

def cmd_security(args: argparse.Namespace) -> int:
    """Information-flow check against a security lattice."""
    analysis_input = security_input_from_json(_read_json(args.input, "input"))
    pg = _compile(args, _mode(args, Determinism.DETERMINISTIC))
    result = SecurityAnalysis(_config(args)).run(pg, analysis_input)
    if args.format == "json":
        _emit_json(security_result_to_json(result), args.output)
    else:
        rep = _reporter(args.output, args.colour)
        rep.security(result)
        rep.finish()
        rep.close()
    return EXIT_OK if result.is_secure else EXIT_VIOLATION


# ---------------------------------------------------------------------------
# equivalence
# ---------------------------------------------------------------------------

def cmd_equivalence(args: argparse.Namespace) -> int:
    """Compare a candidate graph with the compiled reference graph."""
    determinism, memory, bound = interpreter_input_from_json(_read_json(args.input, "input"))
    determinism = _mode(args, determinism)
    reference = _compile(args, determinism)
    candidate = graph_from_json(_read_json(args.candidate, "candidate graph"))
    max_steps = args.max_steps if args.max_steps is not None else bound
    result = TraceEquivalenceChecker(_config(args)).check(
        reference, candidate, memory, max_steps=max_steps
    )
    if args.format == "json":
        _emit_json(equivalence_result_to_json(result), args.output)
    else:
        rep = _reporter(args.output, args.colour)
        rep.equivalence(result)
        rep.finish()
        rep.close()
    return EXIT_OK if result.equivalent else EXIT_VIOLATION


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

def cmd_validate(args: argparse.Namespace) -> int:
    """Check a reported sequence of memories against the program graph."""
    determinism, memory, _ = interpreter_input_from_json(_read_json(args.input, "input"))
    determinism = _mode(args, determinism)
    pg = _compile(args, determinism)
    trace = trace_from_json(_read_json(args.trace, "trace"))
    result = validate_trace(pg, memory, trace)
    if args.format == "json":
        _emit_json(trace_validation_to_json(result, pg), args.output)
    else:
        rep = _reporter(args.output, args.colour)
        rep.validation(result, pg)
        rep.close()
    return EXIT_OK if result.valid else EXIT_VIOLATION


# ---------------------------------------------------------------------------
# model-check
# ---------------------------------------------------------------------------

def cmd_model_check(args: argparse.Namespace) -> int:
    """Explore the transition system of one program or a parallel composition."""
    determinism, memory, bound = interpreter_input_from_json(_read_json(args.input, "input"))
    determinism = _mode(args, determinism)
    components = [ast_from_json(_read_json(raw, "program")) for raw in args.programs]
    ppg = ParallelProgramGraph.compile(components, determinism)
    max_depth = args.max_steps if args.max_steps is not None else bound
    model = check_model(ppg, memory, max_depth=max_depth, config=_config(args))
    if args.format == "json":
        _emit_json(checked_model_to_json(model), args.output)
    else:
        rep = _reporter(args.output, args.colour)
        rep.model(model)
        rep.finish()
        rep.close()
    return EXIT_OK if model.is_stuck_free else EXIT_VIOLATION


# ===========================================================================
# Argument parser construction
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    # --- Top-level parser --------------------------------------------------
    parser = argparse.ArgumentParser(
        prog="gcl-oracle",
        description=(
            "Reference analyses for Guarded Commands programs.\n\n"
            "Compiles AST JSON into program graphs and runs the concrete\n"
            "interpreter, sign analysis, security analysis and trace\n"
            "equivalence checks on them."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              gcl-oracle graph program.json --format dot
              gcl-oracle sign program.json --input signs.json
              gcl-oracle security program.json --input lattice.json
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    # Shared argument groups (reusable) ------------------------------------

    def _add_program_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "program",
            metavar="PROGRAM",
            help='Program as AST JSON ("-" for stdin).',
        )

    def _add_input_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-i", "--input",
            metavar="FILE",
            required=True,
            help="Analysis input document (JSON).",
        )

    def _add_output_args(p: argparse.ArgumentParser, formats: Sequence[str] = ("text", "json")) -> None:
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )
        p.add_argument(
            "-f", "--format",
            choices=list(formats),
            default="text",
            help="Output format (default: text).",
        )
        p.add_argument(
            "--colour", "--color",
            dest="colour",
            action=argparse.BooleanOptionalAction,
            default=None,
            help="Force coloured text output on or off (default: auto).",
        )

    def _add_determinism_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-d", "--determinism",
            choices=[d.value for d in Determinism],
            default=None,
            help="Compilation mode (default: from the input, else Deterministic).",
        )

    def _add_step_args(p: argparse.ArgumentParser) -> argparse._ArgumentGroup:
        g = p.add_argument_group("bounds")
        g.add_argument(
            "--max-steps",
            type=int,
            default=None,
            metavar="N",
            help="Maximum execution steps (default: trace_count from the input, else 10000).",
        )
        return g

    # --- graph -------------------------------------------------------------
    p_graph = subparsers.add_parser(
        "graph",
        help="Compile a program and print its program graph.",
    )
    _add_program_args(p_graph)
    _add_determinism_arg(p_graph)
    _add_output_args(p_graph, ("text", "json", "dot"))
    p_graph.set_defaults(func=cmd_graph)

    # --- interpreter -------------------------------------------------------
    p_interp = subparsers.add_parser(
        "interpreter",
        aliases=["run"],
        help="Execute a program on an initial memory.",
    )
    _add_program_args(p_interp)
    _add_input_args(p_interp)
    _add_determinism_arg(p_interp)
    p_interp.add_argument(
        "--explore",
        action="store_true",
        help="Explore every enabled edge instead of a single run.",
    )
    _add_step_args(p_interp).add_argument(
        "--max-paths",
        type=int,
        default=None,
        metavar="N",
        help="Maximum distinct results kept by --explore.",
    )
    _add_output_args(p_interp)
    p_interp.set_defaults(func=cmd_interpreter)

    # --- sign --------------------------------------------------------------
    p_sign = subparsers.add_parser(
        "sign",
        help="Run the sign analysis.",
    )
    _add_program_args(p_sign)
    _add_input_args(p_sign)
    _add_determinism_arg(p_sign)
    p_sign.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        metavar="N",
        help="Maximum worklist iterations (default: 100000).",
    )
    _add_output_args(p_sign)
    p_sign.set_defaults(func=cmd_sign)

    # --- security ----------------------------------------------------------
    p_sec = subparsers.add_parser(
        "security",
        help="Run the security (information-flow) analysis.",
    )
    _add_program_args(p_sec)
    _add_input_args(p_sec)
    _add_determinism_arg(p_sec)
    _add_output_args(p_sec)
    p_sec.set_defaults(func=cmd_security)

    # --- equivalence -------------------------------------------------------
    p_eq = subparsers.add_parser(
        "equivalence",
        help="Compare a candidate program graph with the reference compilation.",
    )
    _add_program_args(p_eq)
    _add_input_args(p_eq)
    _add_determinism_arg(p_eq)
    p_eq.add_argument(
        "-c", "--candidate",
        metavar="FILE",
        required=True,
        help="Candidate program graph (JSON).",
    )
    _add_step_args(p_eq).add_argument(
        "--max-pairings",
        type=int,
        default=None,
        metavar="N",
        help="Maximum distinct pairings visited (default: 100000).",
    )
    _add_output_args(p_eq)
    p_eq.set_defaults(func=cmd_equivalence)

    # --- validate ----------------------------------------------------------
    p_val = subparsers.add_parser(
        "validate",
        help="Check a reported execution trace against the program.",
    )
    _add_program_args(p_val)
    _add_input_args(p_val)
    _add_determinism_arg(p_val)
    p_val.add_argument(
        "-t", "--trace",
        metavar="FILE",
        required=True,
        help="Trace as a JSON list of memories.",
    )
    _add_output_args(p_val)
    p_val.set_defaults(func=cmd_validate)

    # --- model-check -------------------------------------------------------
    p_mc = subparsers.add_parser(
        "model-check",
        help="Explore every reachable configuration and report stuck states.",
    )
    p_mc.add_argument(
        "programs",
        metavar="PROGRAM",
        nargs="+",
        help="Program as AST JSON; several programs run in parallel (par ... rap).",
    )
    _add_input_args(p_mc)
    _add_determinism_arg(p_mc)
    _add_step_args(p_mc).add_argument(
        "--max-states",
        type=int,
        default=None,
        metavar="N",
        help="Maximum configurations kept (default: unbounded).",
    )
    _add_output_args(p_mc)
    p_mc.set_defaults(func=cmd_model_check)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI.

    Parameters
    ----------
    argv:
        Command-line arguments.  ``None`` → ``sys.argv[1:]``.

    Returns
    -------
    int
        Exit code (see module docstring for semantics).
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except MarshalError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    except GclError as exc:
        _log.error("%s", exc)
        return EXIT_ERROR
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except OSError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
