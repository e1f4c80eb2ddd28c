"""
gcl_oracle/reporter.py
══════════════════════

Human-readable rendering of analysis results.

Output
──────
  • Terminal : coloured rendering when the stream is a TTY
  • Plain    : the same text without escape codes otherwise

Usage
─────
    rep = Reporter(sys.stdout)
    rep.security(result)
    rep.finish()
"""

from __future__ import annotations

import sys
from typing import Any, List, Optional, TextIO

from termcolor import colored

from gcl_oracle.interpreter import ExecutionResult, ExplorationResult, Outcome
from gcl_oracle.model_checking import CheckedModel
from gcl_oracle.program_graph import ProgramGraph
from gcl_oracle.security_analysis import SecurityAnalysisResult
from gcl_oracle.sign_analysis import SignAnalysisResult
from gcl_oracle.trace_equivalence import EquivalenceResult, TraceValidation

_OUTCOME_COLOURS = {
    Outcome.TERMINATED: "green",
    Outcome.STUCK: "red",
    Outcome.TIMEOUT: "yellow",
}


class Reporter:
    """Write result summaries to *stream*.

    ``colour=None`` enables colour only when *stream* is a terminal.
    """

    def __init__(self, stream: TextIO = sys.stdout, colour: Optional[bool] = None) -> None:
        self._stream = stream
        self.colour = colour if colour is not None else hasattr(stream, "isatty") and stream.isatty()
        self.problems = 0

    # ── styling ──────────────────────────────────────────────────────

    def _c(self, text: str, color: Optional[str] = None, attrs: Optional[List[str]] = None) -> str:
        if not self.colour:
            return text
        return colored(text, color, attrs=attrs)

    def _header(self, title: str) -> str:
        return self._c(title, "white", attrs=["bold"])

    def _outcome(self, outcome: Optional[Outcome]) -> str:
        if outcome is None:
            return self._c("—", "red", attrs=["bold"])
        return self._c(outcome.value, _OUTCOME_COLOURS[outcome], attrs=["bold"])

    def _write(self, lines: List[str]) -> None:
        self._stream.write("\n".join(lines) + "\n")
        self._stream.flush()

    # ── program graph ────────────────────────────────────────────────

    def graph(self, pg: ProgramGraph) -> None:
        lines = [self._header(f"program graph: {len(pg)} nodes, {len(pg.edges)} edges")]
        for e in pg.edges:
            arrow = self._c("→", "blue", attrs=["bold"])
            lines.append(
                f"  {pg.node_name(e.source):>4} {arrow} {pg.node_name(e.target):<4}  {e.action}"
            )
        self._write(lines)

    # ── interpreter ──────────────────────────────────────────────────

    def execution(self, result: ExecutionResult, pg: ProgramGraph) -> None:
        lines = [f"{self._header('run')}: {self._outcome(result.outcome)} "
                 f"after {result.steps} step(s) at {pg.node_name(result.node)}"]
        for step in result.trace:
            lines.append(
                f"  {pg.node_name(step.node):>4} ─[{step.action}]→ "
                f"{pg.node_name(step.target):<4} {self._c(str(step.memory), attrs=['dark'])}"
            )
        lines.append(f"  final memory: {result.memory}")
        if result.error is not None:
            lines.append(f"  = {self._c('error', 'red', attrs=['bold'])}: {result.error}")
        if result.outcome is Outcome.STUCK:
            self.problems += 1
        self._write(lines)

    def exploration(self, result: ExplorationResult, pg: ProgramGraph) -> None:
        lines = [f"{self._header('exploration')}: {result.summary()}"]
        for run in result.runs:
            lines.append(
                f"  {self._outcome(run.outcome)} at {pg.node_name(run.node)} "
                f"after {run.steps} step(s): {run.memory}"
            )
        self._write(lines)

    # ── analyses ─────────────────────────────────────────────────────

    def signs(self, result: SignAnalysisResult, pg: Optional[ProgramGraph] = None) -> None:
        graph = pg or result.graph
        lines = [f"{self._header('sign analysis')}: {self._outcome(result.outcome)} "
                 f"after {result.iterations} iteration(s)"]
        for node in sorted(result.facts):
            name = graph.node_name(node) if graph is not None else str(node)
            facts = result.at(node)
            if not facts:
                lines.append(f"  {name:>4}  {self._c('unreachable', attrs=['dark'])}")
                continue
            for idx, sa in enumerate(facts):
                label = name if idx == 0 else ""
                lines.append(f"  {label:>4}  {sa}")
        self._write(lines)

    def security(self, result: SecurityAnalysisResult) -> None:
        verdict = (
            self._c("secure", "green", attrs=["bold"]) if result.is_secure
            else self._c("insecure", "red", attrs=["bold"])
        )
        lines = [f"{self._header('security analysis')}: {verdict}"]
        lines.append("  actual:     " + (", ".join(str(f) for f in result.actual) or "none"))
        for flow in result.violations:
            lines.append(f"  = {self._c('violation', 'red', attrs=['bold'])}: {flow}")
        self.problems += len(result.violations)
        self._write(lines)

    def equivalence(self, result: EquivalenceResult) -> None:
        verdict = (
            self._c("equivalent", "green", attrs=["bold"]) if result.equivalent
            else self._c("not equivalent", "red", attrs=["bold"])
        )
        lines = [f"{self._header('trace equivalence')}: {verdict} "
                 f"({self._outcome(result.outcome)}, {result.steps} step(s), "
                 f"{result.pairings} pairing(s))"]
        if result.reason:
            lines.append(f"  = {self._c('note', 'cyan', attrs=['bold'])}: {result.reason}")
        if not result.equivalent:
            self.problems += 1
        self._write(lines)

    def validation(self, result: TraceValidation, pg: ProgramGraph) -> None:
        verdict = (
            self._c("valid", "green", attrs=["bold"]) if result.valid
            else self._c("invalid", "red", attrs=["bold"])
        )
        nodes = ", ".join(pg.node_name(n) for n in result.nodes)
        lines = [f"{self._header('trace')}: {verdict} after {result.steps} step(s) at {{{nodes}}}"]
        if result.reason:
            lines.append(f"  = {self._c('note', 'cyan', attrs=['bold'])}: {result.reason}")
        if not result.valid:
            self.problems += 1
        self._write(lines)

    def model(self, model: CheckedModel) -> None:
        ppg = model.graph
        verdict = (
            self._c("no stuck states", "green", attrs=["bold"]) if model.is_stuck_free
            else self._c(f"{len(model.stuck_states)} stuck state(s)", "red", attrs=["bold"])
        )
        lines = [f"{self._header('model check')}: {verdict} "
                 f"({model.num_states} states, {model.num_transitions} transitions)"]
        for config in model.stuck_states:
            lines.append(f"  = {self._c('stuck', 'red', attrs=['bold'])}: {config.describe(ppg)}")
            for step in model.path_to(config) or []:
                lines.append(f"      [{step.component}] {step.edge.action}")
        if model.truncated:
            lines.append(
                f"  = {self._c('note', 'cyan', attrs=['bold'])}: exploration truncated "
                f"at depth {model.depth_reached}"
            )
        self.problems += len(model.stuck_states)
        self._write(lines)

    # ── finalisation ─────────────────────────────────────────────────

    def finish(self) -> int:
        """Print the closing line and return the number of problems seen."""
        if self.problems:
            line = self._c(f"  ╰─ {self.problems} problem(s)", "red", attrs=["bold"])
        else:
            line = self._c("  ╰─ no problems", "green", attrs=["bold"])
        self._write([line])
        return self.problems

    def close(self) -> None:
        """Close the output stream unless it is one of the standard streams."""
        if self._stream not in (sys.stdout, sys.stderr):
            self._stream.close()

    def __enter__(self) -> "Reporter":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.finish()


__all__ = ["Reporter"]
