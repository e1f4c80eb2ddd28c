# tests/test_reporter.py
"""
Tests for the plain-text result rendering.
"""

import io
import sys

from gcl_oracle.compiler import compile_program
from gcl_oracle.concurrency import ParallelProgramGraph
from gcl_oracle.interpreter import Interpreter
from gcl_oracle.model_checking import check_model
from gcl_oracle.reporter import Reporter
from gcl_oracle.security_analysis import SecurityAnalysis, SecurityAnalysisInput, SecurityLattice
from gcl_oracle.sign_analysis import Sign, SignAnalysis, SignAssignment
from tests.conftest import assign, branch_on_x, div, eq, gt, if_, memory, prog


def plain():
    stream = io.StringIO()
    return Reporter(stream, colour=False), stream


class TestReporter:

    def test_no_colour_on_plain_streams(self):
        assert Reporter(io.StringIO()).colour is False

    def test_stuck_run_is_a_problem(self):
        rep, stream = plain()
        pg = compile_program(assign("x", div(1, "y")))
        rep.execution(Interpreter().run(pg, memory(x=0, y=0)), pg)
        assert rep.finish() == 1
        text = stream.getvalue()
        assert "run: Stuck after 0 step(s) at q▷" in text
        assert "error: [GCL-5000] division by zero" in text
        assert text.rstrip().endswith("╰─ 1 problem(s)")

    def test_unreachable_nodes(self):
        rep, stream = plain()
        pg = compile_program(prog(assign("x", 1), if_((gt("x", 0), assign("x", 2)), (gt(0, "x"), assign("x", 3)))))
        result = SignAnalysis().run(pg, SignAssignment.of({"x": Sign.ZERO}))
        rep.signs(result)
        text = stream.getvalue()
        assert "unreachable" in text
        assert "[x = +]" in text

    def test_security(self):
        rep, stream = plain()
        result = SecurityAnalysis().analyze(
            branch_on_x(),
            SecurityAnalysisInput(SecurityLattice.chain("low", "high"), {"x": "high", "y": "low"}),
        )
        with rep:
            rep.security(result)
        text = stream.getvalue()
        assert "security analysis: insecure" in text
        assert "actual:     x → y" in text
        assert "╰─ 1 problem(s)" in text

    def test_no_problems(self):
        rep, stream = plain()
        rep.finish()
        assert "no problems" in stream.getvalue()

    def test_close_leaves_stdout_open(self, capsys):
        rep = Reporter(sys.stdout, colour=False)
        rep.close()
        assert not sys.stdout.closed

    def test_stuck_states(self):
        rep, stream = plain()
        ppg = ParallelProgramGraph.compile([assign("x", 1), if_((eq("x", 0), assign("y", 1)))])
        rep.model(check_model(ppg, memory(x=0, y=0)))
        assert rep.finish() == 1
        text = stream.getvalue()
        assert "model check: 1 stuck state(s) (6 states, 6 transitions)" in text
        assert "stuck: (q◀, q▷) {x = 1, y = 0}" in text
        assert "[0] x := 1" in text
