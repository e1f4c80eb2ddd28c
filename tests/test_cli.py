# tests/test_cli.py
"""
End-to-end tests for the ``gcl-oracle`` command line.
"""

import json

import pytest

from gcl_oracle.cli import EXIT_ERROR, EXIT_INFRA, EXIT_OK, EXIT_VIOLATION, main
from gcl_oracle.compiler import compile_program
from gcl_oracle.serialization import ast_to_json, graph_to_json
from tests.conftest import (
    assign,
    at,
    both_true,
    branch_on_x,
    eq,
    factorial,
    if_,
    swap_guard_targets,
)


def write_json(path, doc):
    path.write_text(json.dumps(doc), encoding="utf-8")
    return str(path)


@pytest.fixture
def files(tmp_path):
    """Write named JSON documents into *tmp_path* and return their paths."""
    def _write(**docs):
        return {name: write_json(tmp_path / f"{name}.json", doc) for name, doc in docs.items()}
    return _write


class TestGraph:

    def test_text(self, files, capsys):
        f = files(program=ast_to_json(branch_on_x()))
        assert main(["graph", f["program"]]) == EXIT_OK
        out = capsys.readouterr().out
        assert "program graph: 4 nodes, 4 edges" in out
        assert "y := 1" in out

    def test_json(self, files, capsys):
        f = files(program=ast_to_json(assign("x", 1)))
        assert main(["graph", f["program"], "--format", "json"]) == EXIT_OK
        doc = json.loads(capsys.readouterr().out)
        assert doc["edges"][0]["label"] == "x := 1"

    def test_dot_to_file(self, files, tmp_path):
        f = files(program=ast_to_json(assign("x", 1)))
        dest = tmp_path / "out" / "graph.dot"
        assert main(["graph", f["program"], "-f", "dot", "-o", str(dest)]) == EXIT_OK
        assert dest.read_text(encoding="utf-8").startswith("digraph G {")

    def test_nondeterministic_mode(self, files, capsys):
        f = files(program=ast_to_json(branch_on_x()))
        main(["graph", f["program"], "-d", "NonDeterministic", "-f", "json"])
        doc = json.loads(capsys.readouterr().out)
        assert doc["determinism"] == "NonDeterministic"
        assert doc["edges"][0]["label"] == "x > 0"


class TestInterpreter:

    def test_run(self, files, capsys):
        f = files(
            program=ast_to_json(factorial()),
            input={"determinism": "Deterministic", "assignment": {"variables": {"x": 4, "y": 0}}},
        )
        assert main(["interpreter", f["program"], "-i", f["input"], "-f", "json"]) == EXIT_OK
        doc = json.loads(capsys.readouterr().out)
        assert doc["outcome"] == "Terminated"
        assert doc["memory"]["variables"] == {"x": 0, "y": 24}

    def test_trace_count_bounds_the_run(self, files, capsys):
        f = files(
            program=ast_to_json(factorial()),
            input={"assignment": {"variables": {"x": 4, "y": 0}}, "trace_count": 2},
        )
        main(["run", f["program"], "-i", f["input"], "-f", "json"])
        doc = json.loads(capsys.readouterr().out)
        assert doc["outcome"] == "Timeout"
        assert doc["steps"] == 2

    def test_max_steps_overrides_input(self, files, capsys):
        f = files(
            program=ast_to_json(factorial()),
            input={"assignment": {"variables": {"x": 4, "y": 0}}, "trace_count": 2},
        )
        main(["run", f["program"], "-i", f["input"], "--max-steps", "1", "-f", "json"])
        assert json.loads(capsys.readouterr().out)["steps"] == 1

    def test_explore(self, files, capsys):
        f = files(
            program=ast_to_json(both_true()),
            input={"determinism": "NonDeterministic", "assignment": {"variables": {"x": 0}}},
        )
        assert main(["interpreter", f["program"], "-i", f["input"], "--explore", "-f", "json"]) == EXIT_OK
        doc = json.loads(capsys.readouterr().out)
        assert doc["outcomes"] == ["Terminated"]
        assert len(doc["runs"]) == 2

    def test_text_report(self, files, capsys):
        f = files(
            program=ast_to_json(assign("x", 1)),
            input={"assignment": {"variables": {"x": 0}}},
        )
        main(["interpreter", f["program"], "-i", f["input"]])
        out = capsys.readouterr().out
        assert "run: Terminated after 1 step(s) at q◀" in out
        assert "final memory: {x = 1}" in out

    def test_determinism_flag_overrides_input(self, files, capsys):
        f = files(
            program=ast_to_json(both_true()),
            input={"determinism": "Deterministic", "assignment": {"variables": {"x": 0}}},
        )
        code = main(["run", f["program"], "-i", f["input"], "-d", "NonDeterministic", "-f", "json"])
        assert code == EXIT_OK
        doc = json.loads(capsys.readouterr().out)
        # the first enabled guard is taken
        assert doc["memory"]["variables"] == {"x": 1}
        assert doc["trace"][0]["action"] == "true"


class TestSign:

    def test_json(self, files, capsys):
        f = files(
            program=ast_to_json(assign("y", "x")),
            input={"assignment": {"variables": {"x": "Negative", "y": "Zero"}}},
        )
        assert main(["sign", f["program"], "-i", f["input"], "-f", "json"]) == EXIT_OK
        doc = json.loads(capsys.readouterr().out)
        assert doc["q◀"] == [{"variables": {"x": "Negative", "y": "Negative"}, "arrays": {}}]

    def test_incomplete_input(self, files):
        f = files(
            program=ast_to_json(assign("y", "x")),
            input={"assignment": {"variables": {"y": "Zero"}}},
        )
        assert main(["sign", f["program"], "-i", f["input"]]) == EXIT_ERROR


class TestSecurity:

    def test_insecure(self, files, capsys):
        f = files(
            program=ast_to_json(branch_on_x()),
            input={"lattice": [["low", "high"]], "classification": {"x": "high", "y": "low"}},
        )
        assert main(["security", f["program"], "-i", f["input"]]) == EXIT_VIOLATION
        out = capsys.readouterr().out
        assert "insecure" in out
        assert "violation: x → y" in out
        assert "1 problem(s)" in out

    def test_secure_json(self, files, capsys):
        f = files(
            program=ast_to_json(branch_on_x()),
            input={"lattice": [["low", "high"]], "classification": {"x": "low", "y": "high"}},
        )
        assert main(["security", f["program"], "-i", f["input"], "-f", "json"]) == EXIT_OK
        assert json.loads(capsys.readouterr().out)["violations"] == []


class TestEquivalence:

    def test_equivalent(self, files, capsys):
        pg = compile_program(branch_on_x())
        f = files(
            program=ast_to_json(branch_on_x()),
            candidate=graph_to_json(pg.relabel({n: n + 10 for n in pg.nodes})),
            input={"assignment": {"variables": {"x": 1, "y": 0}}},
        )
        code = main(["equivalence", f["program"], "-i", f["input"], "-c", f["candidate"]])
        assert code == EXIT_OK
        assert "equivalent" in capsys.readouterr().out

    def test_not_equivalent(self, files, capsys):
        pg = compile_program(branch_on_x())
        f = files(
            program=ast_to_json(branch_on_x()),
            candidate=graph_to_json(swap_guard_targets(pg, pg.start)),
            input={"assignment": {"variables": {"x": 1, "y": 0}}},
        )
        code = main(["equivalence", f["program"], "-i", f["input"], "-c", f["candidate"], "-f", "json"])
        assert code == EXIT_VIOLATION
        doc = json.loads(capsys.readouterr().out)
        assert doc["equivalent"] is False
        assert doc["outcome"] is None

    def test_malformed_candidate(self, files):
        f = files(
            program=ast_to_json(assign("x", 1)),
            candidate={"start": 0, "end": 9, "edges": [
                {"source": 0, "target": 2,
                 "action": {"type": "Assign", "var": "x", "expr": 1}},
            ]},
            input={"assignment": {"variables": {"x": 0}}},
        )
        code = main(["equivalence", f["program"], "-i", f["input"], "-c", f["candidate"]])
        assert code == EXIT_ERROR


class TestValidate:

    def test_valid(self, files, capsys):
        f = files(
            program=ast_to_json(assign("x", 1)),
            input={"assignment": {"variables": {"x": 0}}},
            trace=[{"variables": {"x": 1}}],
        )
        assert main(["validate", f["program"], "-i", f["input"], "-t", f["trace"]]) == EXIT_OK
        assert "valid" in capsys.readouterr().out

    def test_invalid(self, files, capsys):
        f = files(
            program=ast_to_json(assign("x", 1)),
            input={"assignment": {"variables": {"x": 0}}},
            trace=[{"variables": {"x": 5}}],
        )
        assert main(["validate", f["program"], "-i", f["input"], "-t", f["trace"], "-f", "json"]) == EXIT_VIOLATION
        doc = json.loads(capsys.readouterr().out)
        assert doc["valid"] is False
        assert doc["nodes"] == ["q▷"]


class TestFailures:

    def test_no_command(self, capsys):
        assert main([]) == EXIT_INFRA

    def test_missing_file(self, tmp_path):
        assert main(["graph", str(tmp_path / "absent.json")]) == EXIT_INFRA

    def test_malformed_json(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{", encoding="utf-8")
        assert main(["graph", str(bad)]) == EXIT_INFRA

    def test_malformed_ast(self, files):
        f = files(program={"type": "Loop"})
        assert main(["graph", f["program"]]) == EXIT_INFRA

    def test_compile_error(self, files):
        f = files(program=ast_to_json(assign("x", at("x", 0))))
        assert main(["graph", f["program"]]) == EXIT_ERROR

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as info:
            main(["--version"])
        assert info.value.code == 0
        assert "gcl-oracle" in capsys.readouterr().out


class TestModelCheck:

    def test_parallel_deadlock(self, files, capsys):
        f = files(
            left=ast_to_json(assign("x", 1)),
            right=ast_to_json(if_((eq("x", 0), assign("y", 1)))),
            input={"assignment": {"variables": {"x": 0, "y": 0}}},
        )
        code = main(["model-check", f["left"], f["right"], "-i", f["input"], "-f", "json"])
        assert code == EXIT_VIOLATION
        doc = json.loads(capsys.readouterr().out)
        assert doc["stuck_free"] is False
        (stuck,) = doc["stuck_states"]
        assert stuck["nodes"] == ["q◀", "q▷"]
        assert stuck["path"] == [{"component": 0, "action": "x := 1"}]
        assert doc["states"] == 6

    def test_single_program(self, files, capsys):
        f = files(
            program=ast_to_json(factorial()),
            input={"assignment": {"variables": {"x": 3, "y": 0}}},
        )
        assert main(["model-check", f["program"], "-i", f["input"]]) == EXIT_OK
        out = capsys.readouterr().out
        assert "model check: no stuck states" in out
        assert "no problems" in out

    def test_depth_from_input(self, files, capsys):
        f = files(
            program=ast_to_json(factorial()),
            input={"assignment": {"variables": {"x": 3, "y": 0}}, "trace_count": 2},
        )
        main(["model-check", f["program"], "-i", f["input"], "-f", "json"])
        doc = json.loads(capsys.readouterr().out)
        assert doc["truncated"] is True
        assert doc["depth_reached"] == 2
