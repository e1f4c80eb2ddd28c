# tests/test_concurrency.py
"""
Tests for parallel program graphs and interleaved steps.
"""

import pytest

from gcl_oracle.compiler import compile_program
from gcl_oracle.concurrency import (
    ParallelConfiguration,
    ParallelProgramGraph,
    next_parallel_configurations,
)
from gcl_oracle.errors import AnalysisError
from tests.conftest import assign, at, assign_at, eq, if_, memory


def wait_for_x():
    """``if x = 1 -> y := 1 fi``"""
    return if_((eq("x", 1), assign("y", 1)))


class TestParallelProgramGraph:

    def test_start_and_end(self):
        ppg = ParallelProgramGraph.compile([assign("x", 1), wait_for_x()])
        assert ppg.start == (0, 0)
        assert ppg.end == (1, 2)
        assert ppg.is_final((1, 2))
        assert not ppg.is_final((1, 0))
        assert len(ppg) == 2

    def test_names_are_merged(self):
        ppg = ParallelProgramGraph.compile([assign("x", at("A", 0)), assign_at("B", 0, "y")])
        assert ppg.variables() == ["x", "y"]
        assert ppg.arrays() == ["A", "B"]

    def test_node_names(self):
        ppg = ParallelProgramGraph.compile([assign("x", 1), wait_for_x()])
        assert ppg.node_names((1, 1)) == ["q◀", "q1"]

    def test_needs_a_component(self):
        with pytest.raises(AnalysisError):
            ParallelProgramGraph([])

    def test_dot(self):
        text = ParallelProgramGraph.compile([assign("x", 1), assign("y", 2)]).to_dot()
        assert "subgraph cluster_0" in text
        assert "subgraph cluster_1" in text
        assert '"1_0" -> "1_1" [label="y := 2"];' in text


class TestInterleaving:

    def test_each_component_may_move(self):
        ppg = ParallelProgramGraph.compile([assign("x", 1), assign("y", 2)])
        config = ParallelConfiguration.of(ppg.start, memory(x=0, y=0))
        steps = next_parallel_configurations(ppg, config)
        assert [s.component for s in steps] == [0, 1]
        assert [s.target.nodes for s in steps] == [(1, 0), (0, 1)]
        assert steps[0].target.thaw().variables == {"x": 1, "y": 0}
        assert steps[1].target.thaw().variables == {"x": 0, "y": 2}

    def test_memory_is_shared(self):
        ppg = ParallelProgramGraph.compile([assign("x", 1), wait_for_x()])
        config = ParallelConfiguration.of(ppg.start, memory(x=0, y=0))
        (step,) = next_parallel_configurations(ppg, config)
        assert step.component == 0
        (after,) = next_parallel_configurations(ppg, step.target)
        assert after.component == 1
        assert after.target.nodes == (1, 1)

    def test_finished_components_stay_put(self):
        ppg = ParallelProgramGraph.compile([assign("x", 1), assign("y", 2)])
        config = ParallelConfiguration.of((1, 0), memory(x=1, y=0))
        steps = next_parallel_configurations(ppg, config)
        assert [s.component for s in steps] == [1]

    def test_configurations_are_hashable(self):
        a = ParallelConfiguration.of((0, 1), memory(x=1, y=2))
        b = ParallelConfiguration.of([0, 1], memory(y=2, x=1))
        assert a == b
        assert len({a, b}) == 1

    def test_single_component_matches_sequential_graph(self):
        pg = compile_program(assign("x", 1))
        ppg = ParallelProgramGraph([pg])
        (step,) = next_parallel_configurations(ppg, ParallelConfiguration.of(ppg.start, memory(x=0)))
        assert step.edge == pg.edges[0]
        assert step.target.nodes == (pg.end,)
