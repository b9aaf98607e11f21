"""Tests for the topology scheduler."""

import threading

import pytest

from flowrun.core.exceptions import NodeExecutionError
from flowrun.core.scheduler import TopologyScheduler

from conftest import make_graph


@pytest.fixture
def scheduler():
    return TopologyScheduler()


def recording_callback(calls):
    """Callback that records (node_id, inputs) and outputs 'out-<id>'."""
    def execute(node, inputs):
        calls.append((node.id, dict(inputs)))
        return f"out-{node.id}"
    return execute


class TestTopologyScheduler:
    """Test cases for TopologyScheduler."""

    def test_linear_chain_runs_in_order(self, scheduler):
        calls = []
        graph = make_graph([("a", "start"), ("b", "debug"), ("c", "debug")], [("a", "b"), ("b", "c")])

        result = scheduler.run(graph, recording_callback(calls))

        assert result.completed
        assert result.processing_order == ["a", "b", "c"]
        assert calls == [
            ("a", {}),
            ("b", {"a": "out-a"}),
            ("c", {"b": "out-b"}),
        ]
        assert result.outputs == {"a": "out-a", "b": "out-b", "c": "out-c"}

    def test_diamond_runs_each_node_once_after_parents(self, scheduler):
        """Every node runs exactly once, after all of its parents."""
        calls = []
        graph = make_graph(
            [("a", "start"), ("b", "debug"), ("c", "debug"), ("d", "llm")],
            [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")]
        )

        result = scheduler.run(graph, recording_callback(calls))

        order = result.processing_order
        assert sorted(order) == ["a", "b", "c", "d"]
        assert order.index("a") < order.index("b") < order.index("d")
        assert order.index("c") < order.index("d")
        assert result.processed_count == result.total_nodes == 4
        assert dict(calls)["d"] == {"b": "out-b", "c": "out-c"}

    def test_frontier_is_fifo_in_node_order(self, scheduler):
        """Independent roots run in the order they appear in the graph."""
        calls = []
        graph = make_graph([("z", "start"), ("m", "start"), ("a", "start")])

        result = scheduler.run(graph, recording_callback(calls))

        assert result.processing_order == ["z", "m", "a"]

    def test_same_graph_same_order(self, scheduler):
        graph = make_graph(
            [("a", "start"), ("b", "debug"), ("c", "debug"), ("d", "debug"), ("e", "debug")],
            [("a", "c"), ("b", "c"), ("c", "d"), ("a", "e")]
        )

        first = scheduler.run(graph, recording_callback([]))
        second = scheduler.run(graph, recording_callback([]))

        assert first.processing_order == second.processing_order == ["a", "b", "e", "c", "d"]

    def test_cycle_leaves_nodes_unprocessed(self, scheduler):
        """Nodes on a cycle never reach in-degree zero and are never run."""
        calls = []
        graph = make_graph(
            [("a", "start"), ("b", "debug"), ("c", "debug")],
            [("a", "b"), ("b", "c"), ("c", "b")]
        )

        result = scheduler.run(graph, recording_callback(calls))

        assert [node_id for node_id, _ in calls] == ["a"]
        assert result.processed_count == 1
        assert result.total_nodes == 3
        assert result.structural_failure
        assert not result.completed
        assert result.failed_node_id is None

    def test_node_failure_stops_scheduling(self, scheduler):
        calls = []

        def execute(node, inputs):
            calls.append(node.id)
            if node.id == "b":
                raise NodeExecutionError("boom", node_id="b")
            return "ok"

        graph = make_graph([("a", "start"), ("b", "debug"), ("c", "debug")], [("a", "b"), ("b", "c")])

        result = scheduler.run(graph, execute)

        assert calls == ["a", "b"]
        assert result.failed_node_id == "b"
        assert result.error == "boom"
        assert not result.structural_failure
        assert "b" not in result.outputs

    def test_unexpected_exception_propagates(self, scheduler):
        """Only node failures are absorbed; anything else reaches the caller."""
        def execute(node, inputs):
            raise RuntimeError("bug")

        with pytest.raises(RuntimeError):
            scheduler.run(make_graph([("a", "start")]), execute)

    def test_should_stop_interrupts_before_next_node(self, scheduler):
        calls = []
        graph = make_graph([("a", "start"), ("b", "debug"), ("c", "debug")], [("a", "b"), ("b", "c")])

        result = scheduler.run(
            graph,
            recording_callback(calls),
            should_stop=lambda: len(calls) >= 2
        )

        assert [node_id for node_id, _ in calls] == ["a", "b"]
        assert result.interrupted
        assert not result.completed
        assert not result.structural_failure

    def test_empty_graph_completes(self, scheduler):
        result = scheduler.run(make_graph([]), recording_callback([]))

        assert result.completed
        assert result.processed_count == 0

    def test_concurrent_runs_keep_separate_outputs(self, scheduler):
        """Two passes over different graphs on different threads never mix outputs."""
        results = {}

        def run(tag):
            graph = make_graph([(f"{tag}1", "start"), (f"{tag}2", "debug")], [(f"{tag}1", f"{tag}2")],
                               graph_id=tag)
            results[tag] = scheduler.run(graph, lambda node, inputs: f"{tag}:{sorted(inputs)}")

        threads = [threading.Thread(target=run, args=(tag,)) for tag in ("x", "y")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert set(results["x"].outputs) == {"x1", "x2"}
        assert set(results["y"].outputs) == {"y1", "y2"}
        assert results["y"].outputs["y2"] == "y:['y1']"
