"""Topology scheduler: runs graph nodes in dependency order."""

from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from ..models.core import ScheduleResult, WorkflowGraph, WorkflowNode
from .exceptions import NodeExecutionError
from .logging import get_logger

logger = get_logger(__name__)

NodeCallback = Callable[[WorkflowNode, Dict[str, str]], str]
StopCheck = Callable[[], bool]


class TopologyScheduler:
    """Kahn-style scheduler over incoming-edge counts.

    Nodes are processed one at a time. The ready frontier is seeded in
    graph node order and drained FIFO, so a given graph always runs in the
    same order.
    """

    def run(
        self,
        graph: WorkflowGraph,
        execute_node: NodeCallback,
        should_stop: Optional[StopCheck] = None
    ) -> ScheduleResult:
        """
        Walk the graph, invoking the callback for each ready node.

        Args:
            graph: A validated graph snapshot
            execute_node: Called with a node and the outputs of its computed
                parents keyed by parent ID; returns the node's output or
                raises NodeExecutionError
            should_stop: Checked before each dequeue; a truthy result stops
                scheduling and marks the result as interrupted

        Returns:
            ScheduleResult describing outputs and how the pass ended
        """
        node_map: Dict[str, WorkflowNode] = {}
        in_degree: Dict[str, int] = {}
        for node in graph.nodes:
            node_map.setdefault(node.id, node)
            in_degree[node.id] = 0

        adjacency: Dict[str, List[str]] = {}
        parents: Dict[str, List[str]] = {}
        for edge in graph.edges:
            adjacency.setdefault(edge.source, []).append(edge.target)
            parents.setdefault(edge.target, []).append(edge.source)
            in_degree[edge.target] = in_degree.get(edge.target, 0) + 1

        frontier: Deque[str] = deque(
            node_id for node_id in node_map if in_degree[node_id] == 0
        )

        result = ScheduleResult(total_nodes=len(graph.nodes))
        outputs: Dict[str, str] = {}

        while frontier:
            if should_stop is not None and should_stop():
                result.interrupted = True
                logger.info(f"Scheduling of graph {graph.id} interrupted with {len(frontier)} ready nodes")
                break

            current_id = frontier.popleft()
            result.processed_count += 1
            result.processing_order.append(current_id)

            inputs = {
                parent_id: outputs[parent_id]
                for parent_id in parents.get(current_id, [])
                if parent_id in outputs
            }

            try:
                output = execute_node(node_map[current_id], inputs)
            except NodeExecutionError as e:
                logger.warning(f"Node {current_id} failed, stopping scheduling: {e.message}")
                result.failed_node_id = current_id
                result.error = e.message
                break

            outputs[current_id] = output

            for neighbor_id in adjacency.get(current_id, []):
                in_degree[neighbor_id] -= 1
                if in_degree[neighbor_id] == 0:
                    frontier.append(neighbor_id)

        result.outputs = outputs

        if result.structural_failure:
            logger.warning(
                f"Graph {graph.id} left {result.total_nodes - result.processed_count} "
                f"nodes unprocessed (cycle or unreachable)"
            )

        return result
