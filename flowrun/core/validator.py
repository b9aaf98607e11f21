"""Structural validation of workflow graphs before execution."""

from ..models.core import WorkflowGraph
from .exceptions import DanglingEdgeError, SelfLoopError
from .logging import get_logger

logger = get_logger(__name__)


class GraphValidator:
    """Checks edge endpoints and self-loops; cycles are left to the scheduler."""

    def validate(self, graph: WorkflowGraph) -> None:
        """
        Validate a graph for structural correctness, failing on the first violation.

        Args:
            graph: The graph snapshot to validate

        Raises:
            DanglingEdgeError: If an edge references a node not in the graph
            SelfLoopError: If an edge has identical source and target
        """
        node_ids = set(graph.node_ids())

        for edge in graph.edges:
            if edge.source not in node_ids:
                raise DanglingEdgeError(edge.id, edge.source, "source")
            if edge.target not in node_ids:
                raise DanglingEdgeError(edge.id, edge.target, "target")
            if edge.source == edge.target:
                raise SelfLoopError(edge.id, edge.source)

        logger.debug(
            f"Graph {graph.id} passed validation: "
            f"{len(graph.nodes)} nodes, {len(graph.edges)} edges"
        )
