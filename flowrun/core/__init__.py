"""Core execution engine components."""

from .exceptions import (
    WorkflowEngineError,
    StructuralError,
    DanglingEdgeError,
    SelfLoopError,
    CycleError,
    NodeExecutionError,
    ExecutionCancelledError,
    ExecutionEngineError,
    ExecutionQueueFullError,
    StorageError,
    WorkflowNotFoundError,
    ExecutionNotFoundError,
    AgentError,
)
from .logging import setup_logging, get_logger
from .validator import GraphValidator
from .scheduler import TopologyScheduler
from .processor import NodeKind, NodeContext, NodeProcessor
from .coordinator import RunCoordinator, RunSignal

__all__ = [
    "WorkflowEngineError",
    "StructuralError",
    "DanglingEdgeError",
    "SelfLoopError",
    "CycleError",
    "NodeExecutionError",
    "ExecutionCancelledError",
    "ExecutionEngineError",
    "ExecutionQueueFullError",
    "StorageError",
    "WorkflowNotFoundError",
    "ExecutionNotFoundError",
    "AgentError",
    "setup_logging",
    "get_logger",
    "GraphValidator",
    "TopologyScheduler",
    "NodeKind",
    "NodeContext",
    "NodeProcessor",
    "RunCoordinator",
    "RunSignal",
]
