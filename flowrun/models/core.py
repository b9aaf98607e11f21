"""Core Pydantic models for the workflow execution engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


SYSTEM_NODE_ID = "SYSTEM"


class ExecutionStatusEnum(str, Enum):
    """Enumeration of workflow execution statuses."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition may leave this status."""
        return self in _TERMINAL_STATUSES

    def can_transition_to(self, target: "ExecutionStatusEnum") -> bool:
        """Check a transition against PENDING -> RUNNING -> terminal."""
        if self.is_terminal:
            return False
        if self == ExecutionStatusEnum.PENDING:
            # Queued runs withdrawn before a worker picked them up
            return target in (ExecutionStatusEnum.RUNNING, ExecutionStatusEnum.CANCELLED)
        return target.is_terminal


_TERMINAL_STATUSES = frozenset({
    ExecutionStatusEnum.COMPLETED,
    ExecutionStatusEnum.FAILED,
    ExecutionStatusEnum.CANCELLED,
})


class LogLevel(str, Enum):
    """Severity of an execution log entry."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class WorkflowNode(BaseModel):
    """A single step of a workflow graph."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier for the node")
    type: str = Field(..., description="Node type tag used for dispatch")
    label: Optional[str] = Field(None, description="Human readable label")
    configuration: Optional[Any] = Field(
        None, description="Opaque configuration payload, decoded only by the node that reads it"
    )

    @field_validator('id')
    @classmethod
    def validate_id(cls, id_value):
        """Ensure node ID is not blank."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        return id_value


class WorkflowEdge(BaseModel):
    """A directed dependency between two nodes."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier for the edge")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    source_handle: Optional[str] = Field(None, description="Named handle on the source node")
    target_handle: Optional[str] = Field(None, description="Named handle on the target node")


class WorkflowGraph(BaseModel):
    """Snapshot of a workflow graph, read-only for the duration of a run.

    Structural invariants (edge endpoints present, no self-loops, acyclic)
    are not enforced here; the engine checks them at run time so that a
    broken graph ends in a FAILED execution instead of a load error.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Workflow ID")
    name: str = Field("", description="Workflow name")
    nodes: List[WorkflowNode] = Field(default_factory=list, description="Nodes of the graph")
    edges: List[WorkflowEdge] = Field(default_factory=list, description="Edges of the graph")

    def node_ids(self) -> List[str]:
        """Node IDs in graph order."""
        return [node.id for node in self.nodes]


class Execution(BaseModel):
    """One triggered run of a workflow graph."""
    id: str = Field(..., description="Execution ID")
    workflow_id: str = Field(..., description="ID of the workflow being executed")
    status: ExecutionStatusEnum = Field(ExecutionStatusEnum.PENDING, description="Current status")
    input: Optional[Dict[str, Any]] = Field(None, description="Input payload supplied by the caller")
    output: Optional[Dict[str, Any]] = Field(None, description="Output payload written on completion")
    started_at: Optional[datetime] = Field(None, description="Timestamp of the RUNNING transition")
    finished_at: Optional[datetime] = Field(None, description="Timestamp of the terminal transition")
    duration: Optional[float] = Field(None, description="Run duration in seconds")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")


class ExecutionLogEntry(BaseModel):
    """Append-only log record tied to an execution."""
    id: Optional[int] = Field(None, description="Sequence number assigned by the store")
    execution_id: str = Field(..., description="ID of the execution")
    node_id: Optional[str] = Field(None, description="ID of the node, or SYSTEM for run-level entries")
    level: LogLevel = Field(LogLevel.INFO, description="Severity level")
    message: str = Field(..., description="Log message")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")


class ExecutionDetail(BaseModel):
    """Execution record together with its log trail."""
    execution: Execution
    logs: List[ExecutionLogEntry] = Field(default_factory=list)


class ScheduleResult(BaseModel):
    """Outcome of one pass of the topology scheduler over a graph."""
    outputs: Dict[str, str] = Field(default_factory=dict, description="Node output table")
    processed_count: int = Field(0, description="Number of nodes dequeued")
    total_nodes: int = Field(0, description="Number of nodes in the graph")
    processing_order: List[str] = Field(default_factory=list, description="Node IDs in dequeue order")
    failed_node_id: Optional[str] = Field(None, description="Node whose processing failed")
    error: Optional[str] = Field(None, description="Failure description for the failed node")
    interrupted: bool = Field(False, description="Scheduling stopped by cancellation or timeout")

    @property
    def completed(self) -> bool:
        """Every node was processed without failure or interruption."""
        return (
            self.failed_node_id is None
            and not self.interrupted
            and self.processed_count == self.total_nodes
        )

    @property
    def structural_failure(self) -> bool:
        """The frontier drained early: a cycle or unreachable nodes."""
        return (
            self.failed_node_id is None
            and not self.interrupted
            and self.processed_count < self.total_nodes
        )
