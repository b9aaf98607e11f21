"""Data models for the workflow execution engine."""

from .core import (
    SYSTEM_NODE_ID,
    ExecutionStatusEnum,
    LogLevel,
    WorkflowNode,
    WorkflowEdge,
    WorkflowGraph,
    Execution,
    ExecutionLogEntry,
    ExecutionDetail,
    ScheduleResult,
)

__all__ = [
    "SYSTEM_NODE_ID",
    "ExecutionStatusEnum",
    "LogLevel",
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowGraph",
    "Execution",
    "ExecutionLogEntry",
    "ExecutionDetail",
    "ScheduleResult",
]
