"""Database models and storage layer."""

from .database import Base, get_db, get_session_factory, create_tables, drop_tables
from .models import (
    WorkflowModel,
    WorkflowNodeModel,
    WorkflowEdgeModel,
    ExecutionModel,
    ExecutionLogModel,
)
from .memory import InMemoryExecutionStore, InMemoryWorkflowStore
from .repositories import SqlExecutionStore, SqlWorkflowStore

__all__ = [
    "Base",
    "get_db",
    "get_session_factory",
    "create_tables",
    "drop_tables",
    "WorkflowModel",
    "WorkflowNodeModel",
    "WorkflowEdgeModel",
    "ExecutionModel",
    "ExecutionLogModel",
    "InMemoryExecutionStore",
    "InMemoryWorkflowStore",
    "SqlExecutionStore",
    "SqlWorkflowStore",
]
