"""Collaborator interfaces consumed by the execution engine.

Implementations must be safe for concurrent use: several executions run
on separate worker threads and share the same store and agent instances.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..models.core import (
    Execution,
    ExecutionLogEntry,
    ExecutionStatusEnum,
    LogLevel,
    WorkflowGraph,
)


class ExecutionStore(ABC):
    """Persistence of execution records and their log trail."""

    @abstractmethod
    def create(self, execution: Execution) -> Execution:
        """Persist a new execution record and return it."""

    @abstractmethod
    def update_status(
        self,
        execution_id: str,
        status: ExecutionStatusEnum,
        output: Optional[Dict[str, Any]] = None
    ) -> None:
        """Write a status, stamping start/finish timestamps as appropriate."""

    @abstractmethod
    def append_log(
        self,
        execution_id: str,
        node_id: Optional[str],
        level: LogLevel,
        message: str
    ) -> None:
        """Append a log entry to the execution's trail."""

    @abstractmethod
    def get(self, execution_id: str) -> Execution:
        """Return an execution record or raise ExecutionNotFoundError."""

    @abstractmethod
    def list_for_workflow(
        self,
        workflow_id: str,
        limit: int = 10,
        offset: int = 0
    ) -> Tuple[List[Execution], int]:
        """Return a page of executions for a workflow, newest first, and the total count."""

    @abstractmethod
    def get_logs(self, execution_id: str) -> List[ExecutionLogEntry]:
        """Return the execution's log entries in creation order."""


class WorkflowStore(ABC):
    """Read-only access to persisted workflow graphs."""

    @abstractmethod
    def get_graph(self, workflow_id: str) -> WorkflowGraph:
        """Return a graph snapshot or raise WorkflowNotFoundError."""


class Agent(ABC):
    """A language-model agent bound to one system prompt."""

    @abstractmethod
    def run(self, prompt: str) -> str:
        """Send a prompt and return the model's text response."""


class AgentService(ABC):
    """Factory for language-model agents."""

    @abstractmethod
    def create_agent(self, execution_id: str, system_prompt: str) -> Agent:
        """Create an agent scoped to one execution."""

    def close(self) -> None:
        """Release shared resources held by the service."""
