"""In-process stores used by tests and by embedded deployments."""

import itertools
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..core.exceptions import ExecutionNotFoundError, WorkflowNotFoundError
from ..core.interfaces import ExecutionStore, WorkflowStore
from ..models.core import (
    Execution,
    ExecutionLogEntry,
    ExecutionStatusEnum,
    LogLevel,
    WorkflowGraph,
)
from .lifecycle import status_update_fields


class InMemoryExecutionStore(ExecutionStore):
    """Thread-safe execution store keeping records in dictionaries."""

    def __init__(self):
        self._lock = threading.RLock()
        self._executions: Dict[str, Execution] = {}
        self._logs: Dict[str, List[ExecutionLogEntry]] = {}
        self._sequence = itertools.count(1)

    def create(self, execution: Execution) -> Execution:
        with self._lock:
            stored = execution.model_copy(deep=True)
            self._executions[stored.id] = stored
            self._logs.setdefault(stored.id, [])
            return stored.model_copy()

    def update_status(
        self,
        execution_id: str,
        status: ExecutionStatusEnum,
        output: Optional[Dict[str, Any]] = None
    ) -> None:
        with self._lock:
            current = self._executions.get(execution_id)
            if current is None:
                raise ExecutionNotFoundError(execution_id)

            fields = status_update_fields(
                execution_id, current.status, status, current.started_at, output
            )
            self._executions[execution_id] = current.model_copy(update=fields)

    def append_log(
        self,
        execution_id: str,
        node_id: Optional[str],
        level: LogLevel,
        message: str
    ) -> None:
        with self._lock:
            entry = ExecutionLogEntry(
                id=next(self._sequence),
                execution_id=execution_id,
                node_id=node_id,
                level=LogLevel(level),
                message=message,
                timestamp=datetime.utcnow()
            )
            self._logs.setdefault(execution_id, []).append(entry)

    def get(self, execution_id: str) -> Execution:
        with self._lock:
            execution = self._executions.get(execution_id)
            if execution is None:
                raise ExecutionNotFoundError(execution_id)
            return execution.model_copy()

    def list_for_workflow(
        self,
        workflow_id: str,
        limit: int = 10,
        offset: int = 0
    ) -> Tuple[List[Execution], int]:
        with self._lock:
            matching = [
                execution for execution in self._executions.values()
                if execution.workflow_id == workflow_id
            ]
        matching.sort(key=lambda execution: execution.created_at, reverse=True)
        page = matching[offset:offset + limit]
        return [execution.model_copy() for execution in page], len(matching)

    def get_logs(self, execution_id: str) -> List[ExecutionLogEntry]:
        with self._lock:
            return list(self._logs.get(execution_id, []))


class InMemoryWorkflowStore(WorkflowStore):
    """Workflow graphs held in a dictionary keyed by workflow ID."""

    def __init__(self, graphs: Optional[List[WorkflowGraph]] = None):
        self._lock = threading.Lock()
        self._graphs: Dict[str, WorkflowGraph] = {}
        for graph in graphs or []:
            self.save(graph)

    def save(self, graph: WorkflowGraph) -> WorkflowGraph:
        with self._lock:
            self._graphs[graph.id] = graph
        return graph

    def get_graph(self, workflow_id: str) -> WorkflowGraph:
        with self._lock:
            graph = self._graphs.get(workflow_id)
        if graph is None:
            raise WorkflowNotFoundError(workflow_id)
        return graph
