"""SQLAlchemy-backed execution and workflow stores."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.error_recovery import RetryConfig, with_retry
from ..core.exceptions import (
    ExecutionNotFoundError,
    StorageError,
    WorkflowNotFoundError,
)
from ..core.interfaces import ExecutionStore, WorkflowStore
from ..core.logging import get_logger
from ..models.core import (
    Execution,
    ExecutionLogEntry,
    ExecutionStatusEnum,
    LogLevel,
    WorkflowEdge,
    WorkflowGraph,
    WorkflowNode,
)
from .database import get_session_factory
from .lifecycle import status_update_fields
from .models import (
    ExecutionLogModel,
    ExecutionModel,
    WorkflowEdgeModel,
    WorkflowModel,
    WorkflowNodeModel,
)

logger = get_logger(__name__)

_STORE_RETRY = RetryConfig(max_attempts=3, base_delay=0.05, max_delay=0.5)


def _to_execution(model: ExecutionModel) -> Execution:
    return Execution(
        id=model.id,
        workflow_id=model.workflow_id,
        status=ExecutionStatusEnum(model.status),
        input=model.input,
        output=model.output,
        started_at=model.started_at,
        finished_at=model.finished_at,
        duration=model.duration,
        created_at=model.created_at
    )


def _to_log_entry(model: ExecutionLogModel) -> ExecutionLogEntry:
    return ExecutionLogEntry(
        id=model.id,
        execution_id=model.execution_id,
        node_id=model.node_id,
        level=LogLevel(model.level),
        message=model.message,
        timestamp=model.timestamp
    )


class SqlExecutionStore(ExecutionStore):
    """Execution store using one short-lived session per operation."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def _session(self) -> Session:
        return self._session_factory()

    @with_retry(_STORE_RETRY)
    def create(self, execution: Execution) -> Execution:
        db = self._session()
        try:
            model = ExecutionModel(
                id=execution.id,
                workflow_id=execution.workflow_id,
                status=execution.status.value,
                input=execution.input,
                output=execution.output,
                started_at=execution.started_at,
                finished_at=execution.finished_at,
                duration=execution.duration,
                created_at=execution.created_at
            )
            db.add(model)
            db.commit()
            logger.debug(f"Created execution {execution.id} for workflow {execution.workflow_id}")
            return _to_execution(model)
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to create execution: {e}", operation="create", table="executions")
        finally:
            db.close()

    @with_retry(_STORE_RETRY)
    def update_status(
        self,
        execution_id: str,
        status: ExecutionStatusEnum,
        output: Optional[Dict[str, Any]] = None
    ) -> None:
        db = self._session()
        try:
            model = db.get(ExecutionModel, execution_id)
            if model is None:
                raise ExecutionNotFoundError(execution_id)

            fields = status_update_fields(
                execution_id,
                ExecutionStatusEnum(model.status),
                status,
                model.started_at,
                output
            )
            for key, value in fields.items():
                setattr(model, key, value.value if key == "status" else value)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(
                f"Failed to update execution status: {e}",
                operation="update_status",
                table="executions"
            )
        finally:
            db.close()

    def append_log(
        self,
        execution_id: str,
        node_id: Optional[str],
        level: LogLevel,
        message: str
    ) -> None:
        db = self._session()
        try:
            db.add(ExecutionLogModel(
                execution_id=execution_id,
                node_id=node_id,
                level=LogLevel(level).value,
                message=message,
                timestamp=datetime.utcnow()
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(
                f"Failed to create execution log: {e}",
                operation="append_log",
                table="execution_logs"
            )
        finally:
            db.close()

    def get(self, execution_id: str) -> Execution:
        db = self._session()
        try:
            model = db.get(ExecutionModel, execution_id)
            if model is None:
                raise ExecutionNotFoundError(execution_id)
            return _to_execution(model)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to find execution: {e}", operation="get", table="executions")
        finally:
            db.close()

    def list_for_workflow(
        self,
        workflow_id: str,
        limit: int = 10,
        offset: int = 0
    ) -> Tuple[List[Execution], int]:
        db = self._session()
        try:
            query = db.query(ExecutionModel).filter(ExecutionModel.workflow_id == workflow_id)
            total = query.with_entities(func.count(ExecutionModel.id)).scalar() or 0
            models = (
                query.order_by(ExecutionModel.created_at.desc())
                .limit(limit)
                .offset(offset)
                .all()
            )
            return [_to_execution(model) for model in models], total
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list executions: {e}", operation="list", table="executions")
        finally:
            db.close()

    def get_logs(self, execution_id: str) -> List[ExecutionLogEntry]:
        db = self._session()
        try:
            models = (
                db.query(ExecutionLogModel)
                .filter(ExecutionLogModel.execution_id == execution_id)
                .order_by(ExecutionLogModel.timestamp, ExecutionLogModel.id)
                .all()
            )
            return [_to_log_entry(model) for model in models]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load execution logs: {e}", operation="get_logs", table="execution_logs")
        finally:
            db.close()


class SqlWorkflowStore(WorkflowStore):
    """Read-only access to workflow graphs stored in the database."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def get_graph(self, workflow_id: str) -> WorkflowGraph:
        """
        Retrieve a graph snapshot by workflow ID.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            StorageError: If the query fails
        """
        logger.debug(f"Retrieving graph for workflow: {workflow_id}")
        db = self._session_factory()
        try:
            model = db.get(WorkflowModel, workflow_id)
            if model is None:
                raise WorkflowNotFoundError(workflow_id)

            return WorkflowGraph(
                id=model.id,
                name=model.name,
                nodes=[_to_node(node) for node in model.nodes],
                edges=[_to_edge(edge) for edge in model.edges]
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error while retrieving graph: {e}")
            raise StorageError(f"Failed to retrieve graph: {e}", operation="get_graph", table="workflows")
        finally:
            db.close()


def _to_node(model: WorkflowNodeModel) -> WorkflowNode:
    return WorkflowNode(
        id=model.node_id,
        type=model.node_type,
        label=model.label,
        configuration=model.configuration
    )


def _to_edge(model: WorkflowEdgeModel) -> WorkflowEdge:
    return WorkflowEdge(
        id=model.edge_id,
        source=model.source_node_id,
        target=model.target_node_id,
        source_handle=model.source_handle,
        target_handle=model.target_handle
    )
