"""FastAPI REST endpoints for triggering and inspecting executions."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from ..core.coordinator import RunCoordinator
from ..core.exceptions import (
    ExecutionNotFoundError,
    ExecutionQueueFullError,
    WorkflowEngineError,
    WorkflowNotFoundError,
    create_error_response,
)
from ..core.interfaces import ExecutionStore, WorkflowStore
from ..core.logging import get_logger
from ..models.core import Execution, ExecutionDetail, ExecutionStatusEnum

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["executions"])

# Global instances (initialized in main.py)
_coordinator: Optional[RunCoordinator] = None
_execution_store: Optional[ExecutionStore] = None
_workflow_store: Optional[WorkflowStore] = None


def init_dependencies(
    coordinator: Optional[RunCoordinator],
    execution_store: Optional[ExecutionStore],
    workflow_store: Optional[WorkflowStore]
):
    """Initialize the global dependencies."""
    global _coordinator, _execution_store, _workflow_store
    _coordinator = coordinator
    _execution_store = execution_store
    _workflow_store = workflow_store


def get_coordinator() -> RunCoordinator:
    """Dependency to get the run coordinator."""
    if _coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Run coordinator not initialized"
        )
    return _coordinator


def get_execution_store() -> ExecutionStore:
    """Dependency to get the execution store."""
    if _execution_store is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Execution store not initialized"
        )
    return _execution_store


def get_workflow_store() -> WorkflowStore:
    """Dependency to get the workflow store."""
    if _workflow_store is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Workflow store not initialized"
        )
    return _workflow_store


# Request/Response models
class ExecuteWorkflowRequest(BaseModel):
    """Request model for triggering a workflow."""
    input: Optional[Dict[str, Any]] = Field(None, description="Input payload stored with the execution")


class ExecuteWorkflowResponse(BaseModel):
    """Response model for an accepted execution."""
    status: str = Field(..., description="Initial execution status")
    execution_id: str = Field(..., description="Unique identifier of the execution")
    message: str = Field(..., description="Success message")


class ExecutionDetailResponse(BaseModel):
    """Response model wrapping an execution and its logs."""
    data: ExecutionDetail


class PageMeta(BaseModel):
    total: int
    limit: int
    offset: int


class ExecutionListResponse(BaseModel):
    """Response model for a page of executions."""
    data: List[Execution] = Field(default_factory=list)
    meta: PageMeta


class CancelExecutionResponse(BaseModel):
    """Response model for a cancellation request."""
    execution_id: str
    message: str


def _internal_error(message: str, e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "InternalError",
            "message": message,
            "details": {"original_error": str(e)},
            "timestamp": datetime.utcnow().isoformat()
        }
    )


# Endpoints

@router.post(
    "/workflows/{workflow_id}/execute",
    response_model=ExecuteWorkflowResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Execute a workflow",
    description="Create a PENDING execution for the workflow and run it in the background"
)
def execute_workflow(
    workflow_id: str,
    request: Optional[ExecuteWorkflowRequest] = Body(None),
    coordinator: RunCoordinator = Depends(get_coordinator),
    execution_store: ExecutionStore = Depends(get_execution_store),
    workflow_store: WorkflowStore = Depends(get_workflow_store)
) -> ExecuteWorkflowResponse:
    """
    Trigger an execution of a workflow.

    Raises:
        HTTPException: 404 if the workflow does not exist, 503 if the
            execution queue is full
    """
    try:
        logger.info(f"Starting workflow execution for workflow: {workflow_id}")

        graph = workflow_store.get_graph(workflow_id)

        execution = execution_store.create(Execution(
            id=str(uuid.uuid4()),
            workflow_id=graph.id,
            status=ExecutionStatusEnum.PENDING,
            input=request.input if request else None
        ))

        coordinator.start_async(execution, graph)

        logger.info(f"Successfully started workflow execution: execution_id={execution.id}")

        return ExecuteWorkflowResponse(
            status="pending",
            execution_id=execution.id,
            message="Workflow execution started"
        )

    except WorkflowNotFoundError as e:
        logger.warning(f"Workflow not found: {workflow_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=create_error_response(e))
    except ExecutionQueueFullError as e:
        logger.warning(f"Execution queue full, rejected workflow {workflow_id}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=create_error_response(e))
    except WorkflowEngineError as e:
        logger.error(f"Workflow engine error during execution start: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=create_error_response(e))
    except Exception as e:
        logger.error(f"Unexpected error during workflow execution: {e}", exc_info=True)
        raise _internal_error("An unexpected error occurred while starting workflow execution", e)


@router.get(
    "/executions/{execution_id}",
    response_model=ExecutionDetailResponse,
    summary="Get an execution",
    description="Retrieve an execution record together with its log trail"
)
def get_execution(
    execution_id: str,
    execution_store: ExecutionStore = Depends(get_execution_store)
) -> ExecutionDetailResponse:
    try:
        execution = execution_store.get(execution_id)
        logs = execution_store.get_logs(execution_id)
        return ExecutionDetailResponse(data=ExecutionDetail(execution=execution, logs=logs))

    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=create_error_response(e))
    except WorkflowEngineError as e:
        logger.error(f"Failed to load execution {execution_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=create_error_response(e))


@router.get(
    "/executions",
    response_model=ExecutionListResponse,
    summary="List executions",
    description="List executions of a workflow, newest first"
)
def list_executions(
    workflow_id: str = Query(..., description="Workflow whose executions are listed"),
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    execution_store: ExecutionStore = Depends(get_execution_store)
) -> ExecutionListResponse:
    try:
        executions, total = execution_store.list_for_workflow(workflow_id, limit=limit, offset=offset)
        return ExecutionListResponse(
            data=executions,
            meta=PageMeta(total=total, limit=limit, offset=offset)
        )
    except WorkflowEngineError as e:
        logger.error(f"Failed to list executions for workflow {workflow_id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=create_error_response(e))


@router.post(
    "/executions/{execution_id}/cancel",
    response_model=CancelExecutionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Cancel an execution",
    description="Request cancellation of a queued or running execution"
)
def cancel_execution(
    execution_id: str,
    coordinator: RunCoordinator = Depends(get_coordinator),
    execution_store: ExecutionStore = Depends(get_execution_store)
) -> CancelExecutionResponse:
    try:
        execution = execution_store.get(execution_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=create_error_response(e))

    if execution.status.is_terminal or not coordinator.cancel(execution_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "error": "ExecutionNotActive",
                "message": f"Execution '{execution_id}' is not active",
                "details": {"status": execution.status.value}
            }
        )

    return CancelExecutionResponse(
        execution_id=execution_id,
        message="Cancellation requested"
    )
