"""Custom exceptions for the workflow execution engine with detailed error information."""

from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    STORAGE = "storage"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    RESOURCE = "resource"


class WorkflowEngineError(Exception):
    """Base exception for all workflow engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.retry_after = retry_after
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "retry_after": self.retry_after,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class StructuralError(WorkflowEngineError):
    """Raised when a workflow graph is not structurally runnable."""

    def __init__(self, message: str, node_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.node_id = node_id
        if node_id:
            self.add_context(node_id=node_id)


class DanglingEdgeError(StructuralError):
    """Raised when an edge references a node missing from the graph."""

    def __init__(self, edge_id: str, missing_node_id: str, endpoint: str):
        super().__init__(
            f"edge {endpoint} {missing_node_id} does not exist",
            node_id=missing_node_id
        )
        self.edge_id = edge_id
        self.endpoint = endpoint
        self.add_details(edge_id=edge_id, endpoint=endpoint)


class SelfLoopError(StructuralError):
    """Raised when an edge connects a node to itself."""

    def __init__(self, edge_id: str, node_id: str):
        super().__init__(f"self-loop detected on node {node_id}", node_id=node_id)
        self.edge_id = edge_id
        self.add_details(edge_id=edge_id)


class CycleError(StructuralError):
    """Raised when scheduling could not reach every node of the graph."""

    def __init__(self, processed: int, total: int):
        super().__init__(
            f"Cycle detected or unreachable nodes: processed {processed} vs total {total}"
        )
        self.processed = processed
        self.total = total
        self.add_details(processed=processed, total=total)


class NodeExecutionError(WorkflowEngineError):
    """Raised when node execution fails."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        execution_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        self.node_id = node_id
        if node_id:
            self.add_context(node_id=node_id)
        if execution_id:
            self.add_context(execution_id=execution_id)


class ExecutionCancelledError(WorkflowEngineError):
    """Raised when a run is cancelled or exceeds its wall-clock budget."""

    def __init__(self, reason: str, execution_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Execution cancelled or timed out: {reason}",
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        self.reason = reason
        if execution_id:
            self.add_context(execution_id=execution_id)


class ExecutionEngineError(WorkflowEngineError):
    """Raised when execution engine operations fail."""

    def __init__(
        self,
        message: str,
        execution_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("severity", ErrorSeverity.HIGH)
        kwargs.setdefault("category", ErrorCategory.EXECUTION)
        super().__init__(message, **kwargs)
        if execution_id:
            self.add_context(execution_id=execution_id)
        if workflow_id:
            self.add_context(workflow_id=workflow_id)


class ExecutionQueueFullError(ExecutionEngineError):
    """Raised when the coordinator cannot admit another execution."""

    def __init__(self, capacity: int, execution_id: Optional[str] = None):
        super().__init__(
            "Execution queue is full, please try again later",
            execution_id=execution_id,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.RESOURCE,
            recoverable=True,
            retry_after=30
        )
        self.add_details(capacity=capacity)


class StorageError(WorkflowEngineError):
    """Raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("recoverable", True)
        kwargs.setdefault("retry_after", 3)
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            **kwargs
        )
        if operation:
            self.add_context(operation=operation)
        if table:
            self.add_context(table=table)


class WorkflowNotFoundError(StorageError):
    """Raised when a workflow graph does not exist."""

    def __init__(self, workflow_id: str):
        super().__init__(
            f"Workflow with ID '{workflow_id}' not found",
            operation="get_graph",
            table="workflows",
            recoverable=False,
            retry_after=None
        )
        self.add_context(workflow_id=workflow_id)


class ExecutionNotFoundError(StorageError):
    """Raised when an execution record does not exist."""

    def __init__(self, execution_id: str):
        super().__init__(
            f"Execution with ID '{execution_id}' not found",
            operation="get",
            table="executions",
            recoverable=False,
            retry_after=None
        )
        self.add_context(execution_id=execution_id)


class AgentError(WorkflowEngineError):
    """Raised when the language-model agent service fails."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.NETWORK,
            **kwargs
        )
        self.status_code = status_code
        if provider:
            self.add_context(provider=provider)
        if status_code is not None:
            self.add_details(status_code=status_code)


class TransientError(WorkflowEngineError):
    """Raised for transient errors that should be retried."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            recoverable=True,
            retry_after=5,
            **kwargs
        )


class ConfigurationError(WorkflowEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a WorkflowEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "retry_after": error.retry_after,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
