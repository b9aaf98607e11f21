"""Run coordinator: owns the lifecycle of workflow executions."""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.core import (
    SYSTEM_NODE_ID,
    Execution,
    ExecutionStatusEnum,
    LogLevel,
    ScheduleResult,
    WorkflowGraph,
)
from .exceptions import (
    CycleError,
    ExecutionCancelledError,
    ExecutionEngineError,
    ExecutionQueueFullError,
    StructuralError,
)
from .interfaces import AgentService, ExecutionStore
from .logging import get_logger, set_logging_context, clear_logging_context
from .processor import NodeContext, NodeProcessor
from .scheduler import TopologyScheduler
from .validator import GraphValidator

logger = get_logger(__name__)

DEFAULT_EXECUTION_TIMEOUT = 30 * 60


class RunSignal:
    """Cooperative cancellation flag plus wall-clock deadline for one run.

    The deadline is armed when the run starts, not when it is queued.
    """

    def __init__(self, timeout: Optional[float] = DEFAULT_EXECUTION_TIMEOUT,
                 clock: Callable[[], float] = time.monotonic):
        self.timeout = timeout
        self._clock = clock
        self._cancelled = threading.Event()
        self._cancel_reason: Optional[str] = None
        self._deadline: Optional[float] = None

    def arm(self) -> None:
        if self.timeout is not None and self._deadline is None:
            self._deadline = self._clock() + self.timeout

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._cancelled.is_set():
            self._cancel_reason = reason
            self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def timed_out(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def stop_reason(self) -> Optional[str]:
        """Why the run should stop, or None if it may continue."""
        if self._cancelled.is_set():
            return self._cancel_reason
        if self.timed_out:
            return f"execution exceeded its {self.timeout:g}s time budget"
        return None


class _RunState:
    """Tracks the single terminal write allowed per run."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        self.final_status: Optional[ExecutionStatusEnum] = None

    @property
    def finalized(self) -> bool:
        return self.final_status is not None


class RunCoordinator:
    """Drives executions from RUNNING to a terminal state on a bounded worker pool.

    Composes the graph validator, topology scheduler and node processor.
    Every run is wrapped in a single guarded scope so that no fault can
    leave an execution stuck in RUNNING.
    """

    def __init__(
        self,
        execution_store: ExecutionStore,
        agent_service: Optional[AgentService] = None,
        processor: Optional[NodeProcessor] = None,
        validator: Optional[GraphValidator] = None,
        scheduler: Optional[TopologyScheduler] = None,
        max_concurrent_executions: int = 10,
        execution_queue_size: int = 100,
        execution_timeout: Optional[float] = DEFAULT_EXECUTION_TIMEOUT
    ):
        """Initialize the run coordinator.

        Args:
            execution_store: Store receiving status and log writes
            agent_service: Language-model agent factory used by llm nodes
            processor: Node processor; built from agent_service if omitted
            validator: Graph validator
            scheduler: Topology scheduler
            max_concurrent_executions: Worker threads running executions
            execution_queue_size: Executions allowed to wait for a worker
            execution_timeout: Wall-clock budget per run in seconds
        """
        if max_concurrent_executions < 1:
            raise ValueError("max_concurrent_executions must be at least 1")
        if execution_queue_size < 0:
            raise ValueError("execution_queue_size cannot be negative")

        self.execution_store = execution_store
        self.processor = processor or NodeProcessor(agent_service)
        self.validator = validator or GraphValidator()
        self.scheduler = scheduler or TopologyScheduler()
        self.execution_timeout = execution_timeout

        self._max_concurrent_executions = max_concurrent_executions
        self._capacity = max_concurrent_executions + execution_queue_size
        self._admission = threading.BoundedSemaphore(self._capacity)
        self._executor = ThreadPoolExecutor(
            max_workers=max_concurrent_executions,
            thread_name_prefix="flowrun-run"
        )
        self._active: Dict[str, Tuple[Future, RunSignal]] = {}
        self._active_lock = threading.RLock()
        self._shutdown = False

        logger.info(
            f"RunCoordinator initialized with max_concurrent_executions={max_concurrent_executions}, "
            f"capacity={self._capacity}, execution_timeout={execution_timeout}"
        )

    @classmethod
    def from_config(cls, config, execution_store: ExecutionStore,
                    agent_service: Optional[AgentService] = None) -> "RunCoordinator":
        """Build a coordinator from an AppConfig."""
        return cls(
            execution_store=execution_store,
            agent_service=agent_service,
            max_concurrent_executions=config.max_concurrent_executions,
            execution_queue_size=config.execution_queue_size,
            execution_timeout=config.execution_timeout
        )

    def start_async(self, execution: Execution, graph: WorkflowGraph) -> Future:
        """
        Submit an execution to the worker pool and return immediately.

        Args:
            execution: A freshly created PENDING execution record
            graph: The graph snapshot to run

        Returns:
            Future resolving to the run's final status

        Raises:
            ExecutionQueueFullError: If the pool and its queue are saturated
            ExecutionEngineError: If the coordinator has been shut down

        A rejected execution is marked CANCELLED, since it will never run.
        """
        if self._shutdown:
            self._mark_cancelled_before_start(execution.id, "engine shutting down")
            raise ExecutionEngineError(
                "Run coordinator is shut down", execution_id=execution.id
            )
        if not self._admission.acquire(blocking=False):
            logger.warning(f"Rejected execution {execution.id}: queue full")
            self._mark_cancelled_before_start(execution.id, "execution queue is full")
            raise ExecutionQueueFullError(self._capacity, execution_id=execution.id)

        signal = RunSignal(self.execution_timeout)
        try:
            with self._active_lock:
                future = self._executor.submit(self.run, execution, graph, signal)
                self._active[execution.id] = (future, signal)
        except RuntimeError as e:
            self._admission.release()
            self._mark_cancelled_before_start(execution.id, f"submission failed: {e}")
            raise ExecutionEngineError(
                f"Failed to submit execution: {e}", execution_id=execution.id
            ) from e

        future.add_done_callback(lambda f, execution_id=execution.id: self._on_run_done(execution_id, f))
        logger.info(f"Submitted execution {execution.id} for workflow {graph.id}")
        return future

    def run(self, execution: Execution, graph: WorkflowGraph,
            signal: Optional[RunSignal] = None) -> Optional[ExecutionStatusEnum]:
        """
        Run one execution to completion on the calling thread.

        Returns:
            The terminal status written, or None if the run was aborted
            because the RUNNING transition could not be recorded
        """
        signal = signal or RunSignal(self.execution_timeout)
        signal.arm()
        state = _RunState(execution.id)
        set_logging_context(execution_id=execution.id, workflow_id=graph.id)

        try:
            try:
                self.execution_store.update_status(execution.id, ExecutionStatusEnum.RUNNING)
            except Exception as e:
                logger.error(f"Failed to update execution {execution.id} status to RUNNING: {e}")
                return None

            logger.info(f"Started execution {execution.id} of workflow {graph.id}")
            status = self._execute(execution, graph, signal)
            self._finalize(state, status)

        except Exception as e:
            logger.error(f"Unexpected fault in execution {execution.id}: {e}", exc_info=True)
            self._log_step(
                execution.id, SYSTEM_NODE_ID, LogLevel.ERROR,
                f"Unexpected fault: {type(e).__name__}: {e}"
            )
            self._finalize(state, ExecutionStatusEnum.FAILED)

        finally:
            clear_logging_context()

        return state.final_status

    def _execute(self, execution: Execution, graph: WorkflowGraph,
                 signal: RunSignal) -> ExecutionStatusEnum:
        """Validate and schedule the graph, returning the terminal status to write."""
        try:
            self.validator.validate(graph)
        except StructuralError as e:
            self._log_step(
                execution.id, SYSTEM_NODE_ID, LogLevel.ERROR,
                f"Graph validation failed: {e.message}"
            )
            return ExecutionStatusEnum.FAILED

        context = NodeContext(
            execution.id,
            lambda node_id, level, message: self._log_step(execution.id, node_id, level, message)
        )
        result = self.scheduler.run(
            graph,
            lambda node, inputs: self.processor.process(context, node, inputs),
            should_stop=lambda: signal.stop_reason() is not None
        )
        return self._resolve(execution, result, signal)

    def _resolve(self, execution: Execution, result: ScheduleResult,
                 signal: RunSignal) -> ExecutionStatusEnum:
        if result.failed_node_id is not None:
            self._log_step(
                execution.id, result.failed_node_id, LogLevel.ERROR,
                f"Node execution failed: {result.error}"
            )
            return ExecutionStatusEnum.FAILED

        # A run that overran its budget never completes, even if the last node finished
        reason = signal.stop_reason()
        if result.interrupted or reason is not None:
            error = ExecutionCancelledError(reason or "stopped", execution_id=execution.id)
            logger.warning(error.message)
            self._log_step(execution.id, SYSTEM_NODE_ID, LogLevel.ERROR, error.message)
            return ExecutionStatusEnum.FAILED

        if result.structural_failure:
            error = CycleError(result.processed_count, result.total_nodes)
            self._log_step(execution.id, SYSTEM_NODE_ID, LogLevel.ERROR, error.message)
            return ExecutionStatusEnum.FAILED

        logger.info(f"Execution {execution.id} processed all {result.total_nodes} nodes")
        return ExecutionStatusEnum.COMPLETED

    def _finalize(self, state: _RunState, status: ExecutionStatusEnum) -> None:
        if state.finalized:
            logger.warning(
                f"Execution {state.execution_id} already finalized as {state.final_status.value}, "
                f"ignoring {status.value}"
            )
            return
        state.final_status = status
        try:
            self.execution_store.update_status(state.execution_id, status)
            logger.info(f"Execution {state.execution_id} finished with status {status.value}")
        except Exception as e:
            logger.error(f"Failed to update execution {state.execution_id} final status: {e}")

    def _log_step(self, execution_id: str, node_id: Optional[str],
                  level: LogLevel, message: str) -> None:
        try:
            self.execution_store.append_log(execution_id, node_id, level, message)
        except Exception as e:
            logger.error(
                f"[LOG FAILURE] execution_id={execution_id} node_id={node_id} "
                f"message={message!r} error={e}"
            )

    def cancel(self, execution_id: str, reason: str = "cancelled by user") -> bool:
        """
        Request cancellation of an execution.

        A run already on a worker stops at its next frontier check and ends
        FAILED. A run still waiting for a worker is withdrawn and marked
        CANCELLED without ever running.

        Returns:
            True if the execution was active and the request was recorded
        """
        with self._active_lock:
            entry = self._active.get(execution_id)
        if entry is None:
            logger.warning(f"Attempted to cancel non-active execution: {execution_id}")
            return False

        future, signal = entry
        signal.cancel(reason)
        if future.cancel():
            self._mark_cancelled_before_start(execution_id, reason)
        logger.info(f"Cancellation requested for execution {execution_id}: {reason}")
        return True

    def _mark_cancelled_before_start(self, execution_id: str, reason: str) -> None:
        self._log_step(
            execution_id, SYSTEM_NODE_ID, LogLevel.WARN,
            f"Execution cancelled before start: {reason}"
        )
        try:
            self.execution_store.update_status(execution_id, ExecutionStatusEnum.CANCELLED)
        except Exception as e:
            logger.error(f"Failed to mark execution {execution_id} cancelled: {e}")

    def _on_run_done(self, execution_id: str, future: Future) -> None:
        with self._active_lock:
            self._active.pop(execution_id, None)
        self._admission.release()
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"Execution {execution_id} worker raised: {future.exception()}")

    def is_execution_active(self, execution_id: str) -> bool:
        with self._active_lock:
            return execution_id in self._active

    def get_active_executions(self) -> List[str]:
        with self._active_lock:
            return list(self._active)

    def get_queue_status(self) -> Dict[str, Any]:
        """Snapshot of pool usage for health reporting."""
        with self._active_lock:
            admitted = len(self._active)
        return {
            "admitted_executions": admitted,
            "max_concurrent_executions": self._max_concurrent_executions,
            "capacity": self._capacity,
            "available_slots": max(0, self._capacity - admitted),
            "shutdown": self._shutdown
        }

    def shutdown(self, wait: bool = True, cancel_running: bool = False) -> None:
        """
        Stop accepting executions and release the worker pool.

        Queued executions are marked CANCELLED. Running ones finish unless
        cancel_running is set, in which case they are signalled to stop.
        """
        self._shutdown = True
        for execution_id in self.get_active_executions():
            with self._active_lock:
                entry = self._active.get(execution_id)
            if entry is None:
                continue
            future, signal = entry
            if future.cancel():
                signal.cancel("engine shutting down")
                self._mark_cancelled_before_start(execution_id, "engine shutting down")
            elif cancel_running:
                signal.cancel("engine shutting down")

        self._executor.shutdown(wait=wait)
        logger.info("RunCoordinator shutdown completed")
