"""Status transition bookkeeping shared by the execution stores."""

from datetime import datetime
from typing import Any, Dict, Optional

from ..core.exceptions import StorageError
from ..models.core import ExecutionStatusEnum


def status_update_fields(
    execution_id: str,
    current: ExecutionStatusEnum,
    target: ExecutionStatusEnum,
    started_at: Optional[datetime],
    output: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Compute the column updates for a status change.

    RUNNING stamps started_at; a terminal status stamps finished_at and,
    when the run had started, its duration in seconds.

    Raises:
        StorageError: If the transition leaves a terminal status or skips RUNNING
    """
    if not current.can_transition_to(target):
        raise StorageError(
            f"Invalid status transition for execution {execution_id}: "
            f"{current.value} -> {target.value}",
            operation="update_status",
            table="executions",
            recoverable=False,
            retry_after=None
        )

    now = now or datetime.utcnow()
    fields: Dict[str, Any] = {"status": target}

    if target == ExecutionStatusEnum.RUNNING:
        fields["started_at"] = now

    if target.is_terminal:
        fields["finished_at"] = now
        if started_at is not None:
            fields["duration"] = (now - started_at).total_seconds()

    if output is not None:
        fields["output"] = output

    return fields
