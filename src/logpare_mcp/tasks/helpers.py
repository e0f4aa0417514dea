"""
Helper functions for task management.
"""

from datetime import datetime, timezone
from uuid import uuid4

from logpare_mcp.shared.exceptions import LogpareError
from logpare_mcp.tasks.store import TaskStore
from logpare_mcp.types import (
    DEFAULT_POLL_INTERVAL_MS,
    TASK_COMPRESSION_FAILED,
    TASK_INPUT_TOO_LARGE,
    TASK_INVALID_INPUT,
    TaskProgress,
    TaskRecord,
    TaskStatus,
)


def is_terminal(status: TaskStatus) -> bool:
    """
    Check if a task status represents a terminal state.

    Terminal states are those where the task has finished and will not change.

    Args:
        status: The task status to check

    Returns:
        True if the status is terminal (completed, failed, or cancelled)
    """
    return status in ("completed", "failed", "cancelled")


def generate_task_id() -> str:
    """Generate a unique task ID."""
    return str(uuid4())


def create_task_state(ttl: int, poll_interval: int = DEFAULT_POLL_INTERVAL_MS) -> TaskRecord:
    """
    Create a TaskRecord in "working" status with zero progress.

    This is a helper for TaskStore implementations.
    """
    now = datetime.now(timezone.utc)
    return TaskRecord(
        taskId=generate_task_id(),
        status="working",
        createdAt=now,
        lastUpdatedAt=now,
        ttl=ttl,
        pollInterval=poll_interval,
        progress=TaskProgress(percent=0, statusMessage="Queued", currentPhase="parsing", processedLines=0),
    )


def classify_failure(exc: BaseException) -> str:
    """Map a job failure onto one of the task error codes.

    The job function reports failures as plain exceptions, so the
    classification looks at the exception type and then at its message.
    """
    if isinstance(exc, MemoryError):
        return TASK_INPUT_TOO_LARGE

    message = str(exc).lower()
    if "empty" in message or "invalid" in message:
        return TASK_INVALID_INPUT
    if "memory" in message or "heap" in message:
        return TASK_INPUT_TOO_LARGE
    return TASK_COMPRESSION_FAILED


async def cancel_task(store: TaskStore, task_id: str) -> TaskRecord:
    """
    Cancel a task, reporting why when it cannot be cancelled.

    Args:
        store: The task store
        task_id: The task identifier to cancel

    Returns:
        The cancelled task record

    Raises:
        LogpareError: With INVALID_PARAMS if the task does not exist or is
            already in a terminal state (completed, failed, cancelled)
    """
    task = await store.get_task(task_id)
    if task is None:
        raise LogpareError.invalid_params(f"Task not found: {task_id}")

    cancelled = await store.cancel(task_id)
    if cancelled is None:
        # Re-read: the task may have finished between the lookup and the cancel
        current = await store.get_task(task_id)
        status = current.status if current is not None else task.status
        raise LogpareError.invalid_params(f"Task {task_id} is not cancellable (status: {status})")
    return cancelled
