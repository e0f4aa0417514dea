"""
TaskStore - Abstract interface for task state storage.
"""

from abc import ABC, abstractmethod

from logpare_mcp.types import TaskError, TaskProgress, TaskRecord, TaskResult


class TaskStore(ABC):
    """
    Abstract interface for task state storage.

    Progress, completion and cancellation are reported from independent
    contexts (the runner and incoming cancel requests) without a shared lock.
    Implementations therefore treat every mutation of a missing or terminal
    task as a no-op instead of an error: exactly one terminal write wins and
    the rest are ignored.
    """

    @abstractmethod
    async def create_task(self, ttl: int | None = None) -> TaskRecord:
        """
        Create a new task in "working" state.

        Args:
            ttl: Retention in milliseconds, measured from creation. Uses the
                store's default when omitted.

        Returns:
            The created TaskRecord
        """

    @abstractmethod
    async def get_task(self, task_id: str) -> TaskRecord | None:
        """
        Get a task by ID.

        Returns:
            The TaskRecord, or None if not found or expired
        """

    @abstractmethod
    async def update_progress(self, task_id: str, progress: TaskProgress) -> TaskRecord | None:
        """
        Replace the progress snapshot of a working task.

        Returns:
            The updated record, or None when the task is missing or no longer working
        """

    @abstractmethod
    async def complete(self, task_id: str, result: TaskResult) -> TaskRecord | None:
        """
        Move a working task to "completed".

        Returns:
            The updated record, or None when the task is missing or already terminal
        """

    @abstractmethod
    async def fail(self, task_id: str, error: TaskError) -> TaskRecord | None:
        """
        Move a working task to "failed".

        Returns:
            The updated record, or None when the task is missing or already terminal
        """

    @abstractmethod
    async def cancel(self, task_id: str) -> TaskRecord | None:
        """
        Move a working task to "cancelled".

        Returns:
            The cancelled record, or None (rejected) when the task is missing
            or already terminal
        """

    @abstractmethod
    async def is_cancelled(self, task_id: str) -> bool:
        """Whether the task exists and has been cancelled."""

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        """
        Delete a task.

        Returns:
            True if deleted, False if not found
        """

    @abstractmethod
    async def list_tasks(self) -> list[TaskRecord]:
        """List all live tasks."""
