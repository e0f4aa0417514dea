"""
In-memory implementation of TaskStore.

Tasks are kept in a process-local dict and deleted by a background sweep once
their age exceeds their TTL, whatever their status. All data is lost on
restart.
"""

import contextlib
from collections.abc import AsyncIterator
from datetime import datetime, timezone

import anyio

from logpare_mcp.shared.logging import get_logger
from logpare_mcp.tasks.helpers import create_task_state, is_terminal
from logpare_mcp.tasks.store import TaskStore
from logpare_mcp.types import (
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_TASK_TTL_MS,
    TASK_CANCELLED,
    TaskError,
    TaskProgress,
    TaskRecord,
    TaskResult,
)

logger = get_logger(__name__)

CLEANUP_INTERVAL_SECONDS = 30.0


class InMemoryTaskStore(TaskStore):
    """
    A simple in-memory implementation of TaskStore.

    Every method reads the current record, computes the next one and writes
    it back without an intervening await, so concurrent callers on the event
    loop can never lose an update.

    Args:
        default_ttl: Retention in milliseconds for tasks created without a ttl
        poll_interval: Advisory poll interval in milliseconds handed to clients
        cleanup_interval: Seconds between two expiry sweeps while run() is active
    """

    def __init__(
        self,
        default_ttl: int = DEFAULT_TASK_TTL_MS,
        poll_interval: int = DEFAULT_POLL_INTERVAL_MS,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self._tasks: dict[str, TaskRecord] = {}
        self._default_ttl = default_ttl
        self._poll_interval = poll_interval
        self._cleanup_interval = cleanup_interval

        self._run_lock = anyio.Lock()
        self._has_started = False

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """
        Run the periodic expiry sweep for the lifetime of the context.

        This method can only be called once per instance. On exit the sweep is
        stopped and every remaining task is dropped.
        """
        async with self._run_lock:
            if self._has_started:
                raise RuntimeError(
                    "InMemoryTaskStore .run() can only be called once per instance. "
                    "Create a new instance if you need to run again."
                )
            self._has_started = True

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._sweep_loop)
            logger.debug("Task store started (cleanup every %ss)", self._cleanup_interval)
            try:
                yield
            finally:
                tg.cancel_scope.cancel()
                self.cleanup()

    async def _sweep_loop(self) -> None:
        while True:
            await anyio.sleep(self._cleanup_interval)
            try:
                await self.sweep_expired()
            except Exception:
                logger.exception("Task expiry sweep failed")

    async def sweep_expired(self, now: datetime | None = None) -> list[str]:
        """Delete every task older than its own TTL. Returns the deleted IDs."""
        now = now or datetime.now(timezone.utc)
        expired_ids = [task_id for task_id, task in self._tasks.items() if task.is_expired(now)]
        for task_id in expired_ids:
            del self._tasks[task_id]
        if expired_ids:
            logger.debug("Expired %d task(s): %s", len(expired_ids), ", ".join(expired_ids))
        return expired_ids

    async def create_task(self, ttl: int | None = None) -> TaskRecord:
        task = create_task_state(ttl if ttl is not None else self._default_ttl, self._poll_interval)
        self._tasks[task.taskId] = task
        logger.debug("Created task %s (ttl=%sms)", task.taskId, task.ttl)
        return task

    async def get_task(self, task_id: str) -> TaskRecord | None:
        return self._live(task_id)

    def _live(self, task_id: str) -> TaskRecord | None:
        """The stored record, or None once it has outlived its TTL even if no sweep ran yet."""
        task = self._tasks.get(task_id)
        if task is None or task.is_expired():
            return None
        return task

    async def update_progress(self, task_id: str, progress: TaskProgress) -> TaskRecord | None:
        task = self._live(task_id)
        if task is None or task.status != "working":
            return None
        updated = task.apply_patch(progress=progress)
        self._tasks[task_id] = updated
        return updated

    async def complete(self, task_id: str, result: TaskResult) -> TaskRecord | None:
        return self._finish(task_id, status="completed", result=result, progress=None)

    async def fail(self, task_id: str, error: TaskError) -> TaskRecord | None:
        return self._finish(task_id, status="failed", error=error, progress=None)

    async def cancel(self, task_id: str) -> TaskRecord | None:
        error = TaskError(code=TASK_CANCELLED, message="Task was cancelled by user")
        return self._finish(task_id, status="cancelled", error=error, progress=None)

    def _finish(self, task_id: str, **changes: object) -> TaskRecord | None:
        task = self._live(task_id)
        if task is None or is_terminal(task.status):
            return None
        updated = task.apply_patch(**changes)
        self._tasks[task_id] = updated
        logger.debug("Task %s -> %s", task_id, updated.status)
        return updated

    async def is_cancelled(self, task_id: str) -> bool:
        task = self._live(task_id)
        return task is not None and task.status == "cancelled"

    async def delete_task(self, task_id: str) -> bool:
        if task_id not in self._tasks:
            return False
        del self._tasks[task_id]
        return True

    async def list_tasks(self) -> list[TaskRecord]:
        now = datetime.now(timezone.utc)
        return [task for task in self._tasks.values() if not task.is_expired(now)]

    def cleanup(self) -> None:
        """Drop every task."""
        self._tasks.clear()
