"""
TaskRunner - executes jobs in the background and reports their outcome
through a TaskStore.
"""

import contextlib
from collections.abc import AsyncIterator, Callable

import anyio
import anyio.to_thread
from anyio.abc import TaskGroup

from logpare_mcp.shared.logging import get_logger
from logpare_mcp.tasks.helpers import classify_failure
from logpare_mcp.tasks.progress import ProgressChannel, to_task_progress
from logpare_mcp.tasks.store import TaskStore
from logpare_mcp.types import ProgressEvent, TaskError, TaskRecord, TaskResult

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]
Job = Callable[[ProgressCallback], TaskResult]
"""A blocking unit of work. It receives a progress callback and returns the task result."""


class TaskRunner:
    """
    Runs jobs off the request path and records their outcome in a TaskStore.

    Each job runs in a worker thread so the event loop keeps serving requests.
    The outcome is only ever communicated through the store: callers get the
    task record back from :meth:`submit` immediately and poll the store.

    Cancellation is cooperative. A cancelled job is not interrupted; the
    runner stops forwarding its progress and discards whatever it returns or
    raises. A job that never reports progress runs to completion before the
    cancellation is noticed.

    Example:
        runner = TaskRunner(store)
        async with runner.run():
            task = await runner.submit(lambda report: do_work(report))
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._in_flight: dict[str, anyio.Event] = {}

        # The task group will be set during run()
        self._task_group: TaskGroup | None = None
        self._run_lock = anyio.Lock()
        self._has_started = False

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """
        Own the task group in which jobs are spawned.

        This method can only be called once per instance. Leaving the context
        cancels orchestration of jobs still in flight.
        """
        async with self._run_lock:
            if self._has_started:
                raise RuntimeError(
                    "TaskRunner .run() can only be called once per instance. "
                    "Create a new instance if you need to run again."
                )
            self._has_started = True

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            logger.debug("Task runner started")
            try:
                yield
            finally:
                logger.debug("Task runner shutting down (%d job(s) in flight)", len(self._in_flight))
                tg.cancel_scope.cancel()
                self._task_group = None

    async def submit(self, job: Job, ttl: int | None = None) -> TaskRecord:
        """
        Create a task and schedule ``job`` to run for it.

        The job starts on a later iteration of the event loop; this method
        returns as soon as the task record exists.
        """
        if self._task_group is None:
            raise RuntimeError("Task group is not initialized. Make sure to use run().")

        task = await self._store.create_task(ttl)
        done = anyio.Event()
        self._in_flight[task.taskId] = done
        self._task_group.start_soon(self._execute, task.taskId, job, done)
        return task

    async def wait(self, task_id: str) -> None:
        """Wait until the job for ``task_id`` has been fully handled."""
        done = self._in_flight.get(task_id)
        if done is not None:
            await done.wait()

    async def _execute(self, task_id: str, job: Job, done: anyio.Event) -> None:
        try:
            await self._run_job(task_id, job)
        except Exception:
            logger.exception("Unexpected error while running task %s", task_id)
        finally:
            self._in_flight.pop(task_id, None)
            done.set()

    async def _run_job(self, task_id: str, job: Job) -> None:
        if await self._store.is_cancelled(task_id):
            logger.debug("Task %s was cancelled before it started", task_id)
            return

        channel = ProgressChannel()
        result: TaskResult | None = None
        failure: Exception | None = None

        async with anyio.create_task_group() as tg:
            tg.start_soon(self._forward_progress, task_id, channel)
            try:
                result = await anyio.to_thread.run_sync(job, channel.report, abandon_on_cancel=True)
            except Exception as exc:
                failure = exc
            finally:
                channel.close()

        if await self._store.is_cancelled(task_id):
            logger.debug("Discarding outcome of cancelled task %s", task_id)
            return

        if failure is not None:
            code = classify_failure(failure)
            message = str(failure) or type(failure).__name__
            logger.info("Task %s failed (%s): %s", task_id, code, message)
            await self._store.fail(task_id, TaskError(code=code, message=message))
            return

        assert result is not None
        await self._store.complete(task_id, result)
        logger.debug("Task %s completed", task_id)

    async def _forward_progress(self, task_id: str, channel: ProgressChannel) -> None:
        """Apply progress events to the store until the job stops reporting.

        The first event that finds the task cancelled ends forwarding; it and
        every later event are dropped.
        """
        cancelled = False
        async with channel.receive_stream:
            async for event in channel.receive_stream:
                if cancelled:
                    continue
                if await self._store.is_cancelled(task_id):
                    cancelled = True
                    continue
                await self._store.update_progress(task_id, to_task_progress(event))
