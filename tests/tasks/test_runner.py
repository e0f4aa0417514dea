"""Tests for TaskRunner."""

import logging
import threading

import anyio
import anyio.to_thread
import pytest

from logpare_mcp.tasks.in_memory_task_store import InMemoryTaskStore
from logpare_mcp.tasks.runner import ProgressCallback, TaskRunner
from logpare_mcp.types import ProgressEvent, TaskRecord, TaskResult, TextContent


def _result(text: str = "done") -> TaskResult:
    return TaskResult(content=[TextContent(text=text)], structuredContent={"inputLines": 3})


async def _wait_for(store: InMemoryTaskStore, task_id: str, predicate) -> TaskRecord:
    with anyio.fail_after(5):
        while True:
            task = await store.get_task(task_id)
            if task is not None and predicate(task):
                return task
            await anyio.sleep(0.01)


@pytest.mark.anyio
async def test_submit_requires_run(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)

    with pytest.raises(RuntimeError, match="Make sure to use run()"):
        await runner.submit(lambda report: _result())


@pytest.mark.anyio
async def test_run_can_only_be_called_once(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)

    async with runner.run():
        pass

    with pytest.raises(RuntimeError) as excinfo:
        async with runner.run():
            pass

    assert "TaskRunner .run() can only be called once per instance" in str(excinfo.value)


@pytest.mark.anyio
async def test_submit_returns_working_task_and_completes(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)

    def job(report: ProgressCallback) -> TaskResult:
        report(ProgressEvent(current_phase="parsing", processed_lines=0, total_lines=3))
        report(ProgressEvent(current_phase="finalizing", processed_lines=3, total_lines=3, percent_complete=100))
        return _result()

    async with runner.run():
        task = await runner.submit(job)
        assert task.status == "working"

        await runner.wait(task.taskId)

    completed = await store.get_task(task.taskId)
    assert completed is not None
    assert completed.status == "completed"
    assert completed.result == _result()
    assert completed.progress is None


@pytest.mark.anyio
async def test_submit_passes_ttl(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)

    async with runner.run():
        task = await runner.submit(lambda report: _result(), ttl=1234)
        await runner.wait(task.taskId)

    assert task.ttl == 1234


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (ValueError("Input is empty: no log lines to compress"), "INVALID_INPUT"),
        (MemoryError(), "INPUT_TOO_LARGE"),
        (RuntimeError("tokenizer crashed"), "COMPRESSION_FAILED"),
    ],
)
async def test_job_failure_is_recorded(store: InMemoryTaskStore, exc: Exception, code: str) -> None:
    runner = TaskRunner(store)

    def job(report: ProgressCallback) -> TaskResult:
        raise exc

    async with runner.run():
        task = await runner.submit(job)
        await runner.wait(task.taskId)

    failed = await store.get_task(task.taskId)
    assert failed is not None
    assert failed.status == "failed"
    assert failed.error is not None
    assert failed.error.code == code
    assert failed.result is None


@pytest.mark.anyio
async def test_cancel_before_start_skips_job(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)
    called = threading.Event()

    def job(report: ProgressCallback) -> TaskResult:
        called.set()
        return _result()

    async with runner.run():
        task = await runner.submit(job)
        await store.cancel(task.taskId)
        await runner.wait(task.taskId)

    assert not called.is_set()
    cancelled = await store.get_task(task.taskId)
    assert cancelled is not None
    assert cancelled.status == "cancelled"


@pytest.mark.anyio
async def test_progress_is_forwarded_to_store(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)
    release = threading.Event()

    def job(report: ProgressCallback) -> TaskResult:
        report(ProgressEvent(current_phase="clustering", processed_lines=50, total_lines=100))
        release.wait(5)
        return _result()

    async with runner.run():
        task = await runner.submit(job)
        try:
            in_progress = await _wait_for(
                store, task.taskId, lambda t: t.progress is not None and t.progress.percent == 50
            )
        finally:
            release.set()
        await runner.wait(task.taskId)

    assert in_progress.status == "working"
    assert in_progress.progress is not None
    assert in_progress.progress.statusMessage == "Processing 50 / 100 lines"


@pytest.mark.anyio
async def test_cancel_mid_job_discards_progress_and_result(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)
    started = threading.Event()
    release = threading.Event()
    finished = threading.Event()

    def job(report: ProgressCallback) -> TaskResult:
        started.set()
        release.wait(5)
        report(ProgressEvent(current_phase="clustering", processed_lines=90, total_lines=100))
        finished.set()
        return _result()

    async with runner.run():
        task = await runner.submit(job)
        try:
            assert await anyio.to_thread.run_sync(started.wait, 5)
            cancelled = await store.cancel(task.taskId)
            assert cancelled is not None
        finally:
            release.set()
        await runner.wait(task.taskId)

    # The job itself is not interrupted
    assert finished.is_set()
    current = await store.get_task(task.taskId)
    assert current is not None
    assert current.status == "cancelled"
    assert current.result is None
    assert current.progress is None
    assert current.error is not None
    assert current.error.code == "CANCELLED"


@pytest.mark.anyio
async def test_failure_after_cancel_is_discarded(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)
    started = threading.Event()
    release = threading.Event()

    def job(report: ProgressCallback) -> TaskResult:
        started.set()
        release.wait(5)
        raise RuntimeError("late failure")

    async with runner.run():
        task = await runner.submit(job)
        try:
            assert await anyio.to_thread.run_sync(started.wait, 5)
            await store.cancel(task.taskId)
        finally:
            release.set()
        await runner.wait(task.taskId)

    current = await store.get_task(task.taskId)
    assert current is not None
    assert current.status == "cancelled"
    assert current.error is not None
    assert current.error.code == "CANCELLED"


def _invalid_input_job(report: ProgressCallback) -> TaskResult:
    raise ValueError("invalid input")


class _BrokenStore(InMemoryTaskStore):
    async def complete(self, task_id: str, result: TaskResult) -> TaskRecord | None:
        raise RuntimeError("store is broken")


@pytest.mark.anyio
async def test_orchestration_errors_are_contained(caplog: pytest.LogCaptureFixture) -> None:
    store = _BrokenStore()
    runner = TaskRunner(store)

    with caplog.at_level(logging.ERROR, logger="logpare_mcp"):
        async with runner.run():
            broken = await runner.submit(lambda report: _result())
            await runner.wait(broken.taskId)

            # The runner keeps serving other jobs
            failing = await runner.submit(_invalid_input_job)
            await runner.wait(failing.taskId)

    assert "Unexpected error while running task" in caplog.text
    failed = await store.get_task(failing.taskId)
    assert failed is not None
    assert failed.status == "failed"
    store.cleanup()


@pytest.mark.anyio
async def test_wait_unknown_task_returns_immediately(store: InMemoryTaskStore) -> None:
    runner = TaskRunner(store)
    async with runner.run():
        with anyio.fail_after(1):
            await runner.wait("unknown")
