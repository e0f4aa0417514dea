"""Tests for InMemoryTaskStore."""

import random
from datetime import datetime, timedelta, timezone

import anyio
import pytest

from logpare_mcp.shared.exceptions import LogpareError
from logpare_mcp.tasks.helpers import cancel_task
from logpare_mcp.tasks.in_memory_task_store import InMemoryTaskStore
from logpare_mcp.types import INVALID_PARAMS, TaskError, TaskProgress, TaskResult, TextContent


def _result(text: str = "done") -> TaskResult:
    return TaskResult(content=[TextContent(text=text)], structuredContent={"inputLines": 1})


def _progress(percent: int) -> TaskProgress:
    return TaskProgress(percent=percent, statusMessage=f"{percent}%", currentPhase="clustering")


@pytest.mark.anyio
async def test_create_and_get(store: InMemoryTaskStore) -> None:
    task = await store.create_task(ttl=60000)

    assert task.status == "working"
    assert task.ttl == 60000
    assert task.pollInterval == 1000
    assert task.result is None
    assert task.error is None

    retrieved = await store.get_task(task.taskId)
    assert retrieved == task


@pytest.mark.anyio
async def test_create_uses_store_defaults() -> None:
    store = InMemoryTaskStore(default_ttl=1234, poll_interval=250)

    task = await store.create_task()

    assert task.ttl == 1234
    assert task.pollInterval == 250


@pytest.mark.anyio
async def test_task_ids_are_unique(store: InMemoryTaskStore) -> None:
    ids = {(await store.create_task()).taskId for _ in range(100)}
    assert len(ids) == 100


@pytest.mark.anyio
async def test_get_nonexistent_returns_none(store: InMemoryTaskStore) -> None:
    assert await store.get_task("nonexistent") is None


@pytest.mark.anyio
async def test_progress_then_complete(store: InMemoryTaskStore) -> None:
    task = await store.create_task(ttl=300000)

    fresh = await store.get_task(task.taskId)
    assert fresh is not None
    assert fresh.status == "working"
    assert fresh.progress is not None
    assert fresh.progress.percent == 0
    assert fresh.progress.processedLines == 0

    await store.update_progress(task.taskId, _progress(40))
    in_progress = await store.get_task(task.taskId)
    assert in_progress is not None
    assert in_progress.progress is not None
    assert in_progress.progress.percent == 40

    result = _result()
    await store.complete(task.taskId, result)
    completed = await store.get_task(task.taskId)
    assert completed is not None
    assert completed.status == "completed"
    assert completed.result == result
    assert completed.error is None

    assert await store.update_progress(task.taskId, _progress(90)) is None
    assert await store.get_task(task.taskId) == completed


@pytest.mark.anyio
async def test_update_progress_refreshes_last_updated(store: InMemoryTaskStore) -> None:
    task = await store.create_task()

    updated = await store.update_progress(task.taskId, _progress(10))

    assert updated is not None
    assert updated.lastUpdatedAt >= task.lastUpdatedAt
    assert updated.lastUpdatedAt >= updated.createdAt
    assert updated.createdAt == task.createdAt


@pytest.mark.anyio
@pytest.mark.parametrize("finish", ["complete", "fail", "cancel"])
async def test_update_progress_on_terminal_task_is_noop(store: InMemoryTaskStore, finish: str) -> None:
    task = await store.create_task()
    if finish == "complete":
        await store.complete(task.taskId, _result())
    elif finish == "fail":
        await store.fail(task.taskId, TaskError(code="COMPRESSION_FAILED", message="boom"))
    else:
        await store.cancel(task.taskId)
    before = await store.get_task(task.taskId)
    assert before is not None

    assert await store.update_progress(task.taskId, _progress(50)) is None

    after = await store.get_task(task.taskId)
    assert after is not None
    assert after.model_dump_json() == before.model_dump_json()


@pytest.mark.anyio
async def test_update_progress_unknown_task_is_noop(store: InMemoryTaskStore) -> None:
    assert await store.update_progress("missing", _progress(50)) is None
    assert await store.list_tasks() == []


@pytest.mark.anyio
async def test_cancel_then_late_complete(store: InMemoryTaskStore) -> None:
    task = await store.create_task()

    cancelled = await store.cancel(task.taskId)
    assert cancelled is not None
    assert cancelled.status == "cancelled"
    assert cancelled.error is not None
    assert cancelled.error.code == "CANCELLED"
    assert cancelled.error.message == "Task was cancelled by user"
    assert await store.is_cancelled(task.taskId)

    assert await store.complete(task.taskId, _result()) is None

    current = await store.get_task(task.taskId)
    assert current is not None
    assert current.status == "cancelled"
    assert current.result is None


@pytest.mark.anyio
async def test_fail_records_error(store: InMemoryTaskStore) -> None:
    task = await store.create_task()

    failed = await store.fail(task.taskId, TaskError(code="INVALID_INPUT", message="Input is empty"))

    assert failed is not None
    assert failed.status == "failed"
    assert failed.error == TaskError(code="INVALID_INPUT", message="Input is empty")
    assert failed.result is None
    assert failed.progress is None


@pytest.mark.anyio
@pytest.mark.parametrize("finish", ["complete", "fail"])
async def test_cancel_terminal_task_is_rejected(store: InMemoryTaskStore, finish: str) -> None:
    task = await store.create_task()
    if finish == "complete":
        await store.complete(task.taskId, _result())
    else:
        await store.fail(task.taskId, TaskError(code="COMPRESSION_FAILED", message="boom"))
    before = await store.get_task(task.taskId)

    assert await store.cancel(task.taskId) is None
    assert await store.get_task(task.taskId) == before

    with pytest.raises(LogpareError) as exc_info:
        await cancel_task(store, task.taskId)
    assert exc_info.value.error.code == INVALID_PARAMS
    assert "not cancellable" in exc_info.value.error.message


@pytest.mark.anyio
async def test_cancel_unknown_task_is_not_found(store: InMemoryTaskStore) -> None:
    assert await store.cancel("missing") is None

    with pytest.raises(LogpareError, match="Task not found: missing"):
        await cancel_task(store, "missing")


@pytest.mark.anyio
async def test_randomized_interleavings_keep_first_terminal_write(store: InMemoryTaskStore) -> None:
    rng = random.Random(1234)
    operations = ["complete", "fail", "cancel", "progress"]

    for _ in range(200):
        task = await store.create_task()
        winner: str | None = None
        seen_statuses = ["working"]

        for op in rng.choices(operations, k=8):
            if op == "complete":
                outcome = await store.complete(task.taskId, _result())
            elif op == "fail":
                outcome = await store.fail(task.taskId, TaskError(code="COMPRESSION_FAILED", message="x"))
            elif op == "cancel":
                outcome = await store.cancel(task.taskId)
            else:
                outcome = await store.update_progress(task.taskId, _progress(rng.randint(0, 100)))

            if op != "progress" and winner is None:
                assert outcome is not None
                winner = op
            elif op != "progress":
                assert outcome is None

            current = await store.get_task(task.taskId)
            assert current is not None
            seen_statuses.append(current.status)

        # working -> working ... -> terminal -> terminal, never back
        terminal_index = next((i for i, s in enumerate(seen_statuses) if s != "working"), len(seen_statuses))
        assert all(s == "working" for s in seen_statuses[:terminal_index])
        assert len(set(seen_statuses[terminal_index:])) <= 1

        expected = {"complete": "completed", "fail": "failed", "cancel": "cancelled", None: "working"}[winner]
        final = await store.get_task(task.taskId)
        assert final is not None
        assert final.status == expected
        assert not (final.result is not None and final.error is not None)


@pytest.mark.anyio
async def test_concurrent_terminal_writes_have_one_winner(store: InMemoryTaskStore) -> None:
    task = await store.create_task()
    outcomes: list[object] = []

    async def attempt(op: str) -> None:
        await anyio.sleep(0)
        if op == "complete":
            outcomes.append(await store.complete(task.taskId, _result()))
        elif op == "fail":
            outcomes.append(await store.fail(task.taskId, TaskError(code="COMPRESSION_FAILED", message="x")))
        else:
            outcomes.append(await store.cancel(task.taskId))

    async with anyio.create_task_group() as tg:
        for op in ["complete", "fail", "cancel"] * 5:
            tg.start_soon(attempt, op)

    assert sum(1 for outcome in outcomes if outcome is not None) == 1


@pytest.mark.anyio
async def test_expired_task_is_not_found_before_sweep(store: InMemoryTaskStore) -> None:
    task = await store.create_task(ttl=1)
    await anyio.sleep(0.01)

    assert await store.get_task(task.taskId) is None
    assert await store.list_tasks() == []


@pytest.mark.anyio
async def test_expired_task_rejects_writes_before_sweep(store: InMemoryTaskStore) -> None:
    task = await store.create_task(ttl=1)
    await anyio.sleep(0.01)

    assert await store.update_progress(task.taskId, _progress(50)) is None
    assert await store.cancel(task.taskId) is None
    assert await store.complete(task.taskId, _result()) is None
    assert await store.fail(task.taskId, TaskError(code=INVALID_PARAMS, message="boom")) is None
    assert await store.is_cancelled(task.taskId) is False
    with pytest.raises(LogpareError, match="Task not found"):
        await cancel_task(store, task.taskId)
    # the record itself is untouched until the sweep removes it
    assert store._tasks[task.taskId].status == "working"


@pytest.mark.anyio
async def test_sweep_expired_ignores_status(store: InMemoryTaskStore) -> None:
    working = await store.create_task(ttl=100)
    completed = await store.create_task(ttl=100)
    failed = await store.create_task(ttl=100)
    survivor = await store.create_task(ttl=60000)
    await store.complete(completed.taskId, _result())
    await store.fail(failed.taskId, TaskError(code="COMPRESSION_FAILED", message="x"))

    later = datetime.now(timezone.utc) + timedelta(milliseconds=150)
    expired = await store.sweep_expired(now=later)

    assert set(expired) == {working.taskId, completed.taskId, failed.taskId}
    assert await store.get_task(survivor.taskId) is not None
    for task_id in expired:
        assert await store.get_task(task_id) is None


@pytest.mark.anyio
async def test_background_sweep_deletes_expired_tasks() -> None:
    store = InMemoryTaskStore(cleanup_interval=0.05)

    async with store.run():
        first, second = await store.create_task(ttl=100), await store.create_task(ttl=100)
        await store.complete(first.taskId, _result())

        await anyio.sleep(0.25)

        assert await store.get_task(first.taskId) is None
        assert await store.get_task(second.taskId) is None
        assert first.taskId not in store._tasks
        assert second.taskId not in store._tasks


@pytest.mark.anyio
async def test_delete_task(store: InMemoryTaskStore) -> None:
    task = await store.create_task()

    assert await store.delete_task(task.taskId) is True
    assert await store.get_task(task.taskId) is None
    assert await store.delete_task(task.taskId) is False


@pytest.mark.anyio
async def test_list_tasks(store: InMemoryTaskStore) -> None:
    first = await store.create_task()
    second = await store.create_task()

    listed = await store.list_tasks()

    assert {t.taskId for t in listed} == {first.taskId, second.taskId}


@pytest.mark.anyio
async def test_run_can_only_be_called_once() -> None:
    store = InMemoryTaskStore()

    async with store.run():
        pass

    with pytest.raises(RuntimeError) as excinfo:
        async with store.run():
            pass

    assert "InMemoryTaskStore .run() can only be called once per instance" in str(excinfo.value)


@pytest.mark.anyio
async def test_run_exit_drops_all_tasks() -> None:
    store = InMemoryTaskStore()

    async with store.run():
        task = await store.create_task()

    assert await store.get_task(task.taskId) is None
