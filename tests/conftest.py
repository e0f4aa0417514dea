import pytest

from logpare_mcp.tasks.in_memory_task_store import InMemoryTaskStore


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    store = InMemoryTaskStore()
    yield store
    store.cleanup()


@pytest.fixture
def sample_logs() -> str:
    lines = []
    for i in range(60):
        lines.append(f"2024-01-15 10:00:{i % 60:02d} INFO Request {i} completed in {10 + i}ms")
        if i % 10 == 0:
            lines.append(f"2024-01-15 10:00:{i % 60:02d} ERROR Connection to db-{i % 3} failed: timeout after 30s")
        if i % 20 == 0:
            lines.append(f"2024-01-15 10:00:{i % 60:02d} WARN [Violation] 'click' handler took {100 + i}ms")
    return "\n".join(lines)
