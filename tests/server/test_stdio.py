import io
import json

import anyio
import pytest

from logpare_mcp.server.server import LogpareServer
from logpare_mcp.server.stdio import serve_stdio
from logpare_mcp.tasks.in_memory_task_store import InMemoryTaskStore
from logpare_mcp.tasks.runner import TaskRunner


async def serve(lines: list[str]) -> tuple[LogpareServer, list[dict[str, object]]]:
    store = InMemoryTaskStore()
    runner = TaskRunner(store)
    stdout = io.StringIO()
    async with store.run(), runner.run():
        server = LogpareServer(store, runner, async_threshold_bytes=1024)
        await serve_stdio(
            server,
            stdin=anyio.wrap_file(io.StringIO("".join(line + "\n" for line in lines))),
            stdout=anyio.wrap_file(stdout),
        )
    return server, [json.loads(line) for line in stdout.getvalue().splitlines()]


@pytest.mark.anyio
async def test_stdio_answers_requests_in_order() -> None:
    initialize = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "initialize",
        "params": {"protocolVersion": "2025-06-18", "capabilities": {}, "clientInfo": {"name": "cli", "version": "1"}},
    }
    server, replies = await serve(
        [
            json.dumps(initialize),
            json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
            "",
            json.dumps({"jsonrpc": "2.0", "id": 2, "method": "ping"}),
        ]
    )

    assert [reply["id"] for reply in replies] == [1, 2]
    assert replies[0]["result"]["serverInfo"]["name"] == "logpare-mcp"
    assert replies[1] == {"jsonrpc": "2.0", "id": 2, "result": {}}
    assert server.connected_sessions == 0


@pytest.mark.anyio
async def test_stdio_malformed_line_is_a_parse_error() -> None:
    _, replies = await serve(["{oops", json.dumps({"jsonrpc": "2.0", "id": 3, "method": "ping"})])

    assert replies[0] == {"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}}
    assert replies[1]["id"] == 3


@pytest.mark.anyio
async def test_stdio_request_with_invalid_id_is_an_invalid_request() -> None:
    _, replies = await serve([json.dumps({"jsonrpc": "2.0", "id": True, "method": "ping"})])

    assert replies == [{"jsonrpc": "2.0", "id": None, "error": {"code": -32600, "message": "Invalid Request"}}]
