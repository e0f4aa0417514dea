"""Stdio transport.

Serves newline-delimited JSON-RPC on the process' stdin and stdout for a
single local client. There is exactly one implicit session, so the session
registry is not involved.

Example:
    ```python
    async def main():
        services = LogpareServices.create()
        async with services.run():
            await serve_stdio(services.server)

    anyio.run(main)
    ```
"""

import json
import sys
from io import TextIOWrapper
from typing import Any, BinaryIO

import anyio

from logpare_mcp.server.server import LogpareServer
from logpare_mcp.server.transport import JSONRPCTransport
from logpare_mcp.shared.logging import get_logger
from logpare_mcp.types import JSONRPC_VERSION, PARSE_ERROR

logger = get_logger(__name__)


class _NonClosingTextIOWrapper(TextIOWrapper):
    """Text wrapper that never closes the underlying binary stream."""

    def close(self) -> None:
        if self.closed:
            return
        if self.writable():
            self.flush()


def _wrap_process_stdio(binary_stream: BinaryIO) -> anyio.AsyncFile[str]:
    return anyio.wrap_file(_NonClosingTextIOWrapper(binary_stream, encoding="utf-8"))


def _parse_error() -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": None, "error": {"code": PARSE_ERROR, "message": "Parse error"}}


async def serve_stdio(
    server: LogpareServer,
    stdin: anyio.AsyncFile[str] | None = None,
    stdout: anyio.AsyncFile[str] | None = None,
) -> None:
    """Answer JSON-RPC messages read from ``stdin`` until it reaches end of file."""
    # Encoding of stdin/stdout is platform-dependent, so the binary streams are re-wrapped as UTF-8.
    if not stdin:
        stdin = _wrap_process_stdio(sys.stdin.buffer)
    if not stdout:
        stdout = _wrap_process_stdio(sys.stdout.buffer)

    transport = JSONRPCTransport(None, server)
    await transport.connect()
    logger.info("Serving MCP over stdio")
    try:
        async for line in stdin:
            if not line.strip():
                continue
            try:
                body = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Discarding malformed line from stdin")
                reply = _parse_error()
            else:
                reply = await transport.handle_request(body)

            if reply is not None:
                await stdout.write(json.dumps(reply) + "\n")
                await stdout.flush()
    finally:
        await transport.close()
        logger.info("Stdio session closed")
