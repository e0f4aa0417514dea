"""Registry of live client sessions with idle eviction."""

from __future__ import annotations

import contextlib
import time
from collections import OrderedDict
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import anyio

from logpare_mcp.server.transport import Transport
from logpare_mcp.shared.logging import get_logger

logger = get_logger(__name__)

SESSION_TIMEOUT_SECONDS = 30 * 60
SWEEP_INTERVAL_SECONDS = 60.0
MAX_RETIRED_SESSION_IDS = 10_000


@dataclass
class SessionEntry:
    session_id: str
    transport: Transport
    last_activity: float = field(default_factory=time.monotonic)


class SessionRegistry:
    """
    Maps session ids to the transports that own their connections.

    Sessions live until the client terminates them, their transport closes, or
    they stay idle for longer than ``session_timeout``. A session id that has
    left the registry is retired and never accepted again.

    Args:
        session_timeout: Seconds of inactivity after which a session is evicted
        sweep_interval: Seconds between two idle sweeps while run() is active
    """

    def __init__(
        self,
        session_timeout: float = SESSION_TIMEOUT_SECONDS,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self.session_timeout = session_timeout
        self.sweep_interval = sweep_interval
        self._sessions: dict[str, SessionEntry] = {}
        self._retired: OrderedDict[str, None] = OrderedDict()

        self._sweep_scope: anyio.CancelScope | None = None
        self._run_lock = anyio.Lock()
        self._has_started = False

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """
        Run the idle sweep for the lifetime of the context.

        This method can only be called once per instance. On exit every
        remaining session is closed.
        """
        async with self._run_lock:
            if self._has_started:
                raise RuntimeError(
                    "SessionRegistry .run() can only be called once per instance. "
                    "Create a new instance if you need to run again."
                )
            self._has_started = True

        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._sweep_loop)
                try:
                    yield
                finally:
                    tg.cancel_scope.cancel()
        finally:
            with anyio.CancelScope(shield=True):
                await self.close_all()

    async def _sweep_loop(self) -> None:
        with anyio.CancelScope() as scope:
            self._sweep_scope = scope
            while True:
                await anyio.sleep(self.sweep_interval)
                try:
                    await self.evict_idle()
                except Exception:
                    logger.exception("Session idle sweep failed")

    def register(self, session_id: str, transport: Transport) -> SessionEntry:
        if session_id in self._sessions or session_id in self._retired:
            raise ValueError(f"Session {session_id} is already registered or retired")
        entry = SessionEntry(session_id=session_id, transport=transport)
        self._sessions[session_id] = entry
        return entry

    def get(self, session_id: str) -> SessionEntry | None:
        return self._sessions.get(session_id)

    def touch(self, session_id: str) -> None:
        """Refresh the activity timestamp of a session. Unknown ids are ignored."""
        entry = self._sessions.get(session_id)
        if entry is not None:
            entry.last_activity = time.monotonic()

    def remove(self, session_id: str) -> SessionEntry | None:
        """Forget a session and retire its id. The transport is not closed."""
        entry = self._sessions.pop(session_id, None)
        if entry is not None:
            self._retire(session_id)
        return entry

    def is_retired(self, session_id: str) -> bool:
        return session_id in self._retired

    def count(self) -> int:
        return len(self._sessions)

    async def evict_idle(self, now: float | None = None) -> list[str]:
        """
        Close and remove every session idle for longer than the timeout.

        Each candidate is checked again right before its transport is closed,
        so a session that saw activity while earlier ones were closing stays.
        Returns the ids that were actually evicted.
        """
        start = time.monotonic()
        now = start if now is None else now
        idle = [
            entry for entry in self._sessions.values() if now - entry.last_activity > self.session_timeout
        ]
        evicted: list[str] = []
        for entry in idle:
            elapsed = time.monotonic() - start
            if self._sessions.get(entry.session_id) is not entry:
                continue
            if now + elapsed - entry.last_activity <= self.session_timeout:
                continue
            await self._close_transport(entry)
            self.remove(entry.session_id)
            evicted.append(entry.session_id)
            logger.info("Session %s expired due to inactivity", entry.session_id)
        return evicted

    async def close_all(self) -> None:
        """Stop the idle sweep, then close and remove every session."""
        if self._sweep_scope is not None:
            self._sweep_scope.cancel()

        for entry in list(self._sessions.values()):
            await self._close_transport(entry)
            self.remove(entry.session_id)
        logger.info("All sessions closed")

    async def _close_transport(self, entry: SessionEntry) -> None:
        # One failing transport must not keep the others open.
        try:
            await entry.transport.close()
        except Exception:
            logger.exception("Error closing transport for session %s", entry.session_id)

    def _retire(self, session_id: str) -> None:
        self._retired[session_id] = None
        while len(self._retired) > MAX_RETIRED_SESSION_IDS:
            self._retired.popitem(last=False)
