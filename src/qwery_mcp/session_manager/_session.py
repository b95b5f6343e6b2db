"""
The datasource session: one conversation's engine, attached-set and connection pool.

Sessions are created only by `SessionRegistry`; other components receive them from the
registry and never construct them. The attached-set and the sync state are mutated only
by `DatasourceSynchronizer` while holding the session's `sync_lock`.
"""

__all__ = ["Session"]

import asyncio
import logging
import time
from types import MappingProxyType
from typing import Any, Mapping

from qwery_mcp._exceptions import SessionClosedError
from qwery_mcp.engine import AnalyticalEngine
from qwery_mcp.session_manager._pool import ConnectionPool, PooledConnection
from qwery_mcp.session_manager._state import AttachmentRecord, SessionKey, SyncState

_LOGGER = logging.getLogger(__name__)


class Session:
    """
    Per-conversation, per-workspace owner of one analytical engine.

    Attributes:
        key (SessionKey): The session's identity.
        engine (AnalyticalEngine): The session's DuckDB instance.
        pool (ConnectionPool): Connections to `engine`, lent to query callers.
        sync_lock (asyncio.Lock): Serializes sync calls for this session.
        sync_state (SyncState): Generation counter and last converged datasource set.
    """

    def __init__(self, key: SessionKey, engine: AnalyticalEngine, pool: ConnectionPool):
        self.key = key
        self.engine = engine
        self.pool = pool
        self.sync_lock = asyncio.Lock()
        self.sync_state = SyncState()
        self._attached: dict[str, AttachmentRecord] = {}
        self.created_at = time.monotonic()
        self.last_access = self.created_at
        self._closed = False

    def __repr__(self) -> str:
        return f"Session({self.key}, generation={self.generation}, attached={sorted(self._attached)})"

    @property
    def closed(self) -> bool:
        """True once the session was closed (shutdown or idle eviction)."""
        return self._closed

    @property
    def generation(self) -> int:
        """Number of completed (non-cached) sync calls."""
        return self.sync_state.generation

    @property
    def attached(self) -> Mapping[str, AttachmentRecord]:
        """Read-only view of the attached-set, keyed by datasource id."""
        return MappingProxyType(self._attached)

    def touch(self) -> None:
        """Record an access, postponing idle eviction."""
        self.last_access = time.monotonic()

    def check_open(self) -> None:
        """
        Raise if the session is closed.

        Raises:
            SessionClosedError: If `close()` has been called.
        """
        if self._closed:
            raise SessionClosedError(f"Session {self.key} is closed")

    def find_database(self, logical_database_name: str) -> AttachmentRecord | None:
        """Return the attachment with the given logical name (case-insensitive), if any."""
        wanted = logical_database_name.lower()
        for record in self._attached.values():
            if record.logical_database_name.lower() == wanted:
                return record
        return None

    def is_idle(self, now: float, idle_timeout: float) -> bool:
        """
        Return True if the session can be evicted.

        A session is idle when it has not been accessed for `idle_timeout` seconds, lends
        out no connection and is not syncing.
        """
        return (
            not self._closed
            and now - self.last_access >= idle_timeout
            and self.pool.in_use == 0
            and not self.sync_lock.locked()
        )

    async def borrow(self, timeout: float | None = None) -> PooledConnection:
        """
        Borrow a connection from the session's pool.

        Raises:
            SessionClosedError: If the session is closed.
            PoolExhaustedError: If no connection is free (PoolTimeoutError after a timeout).
        """
        self.check_open()
        self.touch()
        return await self.pool.borrow(timeout)

    async def release(self, connection: PooledConnection) -> None:
        """Return a borrowed connection to the session's pool."""
        self.touch()
        await self.pool.release(connection)

    async def close(self) -> None:
        """Close every pooled connection and the engine. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        _LOGGER.info(f"[{self.__class__.__name__}] Closing session {self.key}")
        try:
            await self.pool.close()
        finally:
            await self.engine.close()

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-friendly description of the session."""
        now = time.monotonic()
        return {
            "conversation_id": self.key.conversation_id,
            "workspace": self.key.workspace,
            "generation": self.generation,
            "attached": [
                record.to_dict()
                for record in sorted(self._attached.values(), key=lambda r: r.datasource_id)
            ],
            "pool": {"in_use": self.pool.in_use, "size": self.pool.size, "max_size": self.pool.max_size},
            "idle_seconds": round(now - self.last_access, 3),
            "age_seconds": round(now - self.created_at, 3),
        }

    def _record_attached(self, record: AttachmentRecord) -> None:
        self._attached[record.datasource_id] = record

    def _forget(self, datasource_id: str) -> None:
        self._attached.pop(datasource_id, None)
