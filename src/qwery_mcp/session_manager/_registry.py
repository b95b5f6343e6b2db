"""
Coroutine-safe registry of datasource sessions keyed by (conversation, workspace).

Sessions are created lazily on first use. Creation is single-flight per key: the first
caller installs a pending creation task under the key and every concurrent caller for the
same key awaits that task, so exactly one engine instance is opened per key. The pending
marker is removed when the task settles; it is replaced by the session only on success,
and a failed creation is never cached.

Async Safety:
    The session table and the pending-creation table are protected by an asyncio.Lock.
    Callers await pending creations through `asyncio.shield`, so a cancelled caller never
    cancels a creation other callers are waiting for.

Lifecycle:
    - `get_or_create(key)`: return the session for `key`, creating it if needed.
    - `evict_idle(idle_timeout)`: close sessions idle for longer than `idle_timeout`.
    - `remove(key)`: close one session explicitly.
    - `close()`: wait for pending creations, close every session, reject new ones.
"""

__all__ = ["EngineFactory", "SessionRegistry"]

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

from qwery_mcp._exceptions import SessionClosedError, SessionCreationError
from qwery_mcp.config import SessionSettings
from qwery_mcp.engine import AnalyticalEngine
from qwery_mcp.session_manager._pool import ConnectionPool
from qwery_mcp.session_manager._session import Session
from qwery_mcp.session_manager._state import SessionKey

_LOGGER = logging.getLogger(__name__)

EngineFactory = Callable[[SessionKey], Awaitable[AnalyticalEngine]]
"""Opens the analytical engine of a new session."""


def _consume_result(task: "asyncio.Task[Session]") -> None:
    # Creators always await the task; this only silences the warning when every waiter was cancelled.
    if not task.cancelled():
        task.exception()


class SessionRegistry:
    """
    Owner of all live `Session` objects.

    This is the only component that constructs sessions. It is created by
    `DatasourceSessionManager` and never used as a module-level singleton.
    """

    def __init__(
        self, settings: SessionSettings, engine_factory: EngineFactory | None = None
    ):
        """
        Initialize an empty registry.

        Args:
            settings (SessionSettings): Pool size, acquisition timeout and engine settings.
            engine_factory (EngineFactory | None): Opens the engine of a new session.
                Defaults to an in-memory DuckDB instance configured with
                `settings.engine_settings`.
        """
        self._settings = settings
        self._engine_factory = engine_factory or self._open_engine
        self._sessions: dict[SessionKey, Session] = {}
        self._pending: dict[SessionKey, asyncio.Task[Session]] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    async def _open_engine(self, key: SessionKey) -> AnalyticalEngine:
        return await AnalyticalEngine.open(str(key), self._settings.engine_settings)

    @property
    def closed(self) -> bool:
        """True once `close()` has been called."""
        return self._closed

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, key: SessionKey) -> Session | None:
        """Return the live session for `key` without creating it."""
        return self._sessions.get(key)

    def sessions(self) -> list[Session]:
        """Return the live sessions, ordered by key."""
        return [self._sessions[key] for key in sorted(self._sessions)]

    async def get_or_create(self, key: SessionKey) -> Session:
        """
        Return the session for `key`, creating it if it does not exist.

        Concurrent callers for the same key share one creation.

        Args:
            key (SessionKey): The session key.

        Returns:
            Session: The live session.

        Raises:
            SessionCreationError: If the engine could not be opened. Every caller waiting
                on that creation receives the error; the next call retries.
            SessionClosedError: If the registry is closed.
        """
        async with self._lock:
            if self._closed:
                raise SessionClosedError(
                    f"[{self.__class__.__name__}] Registry is closed; cannot open session {key}"
                )
            session = self._sessions.get(key)
            if session is not None:
                session.touch()
                return session
            task = self._pending.get(key)
            if task is None:
                _LOGGER.info(f"[{self.__class__.__name__}] Creating session {key}")
                task = asyncio.create_task(self._create(key), name=f"create-session:{key}")
                task.add_done_callback(_consume_result)
                self._pending[key] = task
            else:
                _LOGGER.debug(
                    f"[{self.__class__.__name__}] Waiting for in-flight creation of session {key}"
                )
        return await asyncio.shield(task)

    async def _create(self, key: SessionKey) -> Session:
        session: Session | None = None
        try:
            engine = await self._engine_factory(key)
            pool = ConnectionPool(
                engine.cursor,
                max_size=self._settings.pool_size,
                acquire_timeout=self._settings.acquire_timeout_seconds,
                name=str(key),
            )
            session = Session(key, engine, pool)
        except Exception as e:
            _LOGGER.error(
                f"[{self.__class__.__name__}] Failed to create session {key}: {e}",
                exc_info=True,
            )
            raise SessionCreationError(f"Failed to create session {key}: {e}") from e
        finally:
            # No await between removing the marker and installing the session.
            self._pending.pop(key, None)
            if session is not None and not self._closed:
                self._sessions[key] = session

        if self._closed:
            await session.close()
            raise SessionClosedError(f"Registry closed while creating session {key}")
        _LOGGER.info(f"[{self.__class__.__name__}] Session {key} created")
        return session

    async def remove(self, key: SessionKey) -> bool:
        """
        Close and forget the session for `key`.

        Returns:
            bool: True if a session was removed.
        """
        async with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            return False
        await self._close_session(session)
        return True

    async def evict_idle(self, idle_timeout: float, now: float | None = None) -> list[SessionKey]:
        """
        Close sessions that have been idle for at least `idle_timeout` seconds.

        Sessions lending out a connection or running a sync are never evicted.

        Args:
            idle_timeout (float): Idle threshold in seconds.
            now (float | None): Current `time.monotonic()` value; defaults to now.

        Returns:
            list[SessionKey]: Keys of the evicted sessions.
        """
        now = time.monotonic() if now is None else now
        async with self._lock:
            idle = [
                session
                for session in self._sessions.values()
                if session.is_idle(now, idle_timeout)
            ]
            for session in idle:
                del self._sessions[session.key]

        for session in idle:
            _LOGGER.info(
                f"[{self.__class__.__name__}] Evicting session {session.key} after "
                f"{now - session.last_access:.0f}s idle"
            )
            await self._close_session(session)
        return [session.key for session in idle]

    async def _close_session(self, session: Session) -> None:
        try:
            await session.close()
        except Exception as e:
            _LOGGER.error(
                f"[{self.__class__.__name__}] Error closing session {session.key}: {e}",
                exc_info=True,
            )

    async def close(self) -> None:
        """
        Close every session and reject further creation.

        In-flight creations are awaited first; sessions they produce are closed
        immediately. Errors closing individual sessions are logged and do not stop the
        others from closing.
        """
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        _LOGGER.info(f"[{self.__class__.__name__}] Closing {len(sessions)} session(s)")
        for session in sessions:
            await self._close_session(session)

    def snapshot(self) -> list[dict[str, Any]]:
        """Return JSON-friendly descriptions of the live sessions."""
        return [session.snapshot() for session in self.sessions()]
