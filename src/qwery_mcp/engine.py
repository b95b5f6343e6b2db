"""
The analytical engine owned by a datasource session.

`AnalyticalEngine` wraps one in-memory DuckDB database instance. All blocking DuckDB
calls are dispatched with `asyncio.to_thread` so that long ATTACH statements or queries
never stall the event loop.

The engine exposes two kinds of connections to the same database instance:

- A *control* connection, used by the attachment driver for ATTACH/DETACH, extension
  loading and catalog listings. Access is serialized with a thread lock, because a
  statement abandoned by a timeout may still be running in its worker thread.
- *Cursors* created with `cursor()`, one per pooled connection. Attached databases are
  visible to every cursor of the instance.
"""

__all__ = ["AnalyticalEngine", "SqlExecutor"]

import asyncio
import logging
import threading
from typing import Any, Protocol

import duckdb

_LOGGER = logging.getLogger(__name__)


class SqlExecutor(Protocol):
    """Anything that can run SQL statements against a DuckDB instance."""

    async def run(self, sql: str) -> None:
        """Execute a statement, discarding any result."""
        ...  # pragma: no cover

    async def fetch_rows(self, sql: str) -> list[tuple[Any, ...]]:
        """Execute a query and return all rows."""
        ...  # pragma: no cover


class AnalyticalEngine:
    """
    One DuckDB database instance and its control connection.

    Instances are created with `AnalyticalEngine.open()`; the session registry creates
    exactly one engine per session.
    """

    def __init__(self, connection: duckdb.DuckDBPyConnection, name: str):
        """
        Initialize the engine around an open DuckDB connection.

        Args:
            connection (duckdb.DuckDBPyConnection): Root connection of the database instance.
            name (str): Label used in log messages (typically the session key).
        """
        self._root = connection
        self._control = connection.cursor()
        self._name = name
        self._control_lock = threading.Lock()
        self._cursor_lock = threading.Lock()
        self._closed = False
        self.loaded_extensions: set[str] = set()

    @classmethod
    async def open(
        cls, name: str, settings: dict[str, Any] | None = None
    ) -> "AnalyticalEngine":
        """
        Open a new in-memory DuckDB instance.

        Args:
            name (str): Label used in log messages.
            settings (dict[str, Any] | None): DuckDB configuration options
                (e.g. {"threads": 4, "memory_limit": "2GB"}).

        Returns:
            AnalyticalEngine: The opened engine.

        Raises:
            duckdb.Error: If DuckDB rejects the settings or cannot allocate the instance.
        """
        _LOGGER.debug(f"[AnalyticalEngine] Opening DuckDB instance for {name}")
        connection = await asyncio.to_thread(
            duckdb.connect, database=":memory:", config=dict(settings or {})
        )
        return cls(connection, name)

    @property
    def name(self) -> str:
        """Label of the engine, used in log messages."""
        return self._name

    @property
    def is_closed(self) -> bool:
        """True once `close()` has been called."""
        return self._closed

    def _run_locked(self, sql: str) -> None:
        with self._control_lock:
            self._control.execute(sql)

    def _fetch_locked(self, sql: str) -> list[tuple[Any, ...]]:
        with self._control_lock:
            return self._control.execute(sql).fetchall()

    async def run(self, sql: str) -> None:
        """Execute a statement on the control connection."""
        await asyncio.to_thread(self._run_locked, sql)

    async def fetch_rows(self, sql: str) -> list[tuple[Any, ...]]:
        """Execute a query on the control connection and return all rows."""
        return await asyncio.to_thread(self._fetch_locked, sql)

    def interrupt(self) -> None:
        """Interrupt the statement currently running on the control connection, if any."""
        self._control.interrupt()

    def _new_cursor(self) -> duckdb.DuckDBPyConnection:
        with self._cursor_lock:
            return self._root.cursor()

    async def cursor(self) -> duckdb.DuckDBPyConnection:
        """
        Create a new connection (cursor) to this database instance.

        Returns:
            duckdb.DuckDBPyConnection: A connection sharing the instance's attached databases.
        """
        return await asyncio.to_thread(self._new_cursor)

    def _close_all(self) -> None:
        with self._cursor_lock:
            self._control.close()
            self._root.close()

    async def close(self) -> None:
        """Close the database instance. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        _LOGGER.debug(f"[AnalyticalEngine] Closing DuckDB instance for {self._name}")
        await asyncio.to_thread(self._close_all)
