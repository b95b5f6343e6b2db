"""
Bounded, lazily populated pool of engine connections for one session.

The pool starts empty. `borrow()` reuses a free connection when one exists and otherwise
opens a new one, up to `max_size` connections in total. Once the bound is reached,
`borrow()` waits (up to its timeout) until another caller releases or discards a
connection. The bound is enforced with an `asyncio.Semaphore` whose permits represent
connection slots, so a slot is held from borrow to release.

Every borrow must be matched by exactly one `release()` or `discard()`. Releasing twice, or
using a connection after it was released, raises `InternalError`. Closing the pool closes
every connection, borrowed ones included.
"""

__all__ = ["ConnectionPool", "PooledConnection"]

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable

import duckdb
import pyarrow as pa

from qwery_mcp._exceptions import (
    InternalError,
    PoolClosedError,
    PoolExhaustedError,
    PoolTimeoutError,
)

_LOGGER = logging.getLogger(__name__)


class PooledConnection:
    """
    An engine connection lent out by a `ConnectionPool`.

    All statement methods run the blocking DuckDB call in a worker thread. They raise
    `InternalError` when the connection is not currently borrowed.
    """

    def __init__(
        self, pool: "ConnectionPool", cursor: duckdb.DuckDBPyConnection, connection_id: int
    ):
        self._pool = pool
        self._cursor = cursor
        self.connection_id = connection_id
        self._borrowed = False
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "borrowed" if self._borrowed else "free"
        return f"PooledConnection(id={self.connection_id}, pool={self._pool.name!r}, {state})"

    @property
    def pool(self) -> "ConnectionPool":
        """The pool this connection belongs to."""
        return self._pool

    @property
    def borrowed(self) -> bool:
        """True between `borrow()` and the matching `release()`/`discard()`."""
        return self._borrowed

    @property
    def closed(self) -> bool:
        """True once the underlying DuckDB connection is closed."""
        return self._closed

    def _check_usable(self) -> None:
        if self._closed:
            raise PoolClosedError(f"Connection {self.connection_id} of {self._pool.name} is closed")
        if not self._borrowed:
            raise InternalError(
                f"Connection {self.connection_id} of {self._pool.name} used after release"
            )

    async def run(self, sql: str) -> None:
        """Execute a statement, discarding any result."""
        self._check_usable()
        await asyncio.to_thread(self._cursor.execute, sql)

    async def fetch_rows(self, sql: str) -> list[tuple[Any, ...]]:
        """Execute a query and return all rows as tuples."""
        self._check_usable()
        return await asyncio.to_thread(lambda: self._cursor.execute(sql).fetchall())

    async def fetch_arrow(self, sql: str) -> pa.Table:
        """Execute a query and return its result as a PyArrow table."""
        self._check_usable()
        return await asyncio.to_thread(lambda: self._cursor.execute(sql).fetch_arrow_table())

    def interrupt(self) -> None:
        """Interrupt the statement currently running on this connection, if any."""
        if not self._closed:
            self._cursor.interrupt()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        except duckdb.Error as e:
            _LOGGER.warning(
                f"[PooledConnection] Error closing connection {self.connection_id} of {self._pool.name}: {e}"
            )


class ConnectionPool:
    """
    Bounded pool of `PooledConnection` objects for one session.

    Coroutine-safe: any number of tasks may borrow and release concurrently.
    """

    def __init__(
        self,
        connect: Callable[[], Awaitable[duckdb.DuckDBPyConnection]],
        max_size: int,
        acquire_timeout: float | None = None,
        name: str = "pool",
    ):
        """
        Initialize an empty pool.

        Args:
            connect (Callable[[], Awaitable[duckdb.DuckDBPyConnection]]): Opens a new
                connection to the session's engine (typically `AnalyticalEngine.cursor`).
            max_size (int): Maximum number of simultaneously open connections.
            acquire_timeout (float | None): Default time `borrow()` waits for a free slot.
                None waits indefinitely.
            name (str): Label used in log and error messages.

        Raises:
            ValueError: If `max_size` is not positive.
        """
        if max_size <= 0:
            raise ValueError(f"Pool size must be positive, got {max_size}")
        self._connect = connect
        self._max_size = max_size
        self._acquire_timeout = acquire_timeout
        self.name = name
        self._slots = asyncio.Semaphore(max_size)
        self._free: list[PooledConnection] = []
        self._open: set[PooledConnection] = set()
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def max_size(self) -> int:
        """Maximum number of simultaneously open connections."""
        return self._max_size

    @property
    def size(self) -> int:
        """Number of currently open connections (free and borrowed)."""
        return len(self._open)

    @property
    def in_use(self) -> int:
        """Number of currently borrowed connections."""
        return sum(1 for conn in self._open if conn.borrowed)

    @property
    def closed(self) -> bool:
        """True once `close()` has been called."""
        return self._closed

    async def borrow(self, timeout: float | None = None) -> PooledConnection:
        """
        Borrow a connection, waiting for a free slot if the pool is at capacity.

        Args:
            timeout (float | None): Seconds to wait for a slot; defaults to the pool's
                acquire timeout. A timeout of 0 never waits.

        Returns:
            PooledConnection: A borrowed connection. The caller must `release()` or `discard()` it.

        Raises:
            PoolClosedError: If the pool is closed.
            PoolExhaustedError: If `timeout` is 0 and every slot is taken.
            PoolTimeoutError: If no slot became free within the timeout.
        """
        if self._closed:
            raise PoolClosedError(f"Connection pool {self.name} is closed")

        wait = self._acquire_timeout if timeout is None else timeout
        if wait == 0:
            if self._slots.locked():
                raise PoolExhaustedError(
                    f"All {self._max_size} connections of {self.name} are in use"
                )
            await self._slots.acquire()
        else:
            try:
                await asyncio.wait_for(self._slots.acquire(), timeout=wait)
            except TimeoutError:
                _LOGGER.warning(
                    f"[{self.__class__.__name__}] Timed out after {wait}s waiting for a connection of {self.name}"
                )
                raise PoolTimeoutError(
                    f"No connection of {self.name} became available within {wait} seconds"
                ) from None

        try:
            if self._closed:
                raise PoolClosedError(f"Connection pool {self.name} is closed")
            if self._free:
                conn = self._free.pop()
            else:
                cursor = await self._connect()
                conn = PooledConnection(self, cursor, next(self._ids))
                self._open.add(conn)
                _LOGGER.debug(
                    f"[{self.__class__.__name__}] Opened connection {conn.connection_id} of {self.name} "
                    f"({len(self._open)}/{self._max_size})"
                )
        except BaseException:
            self._slots.release()
            raise

        conn._borrowed = True
        return conn

    def _check_owned(self, conn: PooledConnection) -> None:
        if conn.pool is not self:
            raise InternalError(
                f"Connection {conn.connection_id} does not belong to pool {self.name}"
            )
        if not conn.borrowed:
            raise InternalError(
                f"Connection {conn.connection_id} of {self.name} released more than once"
            )

    async def release(self, conn: PooledConnection) -> None:
        """
        Return a borrowed connection to the free list.

        Args:
            conn (PooledConnection): The connection obtained from `borrow()`.

        Raises:
            InternalError: If the connection belongs to another pool or was already released.
        """
        self._check_owned(conn)
        conn._borrowed = False
        if self._closed or conn.closed:
            self._open.discard(conn)
            conn._close()
        else:
            self._free.append(conn)
        self._slots.release()

    async def discard(self, conn: PooledConnection) -> None:
        """
        Close a borrowed connection instead of returning it, freeing its slot.

        Used when the connection may be in a bad state (e.g. a query was abandoned after a
        timeout). The next `borrow()` opens a replacement lazily.

        Args:
            conn (PooledConnection): The connection obtained from `borrow()`.

        Raises:
            InternalError: If the connection belongs to another pool or was already released.
        """
        self._check_owned(conn)
        conn._borrowed = False
        self._open.discard(conn)
        try:
            await asyncio.to_thread(conn._close)
        finally:
            self._slots.release()
        _LOGGER.debug(
            f"[{self.__class__.__name__}] Discarded connection {conn.connection_id} of {self.name}"
        )

    async def close(self) -> None:
        """
        Close every connection, borrowed ones included, and reject further borrows.

        Borrowers still holding a connection get `PoolClosedError` on their next statement;
        their eventual `release()` is accepted and is a no-op apart from bookkeeping.
        """
        if self._closed:
            return
        self._closed = True
        connections = list(self._open)
        self._open.clear()
        self._free.clear()
        for conn in connections:
            if conn.borrowed:
                conn.interrupt()
            await asyncio.to_thread(conn._close)
        _LOGGER.debug(
            f"[{self.__class__.__name__}] Closed {len(connections)} connection(s) of {self.name}"
        )
