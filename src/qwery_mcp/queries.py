"""
Async helpers for running SQL on a pooled engine connection.

Provides `execute_query`, which runs a statement with a timeout and returns its result as
a PyArrow table wrapped in a `QueryResult`. A timed-out statement is interrupted and
surfaces as `QueryTimeoutError`; the caller is responsible for discarding the connection.
"""

__all__ = ["QueryResult", "execute_query"]

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import pyarrow as pa

from qwery_mcp._exceptions import QueryTimeoutError

if TYPE_CHECKING:
    from qwery_mcp.session_manager._pool import PooledConnection

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryResult:
    """
    Result of a successful query.

    Attributes:
        table (pa.Table): The result set.
        sql (str): The SQL that was executed (after rewriting).
        elapsed_seconds (float): Wall-clock execution time.
    """

    table: pa.Table
    sql: str
    elapsed_seconds: float

    @property
    def column_names(self) -> list[str]:
        """Names of the result columns, in order."""
        return list(self.table.column_names)

    @property
    def column_types(self) -> list[str]:
        """Arrow type names of the result columns, in order."""
        return [str(field.type) for field in self.table.schema]

    @property
    def row_count(self) -> int:
        """Number of result rows."""
        return self.table.num_rows

    @property
    def rows(self) -> list[dict[str, Any]]:
        """Result rows as dictionaries keyed by column name."""
        return self.table.to_pylist()


async def execute_query(
    connection: "PooledConnection", sql: str, timeout: float | None
) -> QueryResult:
    """
    Run a query on a borrowed connection.

    Args:
        connection (PooledConnection): A connection borrowed from the session's pool.
        sql (str): The SQL to execute.
        timeout (float | None): Seconds before the query is interrupted; None disables the timeout.

    Returns:
        QueryResult: The result table.

    Raises:
        QueryTimeoutError: If the query did not finish within `timeout`.
        duckdb.Error: If DuckDB rejects or fails the query.
    """
    _LOGGER.debug(f"[queries:execute_query] Executing on connection {connection.connection_id}: {sql}")
    start = time.monotonic()
    try:
        table = await asyncio.wait_for(connection.fetch_arrow(sql), timeout=timeout)
    except TimeoutError:
        connection.interrupt()
        _LOGGER.warning(f"[queries:execute_query] Query timed out after {timeout}s: {sql}")
        raise QueryTimeoutError(f"Query timed out after {timeout} seconds") from None
    elapsed = time.monotonic() - start
    _LOGGER.debug(
        f"[queries:execute_query] Query returned {table.num_rows} row(s) in {elapsed:.3f}s"
    )
    return QueryResult(table=table, sql=sql, elapsed_seconds=elapsed)
