"""
Diagnostics for queries that reference a missing database or table.

When DuckDB reports a catalog-class failure ("Catalog Error", "... does not exist"), the
reporter snapshots what the session's engine actually contains: the attached logical
databases and, if the database the caller expected is among them, its tables. The
resulting message lets an agent or a user correct the query instead of retrying blindly.

`explain_failure` never raises; anything that fails while gathering is left out.
"""

__all__ = ["DiagnosticMessage", "explain_failure", "is_catalog_error"]

import logging
from dataclasses import dataclass, field
from typing import Any

import duckdb

from qwery_mcp.attachment import list_attached_databases, quote_identifier, quote_literal
from qwery_mcp.engine import SqlExecutor

_LOGGER = logging.getLogger(__name__)

_CATALOG_ERROR_MARKERS: tuple[str, ...] = ("does not exist", "catalog error")


def is_catalog_error(error: BaseException) -> bool:
    """Return True if an engine error denotes a missing database, schema or table."""
    if isinstance(error, duckdb.CatalogException):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _CATALOG_ERROR_MARKERS)


@dataclass(frozen=True)
class DiagnosticMessage:
    """
    Structured explanation of a catalog-class query failure.

    Attributes:
        error (str): The original engine error message.
        query (str): The SQL that failed.
        expected_database (str | None): The logical database the query was meant for.
        attached_databases (list[str] | None): Databases attached at failure time, or None
            if they could not be listed.
        tables (list[str] | None): Tables of the expected database, or None when it is not
            attached (or could not be listed).
    """

    error: str
    query: str
    expected_database: str | None = None
    attached_databases: list[str] | None = None
    tables: list[str] | None = field(default=None)

    @property
    def expected_database_attached(self) -> bool:
        """True if the expected database appears in the attached list."""
        if not self.expected_database or not self.attached_databases:
            return False
        wanted = self.expected_database.lower()
        return any(name.lower() == wanted for name in self.attached_databases)

    @property
    def message(self) -> str:
        """Human-readable explanation."""
        lines = [f"Query failed: {self.error}"]
        if self.expected_database:
            state = "is attached" if self.expected_database_attached else "is NOT attached"
            lines.append(f"Expected database '{self.expected_database}' {state}.")
        if self.attached_databases is not None:
            attached = ", ".join(self.attached_databases) or "(none)"
            lines.append(f"Attached databases: {attached}")
        if self.tables is not None:
            tables = ", ".join(self.tables) or "(none)"
            lines.append(f"Tables in '{self.expected_database}': {tables}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "error": self.error,
            "expected_database": self.expected_database,
            "attached_databases": self.attached_databases,
            "tables": self.tables,
            "message": self.message,
        }


async def _list_tables(executor: SqlExecutor, database: str) -> list[str]:
    try:
        rows = await executor.fetch_rows(f"SHOW TABLES FROM {quote_identifier(database)}")
    except duckdb.Error:
        rows = await executor.fetch_rows(
            "SELECT table_name FROM information_schema.tables "
            f"WHERE table_catalog = {quote_literal(database)} ORDER BY table_name"
        )
    return sorted({row[0] for row in rows})


async def explain_failure(
    executor: SqlExecutor,
    failed_query: str,
    expected_database: str | None,
    error: BaseException | str,
) -> DiagnosticMessage:
    """
    Gather attached databases and tables to explain a failed query.

    Args:
        executor (SqlExecutor): A connection to the session's engine (typically the
            pooled connection that ran the failed query).
        failed_query (str): The SQL that failed.
        expected_database (str | None): The logical database the query was meant for.
        error (BaseException | str): The engine error.

    Returns:
        DiagnosticMessage: The explanation. Parts that could not be gathered are None.
    """
    attached: list[str] | None = None
    tables: list[str] | None = None
    try:
        attached = await list_attached_databases(executor)
    except Exception as e:
        _LOGGER.debug(f"[diagnostics:explain_failure] Could not list attached databases: {e}")

    if expected_database and attached is not None:
        match = next((name for name in attached if name.lower() == expected_database.lower()), None)
        if match is not None:
            try:
                tables = await _list_tables(executor, match)
            except Exception as e:
                _LOGGER.debug(
                    f"[diagnostics:explain_failure] Could not list tables of '{match}': {e}"
                )

    return DiagnosticMessage(
        error=str(error),
        query=failed_query,
        expected_database=expected_database,
        attached_databases=attached,
        tables=tables,
    )
