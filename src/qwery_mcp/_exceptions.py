"""Custom exception types for Qwery MCP.

Defines the exception hierarchies used by the datasource session manager: session
lifecycle, datasource attachment, connection pooling, query execution, the datasource
catalog and configuration. These exceptions give callers fine-grained error reporting
so that transient failures (pool timeouts, unreachable datasources) can be retried
while programming errors surface loudly.

Exception Hierarchy:
    - Base exceptions: McpError (base for all MCP exceptions), InternalError (extends McpError and RuntimeError)
    - Session exceptions: SessionError (extends McpError), SessionCreationError (extends SessionError), SessionClosedError (extends SessionError)
    - Attachment exceptions: AttachmentError (extends McpError), DatabaseNameCollisionError (extends AttachmentError), UnsupportedProviderError (extends AttachmentError)
    - Pool exceptions: PoolError (extends McpError), PoolExhaustedError (extends PoolError), PoolTimeoutError (extends PoolExhaustedError), PoolClosedError (extends PoolError)
    - Query exceptions: QueryError (extends McpError), QueryTimeoutError (extends QueryError), QueryCatalogError (extends QueryError)
    - Catalog exceptions: CatalogError (extends McpError), DatasourceNotFoundError (extends CatalogError and KeyError), DatasourceUnavailableError (extends CatalogError)
    - Configuration exceptions: ConfigurationError (extends McpError)

Usage Example:
    ```python
    from qwery_mcp._exceptions import PoolTimeoutError, QueryCatalogError

    try:
        result = await manager.run_query("conv-1", "/ws", sql, expected_database="sales")
    except QueryCatalogError as e:
        # Missing table or database: show the caller what is actually attached
        logger.warning(e.diagnostics.message)
    except PoolTimeoutError:
        # Transient: every connection of the session is busy
        raise
    ```
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qwery_mcp.diagnostics import DiagnosticMessage

__all__ = [
    # Base exceptions
    "McpError",
    "InternalError",
    # Session exceptions
    "SessionError",
    "SessionCreationError",
    "SessionClosedError",
    # Attachment exceptions
    "AttachmentError",
    "DatabaseNameCollisionError",
    "UnsupportedProviderError",
    # Pool exceptions
    "PoolError",
    "PoolExhaustedError",
    "PoolTimeoutError",
    "PoolClosedError",
    # Query exceptions
    "QueryError",
    "QueryTimeoutError",
    "QueryCatalogError",
    # Catalog exceptions
    "CatalogError",
    "DatasourceNotFoundError",
    "DatasourceUnavailableError",
    # Configuration exceptions
    "ConfigurationError",
]


# Base Exceptions


class McpError(Exception):
    """Base exception for all Qwery MCP errors.

    Allows callers to catch every MCP-related error with a single except clause while
    still keeping specific exception types for detailed handling.
    """

    pass


class InternalError(McpError, RuntimeError):
    """Internal errors indicating bugs in the MCP implementation.

    Raised when an invariant is broken, for example a pooled connection released twice
    or used after it was returned to its pool. Inherits from RuntimeError to emphasize
    that this is a programming error, not a user or datasource problem.
    """

    pass


# Session Exceptions


class SessionError(McpError):
    """Base exception for all session-related errors."""

    pass


class SessionCreationError(SessionError):
    """Raised when a datasource session cannot be created.

    Typically wraps a failure to initialize the analytical engine. The failure is never
    cached: the pending creation marker is removed and the next caller retries.
    """

    pass


class SessionClosedError(SessionError):
    """Raised when an operation targets a session that was closed or evicted.

    Callers holding a stale session reference (for example after idle eviction) receive
    this error and can simply ask the registry for a fresh session.
    """

    pass


# Attachment Exceptions


class AttachmentError(McpError):
    """Raised when a single datasource fails to attach to, or detach from, a session.

    Attachment errors are collected per batch by the synchronizer and never abort the
    sibling operations of the same sync call.

    Attributes:
        datasource_id (str): Identifier of the datasource that failed.
        cause (BaseException | None): The underlying error, if any.
        operation (str): Either "attach" or "detach".
    """

    def __init__(
        self,
        datasource_id: str,
        message: str,
        cause: BaseException | None = None,
        operation: str = "attach",
    ) -> None:
        """Initialize the attachment error.

        Args:
            datasource_id (str): Identifier of the datasource that failed.
            message (str): Human-readable description of the failure.
            cause (BaseException | None): The underlying error, if any.
            operation (str): The operation that failed ("attach" or "detach").
        """
        super().__init__(message)
        self.datasource_id = datasource_id
        self.cause = cause
        self.operation = operation

    def to_dict(self) -> dict[str, str]:
        """Return a JSON-friendly representation for tool responses."""
        return {
            "datasource_id": self.datasource_id,
            "operation": self.operation,
            "error": str(self),
            "error_type": type(self.cause or self).__name__,
        }


class DatabaseNameCollisionError(AttachmentError):
    """Raised when two datasources would share a logical database name in one session."""

    pass


class UnsupportedProviderError(AttachmentError):
    """Raised when no attachment strategy is registered for a datasource provider."""

    pass


# Pool Exceptions


class PoolError(McpError):
    """Base exception for connection pool errors."""

    pass


class PoolExhaustedError(PoolError):
    """Raised when no connection is free and the caller asked not to wait.

    This is a transient failure: retrying later is safe.
    """

    pass


class PoolTimeoutError(PoolExhaustedError):
    """Raised when no connection became free within the acquisition timeout."""

    pass


class PoolClosedError(PoolError):
    """Raised when borrowing from a pool whose session has been torn down."""

    pass


# Query Exceptions


class QueryError(McpError):
    """Raised when a query fails to execute against a session's engine."""

    pass


class QueryTimeoutError(QueryError):
    """Raised when query execution exceeds the configured timeout.

    The connection that ran the query is discarded, so its pool slot is never leaked.
    """

    pass


class QueryCatalogError(QueryError):
    """Raised when a query references a database or table that does not exist.

    Carries a `DiagnosticMessage` describing the databases and tables that are actually
    attached, so the caller can correct the query instead of retrying blindly.

    Attributes:
        diagnostics (DiagnosticMessage): Snapshot of the session's catalog state.
    """

    def __init__(self, message: str, diagnostics: "DiagnosticMessage") -> None:
        """Initialize the error with its diagnostics.

        Args:
            message (str): Human-readable error message.
            diagnostics (DiagnosticMessage): Attached-set and table snapshot.
        """
        super().__init__(message)
        self.diagnostics = diagnostics


# Catalog Exceptions


class CatalogError(McpError):
    """Base exception for datasource catalog lookups."""

    pass


class DatasourceNotFoundError(CatalogError, KeyError):
    """Raised when the catalog has no datasource with the requested identifier.

    Inherits from KeyError so it can be handled as a missing mapping key.
    """

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages.
        return str(self.args[0]) if self.args else ""


class DatasourceUnavailableError(CatalogError):
    """Raised when the catalog itself cannot be reached (network or server failure).

    Distinct from DatasourceNotFoundError: the datasource may exist, retry later.
    """

    pass


# Configuration Exceptions


class ConfigurationError(McpError):
    """Base exception for configuration-related errors."""

    pass
