"""
Attachment of external datasources to a session's analytical engine.

The `AttachmentDriver` dispatches on the datasource's provider (see `qwery_mcp.providers`)
to a strategy that issues the ATTACH/DETACH statements and any supporting SQL, loading the
DuckDB extensions the provider needs first.
"""

from qwery_mcp.attachment._connection_strings import (
    build_mysql_connection_string,
    build_postgres_connection_url,
    clean_postgres_connection_url,
    extract_connection_string,
)
from qwery_mcp.attachment._driver import (
    AttachmentDriver,
    default_strategies,
    list_attached_databases,
)
from qwery_mcp.attachment._sql import (
    build_attach_sql,
    build_detach_sql,
    is_already_attached_error,
    quote_identifier,
    quote_literal,
)
from qwery_mcp.attachment._strategies import (
    AttachContext,
    AttachmentStrategy,
    DuckDBNativeStrategy,
    ForeignDatabaseStrategy,
    GSheetStrategy,
)

__all__ = [
    "AttachContext",
    "AttachmentDriver",
    "AttachmentStrategy",
    "DuckDBNativeStrategy",
    "ForeignDatabaseStrategy",
    "GSheetStrategy",
    "build_attach_sql",
    "build_detach_sql",
    "build_mysql_connection_string",
    "build_postgres_connection_url",
    "clean_postgres_connection_url",
    "default_strategies",
    "extract_connection_string",
    "is_already_attached_error",
    "list_attached_databases",
    "quote_identifier",
    "quote_literal",
]
