"""
Qwery MCP Server.

Exposes per-conversation DuckDB sessions that federate heterogeneous datasources
(PostgreSQL, MySQL, SQLite, DuckDB files, CSV/JSON/Parquet files and Google Sheets) to
MCP clients.

Tools Provided:
    - mcp_reload: Reload configuration and close all sessions.
    - datasources_list: List configured datasources (credentials redacted).
    - datasources_sync: Attach (and optionally detach) datasources for a conversation.
    - datasources_reset_sync_cache: Force the next sync of a conversation to re-attach everything.
    - query_run: Run SQL in a conversation's session, with diagnostics for missing tables.
    - sessions_list: List live sessions with their attached databases and pool usage.

Return Types:
    - All tools return structured dict objects and never raise exceptions to the MCP layer.
    - On success, 'success': True. On error, 'success': False, 'error': str and 'isError': True.
"""

from qwery_mcp.mcp_server._tools import datasource, query, session  # noqa: F401
from qwery_mcp.mcp_server._tools.mcp_server import mcp_server

__all__ = [
    "mcp_server",
]
