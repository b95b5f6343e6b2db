"""
Session MCP Tools - Inspect Conversation Sessions.

Provides MCP tools for viewing the live conversation sessions:
- sessions_list: List sessions with their attached databases and pool usage
"""

import logging

from mcp.server.fastmcp import Context

from qwery_mcp.mcp_server._tools.mcp_server import mcp_server
from qwery_mcp.mcp_server._tools.shared import _get_session_manager

_LOGGER = logging.getLogger(__name__)


@mcp_server.tool()
async def sessions_list(context: Context) -> dict:
    """
    MCP Tool: List all live conversation sessions.

    A session is created the first time a conversation syncs datasources or runs a query,
    and is closed after a period of inactivity or when the configuration is reloaded.
    This is a lightweight operation that issues no queries.

    Args:
        context (Context): The MCP context object.

    Returns:
        dict: Structured result object with the following keys:
            - 'success' (bool): True on success.
            - 'sessions' (list[dict]): One entry per session with 'conversation_id', 'workspace',
              'generation', 'attached' (datasource_id, database_name, provider,
              attached_at_generation), 'pool' (in_use, size, max_size), 'idle_seconds'
              and 'age_seconds'.
            - 'error' (str, optional) / 'isError' (bool, optional): Present on failure.

    Example Successful Response:
        {'success': True, 'sessions': [{'conversation_id': 'conv-1', 'workspace': '/ws', 'generation': 2,
          'attached': [{'datasource_id': 'pg1', 'database_name': 'pg1', 'provider': 'postgresql',
          'attached_at_generation': 1}], 'pool': {'in_use': 0, 'size': 1, 'max_size': 4},
          'idle_seconds': 3.2, 'age_seconds': 60.0}]}
    """
    _LOGGER.info("[mcp_server:sessions_list] Invoked.")
    try:
        sessions = _get_session_manager(context).list_sessions()
        _LOGGER.info(f"[mcp_server:sessions_list] Returning {len(sessions)} session(s)")
        return {"success": True, "sessions": sessions}
    except Exception as e:
        _LOGGER.error(
            f"[mcp_server:sessions_list] Failed to list sessions: {e!r}", exc_info=True
        )
        return {"success": False, "error": str(e), "isError": True}
