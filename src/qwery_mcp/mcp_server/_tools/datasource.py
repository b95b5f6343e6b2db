"""
Datasource MCP Tools - List, Sync and Reset Datasource Attachments.

Provides MCP tools for managing which datasources are attached to a conversation:
- datasources_list: List configured datasources (credentials redacted)
- datasources_sync: Attach (and optionally detach) datasources for a conversation
- datasources_reset_sync_cache: Force the next sync of a conversation to re-attach everything
"""

import logging

from mcp.server.fastmcp import Context

from qwery_mcp.catalog import ConfigDatasourceCatalog
from qwery_mcp.config import redact_datasource_config
from qwery_mcp.mcp_server._tools.mcp_server import mcp_server
from qwery_mcp.mcp_server._tools.shared import (
    _get_session_manager,
    _resolve_workspace,
)
from qwery_mcp.providers import SUPPORTED_PROVIDERS

_LOGGER = logging.getLogger(__name__)


@mcp_server.tool()
async def datasources_list(context: Context) -> dict:
    """
    MCP Tool: List the datasources available for attachment.

    Returns the datasources defined in the configuration with their provider and the
    logical database name they are attached under. Passwords, tokens and credentials
    embedded in URLs are redacted.

    AI Agent Usage:
    - Use the 'database_name' of a datasource to qualify tables in SQL: "database_name".table
      (spreadsheets) or "database_name".main.table / "database_name".schema.table (databases).
    - When the server uses an HTTP catalog, datasources are not enumerable and the list is empty.

    Args:
        context (Context): The MCP context object.

    Returns:
        dict: Structured result object with the following keys:
            - 'success' (bool): True on success.
            - 'datasources' (list[dict]): Entries with 'datasource_id', 'provider', 'name',
              'database_name' and redacted 'config'.
            - 'supported_providers' (list[str]): Provider ids this server can attach.
            - 'error' (str, optional) / 'isError' (bool, optional): Present on failure.

    Example Successful Response:
        {
            'success': True,
            'datasources': [
                {'datasource_id': 'pg1', 'provider': 'postgresql', 'name': 'Sales DB',
                 'database_name': 'sales_db', 'config': {'host': 'db', 'password': '[REDACTED]'}}
            ],
            'supported_providers': ['csv', 'duckdb', ...]
        }
    """
    _LOGGER.info("[mcp_server:datasources_list] Invoked.")
    try:
        session_manager = _get_session_manager(context)
        catalog = session_manager.catalog
        datasources = []
        if isinstance(catalog, ConfigDatasourceCatalog):
            for datasource_id, entry in sorted((await catalog.list_datasources()).items()):
                resolved = await catalog.resolve(datasource_id)
                datasources.append(
                    {
                        "datasource_id": datasource_id,
                        "provider": entry["provider"],
                        "name": entry.get("name", ""),
                        "database_name": resolved.logical_database_name,
                        "config": redact_datasource_config(entry.get("config", {})),
                    }
                )
        _LOGGER.info(
            f"[mcp_server:datasources_list] Returning {len(datasources)} datasource(s)"
        )
        return {
            "success": True,
            "datasources": datasources,
            "supported_providers": sorted(SUPPORTED_PROVIDERS),
        }
    except Exception as e:
        _LOGGER.error(
            f"[mcp_server:datasources_list] Failed to list datasources: {e!r}",
            exc_info=True,
        )
        return {"success": False, "error": str(e), "isError": True}


@mcp_server.tool()
async def datasources_sync(
    context: Context,
    conversation_id: str,
    datasource_ids: list[str],
    detach_unlisted: bool = False,
    workspace: str | None = None,
) -> dict:
    """
    MCP Tool: Attach datasources to a conversation's query engine.

    Ensures every datasource in 'datasource_ids' is attached to the conversation's DuckDB
    session, creating the session on first use. Already attached datasources are left
    alone, and a repeated call with the same list is a cheap no-op ('cached': True).

    Failures are isolated per datasource: a datasource that cannot be attached (bad
    credentials, unreachable host, name collision) is reported in 'failed' while the
    others are attached normally.

    AI Agent Usage:
    - Call before querying datasources with query_run (or pass datasource_id to query_run).
    - Set detach_unlisted=True to make the attached set exactly 'datasource_ids'.
    - Inspect 'failed' even when 'success' is True.

    Args:
        context (Context): The MCP context object.
        conversation_id (str): Identifier of the conversation (one session per conversation).
        datasource_ids (list[str]): Datasources that must be attached.
        detach_unlisted (bool, optional): Detach attached datasources not in the list. Default: False.
        workspace (str, optional): Workspace directory. Defaults to the configured workspace.

    Returns:
        dict: Structured result object with the following keys:
            - 'success' (bool): True if the sync ran (individual datasources may still have failed).
            - 'conversation_id' (str), 'workspace' (str): The session addressed.
            - 'generation' (int): Session generation after the sync.
            - 'cached' (bool): True if nothing had to be done.
            - 'succeeded', 'attached', 'detached', 'unchanged' (list[str]): Datasource ids.
            - 'failed' (list[dict]): Entries with 'datasource_id', 'operation' and 'error'.
            - 'error' (str, optional) / 'isError' (bool, optional): Present when the sync could not run.

    Example Successful Response:
        {'success': True, 'conversation_id': 'conv-1', 'workspace': '/ws', 'generation': 1,
         'cached': False, 'succeeded': ['pg1', 'sheet1'], 'attached': ['pg1', 'sheet1'],
         'detached': [], 'unchanged': [], 'failed': []}
    """
    _LOGGER.info(
        f"[mcp_server:datasources_sync] Invoked: conversation_id={conversation_id!r}, "
        f"datasource_ids={datasource_ids!r}, detach_unlisted={detach_unlisted}, workspace={workspace!r}"
    )
    try:
        workspace = await _resolve_workspace("datasources_sync", context, workspace)
        session_manager = _get_session_manager(context)
        sync_result = await session_manager.sync_datasources(
            conversation_id,
            workspace,
            datasource_ids,
            detach_unlisted=detach_unlisted,
        )
        _LOGGER.info(
            f"[mcp_server:datasources_sync] Generation {sync_result.generation}: "
            f"attached={sync_result.attached}, detached={sync_result.detached}, "
            f"failed={sync_result.failed_ids}, cached={sync_result.cached}"
        )
        return {
            "success": True,
            "conversation_id": conversation_id,
            "workspace": workspace,
            **sync_result.to_dict(),
        }
    except Exception as e:
        _LOGGER.error(
            f"[mcp_server:datasources_sync] Failed to sync datasources for conversation "
            f"'{conversation_id}': {e!r}",
            exc_info=True,
        )
        return {"success": False, "error": str(e), "isError": True}


@mcp_server.tool()
async def datasources_reset_sync_cache(
    context: Context, conversation_id: str, workspace: str | None = None
) -> dict:
    """
    MCP Tool: Force the next datasource sync of a conversation to re-attach everything.

    Use when a datasource changed behind the engine's back (new spreadsheet tab, new
    table, rotated credentials). The next datasources_sync re-attaches every requested
    datasource instead of reporting a cached no-op.

    Args:
        context (Context): The MCP context object.
        conversation_id (str): Identifier of the conversation.
        workspace (str, optional): Workspace directory. Defaults to the configured workspace.

    Returns:
        dict: Structured result object with the following keys:
            - 'success' (bool): True on success.
            - 'reset' (bool): False if the conversation has no session yet (nothing to reset).
            - 'error' (str, optional) / 'isError' (bool, optional): Present on failure.

    Example Successful Response:
        {'success': True, 'reset': True}
    """
    _LOGGER.info(
        f"[mcp_server:datasources_reset_sync_cache] Invoked: conversation_id={conversation_id!r}, "
        f"workspace={workspace!r}"
    )
    try:
        workspace = await _resolve_workspace("datasources_reset_sync_cache", context, workspace)
        reset = await _get_session_manager(context).reset_sync_cache(conversation_id, workspace)
        return {"success": True, "reset": reset}
    except Exception as e:
        _LOGGER.error(
            f"[mcp_server:datasources_reset_sync_cache] Failed for conversation "
            f"'{conversation_id}': {e!r}",
            exc_info=True,
        )
        return {"success": False, "error": str(e), "isError": True}
