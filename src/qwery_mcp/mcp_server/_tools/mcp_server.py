"""
MCP Server Infrastructure - FastMCP Server Instance and Configuration Management.

Provides core MCP server infrastructure:
- mcp_server: The FastMCP server instance with registered tools
- app_lifespan: Application lifecycle manager for resource cleanup
- mcp_reload: Tool to reload server configuration without restart

The tool modules register themselves on `mcp_server` when imported; the package
`qwery_mcp.mcp_server` imports all of them.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from mcp.server.fastmcp import Context, FastMCP

from qwery_mcp.catalog import create_catalog
from qwery_mcp.config import ConfigManager, SessionSettings
from qwery_mcp.session_manager import DatasourceSessionManager

_LOGGER = logging.getLogger(__name__)


async def _build_session_manager(config_manager: ConfigManager) -> DatasourceSessionManager:
    """Create and start a session manager from the current configuration."""
    config = await config_manager.get_config()
    manager = DatasourceSessionManager(
        create_catalog(config, config_manager),
        SessionSettings.from_config(config),
    )
    manager.start()
    return manager


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[dict[str, object]]:
    """
    Async context manager for the FastMCP server application lifespan.

    This function manages the startup and shutdown lifecycle of the MCP server. It is responsible for:
      - Instantiating a ConfigManager and loading the configuration before the server accepts requests.
      - Creating the DatasourceSessionManager (catalog, session registry and idle eviction).
      - Creating a coroutine-safe asyncio.Lock (refresh_lock) for atomic configuration reloads.
      - Closing every session (and its DuckDB instance) on shutdown.

    Args:
        server (FastMCP): The FastMCP server instance (required by the FastMCP lifespan API).

    Yields:
        dict[str, object]: A context dictionary with the following keys for dependency injection into MCP tool requests:
            - 'config_manager' (ConfigManager): Instance for accessing the configuration.
            - 'session_manager' (DatasourceSessionManager): Instance managing all conversation sessions.
              Replaced by `mcp_reload`, so tools must look it up on every call.
            - 'refresh_lock' (asyncio.Lock): Lock for atomic reload operations across tools.
    """
    _LOGGER.info(f"[mcp_server:app_lifespan] Starting MCP server '{server.name}'")
    context: dict[str, object] = {}

    try:
        config_manager = ConfigManager()

        # Make sure config can be loaded before starting
        _LOGGER.info("[mcp_server:app_lifespan] Loading configuration...")
        await config_manager.get_config()
        _LOGGER.info("[mcp_server:app_lifespan] Configuration loaded.")

        context["config_manager"] = config_manager
        context["session_manager"] = await _build_session_manager(config_manager)
        context["refresh_lock"] = asyncio.Lock()

        yield context
    finally:
        _LOGGER.info(f"[mcp_server:app_lifespan] Shutting down MCP server '{server.name}'")
        session_manager = context.get("session_manager")
        if isinstance(session_manager, DatasourceSessionManager):
            await session_manager.close()
        _LOGGER.info(f"[mcp_server:app_lifespan] MCP server '{server.name}' shut down.")


mcp_server = FastMCP("qwery-mcp", lifespan=app_lifespan)
"""
FastMCP Server Instance for the Qwery MCP datasource tools.

All functions decorated with @mcp_server.tool() are registered as MCP tools. This object
should not be instantiated more than once per process.
"""


@mcp_server.tool()
async def mcp_reload(context: Context) -> dict:
    """
    MCP Tool: Reload configuration and close all active sessions.

    Reloads the configuration file, rebuilds the datasource catalog and closes every
    conversation session. Sessions are recreated on next use with the new settings, and
    their datasources must be synced again.

    AI Agent Usage:
    - Use this tool after editing the configuration file (datasources, timeouts, pool size).
    - Check 'success' field to verify reload completed.
    - WARNING: all attached datasources of every conversation are dropped.

    Args:
        context (Context): The MCP context object.

    Returns:
        dict: Structured result object with the following keys:
            - 'success' (bool): True if the reload completed successfully, False otherwise.
            - 'error' (str, optional): Error message if the reload failed.
            - 'isError' (bool, optional): Present and True if this is an error response.

    Example Successful Response:
        {'success': True}

    Example Error Response:
        {'success': False, 'error': 'Failed to reload configuration: ...', 'isError': True}
    """
    _LOGGER.info(
        "[mcp_server:mcp_reload] Invoked: reloading configuration and closing sessions."
    )
    try:
        lifespan_context = context.request_context.lifespan_context
        refresh_lock: asyncio.Lock = lifespan_context["refresh_lock"]
        config_manager: ConfigManager = lifespan_context["config_manager"]

        async with refresh_lock:
            await config_manager.clear_config_cache()
            new_manager = await _build_session_manager(config_manager)
            old_manager: DatasourceSessionManager = lifespan_context["session_manager"]
            lifespan_context["session_manager"] = new_manager
            await old_manager.close()
        _LOGGER.info(
            "[mcp_server:mcp_reload] Success: configuration reloaded and sessions closed."
        )
        return {"success": True}
    except Exception as e:
        _LOGGER.error(
            f"[mcp_server:mcp_reload] Failed to reload configuration: {e!r}",
            exc_info=True,
        )
        return {"success": False, "error": str(e), "isError": True}
