"""
Shared Utilities - Internal Helper Functions.

Provides internal helper functions used across multiple MCP tool modules:
- Lifespan context access (session manager, configuration)
- Workspace resolution
- Response size checking

This module contains private helper functions not exposed as MCP tools.
"""

import logging

from mcp.server.fastmcp import Context

from qwery_mcp.config import ConfigManager, resolve_workspace
from qwery_mcp.session_manager import DatasourceSessionManager

_LOGGER = logging.getLogger(__name__)


# Size limits for query responses
MAX_RESPONSE_SIZE = 50_000_000  # 50MB hard limit
WARNING_SIZE = 5_000_000  # 5MB warning threshold
ESTIMATED_BYTES_PER_CELL = 50
"""Rough JSON size of one result cell, used to estimate response sizes before formatting."""


def _get_session_manager(context: Context) -> DatasourceSessionManager:
    """Return the current session manager from the MCP lifespan context."""
    return context.request_context.lifespan_context["session_manager"]


def _get_config_manager(context: Context) -> ConfigManager:
    """Return the configuration manager from the MCP lifespan context."""
    return context.request_context.lifespan_context["config_manager"]


async def _resolve_workspace(
    function_name: str, context: Context, workspace: str | None
) -> str:
    """
    Resolve the workspace a tool call operates in.

    An explicit `workspace` argument wins; otherwise the configured workspace (or the
    WORKSPACE / WORKING_DIR environment variables, or the current directory) is used.

    Args:
        function_name (str): Name of calling function for logging purposes.
        context (Context): The MCP context object.
        workspace (str | None): Workspace passed by the caller, if any.

    Returns:
        str: The workspace path.
    """
    if workspace:
        return workspace
    config = await _get_config_manager(context).get_config()
    resolved = resolve_workspace(config)
    _LOGGER.debug(f"[mcp_server:{function_name}] Using workspace '{resolved}'")
    return resolved


def _check_response_size(label: str, estimated_size: int) -> dict | None:
    """
    Check if estimated response size is within acceptable limits.

    Args:
        label (str): Description of the data being returned, used for logging context.
        estimated_size (int): Estimated response size in bytes.

    Returns:
        dict | None: None if size is acceptable, or a structured error dict with
                     'success': False, 'error': str, 'isError': True if the response
                     would exceed MAX_RESPONSE_SIZE (50MB).
    """
    if estimated_size > WARNING_SIZE:
        _LOGGER.warning(
            f"Large response (~{estimated_size/1_000_000:.1f}MB) for {label}. "
            f"Consider reducing max_rows for better performance."
        )

    if estimated_size > MAX_RESPONSE_SIZE:
        return {
            "success": False,
            "error": f"Response would be ~{estimated_size/1_000_000:.1f}MB (max 50MB). Please reduce max_rows.",
            "isError": True,
        }

    return None  # Size is acceptable
