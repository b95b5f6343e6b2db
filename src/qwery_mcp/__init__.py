"""
Qwery Model Context Protocol (MCP) Server

This package federates heterogeneous datasources (relational databases, spreadsheets, flat
files) through per-conversation, in-process DuckDB sessions and exposes them to MCP
clients.

Modules:
    - config: Configuration loading and validation
    - catalog: Datasource lookup (configuration or HTTP backed)
    - attachment: Provider-specific ATTACH/DETACH strategies
    - session_manager: Session registry, sync-state cache and connection pools
    - rewriter: Provider-aware SQL rewriting
    - diagnostics: Explanations for queries referencing missing databases or tables
    - mcp_server: The MCP server and its tools

To run the server, use the `qwery-mcp` command (`qwery_mcp.mcp_server.main:main`).
"""

import logging

from ._version import version as __version__

__all__ = ["__version__"]

_LOGGER = logging.getLogger(__name__)
_LOGGER.addHandler(logging.NullHandler())
