"""
MCP Server Tools Package.

This package contains the implementation of all Qwery MCP tools organized by
functional area. Each module provides MCP tools decorated with @mcp_server.tool()
that are registered with the FastMCP server instance when the module is imported.

Modules:
    mcp_server: Server infrastructure and configuration reload
    datasource: Datasource listing, sync and sync-cache reset
    query: SQL execution against a conversation's attached datasources
    session: Session listing
    shared: Internal utility functions (not MCP tools)

All MCP tools follow consistent patterns:
    - Return structured dict responses with 'success' and 'error' keys
    - Never raise exceptions to the MCP layer
    - Use async/await for all I/O operations
    - Include comprehensive docstrings for AI agent consumption
"""
