"""Custom exceptions for Qwery MCP configuration."""

from qwery_mcp._exceptions import ConfigurationError


class McpConfigurationError(ConfigurationError):
    """Base class for all Qwery MCP configuration errors."""

    pass


class SessionConfigurationError(McpConfigurationError):
    """Raised when the 'sessions' section of the configuration is invalid."""

    pass


class DatasourceConfigurationError(McpConfigurationError):
    """Raised when a datasource entry or the 'catalog' section is invalid."""

    pass


__all__ = [
    "McpConfigurationError",
    "SessionConfigurationError",
    "DatasourceConfigurationError",
]
