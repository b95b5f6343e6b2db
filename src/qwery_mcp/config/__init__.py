"""
Async Qwery MCP configuration management.

This module provides async functions to load, validate, and manage configuration for Qwery MCP from a JSON file.
Configuration is loaded from a file specified by the QWERY_MCP_CONFIG_FILE environment variable using native async file I/O (aiofiles).

Features:
    - Coroutine-safe, cached loading of configuration using asyncio.Lock.
    - Strict validation of configuration structure and values.
    - Workspace resolution shared by the session manager and the MCP tools.
    - Logging of configuration loading and validation steps, with credentials redacted.

Configuration Schema:
---------------------
The configuration file must be a JSON object. All top-level keys are optional:

  - `workspace` (str): Root directory for per-conversation files (e.g. materialized Google Sheets).
      Falls back to the WORKSPACE or WORKING_DIR environment variables, then to the current directory.

  - `sessions` (dict): Datasource session settings (pool size, timeouts, idle eviction,
      DuckDB engine settings). See `qwery_mcp.config._sessions`.

  - `catalog` (dict): Where datasource definitions come from:
        - `type` (str): "config" (default) or "http".
        - `url` (str): Base URL of the HTTP catalog (`GET {url}/{datasource_id}`).
        - `timeout_seconds` (number): HTTP timeout.
        - `headers` (dict): Extra request headers (e.g. authorization).

  - `datasources` (dict): Mapping of datasource id to:
        - `provider` (str, required): Provider id, e.g. "postgresql", "mysql", "csv", "gsheet-csv".
        - `name` (str, required): Human-readable name; the logical database name is derived from it.
        - `database_name` (str, optional): Explicit logical database name.
        - `config` (dict, optional): Provider-specific connection settings.

Example Configuration:
---------------------
```json
{
  "workspace": "/var/lib/qwery",
  "sessions": {"pool_size": 4, "query_timeout_seconds": 60},
  "datasources": {
    "pg1": {
      "provider": "postgresql",
      "name": "Sales DB",
      "config": {"host": "db.internal", "database": "sales", "user": "ro", "password": "..."}
    },
    "sheet1": {
      "provider": "gsheet-csv",
      "name": "Budget",
      "config": {"sharedLink": "https://docs.google.com/spreadsheets/d/abc123/edit"}
    }
  }
}
```

Environment Variables:
---------------------
- `QWERY_MCP_CONFIG_FILE`: Path to the configuration JSON file.
- `WORKSPACE` / `WORKING_DIR`: Workspace fallbacks.

Usage Example:
-------------
```python
from qwery_mcp.config import ConfigManager, SessionSettings

config_manager = ConfigManager()
config = await config_manager.get_config()
settings = SessionSettings.from_config(config)
```
"""

__all__ = [
    "ConfigManager",
    "CONFIG_ENV_VAR",
    "WORKSPACE_ENV_VARS",
    "SessionSettings",
    "McpConfigurationError",
    "SessionConfigurationError",
    "DatasourceConfigurationError",
    "get_config_path",
    "load_and_validate_config",
    "validate_config",
    "resolve_workspace",
    "redact_datasource_config",
]

import asyncio
import json
import logging
import os
from typing import Any, cast

import aiofiles

from qwery_mcp.config._datasources import (
    redact_datasource_config,
    validate_catalog_config,
    validate_datasources_config,
)
from qwery_mcp.config._sessions import SessionSettings, validate_sessions_config
from qwery_mcp.config.errors import (
    DatasourceConfigurationError,
    McpConfigurationError,
    SessionConfigurationError,
)

_LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = "QWERY_MCP_CONFIG_FILE"
"""
str: Name of the environment variable specifying the path to the Qwery MCP config file.
"""

WORKSPACE_ENV_VARS: tuple[str, ...] = ("WORKSPACE", "WORKING_DIR")
"""tuple[str, ...]: Environment variables consulted, in order, when no workspace is configured."""

_REQUIRED_TOP_LEVEL_KEYS: set[str] = set()
"""Set of top-level keys that MUST be present in the configuration file."""
_ALLOWED_TOP_LEVEL_KEYS: set[str] = {"workspace", "sessions", "catalog", "datasources"}
"""Set of all allowed top-level keys in the configuration file."""


class ConfigManager:
    """
    Async configuration manager for Qwery MCP configuration.

    This class encapsulates all logic for loading, validating, and caching the configuration.
    """

    def __init__(self) -> None:
        """
        Initialize a new ConfigManager instance.

        Sets up the internal configuration cache and an asyncio.Lock for coroutine safety.
        """
        self._cache: dict[str, Any] | None = None
        self._lock = asyncio.Lock()

    async def clear_config_cache(self) -> None:
        """
        Clear the cached configuration (coroutine-safe).

        This will force the next configuration access to reload from disk.
        """
        _LOGGER.debug("Clearing Qwery MCP configuration cache...")
        async with self._lock:
            self._cache = None

        _LOGGER.debug("Configuration cache cleared.")

    async def _set_config_cache(self, config: dict[str, Any]) -> None:
        """
        PRIVATE: Set the in-memory configuration cache (coroutine-safe, for testing/internal use only).

        The configuration is validated before caching, bypassing file I/O.

        Args:
            config (dict[str, Any]): The configuration dictionary to set as the cache.

        Raises:
            McpConfigurationError: If the provided configuration is invalid.
        """
        async with self._lock:
            self._cache = validate_config(config)

    async def get_config(self) -> dict[str, Any]:
        """
        Load and validate the application configuration from disk (coroutine-safe).

        The configuration is read from the file named by QWERY_MCP_CONFIG_FILE and cached for
        subsequent calls. When the environment variable is not set, an empty configuration
        is used, so every setting falls back to its default and no datasources are configured.

        Returns:
            dict[str, Any]: The loaded and validated configuration dictionary.

        Raises:
            McpConfigurationError: If the config file is invalid (not JSON, unknown keys,
                incorrect types, or fails validation).
        """
        _LOGGER.debug("Loading Qwery MCP application configuration...")
        async with self._lock:
            if self._cache is not None:
                _LOGGER.debug("Using cached Qwery MCP application configuration.")
                return self._cache

            config_path = get_config_path()
            if config_path is None:
                _LOGGER.warning(
                    f"Environment variable {CONFIG_ENV_VAR} is not set; using an empty configuration."
                )
                validated = validate_config({})
            else:
                validated = await load_and_validate_config(config_path)
            self._cache = validated
            _log_config_summary(validated)
            return validated


async def _load_config_from_file(config_path: str) -> dict[str, Any]:
    """
    Load and parse the configuration from a JSON file asynchronously.

    Args:
        config_path (str): The file path to the configuration JSON file.

    Returns:
        dict[str, Any]: The parsed configuration as a dictionary.

    Raises:
        McpConfigurationError: If the file is not found, cannot be read, or is not valid JSON.
    """
    try:
        async with aiofiles.open(config_path) as f:
            content = await f.read()
        data = json.loads(content)
    except FileNotFoundError:
        _LOGGER.error(f"Configuration file not found: {config_path}")
        raise McpConfigurationError(
            f"Configuration file not found: {config_path}"
        ) from None
    except PermissionError:
        _LOGGER.error(
            f"Permission denied when trying to read configuration file: {config_path}"
        )
        raise McpConfigurationError(
            f"Permission denied when trying to read configuration file: {config_path}"
        ) from None
    except json.JSONDecodeError as e:
        _LOGGER.error(f"Invalid JSON in configuration file {config_path}: {e}")
        raise McpConfigurationError(
            f"Invalid JSON in configuration file {config_path}: {e}"
        ) from e

    if not isinstance(data, dict):
        raise McpConfigurationError(
            f"Configuration file {config_path} must contain a JSON object"
        )
    return cast(dict[str, Any], data)


def get_config_path() -> str | None:
    """
    Retrieve the configuration file path from the environment variable.

    Returns:
        str | None: The value of QWERY_MCP_CONFIG_FILE, or None if it is not set.
    """
    config_path = os.environ.get(CONFIG_ENV_VAR)
    if config_path is not None:
        _LOGGER.info(f"Environment variable {CONFIG_ENV_VAR} is set to: {config_path}")
    return config_path


async def load_and_validate_config(config_path: str) -> dict[str, Any]:
    """
    Load and validate the configuration from a JSON file.

    All validation errors are logged and re-raised as McpConfigurationError for unified error handling.

    Args:
        config_path (str): The path to the configuration JSON file.

    Returns:
        dict[str, Any]: The loaded and validated configuration dictionary.

    Raises:
        McpConfigurationError: If the file cannot be read, is not valid JSON, or fails validation.
    """
    data = await _load_config_from_file(config_path)
    try:
        return validate_config(data)
    except McpConfigurationError as e:
        _LOGGER.error(f"Configuration validation failed for {config_path}: {e}")
        raise


def resolve_workspace(config: dict[str, Any]) -> str:
    """
    Resolve the workspace directory used for per-conversation files.

    Resolution order: the `workspace` config key, then the WORKSPACE and WORKING_DIR
    environment variables, then the current working directory.

    Args:
        config (dict[str, Any]): The validated configuration.

    Returns:
        str: The absolute workspace path.
    """
    workspace = config.get("workspace")
    if not workspace:
        for env_var in WORKSPACE_ENV_VARS:
            workspace = os.environ.get(env_var)
            if workspace:
                break
    return os.path.abspath(workspace or os.getcwd())


def _log_config_summary(config: dict[str, Any]) -> None:
    """
    Log a summary of the loaded configuration.

    Args:
        config (dict[str, Any]): The loaded and validated configuration dictionary.
    """
    datasources = config.get("datasources", {})
    if datasources:
        _LOGGER.info("Configured Datasources:")
        for datasource_id, details in datasources.items():
            _LOGGER.info(
                f"  Datasource '{datasource_id}': {redact_datasource_config(details)}"
            )
    else:
        _LOGGER.info("No Datasources configured.")
    _LOGGER.info(f"Session settings: {SessionSettings.from_config(config)}")


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """
    Validate the Qwery MCP application configuration dictionary.

    Validation Rules:
        - Only known top-level keys are allowed ('workspace', 'sessions', 'catalog', 'datasources').
        - All present sections are validated according to their schema.
        - Unknown or misspelled keys cause validation to fail.

    Args:
        config (dict[str, Any]): The configuration dictionary to validate.

    Returns:
        dict[str, Any]: The validated configuration dictionary.

    Raises:
        McpConfigurationError: If top-level keys are missing or unknown, or a section is invalid
            (SessionConfigurationError and DatasourceConfigurationError are subclasses).

    Example:
        >>> validate_config({"datasources": {}})
        {'datasources': {}}
    """
    top_level_keys = set(config.keys())

    missing_keys = _REQUIRED_TOP_LEVEL_KEYS - top_level_keys
    if missing_keys:
        _LOGGER.error(f"Missing required top-level keys in Qwery MCP config: {missing_keys}")
        raise McpConfigurationError(
            f"Missing required top-level keys in Qwery MCP config: {missing_keys}"
        )
    unknown_keys = top_level_keys - _ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        _LOGGER.error(f"Unknown top-level keys in Qwery MCP config: {unknown_keys}")
        raise McpConfigurationError(
            f"Unknown top-level keys in Qwery MCP config: {unknown_keys}"
        )

    if "workspace" in top_level_keys and not isinstance(config["workspace"], str):
        raise McpConfigurationError("'workspace' must be a string in configuration")

    validate_sessions_config(config.get("sessions"))
    validate_catalog_config(config.get("catalog"))
    validate_datasources_config(config.get("datasources"))

    _LOGGER.info("Configuration validation passed.")
    return config
