"""Datasource catalog backed by the `datasources` section of the MCP configuration."""

import logging
from typing import Any

from qwery_mcp._exceptions import DatasourceNotFoundError
from qwery_mcp.catalog._base import ResolvedDatasource, datasource_database_name
from qwery_mcp.config import ConfigManager

_LOGGER = logging.getLogger(__name__)


class ConfigDatasourceCatalog:
    """
    Resolve datasources from the validated configuration.

    The configuration is read through the `ConfigManager` on every lookup, so a
    `clear_config_cache()` followed by a reload is picked up without rebuilding the catalog.
    """

    def __init__(self, config_manager: ConfigManager):
        """
        Initialize the catalog.

        Args:
            config_manager (ConfigManager): Source of the `datasources` section.
        """
        self._config_manager = config_manager

    async def list_datasources(self) -> dict[str, dict[str, Any]]:
        """Return the raw (unredacted) datasource entries keyed by id."""
        config = await self._config_manager.get_config()
        return dict(config.get("datasources", {}))

    async def resolve(self, datasource_id: str) -> ResolvedDatasource:
        """
        Resolve a datasource id from configuration.

        Args:
            datasource_id (str): The datasource identifier.

        Returns:
            ResolvedDatasource: The resolved datasource.

        Raises:
            DatasourceNotFoundError: If no datasource with that id is configured.
        """
        datasources = await self.list_datasources()
        entry = datasources.get(datasource_id)
        if entry is None:
            _LOGGER.warning(
                f"[{self.__class__.__name__}] Datasource '{datasource_id}' not found in configuration"
            )
            raise DatasourceNotFoundError(
                f"Datasource '{datasource_id}' not found in configuration"
            )
        return ResolvedDatasource(
            datasource_id=datasource_id,
            provider=entry["provider"],
            logical_database_name=datasource_database_name(
                datasource_id, entry.get("name"), entry.get("database_name")
            ),
            connection_descriptor=dict(entry.get("config", {})),
            name=entry.get("name", ""),
        )
