"""
Datasource catalog: the read-only source of datasource definitions.

The session manager never stores datasource definitions itself; every attach resolves the
datasource id through a `DatasourceCatalog`:

- `ConfigDatasourceCatalog`: the `datasources` section of the MCP configuration file.
- `HttpDatasourceCatalog`: a REST endpoint of the surrounding application.

Use `create_catalog()` to build the catalog selected by the `catalog` config section.
"""

import logging
from typing import Any

from qwery_mcp.catalog._base import (
    DatasourceCatalog,
    ResolvedDatasource,
    datasource_database_name,
)
from qwery_mcp.catalog._config import ConfigDatasourceCatalog
from qwery_mcp.catalog._http import HttpDatasourceCatalog
from qwery_mcp.config import ConfigManager

__all__ = [
    "DatasourceCatalog",
    "ResolvedDatasource",
    "ConfigDatasourceCatalog",
    "HttpDatasourceCatalog",
    "create_catalog",
    "datasource_database_name",
]

_LOGGER = logging.getLogger(__name__)


def create_catalog(
    config: dict[str, Any], config_manager: ConfigManager
) -> DatasourceCatalog:
    """
    Build the catalog selected by the `catalog` configuration section.

    Args:
        config (dict[str, Any]): The validated configuration.
        config_manager (ConfigManager): Backing store for the config catalog.

    Returns:
        DatasourceCatalog: An HTTP catalog when `catalog.type` is "http", otherwise a config catalog.
    """
    catalog_config = config.get("catalog") or {}
    if catalog_config.get("type", "config") == "http":
        _LOGGER.info(f"[catalog:create_catalog] Using HTTP catalog at {catalog_config['url']}")
        return HttpDatasourceCatalog(
            catalog_config["url"],
            timeout_seconds=float(catalog_config.get("timeout_seconds", 10.0)),
            headers=catalog_config.get("headers"),
        )
    _LOGGER.info("[catalog:create_catalog] Using configuration-backed catalog")
    return ConfigDatasourceCatalog(config_manager)
