"""Datasource catalog served by an HTTP endpoint of the surrounding application."""

import logging
from typing import Any

import aiohttp

from qwery_mcp._exceptions import (
    DatasourceNotFoundError,
    DatasourceUnavailableError,
)
from qwery_mcp.catalog._base import ResolvedDatasource, datasource_database_name

_LOGGER = logging.getLogger(__name__)


class HttpDatasourceCatalog:
    """
    Resolve datasources with `GET {base_url}/{datasource_id}`.

    The endpoint returns a JSON datasource object. Both the application's field names
    (`datasource_provider`) and the config file's (`provider`) are accepted. A 404 response
    is reported as `DatasourceNotFoundError`; network failures, timeouts and other non-2xx
    responses as `DatasourceUnavailableError`.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        headers: dict[str, str] | None = None,
    ):
        """
        Initialize the catalog.

        Args:
            base_url (str): Base URL of the datasource resource.
            timeout_seconds (float): Total timeout for each lookup.
            headers (dict[str, str] | None): Extra request headers, e.g. authorization.
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._headers = dict(headers or {})

    async def resolve(self, datasource_id: str) -> ResolvedDatasource:
        """
        Fetch and resolve a datasource.

        Args:
            datasource_id (str): The datasource identifier.

        Returns:
            ResolvedDatasource: The resolved datasource.

        Raises:
            DatasourceNotFoundError: If the endpoint answers 404.
            DatasourceUnavailableError: If the endpoint cannot be reached or answers with an error.
        """
        url = f"{self._base_url}/{datasource_id}"
        try:
            async with aiohttp.ClientSession(
                timeout=self._timeout, headers=self._headers
            ) as client:
                async with client.get(url) as response:
                    if response.status == 404:
                        raise DatasourceNotFoundError(
                            f"Datasource '{datasource_id}' not found in catalog"
                        )
                    if response.status >= 400:
                        raise DatasourceUnavailableError(
                            f"Catalog returned HTTP {response.status} for datasource '{datasource_id}'"
                        )
                    payload = await response.json()
        except (TimeoutError, aiohttp.ClientError) as e:
            _LOGGER.warning(
                f"[{self.__class__.__name__}] Catalog lookup for '{datasource_id}' failed: {e}"
            )
            raise DatasourceUnavailableError(
                f"Catalog unreachable while resolving datasource '{datasource_id}': {e}"
            ) from e

        return self._parse(datasource_id, payload)

    @staticmethod
    def _parse(datasource_id: str, payload: Any) -> ResolvedDatasource:
        if not isinstance(payload, dict):
            raise DatasourceUnavailableError(
                f"Catalog returned a malformed payload for datasource '{datasource_id}'"
            )
        provider = payload.get("provider") or payload.get("datasource_provider")
        if not provider:
            raise DatasourceUnavailableError(
                f"Catalog payload for datasource '{datasource_id}' has no provider"
            )
        name = payload.get("name") or ""
        return ResolvedDatasource(
            datasource_id=datasource_id,
            provider=provider,
            logical_database_name=datasource_database_name(
                datasource_id, name, payload.get("database_name")
            ),
            connection_descriptor=dict(payload.get("config") or {}),
            name=name,
        )
