"""Core types of the datasource catalog: resolved datasources and the catalog protocol."""

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

_NON_IDENTIFIER = re.compile(r"[^a-z0-9_]+")
_REPEATED_UNDERSCORES = re.compile(r"_+")


def datasource_database_name(
    datasource_id: str, name: str | None, database_name: str | None = None
) -> str:
    """
    Derive the logical database name a datasource is attached under.

    An explicit `database_name` wins. Otherwise the human-readable name is lowercased,
    every run of non-alphanumeric characters becomes a single underscore, and leading or
    trailing underscores are trimmed. Names starting with a digit get a `ds_` prefix, and
    names that sanitize to nothing fall back to `ds_<datasource_id>`.

    Args:
        datasource_id (str): The datasource identifier, used as a fallback.
        name (str | None): The human-readable datasource name.
        database_name (str | None): An explicit logical name from configuration.

    Returns:
        str: A plain SQL identifier.

    Example:
        >>> datasource_database_name("42", "Sales DB (prod)")
        'sales_db_prod'
        >>> datasource_database_name("42", "2024 budget")
        'ds_2024_budget'
    """
    if database_name:
        return database_name

    def _sanitize(value: str) -> str:
        cleaned = _NON_IDENTIFIER.sub("_", value.strip().lower())
        return _REPEATED_UNDERSCORES.sub("_", cleaned).strip("_")

    candidate = _sanitize(name or "")
    if not candidate:
        candidate = f"ds_{_sanitize(datasource_id) or 'datasource'}"
    elif candidate[0].isdigit():
        candidate = f"ds_{candidate}"
    return candidate


@dataclass(frozen=True)
class ResolvedDatasource:
    """
    A datasource as returned by the catalog, ready to be attached.

    Attributes:
        datasource_id (str): Catalog identifier.
        provider (str): Provider id (e.g. "postgresql", "gsheet-csv").
        logical_database_name (str): Namespace under which its tables are visible in the engine.
        connection_descriptor (dict[str, Any]): Provider-specific connection settings.
        name (str): Human-readable name.
    """

    datasource_id: str
    provider: str
    logical_database_name: str
    connection_descriptor: dict[str, Any] = field(default_factory=dict, compare=False)
    name: str = ""


class DatasourceCatalog(Protocol):
    """
    Read-only lookup of datasource definitions.

    Implementations must be safe to call concurrently from any number of sessions and must
    report a missing datasource (`DatasourceNotFoundError`) distinctly from a failure to
    reach the catalog (`DatasourceUnavailableError`).
    """

    async def resolve(self, datasource_id: str) -> ResolvedDatasource:
        """Resolve a datasource id to its provider, connection descriptor and logical name."""
        ...  # pragma: no cover
