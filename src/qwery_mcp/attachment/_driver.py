"""The attachment driver: provider dispatch, extension loading and idempotent ATTACH/DETACH."""

import logging

import duckdb

from qwery_mcp._exceptions import UnsupportedProviderError
from qwery_mcp.attachment._sql import is_already_attached_error, quote_literal
from qwery_mcp.attachment._strategies import (
    AttachContext,
    AttachmentStrategy,
    DuckDBNativeStrategy,
    ForeignDatabaseStrategy,
    GSheetStrategy,
)
from qwery_mcp.catalog import ResolvedDatasource
from qwery_mcp.engine import AnalyticalEngine, SqlExecutor
from qwery_mcp.providers import ProviderKind, ProviderSpec, lookup_provider

_LOGGER = logging.getLogger(__name__)

_LIST_DATABASES_SQL = (
    "SELECT database_name FROM duckdb_databases() "
    "WHERE NOT internal AND database_name <> current_database() "
    "ORDER BY database_name"
)


def default_strategies() -> dict[ProviderKind, AttachmentStrategy]:
    """Return a fresh mapping of provider kind to its default strategy."""
    return {
        ProviderKind.FOREIGN_DATABASE: ForeignDatabaseStrategy(),
        ProviderKind.DUCKDB_NATIVE: DuckDBNativeStrategy(),
        ProviderKind.GSHEET: GSheetStrategy(),
    }


async def list_attached_databases(executor: SqlExecutor) -> list[str]:
    """
    List the logical databases attached to an engine instance.

    Internal databases (`system`, `temp`) and the instance's own default database are
    excluded.

    Args:
        executor (SqlExecutor): The engine, or any connection to it.

    Returns:
        list[str]: Sorted database names.
    """
    rows = await executor.fetch_rows(_LIST_DATABASES_SQL)
    return [row[0] for row in rows]


class AttachmentDriver:
    """
    Issue provider-specific ATTACH/DETACH statements against a session's engine.

    The driver is stateless apart from its strategy table and can be shared by every
    session. Timeouts and per-datasource error collection are the caller's concern.
    """

    def __init__(
        self, strategies: dict[ProviderKind, AttachmentStrategy] | None = None
    ):
        """
        Initialize the driver.

        Args:
            strategies (dict[ProviderKind, AttachmentStrategy] | None): Strategy per provider
                kind. Defaults to `default_strategies()`.
        """
        self._strategies = strategies or default_strategies()

    def _resolve(self, datasource_id: str, provider: str) -> tuple[ProviderSpec, AttachmentStrategy]:
        spec = lookup_provider(provider)
        strategy = self._strategies.get(spec.kind) if spec else None
        if spec is None or strategy is None:
            raise UnsupportedProviderError(
                datasource_id, f"Unsupported datasource provider: {provider}"
            )
        return spec, strategy

    async def ensure_extension(self, engine: AnalyticalEngine, extension: str) -> None:
        """
        Install (if needed) and load a DuckDB extension, once per engine.

        Args:
            engine (AnalyticalEngine): The engine to load the extension into.
            extension (str): Extension name, e.g. "postgres" or "httpfs".
        """
        if extension in engine.loaded_extensions:
            return
        rows = await engine.fetch_rows(
            "SELECT installed, loaded FROM duckdb_extensions() "
            f"WHERE extension_name = {quote_literal(extension)}"
        )
        installed, loaded = rows[0] if rows else (False, False)
        if not installed:
            _LOGGER.info(f"[{self.__class__.__name__}] Installing DuckDB extension '{extension}'")
            await engine.run(f"INSTALL {extension}")
        if not loaded:
            await engine.run(f"LOAD {extension}")
        engine.loaded_extensions.add(extension)

    async def attach(
        self, datasource: ResolvedDatasource, context: AttachContext
    ) -> None:
        """
        Attach a resolved datasource under its logical database name.

        Callers only attach datasources they have not recorded as attached, so a database
        already present under the logical name is a leftover of an interrupted attempt and
        is detached first. An "already attached" error naming the logical name is treated
        as success once the database is confirmed to be present.

        Args:
            datasource (ResolvedDatasource): The datasource to attach.
            context (AttachContext): The session's engine and storage directory.

        Raises:
            UnsupportedProviderError: If no strategy handles the provider.
            duckdb.Error: If DuckDB rejects the ATTACH or a supporting statement.
            ValueError: If the connection descriptor is incomplete.
        """
        spec, strategy = self._resolve(datasource.datasource_id, datasource.provider)
        name = datasource.logical_database_name
        for extension in strategy.required_extensions(datasource, spec):
            await self.ensure_extension(context.engine, extension)
        if name in await self.list_attached(context.engine):
            _LOGGER.warning(
                f"[{self.__class__.__name__}] Detaching stale database '{name}' before "
                f"attaching datasource {datasource.datasource_id}"
            )
            await strategy.detach(name, context)
        try:
            await strategy.attach(datasource, spec, context)
        except duckdb.Error as e:
            if not is_already_attached_error(e, name) or name not in await self.list_attached(
                context.engine
            ):
                raise
            _LOGGER.info(
                f"[{self.__class__.__name__}] Database '{name}' "
                f"was already attached for datasource {datasource.datasource_id}"
            )
            return
        _LOGGER.info(
            f"[{self.__class__.__name__}] Attached datasource {datasource.datasource_id} "
            f"({spec.provider}) as '{name}' on {context.engine.name}"
        )

    async def detach(
        self,
        datasource_id: str,
        provider: str,
        logical_database_name: str,
        context: AttachContext,
    ) -> None:
        """
        Detach a logical database.

        Args:
            datasource_id (str): The datasource the database belongs to (for errors and logs).
            provider (str): Its provider id.
            logical_database_name (str): The database to detach.
            context (AttachContext): The session's engine and storage directory.

        Raises:
            UnsupportedProviderError: If no strategy handles the provider.
            duckdb.Error: If DuckDB rejects the DETACH.
        """
        _, strategy = self._resolve(datasource_id, provider)
        await strategy.detach(logical_database_name, context)
        _LOGGER.info(
            f"[{self.__class__.__name__}] Detached '{logical_database_name}' "
            f"(datasource {datasource_id}) from {context.engine.name}"
        )

    async def list_attached(self, engine: AnalyticalEngine) -> list[str]:
        """Return the logical databases currently attached to an engine."""
        return await list_attached_databases(engine)
