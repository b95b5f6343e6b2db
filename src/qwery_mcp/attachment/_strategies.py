"""
Provider-family attachment strategies.

Each strategy knows how to make one family of providers visible in the engine under a
logical database name, and how to remove it again:

- `ForeignDatabaseStrategy`: PostgreSQL, MySQL, SQLite and DuckDB files via a native ATTACH.
- `DuckDBNativeStrategy`: CSV, JSON and Parquet files or URLs, exposed as a view inside an
  in-memory database attached under the logical name.
- `GSheetStrategy`: public Google Sheets, materialized tab by tab into a persistent DuckDB
  file under the session's storage directory.
"""

import asyncio
import logging
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing_extensions import override  # pragma: no cover
elif sys.version_info >= (3, 12):
    from typing import override  # pragma: no cover
else:
    from typing_extensions import override  # pragma: no cover

import duckdb

from qwery_mcp.attachment._connection_strings import (
    extract_connection_string,
    extract_first,
)
from qwery_mcp.attachment._gsheet import discover_tabs, extract_spreadsheet_id
from qwery_mcp.attachment._sql import (
    build_attach_sql,
    build_detach_sql,
    quote_identifier,
    quote_literal,
)
from qwery_mcp.catalog import ResolvedDatasource
from qwery_mcp.engine import AnalyticalEngine
from qwery_mcp.providers import ProviderSpec

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachContext:
    """
    Per-session context handed to strategies.

    Attributes:
        engine (AnalyticalEngine): The session's engine.
        storage_dir (str): Directory for the session's persistent files
            (`<workspace>/<conversation_id>`); created on demand.
    """

    engine: AnalyticalEngine
    storage_dir: str


class AttachmentStrategy(ABC):
    """Base class of provider-family attachment strategies."""

    def required_extensions(
        self, datasource: ResolvedDatasource, spec: ProviderSpec
    ) -> list[str]:
        """Return the DuckDB extensions that must be loaded before `attach`."""
        return [spec.extension] if spec.extension else []

    @abstractmethod
    async def attach(
        self, datasource: ResolvedDatasource, spec: ProviderSpec, context: AttachContext
    ) -> None:
        """Attach the datasource under `datasource.logical_database_name`."""

    async def detach(self, logical_database_name: str, context: AttachContext) -> None:
        """Detach a logical database. Detaching a database that is not attached is a no-op."""
        await context.engine.run(build_detach_sql(logical_database_name))


async def _detach_after_failure(
    context: AttachContext, logical_database_name: str, error: BaseException
) -> None:
    if isinstance(error, asyncio.CancelledError):
        # The abandoned statement still holds the control connection.
        context.engine.interrupt()
    await context.engine.run(build_detach_sql(logical_database_name))


def _is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://", "s3://", "gs://"))


class ForeignDatabaseStrategy(AttachmentStrategy):
    """Attach an external database through one of DuckDB's scanner extensions."""

    @override
    async def attach(
        self, datasource: ResolvedDatasource, spec: ProviderSpec, context: AttachContext
    ) -> None:
        target = extract_connection_string(datasource.connection_descriptor, spec)
        read_only = bool(datasource.connection_descriptor.get("read_only", False))
        await context.engine.run(
            build_attach_sql(
                target, datasource.logical_database_name, spec.attach_type, read_only
            )
        )


class DuckDBNativeStrategy(AttachmentStrategy):
    """Expose a file or URL as a view `"<db>".main."<table>"` in an in-memory database."""

    @override
    def required_extensions(
        self, datasource: ResolvedDatasource, spec: ProviderSpec
    ) -> list[str]:
        location = extract_first(
            datasource.connection_descriptor, ("path", "url", "connectionUrl")
        )
        return ["httpfs"] if location and _is_remote(location) else []

    @override
    async def attach(
        self, datasource: ResolvedDatasource, spec: ProviderSpec, context: AttachContext
    ) -> None:
        descriptor = datasource.connection_descriptor
        location = extract_first(descriptor, ("path", "url", "connectionUrl"))
        if not location:
            raise ValueError(f"{spec.provider} datasource requires path or url in config")
        table_name = descriptor.get("table_name") or "data"
        database = quote_identifier(datasource.logical_database_name)
        view = f"{database}.main.{quote_identifier(table_name)}"

        await context.engine.run(build_attach_sql(":memory:", datasource.logical_database_name))
        try:
            await context.engine.run(
                f"CREATE OR REPLACE VIEW {view} AS SELECT * FROM {spec.reader}({quote_literal(location)})"
            )
            # Views are lazy; read one row so a bad path fails the attach, not the first query.
            await context.engine.fetch_rows(f"SELECT 1 FROM {view} LIMIT 1")
        except BaseException as e:
            await _detach_after_failure(context, datasource.logical_database_name, e)
            raise


class GSheetStrategy(AttachmentStrategy):
    """Materialize the tabs of a public Google Sheet into a persistent DuckDB file."""

    @override
    def required_extensions(
        self, datasource: ResolvedDatasource, spec: ProviderSpec
    ) -> list[str]:
        return ["httpfs"]

    @override
    async def attach(
        self, datasource: ResolvedDatasource, spec: ProviderSpec, context: AttachContext
    ) -> None:
        descriptor = datasource.connection_descriptor
        shared_link = extract_first(descriptor, ("sharedLink", "url"))
        if not shared_link:
            raise ValueError("gsheet-csv datasource requires sharedLink or url in config")
        spreadsheet_id = extract_spreadsheet_id(shared_link)
        if not spreadsheet_id:
            raise ValueError(
                f"Invalid Google Sheets URL format: {shared_link}. "
                "Expected format: https://docs.google.com/spreadsheets/d/{id}/..."
            )

        name = datasource.logical_database_name
        database = quote_identifier(name)
        await asyncio.to_thread(os.makedirs, context.storage_dir, exist_ok=True)
        db_path = os.path.join(context.storage_dir, f"{name}.db")
        await context.engine.run(build_attach_sql(db_path, name))

        try:
            # Start from an empty file so removed tabs do not linger.
            existing = await context.engine.fetch_rows(
                "SELECT table_name FROM information_schema.tables "
                f"WHERE table_catalog = {quote_literal(name)} AND table_schema = 'main' "
                "AND table_type = 'BASE TABLE'"
            )
            for (table_name,) in existing:
                await context.engine.run(
                    f"DROP TABLE IF EXISTS {database}.{quote_identifier(table_name)}"
                )

            created: list[str] = []
            for tab in await discover_tabs(spreadsheet_id, shared_link):
                table_name = tab.table_name
                if table_name in created:
                    table_name = f"{table_name}_{tab.gid}"
                try:
                    await context.engine.run(
                        f"CREATE OR REPLACE TABLE {database}.{quote_identifier(table_name)} AS "
                        f"SELECT * FROM read_csv_auto({quote_literal(tab.csv_url)})"
                    )
                except duckdb.Error as e:
                    _LOGGER.warning(
                        f"[{self.__class__.__name__}] Tab gid={tab.gid} ({tab.title or 'unnamed'}) "
                        f"of {spreadsheet_id} is not accessible: {e}"
                    )
                    continue
                created.append(table_name)

            if not created:
                raise ValueError(
                    f"No tabs found in Google Sheet: {shared_link}. Make sure the sheet is publicly accessible."
                )
            _LOGGER.info(
                f"[{self.__class__.__name__}] Materialized {len(created)} tab(s) of {spreadsheet_id} into {db_path}"
            )
        except BaseException as e:
            await _detach_after_failure(context, name, e)
            raise
