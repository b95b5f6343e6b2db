"""
The datasource session manager: the single entry point used by MCP tools.

`DatasourceSessionManager` owns the session registry, the synchronizer and the idle
eviction task. It is created explicitly (by the MCP server lifespan, or by tests) and is
never a module-level singleton. Sessions are addressed by `(conversation_id, workspace)`.

Typical flow for one question:

    manager = DatasourceSessionManager(catalog, settings)
    manager.start()
    await manager.sync_datasources("conv-1", "/ws", ["pg1", "sheet1"])
    result = await manager.run_query("conv-1", "/ws", 'SELECT * FROM "sheet1".main.t')
    await manager.close()
"""

__all__ = ["DatasourceSessionManager"]

import asyncio
import logging
from typing import Any, Iterable

import duckdb

from qwery_mcp._exceptions import (
    InternalError,
    PoolClosedError,
    QueryCatalogError,
    QueryError,
    QueryTimeoutError,
    SessionClosedError,
)
from qwery_mcp.attachment import AttachmentDriver
from qwery_mcp.catalog import DatasourceCatalog
from qwery_mcp.config import SessionSettings
from qwery_mcp.diagnostics import explain_failure, is_catalog_error
from qwery_mcp.queries import QueryResult, execute_query
from qwery_mcp.rewriter import rewrite_for_databases
from qwery_mcp.session_manager._pool import PooledConnection
from qwery_mcp.session_manager._registry import EngineFactory, SessionRegistry
from qwery_mcp.session_manager._session import Session
from qwery_mcp.session_manager._state import AttachmentRecord, SessionKey
from qwery_mcp.session_manager._sync import DatasourceSynchronizer, SyncResult

_LOGGER = logging.getLogger(__name__)


class DatasourceSessionManager:
    """
    Manages per-conversation DuckDB sessions and their attached datasources.

    Async Safety:
        All public methods are coroutine-safe. Syncs of one session serialize on that
        session's lock; different sessions proceed in parallel.

    Lifecycle:
        - `start()`: launch idle eviction (no-op when the idle timeout is 0).
        - `close()`: stop eviction and close every session. The manager cannot be
          restarted afterwards.
    """

    def __init__(
        self,
        catalog: DatasourceCatalog,
        settings: SessionSettings | None = None,
        *,
        registry: SessionRegistry | None = None,
        driver: AttachmentDriver | None = None,
        engine_factory: EngineFactory | None = None,
    ):
        """
        Initialize the manager.

        Args:
            catalog (DatasourceCatalog): Default catalog for `sync_datasources`.
            settings (SessionSettings | None): Pool, timeout and eviction settings.
                Defaults to `SessionSettings()`.
            registry (SessionRegistry | None): Registry to use instead of a new one.
            driver (AttachmentDriver | None): Attachment driver to use instead of the
                default one.
            engine_factory (EngineFactory | None): Engine factory for a new registry.
                Ignored when `registry` is given.
        """
        self._catalog = catalog
        self._settings = settings or SessionSettings()
        self._registry = registry or SessionRegistry(self._settings, engine_factory)
        self._synchronizer = DatasourceSynchronizer(driver or AttachmentDriver(), self._settings)
        self._eviction_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def catalog(self) -> DatasourceCatalog:
        """The default datasource catalog."""
        return self._catalog

    def set_catalog(self, catalog: DatasourceCatalog) -> None:
        """Replace the default catalog (e.g. after a configuration reload)."""
        self._catalog = catalog

    @property
    def settings(self) -> SessionSettings:
        """The session settings."""
        return self._settings

    @property
    def registry(self) -> SessionRegistry:
        """The session registry."""
        return self._registry

    @property
    def closed(self) -> bool:
        """True once `close()` has been called."""
        return self._closed

    def start(self) -> None:
        """
        Start the idle eviction task. Must be called from a running event loop.

        Does nothing when eviction is disabled or the task is already running.
        """
        if self._closed:
            raise SessionClosedError(f"[{self.__class__.__name__}] Manager is closed")
        if self._settings.idle_timeout_seconds <= 0 or self._eviction_task is not None:
            return
        self._eviction_task = asyncio.create_task(
            self._eviction_loop(), name="qwery-mcp-idle-eviction"
        )
        _LOGGER.info(
            f"[{self.__class__.__name__}] Idle eviction started "
            f"(timeout={self._settings.idle_timeout_seconds}s, "
            f"interval={self._settings.eviction_interval_seconds}s)"
        )

    async def _eviction_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.eviction_interval_seconds)
            try:
                evicted = await self._registry.evict_idle(self._settings.idle_timeout_seconds)
            except Exception as e:
                _LOGGER.error(
                    f"[{self.__class__.__name__}] Idle eviction failed: {e}", exc_info=True
                )
                continue
            if evicted:
                _LOGGER.info(
                    f"[{self.__class__.__name__}] Evicted {len(evicted)} idle session(s): "
                    f"{[str(key) for key in evicted]}"
                )

    async def get_session(self, conversation_id: str, workspace: str) -> Session:
        """
        Return the session for a conversation, creating it on first use.

        Raises:
            SessionCreationError: If the session's engine could not be opened.
            SessionClosedError: If the manager is closed.
        """
        return await self._registry.get_or_create(SessionKey(conversation_id, workspace))

    async def get_connection(
        self, conversation_id: str, workspace: str, timeout: float | None = None
    ) -> PooledConnection:
        """
        Borrow a connection from a conversation's session.

        The caller must hand it back with `return_connection()`.

        Args:
            conversation_id (str): The conversation.
            workspace (str): The workspace directory.
            timeout (float | None): Seconds to wait for a free connection; defaults to
                the configured acquire timeout.

        Returns:
            PooledConnection: A borrowed connection.

        Raises:
            SessionCreationError: If the session could not be created.
            PoolExhaustedError: If no connection became free in time (`PoolTimeoutError`
                after waiting).
        """
        session = await self.get_session(conversation_id, workspace)
        try:
            return await session.borrow(timeout)
        except (SessionClosedError, PoolClosedError):
            if self._closed:
                raise
            # Lost a race with idle eviction; the next lookup creates a fresh session.
            _LOGGER.debug(
                f"[{self.__class__.__name__}] Session {session.key} closed while borrowing; retrying"
            )
            session = await self.get_session(conversation_id, workspace)
            return await session.borrow(timeout)

    async def return_connection(
        self, conversation_id: str, workspace: str, connection: PooledConnection
    ) -> None:
        """
        Return a connection obtained from `get_connection()`.

        Raises:
            InternalError: If the connection does not belong to the conversation's
                session, or was already returned.
        """
        session = self._registry.get(SessionKey(conversation_id, workspace))
        if session is None or session.pool is not connection.pool:
            if connection.pool.closed:
                # The session was evicted or closed while the connection was out.
                await connection.pool.release(connection)
                return
            raise InternalError(
                f"Connection {connection.connection_id} does not belong to session "
                f"{SessionKey(conversation_id, workspace)}"
            )
        await session.release(connection)

    async def sync_datasources(
        self,
        conversation_id: str,
        workspace: str,
        datasource_ids: Iterable[str],
        catalog: DatasourceCatalog | None = None,
        detach_unlisted: bool = False,
    ) -> SyncResult:
        """
        Reconcile a conversation's attached datasources with `datasource_ids`.

        Args:
            conversation_id (str): The conversation.
            workspace (str): The workspace directory.
            datasource_ids (Iterable[str]): Datasources that must be attached.
            catalog (DatasourceCatalog | None): Catalog to resolve ids with; defaults to
                the manager's catalog.
            detach_unlisted (bool): Also detach attached datasources not listed.

        Returns:
            SyncResult: Per-datasource outcome. Attachment failures are reported in
            `SyncResult.failed`, never raised.
        """
        session = await self.get_session(conversation_id, workspace)
        return await self._synchronizer.sync(
            session, datasource_ids, catalog or self._catalog, detach_unlisted=detach_unlisted
        )

    async def reset_sync_cache(self, conversation_id: str, workspace: str) -> bool:
        """
        Force the next sync of a conversation to reconcile fully.

        Returns:
            bool: False if the conversation has no session (nothing to reset).
        """
        session = self._registry.get(SessionKey(conversation_id, workspace))
        if session is None:
            return False
        async with session.sync_lock:
            session.sync_state.invalidate()
        _LOGGER.debug(f"[{self.__class__.__name__}] Sync cache of {session.key} invalidated")
        return True

    def get_attachment(
        self, conversation_id: str, workspace: str, datasource_id: str
    ) -> AttachmentRecord | None:
        """Return the attachment of `datasource_id` in a conversation's session, if attached."""
        session = self._registry.get(SessionKey(conversation_id, workspace))
        if session is None:
            return None
        return session.attached.get(datasource_id)

    async def run_query(
        self,
        conversation_id: str,
        workspace: str,
        sql: str,
        expected_database: str | None = None,
        timeout: float | None = None,
    ) -> QueryResult:
        """
        Run a query in a conversation's session.

        References of the form `<db>.main.<table>` are collapsed for attached databases
        whose provider exposes two-part names.

        Args:
            conversation_id (str): The conversation.
            workspace (str): The workspace directory.
            sql (str): The SQL to run.
            expected_database (str | None): Logical database the query targets, used for
                diagnostics when the query fails.
            timeout (float | None): Query timeout in seconds; defaults to the configured
                query timeout.

        Returns:
            QueryResult: The query result.

        Raises:
            QueryCatalogError: If the query references a missing database or table. Carries
                a `DiagnosticMessage`.
            QueryTimeoutError: If the query did not finish in time.
            QueryError: For any other engine failure.
            PoolExhaustedError: If no connection became free in time.
        """
        session = await self.get_session(conversation_id, workspace)
        rewritten = rewrite_for_databases(
            sql,
            [
                (record.provider, record.logical_database_name)
                for record in session.attached.values()
            ],
        )
        if rewritten != sql:
            _LOGGER.debug(f"[{self.__class__.__name__}] Rewrote query for {session.key}: {rewritten}")

        if timeout is None:
            timeout = self._settings.query_timeout_seconds
        connection = await self.get_connection(conversation_id, workspace)
        discard = False
        try:
            return await execute_query(connection, rewritten, timeout)
        except QueryTimeoutError:
            discard = True
            raise
        except asyncio.CancelledError:
            # The statement keeps running in its worker thread unless interrupted.
            connection.interrupt()
            discard = True
            raise
        except duckdb.Error as e:
            if is_catalog_error(e):
                diagnostics = await explain_failure(connection, rewritten, expected_database, e)
                _LOGGER.warning(
                    f"[{self.__class__.__name__}] Catalog error in {session.key}: {diagnostics.message}"
                )
                raise QueryCatalogError(diagnostics.message, diagnostics) from e
            _LOGGER.warning(f"[{self.__class__.__name__}] Query failed in {session.key}: {e}")
            raise QueryError(f"Query failed: {e}") from e
        finally:
            if discard:
                await connection.pool.discard(connection)
            else:
                await connection.pool.release(connection)

    def list_sessions(self) -> list[dict[str, Any]]:
        """Return JSON-friendly descriptions of the live sessions."""
        return self._registry.snapshot()

    async def close(self) -> None:
        """Stop idle eviction and close every session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._eviction_task is not None:
            self._eviction_task.cancel()
            try:
                await self._eviction_task
            except asyncio.CancelledError:
                pass
            self._eviction_task = None
        await self._registry.close()
        _LOGGER.info(f"[{self.__class__.__name__}] Closed")
