"""
Reconciliation of a session's attached-set against a desired set of datasources.

`DatasourceSynchronizer.sync()` computes the attach/detach diff, short-circuits when the
session already converged to the desired set (the sync-state cache), and otherwise runs a
best-effort batch: every ATTACH/DETACH is attempted, failures are collected per datasource
as `AttachmentError`, and the attached-set reflects only operations that succeeded.

Concurrent syncs of one session serialize on the session's `sync_lock`; syncs of different
sessions run in parallel.
"""

__all__ = ["DatasourceSynchronizer", "SyncResult"]

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Iterable

from qwery_mcp._exceptions import AttachmentError, DatabaseNameCollisionError
from qwery_mcp.attachment import AttachContext, AttachmentDriver
from qwery_mcp.catalog import DatasourceCatalog, ResolvedDatasource
from qwery_mcp.config import SessionSettings
from qwery_mcp.engine import AnalyticalEngine
from qwery_mcp.session_manager._state import AttachmentRecord

if TYPE_CHECKING:
    from qwery_mcp.session_manager._session import Session

_LOGGER = logging.getLogger(__name__)

_RESERVED_DATABASE_NAMES: frozenset[str] = frozenset({"memory", "main", "system", "temp"})


@dataclass(frozen=True)
class SyncResult:
    """
    Outcome of one sync call.

    Attributes:
        generation (int): The session's generation after the call.
        cached (bool): True if the call was a cache hit and issued no statements.
        attached (list[str]): Datasources attached (or re-attached) by this call.
        detached (list[str]): Datasources detached because they were not desired.
        unchanged (list[str]): Desired datasources that were already attached and left alone.
        failed (list[AttachmentError]): Per-datasource failures.
    """

    generation: int
    cached: bool = False
    attached: list[str] = field(default_factory=list)
    detached: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    failed: list[AttachmentError] = field(default_factory=list)

    @property
    def succeeded(self) -> list[str]:
        """Datasources whose requested attach or detach succeeded."""
        return self.attached + self.detached

    @property
    def failed_ids(self) -> list[str]:
        """Identifiers of the datasources that failed."""
        return [error.datasource_id for error in self.failed]

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation for tool responses."""
        return {
            "generation": self.generation,
            "cached": self.cached,
            "succeeded": self.succeeded,
            "attached": self.attached,
            "detached": self.detached,
            "unchanged": self.unchanged,
            "failed": [error.to_dict() for error in self.failed],
        }


class DatasourceSynchronizer:
    """
    Runs sync batches for sessions using an `AttachmentDriver`.

    Every catalog lookup, ATTACH and DETACH is bounded by the configured timeouts; a
    timeout is a per-datasource failure like any other.
    """

    def __init__(self, driver: AttachmentDriver, settings: SessionSettings):
        """
        Initialize the synchronizer.

        Args:
            driver (AttachmentDriver): Issues the ATTACH/DETACH statements.
            settings (SessionSettings): Source of the attach and detach timeouts.
        """
        self._driver = driver
        self._settings = settings

    @property
    def driver(self) -> AttachmentDriver:
        """The attachment driver."""
        return self._driver

    async def sync(
        self,
        session: "Session",
        desired_ids: Iterable[str],
        catalog: DatasourceCatalog,
        detach_unlisted: bool = False,
    ) -> SyncResult:
        """
        Reconcile a session's attached-set with a desired set of datasources.

        Args:
            session (Session): The session to reconcile.
            desired_ids (Iterable[str]): Datasources that must be attached.
            catalog (DatasourceCatalog): Resolves datasource ids to connection descriptors.
            detach_unlisted (bool): When True, attached datasources absent from
                `desired_ids` are detached. When False the sync is additive only.

        Returns:
            SyncResult: What was attached, detached, left alone and what failed.

        Raises:
            SessionClosedError: If the session was closed.
        """
        desired = frozenset(desired_ids)
        async with session.sync_lock:
            session.check_open()
            session.touch()
            state = session.sync_state
            current = set(session.attached)
            to_attach = set(desired - current)
            to_detach = current - desired if detach_unlisted else set()

            if state.is_cache_hit(desired, to_attach, to_detach):
                _LOGGER.debug(
                    f"[{self.__class__.__name__}] Cache hit for {session.key}: {sorted(desired)} already synced"
                )
                return SyncResult(
                    generation=state.generation, cached=True, unchanged=sorted(desired)
                )

            to_refresh = set(desired & current) if state.invalidated else set()
            generation = state.generation + 1
            context = AttachContext(session.engine, session.key.storage_dir)
            _LOGGER.info(
                f"[{self.__class__.__name__}] Syncing {session.key} to generation {generation}: "
                f"attach={sorted(to_attach)} detach={sorted(to_detach)} refresh={sorted(to_refresh)}"
            )

            failed: list[AttachmentError] = []
            detached: list[str] = []
            for datasource_id in sorted(to_detach | to_refresh):
                error = await self._detach_one(session, datasource_id, context)
                if error is not None:
                    failed.append(error)
                    to_refresh.discard(datasource_id)
                elif datasource_id in to_detach:
                    detached.append(datasource_id)

            attached: list[str] = []
            for datasource_id in sorted(to_attach | to_refresh):
                error = await self._attach_one(
                    session, datasource_id, catalog, context, generation
                )
                if error is not None:
                    failed.append(error)
                else:
                    attached.append(datasource_id)

            state.generation = generation
            state.invalidated = False
            state.last_synced = desired if not failed else None

            if failed:
                _LOGGER.warning(
                    f"[{self.__class__.__name__}] Sync of {session.key} finished with "
                    f"{len(failed)} failure(s): {[error.datasource_id for error in failed]}"
                )
            return SyncResult(
                generation=generation,
                attached=attached,
                detached=detached,
                unchanged=sorted((desired & set(session.attached)) - set(attached)),
                failed=failed,
            )

    async def _bounded(
        self, awaitable: Awaitable[Any], timeout: float, engine: AnalyticalEngine, what: str
    ) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except TimeoutError:
            # The statement keeps running in its worker thread unless interrupted.
            engine.interrupt()
            raise TimeoutError(f"{what} timed out after {timeout} seconds") from None

    async def _detach_one(
        self, session: "Session", datasource_id: str, context: AttachContext
    ) -> AttachmentError | None:
        record = session.attached[datasource_id]
        try:
            await self._bounded(
                self._driver.detach(
                    datasource_id, record.provider, record.logical_database_name, context
                ),
                self._settings.detach_timeout_seconds,
                session.engine,
                f"DETACH of '{record.logical_database_name}'",
            )
        except Exception as e:
            _LOGGER.warning(
                f"[{self.__class__.__name__}] Failed to detach datasource {datasource_id} from {session.key}: {e}"
            )
            return AttachmentError(
                datasource_id,
                f"Failed to detach datasource '{datasource_id}': {e}",
                cause=e,
                operation="detach",
            )
        session._forget(datasource_id)
        return None

    def _check_name_available(self, session: "Session", datasource: ResolvedDatasource) -> None:
        name = datasource.logical_database_name
        if name.lower() in _RESERVED_DATABASE_NAMES:
            raise DatabaseNameCollisionError(
                datasource.datasource_id,
                f"Logical database name '{name}' of datasource '{datasource.datasource_id}' is reserved",
            )
        owner = session.find_database(name)
        if owner is not None and owner.datasource_id != datasource.datasource_id:
            raise DatabaseNameCollisionError(
                datasource.datasource_id,
                f"Logical database name '{name}' of datasource '{datasource.datasource_id}' "
                f"is already used by datasource '{owner.datasource_id}'",
            )

    async def _resolve_and_attach(
        self, session: "Session", datasource_id: str, catalog: DatasourceCatalog, context: AttachContext
    ) -> ResolvedDatasource:
        datasource = await catalog.resolve(datasource_id)
        self._check_name_available(session, datasource)
        await self._driver.attach(datasource, context)
        return datasource

    async def _attach_one(
        self,
        session: "Session",
        datasource_id: str,
        catalog: DatasourceCatalog,
        context: AttachContext,
        generation: int,
    ) -> AttachmentError | None:
        try:
            datasource = await self._bounded(
                self._resolve_and_attach(session, datasource_id, catalog, context),
                self._settings.attach_timeout_seconds,
                session.engine,
                f"ATTACH of datasource '{datasource_id}'",
            )
        except AttachmentError as e:
            _LOGGER.warning(f"[{self.__class__.__name__}] {e}")
            return e
        except Exception as e:
            _LOGGER.warning(
                f"[{self.__class__.__name__}] Failed to attach datasource {datasource_id} to {session.key}: {e}"
            )
            return AttachmentError(
                datasource_id,
                f"Failed to attach datasource '{datasource_id}': {e}",
                cause=e,
            )
        session._record_attached(
            AttachmentRecord(
                datasource_id=datasource_id,
                logical_database_name=datasource.logical_database_name,
                provider=datasource.provider,
                attached_at_generation=generation,
            )
        )
        return None
