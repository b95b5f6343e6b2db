"""
Per-conversation DuckDB sessions for federated datasource queries.

This package provides the session layer of qwery-mcp:

- `DatasourceSessionManager`: the entry point; owns the registry and idle eviction.
- `SessionRegistry`: single-flight, lazily populated map of `SessionKey` to `Session`.
- `Session`: one conversation's engine, attached-set, sync state and connection pool.
- `DatasourceSynchronizer` / `SyncResult`: best-effort reconciliation of the attached-set.
- `ConnectionPool` / `PooledConnection`: bounded pool of engine connections.
"""

from qwery_mcp.session_manager._manager import DatasourceSessionManager
from qwery_mcp.session_manager._pool import ConnectionPool, PooledConnection
from qwery_mcp.session_manager._registry import EngineFactory, SessionRegistry
from qwery_mcp.session_manager._session import Session
from qwery_mcp.session_manager._state import AttachmentRecord, SessionKey, SyncState
from qwery_mcp.session_manager._sync import DatasourceSynchronizer, SyncResult

__all__ = [
    "AttachmentRecord",
    "ConnectionPool",
    "DatasourceSessionManager",
    "DatasourceSynchronizer",
    "EngineFactory",
    "PooledConnection",
    "Session",
    "SessionKey",
    "SessionRegistry",
    "SyncResult",
    "SyncState",
]
