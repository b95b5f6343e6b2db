"""Value types shared by sessions and the synchronizer."""

__all__ = ["AttachmentRecord", "SessionKey", "SyncState"]

import os
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, order=True)
class SessionKey:
    """Identity of a session: one conversation within one workspace."""

    conversation_id: str
    workspace: str

    def __str__(self) -> str:
        return f"{self.conversation_id}@{self.workspace}"

    @property
    def storage_dir(self) -> str:
        """Directory for the session's persistent files: `<workspace>/<conversation_id>`."""
        return os.path.join(self.workspace, self.conversation_id)


@dataclass(frozen=True)
class AttachmentRecord:
    """A datasource attached to a session under a logical database name."""

    datasource_id: str
    logical_database_name: str
    provider: str
    attached_at_generation: int

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly representation."""
        return {
            "datasource_id": self.datasource_id,
            "database_name": self.logical_database_name,
            "provider": self.provider,
            "attached_at_generation": self.attached_at_generation,
        }


@dataclass
class SyncState:
    """
    Sync-state cache of one session.

    Attributes:
        generation (int): Incremented after every sync that was not a cache hit.
        last_synced (frozenset[str] | None): Desired set of the last sync that converged
            without failures, or None.
        invalidated (bool): Set by `invalidate()`; forces the next sync to reconcile fully.
    """

    generation: int = 0
    last_synced: frozenset[str] | None = None
    invalidated: bool = False

    def is_cache_hit(
        self, desired: frozenset[str], to_attach: set[str], to_detach: set[str]
    ) -> bool:
        """Return True if a sync for `desired` has nothing to do."""
        return (
            not self.invalidated
            and not to_attach
            and not to_detach
            and self.last_synced == desired
        )

    def invalidate(self) -> None:
        """Disable the cache-hit shortcut for the next sync."""
        self.invalidated = True
