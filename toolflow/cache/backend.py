"""Backend abstraction for cache tiers."""

from __future__ import annotations

from typing import Protocol

from .models import CacheEntry


class CacheBackend(Protocol):
    """Protocol for a single cache tier keyed by ``(workflow_id, key)``."""

    async def get(self, workflow_id: str, key: str) -> CacheEntry | None:
        """Return the stored entry, expired or not."""

    async def set(self, workflow_id: str, key: str, entry: CacheEntry) -> None:
        """Store ``entry``, replacing any previous value."""

    async def delete(self, workflow_id: str, key: str) -> bool:
        """Remove one entry; return whether it existed."""

    async def clear_workflow(self, workflow_id: str) -> None:
        """Remove every entry scoped to ``workflow_id``."""

    async def clear_all(self) -> None:
        """Remove every entry."""

    async def keys(self, workflow_id: str) -> list[str]:
        """Return the cache keys stored for ``workflow_id``."""
