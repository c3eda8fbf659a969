"""In-memory cache tier."""

from __future__ import annotations

import threading
from typing import Dict, Tuple

from .backend import CacheBackend
from .models import CacheEntry


class InMemoryCacheBackend(CacheBackend):
    """Keep cache entries in a process-local dict.

    Used as the fast tier of every ``CacheStore`` and on its own in tests.
    Entries do not survive a process restart.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, str], CacheEntry] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    async def get(self, workflow_id: str, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get((workflow_id, key))

    async def set(self, workflow_id: str, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[(workflow_id, key)] = entry

    async def delete(self, workflow_id: str, key: str) -> bool:
        with self._lock:
            return self._entries.pop((workflow_id, key), None) is not None

    async def clear_workflow(self, workflow_id: str) -> None:
        with self._lock:
            for scoped in [k for k in self._entries if k[0] == workflow_id]:
                del self._entries[scoped]

    async def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()

    async def keys(self, workflow_id: str) -> list[str]:
        with self._lock:
            return [key for wf, key in self._entries if wf == workflow_id]
