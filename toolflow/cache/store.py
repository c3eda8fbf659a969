"""Two-tier cache of step outputs scoped per workflow.

Reads go memory first, then the persistent tier, promoting persistent hits
into memory. Writes always land in memory and, unless asked otherwise, in
the persistent tier. Expiry is lazy: entries are only checked against their
TTL when read.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from .backend import CacheBackend
from .inmemory import InMemoryCacheBackend
from .models import CacheEntry, CacheStoreStats

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def wall_clock_ms() -> float:
    return time.time() * 1000


def canonical_json(value: Any) -> str:
    """Stable JSON encoding: sorted keys, no whitespace.

    Raises ``TypeError`` for values JSON cannot represent and for mappings
    whose keys cannot be sorted against each other.
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class CacheStore:
    """Read-through/write-through composition of a memory and a persistent tier."""

    def __init__(
        self,
        memory: Optional[CacheBackend] = None,
        persistent: Optional[CacheBackend] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.memory = memory or InMemoryCacheBackend()
        self.persistent = persistent
        self._clock = clock or wall_clock_ms
        # Only keys with a holder or waiter have an entry
        self._key_locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._key_waiters: Dict[Tuple[str, str], int] = {}
        self._last_accessed: Dict[str, float] = {}

    def now(self) -> float:
        return self._clock()

    # ------------------------------------------------------------------
    # Key derivation
    @staticmethod
    def generate_key(
        step_id: str, tool_id: str, inputs: Any, custom_key: Optional[str] = None
    ) -> str:
        """Derive the cache key for a step invocation.

        A custom key is combined with the step id. Otherwise the key embeds a
        SHA-256 digest of the step id, tool id and resolved inputs, computed
        over sorted-key JSON so mapping order never changes the key. Inputs
        JSON cannot encode raise ``TypeError`` or ``ValueError``.
        """
        if custom_key:
            return f"{step_id}_{custom_key}"
        material = canonical_json({"step": step_id, "tool": tool_id, "inputs": inputs})
        digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
        return f"{step_id}_{tool_id}_{digest[:16]}"

    def derive_key(
        self, step_id: str, tool_id: str, inputs: Any, custom_key: Optional[str] = None
    ) -> Optional[str]:
        """``generate_key`` that returns ``None`` when the inputs are uncacheable."""
        try:
            return self.generate_key(step_id, tool_id, inputs, custom_key)
        except (TypeError, ValueError) as e:
            logger.warning(f"Step {step_id} inputs cannot be hashed for caching, running uncached: {e}")
            return None

    # ------------------------------------------------------------------
    # Locking
    @asynccontextmanager
    async def key_lock(self, workflow_id: str, key: str) -> AsyncIterator[None]:
        """Serialise lookups and writes for one ``(workflow_id, key)`` pair."""
        scoped = (workflow_id, key)
        lock = self._key_locks.setdefault(scoped, asyncio.Lock())
        self._key_waiters[scoped] = self._key_waiters.get(scoped, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._key_waiters[scoped] -= 1
            if not self._key_waiters[scoped]:
                del self._key_waiters[scoped]
                del self._key_locks[scoped]

    # ------------------------------------------------------------------
    # Reads
    async def lookup(self, workflow_id: str, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key`` or ``None`` on a miss."""
        now = self.now()
        self._last_accessed[workflow_id] = now

        entry = await self._safe_get(self.memory, "memory", workflow_id, key)
        if entry is not None:
            if not entry.is_expired(now):
                return entry
            await self._safe_delete(self.memory, "memory", workflow_id, key)

        if self.persistent is None:
            return None

        entry = await self._safe_get(self.persistent, "persistent", workflow_id, key)
        if entry is None or entry.is_expired(now):
            return None

        await self._safe_set(self.memory, "memory", workflow_id, key, entry)
        return entry

    async def get(self, workflow_id: str, key: str) -> Any:
        entry = await self.lookup(workflow_id, key)
        return entry.value if entry is not None else None

    # ------------------------------------------------------------------
    # Writes
    async def set(
        self,
        workflow_id: str,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        persistent: Optional[bool] = None,
    ) -> Optional[CacheEntry]:
        """Write ``value`` to the tiers; returns ``None`` if it could not be cached."""
        now = self.now()
        self._last_accessed[workflow_id] = now
        try:
            entry = CacheEntry(value=value, timestamp=now, ttl=ttl)
        except ValidationError as e:
            logger.warning(
                f"Cache write skipped for workflow_id={workflow_id} key={key}: invalid entry ({e})"
            )
            return None

        await self._safe_set(self.memory, "memory", workflow_id, key, entry)
        if self.persistent is not None and persistent is not False:
            await self._safe_set(self.persistent, "persistent", workflow_id, key, entry)
        return entry

    # ------------------------------------------------------------------
    # Management
    async def clear_workflow_cache(self, workflow_id: str) -> None:
        await self._safe_clear(self.memory, "memory", workflow_id)
        if self.persistent is not None:
            await self._safe_clear(self.persistent, "persistent", workflow_id)
        logger.info(f"Cleared cache for workflow_id={workflow_id}")

    async def clear_all(self) -> None:
        await self._safe_clear(self.memory, "memory")
        if self.persistent is not None:
            await self._safe_clear(self.persistent, "persistent")
        self._last_accessed.clear()
        logger.info("Cleared all workflow caches")

    async def stats(self, workflow_id: str) -> CacheStoreStats:
        memory_keys = set(await self.memory.keys(workflow_id))
        keys = set(memory_keys)
        if self.persistent is not None:
            keys.update(await self.persistent.keys(workflow_id))
        return CacheStoreStats(
            entries=len(keys),
            memory_entries=len(memory_keys),
            last_accessed=self._last_accessed.get(workflow_id),
        )

    # ------------------------------------------------------------------
    # Tier access that never fails a step
    async def _safe_get(
        self, tier: CacheBackend, name: str, workflow_id: str, key: str
    ) -> Optional[CacheEntry]:
        try:
            return await tier.get(workflow_id, key)
        except Exception as e:
            logger.warning(
                f"Cache read failed on {name} tier for workflow_id={workflow_id} key={key}: {e}"
            )
            return None

    async def _safe_set(
        self, tier: CacheBackend, name: str, workflow_id: str, key: str, entry: CacheEntry
    ) -> None:
        try:
            await tier.set(workflow_id, key, entry)
        except Exception as e:
            logger.warning(
                f"Cache write failed on {name} tier for workflow_id={workflow_id} key={key}: {e}"
            )

    async def _safe_delete(
        self, tier: CacheBackend, name: str, workflow_id: str, key: str
    ) -> None:
        try:
            await tier.delete(workflow_id, key)
        except Exception as e:
            logger.warning(
                f"Cache delete failed on {name} tier for workflow_id={workflow_id} key={key}: {e}"
            )

    async def _safe_clear(
        self, tier: CacheBackend, name: str, workflow_id: Optional[str] = None
    ) -> None:
        try:
            if workflow_id is None:
                await tier.clear_all()
            else:
                await tier.clear_workflow(workflow_id)
        except Exception as e:
            scope = f"workflow_id={workflow_id}" if workflow_id is not None else "all workflows"
            logger.warning(f"Cache clear failed on {name} tier for {scope}: {e}")
