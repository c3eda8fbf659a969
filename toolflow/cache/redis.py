"""Redis-backed persistent cache tier for caches shared between hosts."""

from __future__ import annotations

import json
from typing import Any, Optional

try:
    import redis.asyncio as redis
except ImportError:
    redis = None

from ..constants import REDIS_KEY_PREFIX
from .backend import CacheBackend
from .models import CacheEntry


class RedisCacheBackend(CacheBackend):
    """Store each workflow's entries as JSON strings in the hash ``toolflow:cache:<workflow>``."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = REDIS_KEY_PREFIX,
    ) -> None:
        if redis is None:
            raise ImportError("redis package is required for RedisCacheBackend")

        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = None

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def _client(self) -> Any:
        if not self._redis:
            await self.connect()
        return self._redis

    def _hash(self, workflow_id: str) -> str:
        # One hash per workflow: entries of overlapping ids never share a key
        return f"{self.prefix}:{workflow_id}"

    # ------------------------------------------------------------------
    async def get(self, workflow_id: str, key: str) -> CacheEntry | None:
        client = await self._client()
        raw = await client.hget(self._hash(workflow_id), key)
        if raw is None:
            return None
        data = json.loads(raw)
        return CacheEntry(value=data.get("value"), timestamp=data["timestamp"], ttl=data.get("ttl"))

    async def set(self, workflow_id: str, key: str, entry: CacheEntry) -> None:
        client = await self._client()
        await client.hset(self._hash(workflow_id), key, entry.model_dump_json())

    async def delete(self, workflow_id: str, key: str) -> bool:
        client = await self._client()
        return bool(await client.hdel(self._hash(workflow_id), key))

    async def clear_workflow(self, workflow_id: str) -> None:
        client = await self._client()
        await client.delete(self._hash(workflow_id))

    async def clear_all(self) -> None:
        client = await self._client()
        prefix = self.prefix.translate({ord(c): f"\\{c}" for c in "\\*?[]"})
        keys = [k async for k in client.scan_iter(match=f"{prefix}:*")]
        if keys:
            await client.delete(*keys)

    async def keys(self, workflow_id: str) -> list[str]:
        client = await self._client()
        return sorted(await client.hkeys(self._hash(workflow_id)))
