"""Data models for cached step outputs."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """A cached value with its creation time and optional time-to-live.

    ``timestamp`` and ``ttl`` are both expressed in milliseconds.
    """

    value: Any = None
    timestamp: float
    ttl: Optional[float] = Field(default=None, gt=0)

    @property
    def expires_at(self) -> Optional[float]:
        if self.ttl is None:
            return None
        return self.timestamp + self.ttl

    def is_expired(self, now_ms: float) -> bool:
        expires_at = self.expires_at
        return expires_at is not None and now_ms > expires_at


class CacheStoreStats(BaseModel):
    """Per-workflow cache occupancy."""

    entries: int = 0
    memory_entries: int = 0
    last_accessed: Optional[float] = None
