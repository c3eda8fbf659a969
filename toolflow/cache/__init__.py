"""Cache layer for toolflow step outputs."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from ..config import ToolflowConfig, load_config
from .backend import CacheBackend
from .file import FileCacheBackend
from .inmemory import InMemoryCacheBackend
from .models import CacheEntry, CacheStoreStats
from .sqlite import SQLiteCacheBackend
from .store import CacheStore

_store_instance: CacheStore | None = None


def get_cache_store(
    backend: Optional[str] = None, config: Optional[ToolflowConfig] = None
) -> CacheStore:
    """Factory function to obtain the shared cache store.

    The persistent tier is selected from ``backend``, the
    ``TOOLFLOW_CACHE_BACKEND`` environment variable or loaded configuration.
    ``memory`` yields a store without a persistent tier.
    """

    global _store_instance
    if _store_instance is not None and backend is None and config is None:
        return _store_instance

    config = config or load_config()
    backend = (
        backend or os.getenv("TOOLFLOW_CACHE_BACKEND") or config.cache.backend
    ).lower()

    persistent: CacheBackend | None
    if backend == "memory":
        persistent = None
    elif backend == "file":
        persistent = FileCacheBackend(Path(config.cache.directory))
    elif backend == "sqlite":
        persistent = SQLiteCacheBackend(config.cache.sqlite_path)
    elif backend == "redis":
        from .redis import RedisCacheBackend

        redis_conf = config.cache.redis
        persistent = RedisCacheBackend(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    else:
        raise ValueError(f"Unsupported cache backend: {backend}")

    _store_instance = CacheStore(persistent=persistent)
    return _store_instance


__all__ = [
    "CacheBackend",
    "CacheEntry",
    "CacheStore",
    "CacheStoreStats",
    "FileCacheBackend",
    "InMemoryCacheBackend",
    "SQLiteCacheBackend",
    "get_cache_store",
]
