"""SQLite implementation of the persistent cache tier."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any

from .backend import CacheBackend
from .models import CacheEntry


class SQLiteCacheBackend(CacheBackend):
    """Persist cache entries in a single SQLite table."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        self._execute(
            """
            CREATE TABLE IF NOT EXISTS cache_entries (
                workflow_id TEXT NOT NULL,
                cache_key TEXT NOT NULL,
                value TEXT,
                timestamp REAL NOT NULL,
                ttl REAL,
                PRIMARY KEY (workflow_id, cache_key)
            )
            """
        )

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Backend API
    async def get(self, workflow_id: str, key: str) -> CacheEntry | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT value, timestamp, ttl FROM cache_entries WHERE workflow_id = ? AND cache_key = ?",
            workflow_id,
            key,
        )
        if not row:
            return None
        return CacheEntry(
            value=json.loads(row["value"]) if row["value"] is not None else None,
            timestamp=row["timestamp"],
            ttl=row["ttl"],
        )

    async def set(self, workflow_id: str, key: str, entry: CacheEntry) -> None:
        payload = entry.model_dump(mode="json")
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO cache_entries (workflow_id, cache_key, value, timestamp, ttl)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (workflow_id, cache_key)
            DO UPDATE SET value = excluded.value, timestamp = excluded.timestamp, ttl = excluded.ttl
            """,
            workflow_id,
            key,
            json.dumps(payload["value"]),
            entry.timestamp,
            entry.ttl,
        )

    async def delete(self, workflow_id: str, key: str) -> bool:
        count = await asyncio.to_thread(
            self._execute,
            "DELETE FROM cache_entries WHERE workflow_id = ? AND cache_key = ?",
            workflow_id,
            key,
        )
        return count > 0

    async def clear_workflow(self, workflow_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM cache_entries WHERE workflow_id = ?",
            workflow_id,
        )

    async def clear_all(self) -> None:
        await asyncio.to_thread(self._execute, "DELETE FROM cache_entries")

    async def keys(self, workflow_id: str) -> list[str]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT cache_key FROM cache_entries WHERE workflow_id = ? ORDER BY cache_key",
            workflow_id,
        )
        return [row["cache_key"] for row in rows]
