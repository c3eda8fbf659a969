"""File-backed persistent cache tier.

Layout: ``<root>/<workflow_id>/<cache_key>.json``, one JSON document per key
holding ``key``, ``value``, ``timestamp`` and ``ttl``. Other processes can
inspect or delete these files without going through the engine.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import re
import shutil
import uuid
from pathlib import Path

from ..errors import CacheError
from .backend import CacheBackend
from .models import CacheEntry

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def safe_name(name: str) -> str:
    """Map an arbitrary id to a file name, keeping it readable when possible."""
    cleaned = _UNSAFE.sub("_", name)
    if cleaned == name and name not in (".", ".."):
        return name
    digest = hashlib.sha256(name.encode("utf-8")).hexdigest()[:8]
    return f"{cleaned}-{digest}"


class FileCacheBackend(CacheBackend):
    """Persist cache entries as JSON files under ``root``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    # ------------------------------------------------------------------
    # Paths
    def workflow_dir(self, workflow_id: str) -> Path:
        return self.root / safe_name(workflow_id)

    def entry_path(self, workflow_id: str, key: str) -> Path:
        return self.workflow_dir(workflow_id) / f"{safe_name(key)}.json"

    # ------------------------------------------------------------------
    # Blocking helpers, run in a worker thread
    def _read(self, path: Path) -> CacheEntry | None:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry(
                value=data.get("value"), timestamp=data["timestamp"], ttl=data.get("ttl")
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise CacheError(
                f"Corrupt cache file {path}: {exc}", operation="read", path=str(path)
            ) from exc

    def _write(self, path: Path, key: str, entry: CacheEntry) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {"key": key, **entry.model_dump(mode="json")}
        tmp = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        tmp.write_text(json.dumps(document, indent=2), encoding="utf-8")
        tmp.replace(path)

    def _unlink(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def _list_keys(self, directory: Path) -> list[str]:
        if not directory.is_dir():
            return []
        keys: list[str] = []
        for path in sorted(directory.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                continue
            keys.append(data.get("key", path.stem))
        return keys

    # ------------------------------------------------------------------
    # Backend API
    async def get(self, workflow_id: str, key: str) -> CacheEntry | None:
        return await asyncio.to_thread(self._read, self.entry_path(workflow_id, key))

    async def set(self, workflow_id: str, key: str, entry: CacheEntry) -> None:
        await asyncio.to_thread(self._write, self.entry_path(workflow_id, key), key, entry)

    async def delete(self, workflow_id: str, key: str) -> bool:
        return await asyncio.to_thread(self._unlink, self.entry_path(workflow_id, key))

    async def clear_workflow(self, workflow_id: str) -> None:
        await asyncio.to_thread(
            shutil.rmtree, self.workflow_dir(workflow_id), ignore_errors=True
        )

    async def clear_all(self) -> None:
        def _clear() -> None:
            if not self.root.is_dir():
                return
            for child in self.root.iterdir():
                if child.is_dir():
                    shutil.rmtree(child, ignore_errors=True)

        await asyncio.to_thread(_clear)

    async def keys(self, workflow_id: str) -> list[str]:
        return await asyncio.to_thread(self._list_keys, self.workflow_dir(workflow_id))
