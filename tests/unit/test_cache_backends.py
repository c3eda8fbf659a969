import json

import pytest

from toolflow.cache import CacheEntry, CacheStore, FileCacheBackend, SQLiteCacheBackend
from toolflow.cache.file import safe_name


@pytest.fixture(params=["file", "sqlite"])
def backend(request, tmp_path):
    if request.param == "file":
        yield FileCacheBackend(tmp_path / "cache")
    else:
        tier = SQLiteCacheBackend(tmp_path / "cache.db")
        yield tier
        tier.close()


@pytest.mark.asyncio
async def test_backend_crud(backend):
    entry = CacheEntry(value={"text": "hello"}, timestamp=1000.0, ttl=500.0)
    await backend.set("wf", "s1_ocr_abc", entry)

    loaded = await backend.get("wf", "s1_ocr_abc")
    assert loaded == entry
    assert await backend.keys("wf") == ["s1_ocr_abc"]

    assert await backend.delete("wf", "s1_ocr_abc") is True
    assert await backend.delete("wf", "s1_ocr_abc") is False
    assert await backend.get("wf", "s1_ocr_abc") is None


@pytest.mark.asyncio
async def test_backend_overwrite_and_clear(backend):
    await backend.set("wf", "k", CacheEntry(value=1, timestamp=1.0))
    await backend.set("wf", "k", CacheEntry(value=2, timestamp=2.0))
    await backend.set("other", "k", CacheEntry(value=3, timestamp=3.0))

    assert (await backend.get("wf", "k")).value == 2

    await backend.clear_workflow("wf")
    assert await backend.keys("wf") == []
    assert await backend.keys("other") == ["k"]

    await backend.clear_all()
    assert await backend.keys("other") == []


@pytest.mark.asyncio
async def test_file_layout_is_one_file_per_key(tmp_path):
    backend = FileCacheBackend(tmp_path)
    await backend.set("wf-1", "s1_custom", CacheEntry(value=[1, 2], timestamp=5.0, ttl=10.0))

    path = tmp_path / "wf-1" / "s1_custom.json"
    document = json.loads(path.read_text())
    assert document == {"key": "s1_custom", "value": [1, 2], "timestamp": 5.0, "ttl": 10.0}


@pytest.mark.asyncio
async def test_file_backend_persists_across_store_instances(tmp_path, clock):
    first = CacheStore(persistent=FileCacheBackend(tmp_path), clock=clock)
    await first.set("wf", "k", {"answer": 42}, ttl=1000)

    second = CacheStore(persistent=FileCacheBackend(tmp_path), clock=clock)
    assert await second.get("wf", "k") == {"answer": 42}


@pytest.mark.asyncio
async def test_corrupt_file_is_treated_as_miss(tmp_path, clock):
    backend = FileCacheBackend(tmp_path)
    path = backend.entry_path("wf", "k")
    path.parent.mkdir(parents=True)
    path.write_text("{not json")

    store = CacheStore(persistent=backend, clock=clock)
    assert await store.get("wf", "k") is None


def test_safe_name():
    assert safe_name("s1_ocr_abc") == "s1_ocr_abc"
    unsafe = safe_name("../etc/passwd")
    assert "/" not in unsafe
    assert unsafe != safe_name("..-etc-passwd")
