from typing import Any, Dict, List, Tuple

import pytest

import toolflow.cache as cache_module
from toolflow.cache import CacheStore, InMemoryCacheBackend
from toolflow.contracts import ToolResult


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class ScriptedInvoker:
    """Invoker whose tools are plain functions; records every call."""

    def __init__(self, tools: Dict[str, Any], ttls: Dict[str, float] | None = None) -> None:
        self.tools = tools
        self.ttls = ttls or {}
        self.calls: List[Tuple[str, Any]] = []

    def default_ttl(self, tool_id: str):
        return self.ttls.get(tool_id)

    async def run_tool(self, tool_id: str, inputs: Any) -> ToolResult:
        self.calls.append((tool_id, inputs))
        try:
            return ToolResult.ok(self.tools[tool_id](inputs))
        except Exception as e:
            return ToolResult.fail(str(e))

    def count(self, tool_id: str) -> int:
        return sum(1 for called, _ in self.calls if called == tool_id)


def echo(inputs):
    return inputs


def always_fail(inputs):
    raise RuntimeError("tool exploded")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def persistent_tier() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


@pytest.fixture
def store(clock, persistent_tier) -> CacheStore:
    return CacheStore(persistent=persistent_tier, clock=clock)


@pytest.fixture
def invoker() -> ScriptedInvoker:
    return ScriptedInvoker({"echo": echo, "fail": always_fail})


@pytest.fixture(autouse=True)
def reset_cache_singleton():
    cache_module._store_instance = None
    yield
    cache_module._store_instance = None


@pytest.fixture
def make_invoker():
    return ScriptedInvoker
