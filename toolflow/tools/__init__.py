"""Tool invocation boundary.

The runner never talks to tools directly. It calls a ``ToolInvoker``,
which returns the success/failure envelope described by ``ToolResult``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, runtime_checkable

from ..contracts import ToolResult
from ..errors import ErrorCode

logger = logging.getLogger(__name__)


@runtime_checkable
class ToolInvoker(Protocol):
    """Anything able to run a tool by id."""

    async def run_tool(self, tool_id: str, inputs: Any) -> ToolResult | Mapping[str, Any]:
        """Run ``tool_id`` with resolved ``inputs`` and return an envelope."""


def declared_ttl(invoker: Any, tool_id: str) -> Optional[float]:
    """Default cache TTL (ms) an invoker declares for ``tool_id``, if any."""
    lookup = getattr(invoker, "default_ttl", None)
    if lookup is None:
        return None
    return lookup(tool_id)


def as_tool_result(raw: Any) -> ToolResult:
    """Normalise whatever a tool returned into a ``ToolResult``."""
    if isinstance(raw, ToolResult):
        return raw
    if isinstance(raw, Mapping) and isinstance(raw.get("success"), bool):
        return ToolResult.model_validate(raw)
    return ToolResult.ok(raw)


class CallableToolInvoker:
    """Tool invoker backed by plain or async callables registered per tool id.

    Sync callables run in a worker thread so blocking tools (screen capture,
    OCR) do not stall the event loop.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Callable[[Any], Any]] = {}
        self._ttls: Dict[str, float] = {}

    def register(
        self,
        tool_id: str,
        func: Callable[[Any], Any],
        default_ttl: Optional[float] = None,
    ) -> None:
        self._tools[tool_id] = func
        if default_ttl is not None:
            self._ttls[tool_id] = default_ttl
        else:
            self._ttls.pop(tool_id, None)

    def tool(self, tool_id: str, default_ttl: Optional[float] = None):
        """Decorator form of ``register``."""

        def decorator(func: Callable[[Any], Any]) -> Callable[[Any], Any]:
            self.register(tool_id, func, default_ttl=default_ttl)
            return func

        return decorator

    @property
    def tool_ids(self) -> list[str]:
        return list(self._tools)

    def default_ttl(self, tool_id: str) -> Optional[float]:
        return self._ttls.get(tool_id)

    async def run_tool(self, tool_id: str, inputs: Any) -> ToolResult:
        func = self._tools.get(tool_id)
        if func is None:
            return ToolResult.fail(
                f"Tool not found: {tool_id}",
                code=ErrorCode.TOOL_EXECUTION_ERROR,
                details={"tool_id": tool_id},
            )
        try:
            if inspect.iscoroutinefunction(func):
                raw = await func(inputs)
            else:
                raw = await asyncio.to_thread(func, inputs)
                if inspect.isawaitable(raw):
                    raw = await raw
        except Exception as e:
            logger.debug(f"Tool {tool_id} raised {e.__class__.__name__}: {e}")
            return ToolResult.fail(
                str(e) or e.__class__.__name__,
                code=ErrorCode.TOOL_EXECUTION_ERROR,
                details={"tool_id": tool_id, "error_type": e.__class__.__name__},
            )
        return as_tool_result(raw)


__all__ = ["CallableToolInvoker", "ToolInvoker", "as_tool_result", "declared_ttl"]
