"""Lifecycle event channel for workflow runs."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Union

from .contracts import WorkflowProgress

logger = logging.getLogger(__name__)


class WorkflowEvent(str, Enum):
    """Names of the notifications emitted by the runner."""

    WORKFLOW_STARTED = "workflow-started"
    WORKFLOW_COMPLETED = "workflow-completed"
    WORKFLOW_FAILED = "workflow-failed"
    STEP_STARTED = "step-started"
    STEP_COMPLETED = "step-completed"
    STEP_RETRYING = "step-retrying"
    STEP_FAILED = "step-failed"
    STEP_CACHE_HIT = "step-cache-hit"


EventHandler = Callable[
    [WorkflowEvent, WorkflowProgress], Union[None, Awaitable[None]]
]


class EventChannel:
    """Typed publish/subscribe channel.

    Handlers receive ``(event, payload)`` and may be plain callables or
    coroutine functions. Delivery is fire-and-forget: a failing handler is
    logged and counted, and the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._handlers: Dict[WorkflowEvent, List[EventHandler]] = defaultdict(list)
        self._wildcard: List[EventHandler] = []
        self.handler_errors = 0

    def subscribe(
        self, event: Union[WorkflowEvent, str], handler: EventHandler
    ) -> Callable[[], None]:
        """Register ``handler`` for ``event``; returns an unsubscribe callable."""
        key = WorkflowEvent(event)
        self._handlers[key].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[key]:
                self._handlers[key].remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: EventHandler) -> Callable[[], None]:
        """Register ``handler`` for every event."""
        self._wildcard.append(handler)

        def unsubscribe() -> None:
            if handler in self._wildcard:
                self._wildcard.remove(handler)

        return unsubscribe

    async def emit(self, event: Union[WorkflowEvent, str], payload: WorkflowProgress) -> None:
        key = WorkflowEvent(event)
        for handler in [*self._handlers.get(key, []), *self._wildcard]:
            try:
                outcome = handler(key, payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                self.handler_errors += 1
                logger.exception(
                    f"Event handler {getattr(handler, '__name__', handler)!r} failed "
                    f"for {key.value} (workflow_id={payload.workflow_id}, step_id={payload.step_id})"
                )


def log_events(channel: EventChannel, log: Optional[logging.Logger] = None) -> Callable[[], None]:
    """Attach a logging sink that records every event at INFO/WARNING."""

    target = log or logger

    def _log(event: WorkflowEvent, payload: WorkflowProgress) -> None:
        parts = [f"[{payload.workflow_id}]", event.value]
        if payload.step_id:
            parts.append(payload.step_id)
        if payload.progress is not None:
            parts.append(f"{payload.progress}%")
        if payload.from_cache:
            parts.append("(cached)")
        if payload.message:
            parts.append(f"- {payload.message}")
        level = logging.WARNING if payload.status in ("failed", "retrying") else logging.INFO
        target.log(level, " ".join(parts))

    return channel.subscribe_all(_log)
