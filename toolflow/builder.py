"""Fluent helpers for assembling workflows in code."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .contracts import CacheDirective, ErrorPolicy, Workflow, WorkflowStep
from .inputs import MERGE_KEY, REF_KEY


def ref(step_id: str, path: Optional[str] = None) -> Dict[str, str]:
    """Wire form of a reference to ``step_id`` (optionally a nested ``path``)."""
    return {REF_KEY: f"{step_id}.{path}" if path else step_id}


def previous(path: Optional[str] = None, tool: Optional[str] = None) -> Dict[str, str]:
    """Wire form of a ``{{previous...}}`` placeholder."""
    target = f"previous:{tool}" if tool else "previous"
    if path:
        target = f"{target}.{path}"
    return {REF_KEY: "{{" + target + "}}"}


def merge(*inputs: Any) -> Dict[str, List[Any]]:
    """Wire form of a shallow merge; later inputs override earlier ones."""
    return {MERGE_KEY: list(inputs)}


class WorkflowBuilder:
    """Collects steps and produces a validated ``Workflow``."""

    def __init__(self, id: str, name: Optional[str] = None, description: Optional[str] = None) -> None:
        self.id = id
        self.name = name
        self.description = description
        self._steps: List[WorkflowStep] = []

    def step(
        self,
        id: str,
        tool_id: str,
        inputs: Any = None,
        on_error: ErrorPolicy | str = ErrorPolicy.STOP,
        retry_count: int = 0,
        delay: Optional[float] = None,
        cache: Optional[CacheDirective | Dict[str, Any]] = None,
    ) -> "WorkflowBuilder":
        self._steps.append(
            WorkflowStep(
                id=id,
                tool_id=tool_id,
                inputs=inputs,
                on_error=on_error,
                retry_count=retry_count,
                delay=delay,
                cache=cache,
            )
        )
        return self

    def cached_step(
        self,
        id: str,
        tool_id: str,
        inputs: Any = None,
        key: Optional[str] = None,
        persistent: Optional[bool] = None,
        ttl: Optional[float] = None,
        **step_options: Any,
    ) -> "WorkflowBuilder":
        """Add a step with caching enabled."""
        directive = CacheDirective(enabled=True, key=key, persistent=persistent, ttl=ttl)
        return self.step(id, tool_id, inputs, cache=directive, **step_options)

    def build(self, clear_cache: bool = False) -> Workflow:
        return Workflow(
            id=self.id,
            name=self.name,
            description=self.description,
            steps=list(self._steps),
            clear_cache=clear_cache,
        )


def workflow(id: str, name: Optional[str] = None, description: Optional[str] = None) -> WorkflowBuilder:
    return WorkflowBuilder(id, name, description)
