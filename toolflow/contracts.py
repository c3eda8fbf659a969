"""Core data contracts for toolflow workflows."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .constants import MAX_STEP_RETRIES
from .errors import ErrorCode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Contract(BaseModel):
    """Accepts both snake_case and the camelCase names of stored workflows."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorPolicy(str, Enum):
    """How a step's terminal failure affects the rest of the run."""

    STOP = "stop"
    CONTINUE = "continue"
    RETRY = "retry"


class CacheDirective(_Contract):
    """Per-step cache settings."""

    enabled: bool
    key: Optional[str] = None
    persistent: Optional[bool] = None
    ttl: Optional[float] = Field(default=None, gt=0, description="Milliseconds")


class WorkflowStep(_Contract):
    """One tool invocation within a workflow."""

    id: str = Field(..., min_length=1)
    tool_id: str = Field(..., min_length=1)
    inputs: Any = None
    on_error: ErrorPolicy = ErrorPolicy.STOP
    retry_count: int = Field(default=0, ge=0, le=MAX_STEP_RETRIES)
    delay: Optional[float] = Field(default=None, ge=0, description="Milliseconds")
    cache: Optional[CacheDirective] = None

    @property
    def caching_enabled(self) -> bool:
        return bool(self.cache and self.cache.enabled)


class Workflow(_Contract):
    """A named, ordered list of steps."""

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    description: Optional[str] = None
    steps: List[WorkflowStep] = Field(..., min_length=1)
    clear_cache: bool = False

    @field_validator("steps")
    @classmethod
    def _unique_step_ids(cls, steps: List[WorkflowStep]) -> List[WorkflowStep]:
        seen: set[str] = set()
        for step in steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        return steps

    @classmethod
    def from_raw(cls, data: Any) -> "Workflow":
        """Validate an untyped mapping (for example a loaded JSON document)."""
        if isinstance(data, cls):
            return data
        return cls.model_validate(data)

    def step_index(self, step_id: str) -> int:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        raise KeyError(step_id)


class StepResult(_Contract):
    """Outcome of the last execution attempt of one step."""

    step_id: str
    tool_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    start_time: datetime
    end_time: datetime
    retry_count: int = 0
    from_cache: bool = False
    cache_key: Optional[str] = None


class CacheStats(_Contract):
    """Cache activity observed during one run."""

    cache_hits: int = 0
    cache_misses: int = 0
    steps_cached: List[str] = Field(default_factory=list)


class WorkflowResult(_Contract):
    """Aggregate outcome of a workflow run."""

    workflow_id: str
    success: bool
    error: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    step_results: Dict[str, StepResult] = Field(default_factory=dict)
    cache_stats: CacheStats = Field(default_factory=CacheStats)

    @property
    def failed_steps(self) -> List[str]:
        return [sid for sid, res in self.step_results.items() if not res.success]


ProgressStatus = Literal["started", "completed", "failed", "retrying", "cache-hit"]


class WorkflowProgress(_Contract):
    """Payload carried by every lifecycle event."""

    workflow_id: str
    step_id: str = ""
    status: ProgressStatus
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    message: Optional[str] = None
    from_cache: Optional[bool] = None


class ToolError(_Contract):
    """Error half of the tool result envelope."""

    message: str
    code: str = ErrorCode.TOOL_EXECUTION_ERROR.value
    details: Optional[Dict[str, Any]] = None


class ToolResult(_Contract):
    """Discriminated success/failure envelope returned by tools."""

    success: bool
    data: Any = None
    error: Optional[ToolError] = None

    @classmethod
    def ok(cls, data: Any) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        message: str,
        code: str = ErrorCode.TOOL_EXECUTION_ERROR.value,
        details: Optional[Dict[str, Any]] = None,
    ) -> "ToolResult":
        return cls(success=False, error=ToolError(message=message, code=getattr(code, "value", code), details=details))

    @property
    def error_message(self) -> str:
        if self.error is None:
            return "Tool reported failure without an error message"
        return self.error.message
