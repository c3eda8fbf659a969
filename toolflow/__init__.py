"""toolflow: sequential tool workflows with reference resolution and caching."""

from .builder import WorkflowBuilder, merge, previous, ref, workflow
from .cache import CacheStore, get_cache_store
from .contracts import (
    CacheDirective,
    ErrorPolicy,
    StepResult,
    ToolResult,
    Workflow,
    WorkflowProgress,
    WorkflowResult,
    WorkflowStep,
)
from .errors import ErrorCode, ReferenceResolutionError, ToolflowError
from .events import EventChannel, WorkflowEvent
from .references import ReferenceResolver
from .runner import WorkflowRunner
from .tools import CallableToolInvoker, ToolInvoker

__version__ = "0.1.0"
__all__ = [
    "CacheDirective",
    "CacheStore",
    "CallableToolInvoker",
    "ErrorCode",
    "ErrorPolicy",
    "EventChannel",
    "ReferenceResolutionError",
    "ReferenceResolver",
    "StepResult",
    "ToolInvoker",
    "ToolResult",
    "ToolflowError",
    "Workflow",
    "WorkflowBuilder",
    "WorkflowEvent",
    "WorkflowProgress",
    "WorkflowResult",
    "WorkflowRunner",
    "WorkflowStep",
    "get_cache_store",
    "merge",
    "previous",
    "ref",
    "workflow",
]
