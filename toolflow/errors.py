"""Error taxonomy for workflow execution."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine readable error categories."""

    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"
    WORKFLOW_ERROR = "WORKFLOW_ERROR"
    REFERENCE_ERROR = "REFERENCE_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    TEMPLATE_ERROR = "TEMPLATE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ToolflowError(Exception):
    """Base class for all toolflow errors."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}


class ReferenceResolutionError(ToolflowError):
    """A ``$ref``, ``$merge`` or semantic placeholder could not be satisfied.

    Never retried: the reference graph does not change between attempts.
    """

    code = ErrorCode.REFERENCE_ERROR

    def __init__(self, message: str, reference: Optional[str] = None, **details: Any) -> None:
        super().__init__(message, details={"reference": reference, **details})
        self.reference = reference


class ToolExecutionError(ToolflowError):
    """A tool raised or returned a failure envelope."""

    code = ErrorCode.TOOL_EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        tool_id: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code=code, details={"tool_id": tool_id, **(details or {})})
        self.tool_id = tool_id


class CacheError(ToolflowError):
    """Reading or writing a cache tier failed."""

    code = ErrorCode.STORAGE_ERROR

    def __init__(self, message: str, operation: Optional[str] = None, **details: Any) -> None:
        super().__init__(message, details={"operation": operation, **details})
        self.operation = operation


class WorkflowAbortedError(ToolflowError):
    """A step with the ``stop`` policy failed and the run must end."""

    code = ErrorCode.WORKFLOW_ERROR

    def __init__(self, message: str, workflow_id: str, step_id: str) -> None:
        super().__init__(message, details={"workflow_id": workflow_id, "step_id": step_id})
        self.workflow_id = workflow_id
        self.step_id = step_id
