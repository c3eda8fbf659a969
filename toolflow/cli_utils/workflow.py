"""Utility functions to load workflow files and report on runs."""

from __future__ import annotations

import importlib
import json
from pathlib import Path
from typing import Any, List

import yaml

from toolflow.contracts import StepResult, Workflow
from toolflow.references import validate_semantic_references


def _load_workflow_file(path: Path) -> Workflow:
    """Read a YAML or JSON workflow definition and validate it."""

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    return Workflow.from_raw(data)


def _load_object(spec: str) -> Any:
    """Import ``module:attribute`` (or ``module.attribute``) and return the object."""

    module_name, sep, attr = spec.partition(":")
    if not sep:
        module_name, _, attr = spec.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"Expected 'module:attribute', got {spec!r}")
    module = importlib.import_module(module_name)
    obj = module
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj


def _check_references(workflow: Workflow) -> List[str]:
    """Return semantic reference problems for every step, prefixed by step id."""

    problems: List[str] = []
    for index, step in enumerate(workflow.steps):
        _, errors = validate_semantic_references(step.inputs, workflow.steps, index)
        problems.extend(f"{step.id}: {error}" for error in errors)
    return problems


def _format_step_result(result: StepResult) -> str:
    status = "ok" if result.success else "failed"
    parts = [f"- {result.step_id} ({result.tool_id}): {status}"]
    if result.from_cache:
        parts.append("[cached]")
    if result.retry_count:
        parts.append(f"retries={result.retry_count}")
    if result.error:
        parts.append(f"error={result.error}")
    return " ".join(parts)
