"""Reference resolution for step inputs.

Resolution runs in two passes. Semantic placeholders (``{{previous}}``,
``{{previous:tool.path}}``, ``{{template:name}}``) are rewritten against the
workflow context first, then plain ``$ref``/``$merge`` nodes are evaluated
against the results recorded so far in the run.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .contracts import StepResult, WorkflowStep
from .errors import ReferenceResolutionError
from .inputs import (
    ArrayInput,
    InputNode,
    LiteralInput,
    MergeInput,
    ObjectInput,
    ReferenceInput,
    SemanticReferenceInput,
    parse_inputs,
)

_PREVIOUS = "{{previous}}"
_PREVIOUS_PATH = re.compile(r"^\{\{previous\.(.+)\}\}$")
_PREVIOUS_TOOL = re.compile(r"^\{\{previous:([^.}]+)\}\}$")
_PREVIOUS_TOOL_PATH = re.compile(r"^\{\{previous:([^.}]+)\.(.+)\}\}$")
_TEMPLATE = re.compile(r"^\{\{template:(.+)\}\}$")

TemplateResolver = Callable[[str], Any]


@dataclass
class ResolutionContext:
    """Workflow-wide information available to semantic references."""

    current_step_index: int
    workflow_steps: Sequence[WorkflowStep]
    previous_results: Mapping[str, StepResult] = field(default_factory=dict)


def matches_tool_type(tool_id: str, tool_type: str) -> bool:
    """Loose tool matching so ``{{previous:screenshot}}`` finds ``screen-screenshot``."""
    return (
        tool_id == tool_type
        or tool_type in tool_id
        or tool_id.startswith(f"{tool_type}-")
        or tool_id.endswith(f"-{tool_type}")
    )


def find_previous_step_by_tool(tool_type: str, context: ResolutionContext) -> WorkflowStep:
    for index in range(context.current_step_index - 1, -1, -1):
        step = context.workflow_steps[index]
        if matches_tool_type(str(step.tool_id), tool_type):
            return step
    raise ReferenceResolutionError(
        f'No previous step of type "{tool_type}" found in workflow',
        reference=f"{{{{previous:{tool_type}}}}}",
    )


def _previous_step(context: ResolutionContext, expression: str) -> WorkflowStep:
    if context.current_step_index <= 0:
        raise ReferenceResolutionError(
            "No previous step available - this is the first step", reference=expression
        )
    return context.workflow_steps[context.current_step_index - 1]


class ReferenceResolver:
    """Turns a step's input specification into concrete values."""

    def __init__(self, template_resolver: Optional[TemplateResolver] = None) -> None:
        self._template_resolver = template_resolver

    def resolve(
        self,
        spec: Any,
        prior_results: Mapping[str, StepResult],
        context: Optional[ResolutionContext] = None,
    ) -> Any:
        if spec is None:
            return None
        node = parse_inputs(spec)
        if context is not None:
            node = self.substitute_semantic(node, context)
        return self._evaluate(node, prior_results)

    # ------------------------------------------------------------------
    # Semantic pass
    def substitute_semantic(self, node: InputNode, context: ResolutionContext) -> InputNode:
        """Rewrite semantic placeholders into plain references or literals."""

        if isinstance(node, SemanticReferenceInput):
            return self._rewrite(node, context)
        if isinstance(node, MergeInput):
            return MergeInput(
                members=[self.substitute_semantic(m, context) for m in node.members]
            )
        if isinstance(node, ObjectInput):
            return ObjectInput(
                properties={
                    k: self.substitute_semantic(v, context)
                    for k, v in node.properties.items()
                }
            )
        if isinstance(node, ArrayInput):
            return ArrayInput(items=[self.substitute_semantic(i, context) for i in node.items])
        return node

    def _rewrite(self, node: SemanticReferenceInput, context: ResolutionContext) -> InputNode:
        expression = node.expression

        if expression == _PREVIOUS:
            return ReferenceInput(path=_previous_step(context, expression).id)

        match = _PREVIOUS_PATH.match(expression)
        if match:
            step = _previous_step(context, expression)
            return ReferenceInput(path=f"{step.id}.{match.group(1)}")

        match = _PREVIOUS_TOOL.match(expression)
        if match:
            return ReferenceInput(path=find_previous_step_by_tool(match.group(1), context).id)

        match = _PREVIOUS_TOOL_PATH.match(expression)
        if match:
            step = find_previous_step_by_tool(match.group(1), context)
            return ReferenceInput(path=f"{step.id}.{match.group(2)}")

        match = _TEMPLATE.match(expression)
        if match:
            if self._template_resolver is None:
                raise ReferenceResolutionError(
                    f"Template reference {expression} used but no template resolver is configured",
                    reference=expression,
                )
            try:
                value = self._template_resolver(match.group(1))
            except ReferenceResolutionError:
                raise
            except Exception as exc:
                raise ReferenceResolutionError(
                    f"Template reference {expression} could not be resolved: {exc}",
                    reference=expression,
                ) from exc
            return LiteralInput(value=value)

        return node

    # ------------------------------------------------------------------
    # Generic pass
    def _evaluate(self, node: InputNode, prior_results: Mapping[str, StepResult]) -> Any:
        if isinstance(node, LiteralInput):
            return node.value
        if isinstance(node, ReferenceInput):
            return resolve_reference(node.path, prior_results)
        if isinstance(node, SemanticReferenceInput):
            # Without a context the placeholder is looked up as a step id and fails.
            return resolve_reference(node.expression, prior_results)
        if isinstance(node, MergeInput):
            return self._merge(node, prior_results)
        if isinstance(node, ObjectInput):
            return {k: self._evaluate(v, prior_results) for k, v in node.properties.items()}
        if isinstance(node, ArrayInput):
            return [self._evaluate(item, prior_results) for item in node.items]
        raise TypeError(f"Unsupported input node: {type(node).__name__}")

    def _merge(self, node: MergeInput, prior_results: Mapping[str, StepResult]) -> Dict[str, Any]:
        merged: Dict[str, Any] = {}
        for position, member in enumerate(node.members):
            value = self._evaluate(member, prior_results)
            if value is None:
                continue
            if not isinstance(value, Mapping):
                raise ReferenceResolutionError(
                    f"$merge member {position} resolved to {type(value).__name__}, expected an object"
                )
            merged.update(value)
        return merged


def resolve_reference(path: str, prior_results: Mapping[str, StepResult]) -> Any:
    """Return the value ``path`` points at, failing loudly when it cannot."""

    segments = path.split(".")
    step_id = segments[0]
    if not step_id or any(not s for s in segments[1:]):
        raise ReferenceResolutionError(f'Malformed reference "{path}"', reference=path)

    result = prior_results.get(step_id)
    if result is None:
        raise ReferenceResolutionError(
            f'Step "{step_id}" not found: no result recorded for reference "{path}"',
            reference=path,
        )
    if not result.success:
        raise ReferenceResolutionError(
            f'Step "{step_id}" failed: {result.error or "unknown error"}',
            reference=path,
        )

    value = result.result
    walked = step_id
    for segment in segments[1:]:
        value = _navigate(value, segment, walked, path)
        walked = f"{walked}.{segment}"
    return value


def _navigate(value: Any, segment: str, walked: str, path: str) -> Any:
    if value is None:
        raise ReferenceResolutionError(
            f'Cannot read "{segment}" of null value at "{walked}" (reference "{path}")',
            reference=path,
        )
    if isinstance(value, Mapping):
        if segment not in value:
            raise ReferenceResolutionError(
                f'Property "{segment}" not found at "{walked}" (reference "{path}")',
                reference=path,
            )
        return value[segment]
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        try:
            index = int(segment)
        except ValueError:
            raise ReferenceResolutionError(
                f'Expected an array index at "{walked}", got "{segment}" (reference "{path}")',
                reference=path,
            ) from None
        if not -len(value) <= index < len(value):
            raise ReferenceResolutionError(
                f'Index {index} out of range at "{walked}" (reference "{path}")',
                reference=path,
            )
        return value[index]
    raise ReferenceResolutionError(
        f'Cannot read "{segment}" from {type(value).__name__} value at "{walked}" '
        f'(reference "{path}")',
        reference=path,
    )


def resolve_inputs(
    spec: Any,
    prior_results: Mapping[str, StepResult],
    context: Optional[ResolutionContext] = None,
) -> Any:
    """Resolve ``spec`` with a default resolver (no template support)."""
    return ReferenceResolver().resolve(spec, prior_results, context)


def validate_semantic_references(
    inputs: Any, available_steps: Sequence[WorkflowStep], current_step_index: int
) -> Tuple[bool, List[str]]:
    """Check placeholder syntax against the step list without running anything."""

    errors: List[str] = []

    def visit(value: Any, path: str) -> None:
        if isinstance(value, dict):
            ref = value.get("$ref")
            if isinstance(ref, str):
                if (ref == _PREVIOUS or _PREVIOUS_PATH.match(ref)) and current_step_index == 0:
                    errors.append(f"{path or '<root>'}: No previous step available - this is the first step")
                match = re.match(r"^\{\{previous:([^.}]+)", ref)
                if match:
                    tool_type = match.group(1)
                    found = any(
                        matches_tool_type(str(available_steps[i].tool_id), tool_type)
                        for i in range(current_step_index - 1, -1, -1)
                    )
                    if not found:
                        errors.append(f'{path or "<root>"}: No previous step of type "{tool_type}" found')
                return
            for key, child in value.items():
                visit(child, f"{path}.{key}" if path else key)
        elif isinstance(value, (list, tuple)):
            for index, child in enumerate(value):
                visit(child, f"{path}[{index}]")

    visit(inputs, "")
    return (not errors, errors)
