"""Typed representation of step input specifications.

Stored workflows describe inputs as plain JSON: literals, ``{"$ref": ...}``
pointers, ``{"$merge": [...]}`` instructions, or containers mixing all of
them. ``parse_inputs`` turns that wire form into a tree of frozen nodes so
the resolver can dispatch on the node type instead of probing dicts.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict

from .errors import ReferenceResolutionError

REF_KEY = "$ref"
MERGE_KEY = "$merge"

SEMANTIC_REF_PATTERN = re.compile(r"^\{\{[^}]+\}\}$")


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class LiteralInput(_Node):
    """A scalar passed through unchanged."""

    kind: Literal["literal"] = "literal"
    value: Any = None


class ReferenceInput(_Node):
    """Pointer to a previous step's output: ``stepId`` or ``stepId.a.b``."""

    kind: Literal["reference"] = "reference"
    path: str

    @property
    def step_id(self) -> str:
        return self.path.split(".", 1)[0]


class SemanticReferenceInput(_Node):
    """Named placeholder such as ``{{previous}}`` or ``{{previous:ocr.text}}``."""

    kind: Literal["semantic"] = "semantic"
    expression: str


class MergeInput(_Node):
    """Shallow merge of several resolved inputs, later members win."""

    kind: Literal["merge"] = "merge"
    members: List["InputNode"]


class ObjectInput(_Node):
    kind: Literal["object"] = "object"
    properties: Dict[str, "InputNode"]


class ArrayInput(_Node):
    kind: Literal["array"] = "array"
    items: List["InputNode"]


InputNode = Union[
    LiteralInput,
    ReferenceInput,
    SemanticReferenceInput,
    MergeInput,
    ObjectInput,
    ArrayInput,
]

INPUT_NODE_TYPES = (
    LiteralInput,
    ReferenceInput,
    SemanticReferenceInput,
    MergeInput,
    ObjectInput,
    ArrayInput,
)

MergeInput.model_rebuild()
ObjectInput.model_rebuild()
ArrayInput.model_rebuild()


def is_semantic_expression(value: str) -> bool:
    return bool(SEMANTIC_REF_PATTERN.match(value))


def parse_inputs(raw: Any) -> InputNode:
    """Convert the JSON wire form of step inputs into typed nodes."""

    if isinstance(raw, INPUT_NODE_TYPES):
        return raw

    if isinstance(raw, dict):
        ref = raw.get(REF_KEY)
        if isinstance(ref, str):
            if is_semantic_expression(ref):
                return SemanticReferenceInput(expression=ref)
            return ReferenceInput(path=ref)

        if MERGE_KEY in raw:
            members = raw[MERGE_KEY]
            if not isinstance(members, (list, tuple)):
                raise ReferenceResolutionError(
                    f"{MERGE_KEY} expects a list of inputs, got {type(members).__name__}"
                )
            return MergeInput(members=[parse_inputs(member) for member in members])

        return ObjectInput(properties={str(k): parse_inputs(v) for k, v in raw.items()})

    if isinstance(raw, (list, tuple)):
        return ArrayInput(items=[parse_inputs(item) for item in raw])

    return LiteralInput(value=raw)


def iter_references(node: InputNode):
    """Yield every reference-like node in ``node`` depth first."""

    if isinstance(node, (ReferenceInput, SemanticReferenceInput)):
        yield node
    elif isinstance(node, MergeInput):
        for member in node.members:
            yield from iter_references(member)
    elif isinstance(node, ObjectInput):
        for child in node.properties.values():
            yield from iter_references(child)
    elif isinstance(node, ArrayInput):
        for child in node.items:
            yield from iter_references(child)
