from datetime import datetime, timezone

import pytest

from toolflow.contracts import StepResult, WorkflowStep
from toolflow.errors import ReferenceResolutionError
from toolflow.references import (
    ReferenceResolver,
    ResolutionContext,
    matches_tool_type,
    resolve_reference,
    validate_semantic_references,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _ok(step_id, value, tool_id="echo"):
    return StepResult(
        step_id=step_id, tool_id=tool_id, success=True, result=value, start_time=NOW, end_time=NOW
    )


def _failed(step_id, error):
    return StepResult(
        step_id=step_id, tool_id="fail", success=False, error=error, start_time=NOW, end_time=NOW
    )


def test_resolve_whole_output_and_path():
    results = {"s1": _ok("s1", {"msg": "hi", "items": [{"n": 1}, {"n": 2}]})}
    assert resolve_reference("s1", results) == {"msg": "hi", "items": [{"n": 1}, {"n": 2}]}
    assert resolve_reference("s1.msg", results) == "hi"
    assert resolve_reference("s1.items.1.n", results) == 2


def test_missing_step_fails_loudly():
    with pytest.raises(ReferenceResolutionError, match='Step "ghost" not found'):
        resolve_reference("ghost.value", {})


def test_failed_step_names_step_and_reason():
    results = {"s1": _failed("s1", "tool exploded")}
    with pytest.raises(ReferenceResolutionError) as exc:
        resolve_reference("s1.msg", results)
    assert "s1" in exc.value.message
    assert "tool exploded" in exc.value.message


@pytest.mark.parametrize(
    "path",
    ["s1.missing", "s1.msg.deeper", "s1.items.9", "s1.items.x", "s1.none.x", "s1..msg"],
)
def test_bad_paths_fail(path):
    results = {"s1": _ok("s1", {"msg": "hi", "items": [1], "none": None})}
    with pytest.raises(ReferenceResolutionError):
        resolve_reference(path, results)


def test_merge_later_members_win():
    resolver = ReferenceResolver()
    spec = {"$merge": [{"a": 1}, {"a": 2, "b": 3}]}
    assert resolver.resolve(spec, {}) == {"a": 2, "b": 3}


def test_merge_with_references():
    resolver = ReferenceResolver()
    results = {"s1": _ok("s1", {"x": 1, "y": 1})}
    spec = {"$merge": [{"$ref": "s1"}, {"y": 2}]}
    assert resolver.resolve(spec, results) == {"x": 1, "y": 2}


def test_merge_rejects_non_object_member():
    with pytest.raises(ReferenceResolutionError):
        ReferenceResolver().resolve({"$merge": [{"a": 1}, [1, 2]]}, {})


def test_containers_and_literals_preserved():
    results = {"s1": _ok("s1", {"msg": "hi"})}
    spec = {"list": [1, {"$ref": "s1.msg"}, None], "flag": True, "nested": {"n": {"$ref": "s1.msg"}}}
    assert ReferenceResolver().resolve(spec, results) == {
        "list": [1, "hi", None],
        "flag": True,
        "nested": {"n": "hi"},
    }
    assert ReferenceResolver().resolve(None, results) is None


def _context(index, steps, results):
    return ResolutionContext(current_step_index=index, workflow_steps=steps, previous_results=results)


STEPS = [
    WorkflowStep(id="grab", tool_id="screen-capture"),
    WorkflowStep(id="read", tool_id="ocr"),
    WorkflowStep(id="use", tool_id="echo"),
]


def test_previous_resolves_against_prior_step():
    results = {"grab": _ok("grab", {"image": "png"}), "read": _ok("read", {"text": "hello"})}
    resolver = ReferenceResolver()
    context = _context(2, STEPS, results)
    assert resolver.resolve({"$ref": "{{previous}}"}, results, context) == {"text": "hello"}
    assert resolver.resolve({"$ref": "{{previous.text}}"}, results, context) == "hello"


def test_previous_by_tool_type_uses_loose_matching():
    results = {"grab": _ok("grab", {"image": "png"}), "read": _ok("read", {"text": "hello"})}
    resolver = ReferenceResolver()
    context = _context(2, STEPS, results)
    assert resolver.resolve({"$ref": "{{previous:capture.image}}"}, results, context) == "png"
    assert resolver.resolve({"$ref": "{{previous:ocr}}"}, results, context) == {"text": "hello"}


def test_previous_on_first_step_fails():
    with pytest.raises(ReferenceResolutionError, match="first step"):
        ReferenceResolver().resolve({"$ref": "{{previous}}"}, {}, _context(0, STEPS, {}))


def test_previous_unknown_tool_fails():
    results = {"grab": _ok("grab", 1)}
    with pytest.raises(ReferenceResolutionError, match='type "mouse"'):
        ReferenceResolver().resolve({"$ref": "{{previous:mouse}}"}, results, _context(1, STEPS, results))


def test_template_reference_uses_resolver():
    resolver = ReferenceResolver(template_resolver=lambda name: {"template": name})
    value = resolver.resolve({"$ref": "{{template:login-button}}"}, {}, _context(0, STEPS, {}))
    assert value == {"template": "login-button"}


def test_template_reference_without_resolver_fails():
    with pytest.raises(ReferenceResolutionError, match="template"):
        ReferenceResolver().resolve({"$ref": "{{template:x}}"}, {}, _context(0, STEPS, {}))


def test_semantic_reference_without_context_fails():
    with pytest.raises(ReferenceResolutionError):
        ReferenceResolver().resolve({"$ref": "{{previous}}"}, {})


def test_matches_tool_type():
    assert matches_tool_type("ocr", "ocr")
    assert matches_tool_type("screen-capture", "capture")
    assert matches_tool_type("capture-tool", "capture")
    assert not matches_tool_type("ocr", "capture")


def test_validate_semantic_references():
    ok, errors = validate_semantic_references({"img": {"$ref": "{{previous:capture}}"}}, STEPS, 1)
    assert ok and errors == []

    ok, errors = validate_semantic_references({"$ref": "{{previous}}"}, STEPS, 0)
    assert not ok
    assert "first step" in errors[0]

    ok, errors = validate_semantic_references([{"$ref": "{{previous:mouse.x}}"}], STEPS, 2)
    assert not ok
    assert errors[0].startswith("[0]")
