import pytest
from pydantic import ValidationError

from toolflow.builder import merge, previous, ref, workflow
from toolflow.contracts import ErrorPolicy


def test_builder_produces_validated_workflow():
    wf = (
        workflow("region-select", "Select region", "Capture then read")
        .cached_step("capture", "screen-capture", {"display": 0}, key="primary", ttl=60_000)
        .step("read", "ocr", merge(ref("capture"), {"lang": "en"}), on_error="continue", retry_count=2)
        .step("show", "echo", {"text": ref("read", "text")}, delay=250)
        .build()
    )

    assert [s.id for s in wf.steps] == ["capture", "read", "show"]
    capture, read, show = wf.steps
    assert capture.caching_enabled
    assert capture.cache.key == "primary"
    assert capture.cache.ttl == 60_000
    assert read.on_error == ErrorPolicy.CONTINUE
    assert read.inputs == {"$merge": [{"$ref": "capture"}, {"lang": "en"}]}
    assert show.inputs == {"text": {"$ref": "read.text"}}
    assert show.delay == 250


def test_previous_helper():
    assert previous() == {"$ref": "{{previous}}"}
    assert previous("text") == {"$ref": "{{previous.text}}"}
    assert previous("text", tool="ocr") == {"$ref": "{{previous:ocr.text}}"}


def test_builder_rejects_duplicates():
    builder = workflow("wf").step("s1", "echo").step("s1", "echo")
    with pytest.raises(ValidationError):
        builder.build()
