import asyncio

import pytest

from toolflow.contracts import ToolResult
from toolflow.tools import CallableToolInvoker, ToolInvoker, as_tool_result, declared_ttl


@pytest.mark.asyncio
async def test_callable_invoker_runs_sync_and_async_tools():
    invoker = CallableToolInvoker()
    invoker.register("upper", lambda inputs: inputs["text"].upper())

    @invoker.tool("wait", default_ttl=5000)
    async def wait(inputs):
        await asyncio.sleep(0)
        return {"waited": True}

    assert isinstance(invoker, ToolInvoker)
    assert (await invoker.run_tool("upper", {"text": "hi"})).data == "HI"
    assert (await invoker.run_tool("wait", None)).data == {"waited": True}
    assert declared_ttl(invoker, "wait") == 5000
    assert declared_ttl(invoker, "upper") is None
    assert sorted(invoker.tool_ids) == ["upper", "wait"]


@pytest.mark.asyncio
async def test_callable_invoker_failures_become_envelopes():
    invoker = CallableToolInvoker()

    def broken(inputs):
        raise ValueError("bad region")

    invoker.register("broken", broken)

    result = await invoker.run_tool("broken", {})
    assert not result.success
    assert result.error.message == "bad region"
    assert result.error.details["error_type"] == "ValueError"

    missing = await invoker.run_tool("nope", {})
    assert not missing.success
    assert "Tool not found: nope" in missing.error_message


def test_as_tool_result():
    envelope = ToolResult.ok(1)
    assert as_tool_result(envelope) is envelope
    assert as_tool_result({"success": False, "error": {"message": "x"}}).error_message == "x"
    assert as_tool_result({"value": 1}).data == {"value": 1}
    assert as_tool_result(None).success


def test_declared_ttl_without_lookup():
    assert declared_ttl(object(), "any") is None
