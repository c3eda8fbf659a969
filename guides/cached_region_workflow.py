"""Capture a screen region once, then reuse it from the persistent cache.

Run it twice: the second run reads the capture from ``.toolflow/cache``
instead of invoking the capture tool again.
"""

import asyncio
import logging

from toolflow import CallableToolInvoker, WorkflowRunner, get_cache_store, merge, previous, workflow
from toolflow.events import WorkflowEvent, log_events

invoker = CallableToolInvoker()


@invoker.tool("screen-capture", default_ttl=5 * 60 * 1000)
async def capture(inputs):
    await asyncio.sleep(0.5)  # pretend this is slow
    x, y, w, h = inputs["region"]
    return {"image": f"capture-{x}-{y}-{w}x{h}.png"}


@invoker.tool("ocr")
def ocr(inputs):
    return {"text": f"text in {inputs['image']}", "lang": inputs["lang"]}


def on_progress(event, payload):
    marker = "⚡" if payload.from_cache else "▶"
    print(f"{marker} {payload.step_id} {payload.progress}%")


async def main():
    logging.basicConfig(level=logging.INFO)

    wf = (
        workflow("region-ocr", "Read text from a screen region")
        .cached_step("grab", "screen-capture", {"region": [0, 0, 640, 480]}, key="top-left")
        .step("read", "ocr", merge(previous(), {"lang": "en"}), on_error="retry", retry_count=2)
        .build()
    )

    runner = WorkflowRunner(invoker, cache=get_cache_store("file"))
    log_events(runner.events)
    runner.events.subscribe(WorkflowEvent.STEP_COMPLETED, on_progress)

    result = await runner.run(wf)
    stats = result.cache_stats
    print(f"✅ success={result.success} hits={stats.cache_hits} misses={stats.cache_misses}")
    print(f"📋 {result.step_results['read'].result}")


if __name__ == "__main__":
    asyncio.run(main())
