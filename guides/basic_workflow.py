"""Simple example showing a two-step workflow with a step reference."""

import asyncio

from toolflow import CallableToolInvoker, WorkflowRunner, ref, workflow

invoker = CallableToolInvoker()


@invoker.tool("greet")
def greet(inputs):
    return {"msg": f"hello {inputs['name']}"}


@invoker.tool("shout")
def shout(inputs):
    return inputs.upper()


async def main():
    """Basic workflow run example."""
    # Define the workflow: the second step reads the first step's output
    wf = (
        workflow("greeting", "Greeting")
        .step("say", "greet", {"name": "world"})
        .step("loud", "shout", ref("say", "msg"))
        .build()
    )

    runner = WorkflowRunner(invoker)
    result = await runner.run(wf)

    print(f"✅ Workflow finished: success={result.success}")
    for step_id, step in result.step_results.items():
        print(f"📋 {step_id}: {step.result}")


if __name__ == "__main__":
    asyncio.run(main())
