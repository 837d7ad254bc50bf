"""
Example: Streaming with Tool Call Validation

This example shows how to reconstruct a streamed Responses API answer,
validate tool call arguments as they complete and read the final result.
With OPENAI_API_KEY set (directly or in a .env file) it streams a live
response; otherwise it replays a canned one.
"""

import asyncio
import json
import os

import httpx
from dotenv import load_dotenv

from llm_stream_engine import EngineOptions, SchemaRegistry, StreamController, ToolCallStatus

WEATHER_TOOL = {
    "type": "object",
    "properties": {
        "city": {"type": "string", "minLength": 1},
        "unit": {"type": "string", "enum": ["celsius", "fahrenheit"]},
    },
    "required": ["city", "unit"],
}


def canned_stream():
    """A recorded response with one tool call, split mid-frame."""
    events = [
        ("response.created", {"response": {"id": "resp_demo"}}),
        ("response.output_item.added",
         {"item": {"type": "function_call", "id": "fc_1", "call_id": "call_1", "name": "get_weather"}}),
        ("response.function_call_arguments.delta", {"item_id": "fc_1", "delta": '{"city": "Ber'}),
        ("response.function_call_arguments.delta", {"item_id": "fc_1", "delta": 'lin", "unit": "celsius"}'}),
        ("response.function_call_arguments.done", {"item_id": "fc_1"}),
        ("response.completed", {"response": {"id": "resp_demo", "usage": {"total_tokens": 42}}}),
    ]
    body = "".join(f"event: {tag}\ndata: {json.dumps(data)}\n\n" for tag, data in events)
    body += "data: [DONE]\n\n"
    raw = body.encode("utf-8")
    return [raw[i:i + 64] for i in range(0, len(raw), 64)]


async def example_canned_stream(registry: SchemaRegistry):
    """Replay a recorded stream."""
    print("=== Canned Stream ===\n")

    controller = StreamController(canned_stream(), registry=registry)
    async for event in controller.stream():
        if event.type == "function_call_completed":
            print(f"{event.name}({event.arguments}) valid={event.validation.valid}")

    result = controller.result
    print(f"\nStatus: {result.status.value}")
    print(f"Tokens used: {result.usage.get('total_tokens')}")


async def example_live_stream(registry: SchemaRegistry, api_key: str):
    """Stream a live response over httpx."""
    print("\n=== Live Stream ===\n")

    request = {
        "model": os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        "input": "What's the weather in Paris? Use celsius.",
        "stream": True,
        "tools": [{
            "type": "function",
            "name": "get_weather",
            "description": "Current weather for a city",
            "parameters": WEATHER_TOOL,
        }],
    }
    options = EngineOptions.from_env(inactivity_timeout=30.0)

    async with httpx.AsyncClient(timeout=None) as client:
        async with client.stream(
            "POST",
            "https://api.openai.com/v1/responses",
            headers={"Authorization": f"Bearer {api_key}"},
            json=request,
        ) as response:
            response.raise_for_status()
            controller = StreamController(response, registry=registry, options=options)
            async for event in controller.stream():
                if event.type == "output_text_delta":
                    print(event.delta, end="", flush=True)

    result = controller.result
    print(f"\n\nStatus: {result.status.value}")
    for call in result.tool_calls:
        marker = "ok" if call.status == ToolCallStatus.VALID else call.status.value
        print(f"{call.name}: {call.arguments} [{marker}]")
    if result.failure_reason:
        print(f"Reason: {result.failure_reason}")


async def main():
    """Run all examples."""
    load_dotenv()
    registry = SchemaRegistry()
    registry.register("get_weather", WEATHER_TOOL, strict=True)

    await example_canned_stream(registry)

    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        await example_live_stream(registry, api_key)


if __name__ == "__main__":
    asyncio.run(main())
