"""End-to-end integration tests for LLM Stream Engine."""

import asyncio

import httpx
import pytest

from llm_stream_engine import (
    EngineOptions,
    SchemaRegistry,
    StreamController,
    StreamStatus,
    ToolCallStatus,
    reconstruct,
)
from llm_stream_engine.observability.sinks import InMemoryMetricsSink
from tests.helpers.sse_builders import (
    args_delta,
    args_done,
    call_started,
    done,
    response_completed,
    response_created,
    split_every,
    text_delta,
    text_done,
)


def mixed_response() -> bytes:
    """Text plus two interleaved tool calls, one with invalid arguments."""
    body = response_created("resp_e2e")
    body += text_delta("Checking ") + text_delta("the weather.")
    body += text_done("Checking the weather.")
    body += call_started("call_1", "get_weather") + call_started("call_2", "get_weather")
    body += args_delta("call_1", '{"city": "Par', sequence=1)
    body += args_delta("call_2", '{"city": "Bergen", ', sequence=1)
    body += args_delta("call_1", 'is", "unit": "celsius"}', sequence=2)
    body += args_delta("call_2", '"unit": "kelvin"}', sequence=2)
    body += args_done("call_2") + args_done("call_1")
    body += response_completed("resp_e2e", {"input_tokens": 40, "output_tokens": 12, "total_tokens": 52})
    return body + done()


def mock_client(chunks, error=None) -> httpx.AsyncClient:
    async def body():
        for chunk in chunks:
            await asyncio.sleep(0)
            yield chunk
        if error is not None:
            raise error

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=body(),
        )

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def weather_registry(weather_schema):
    registry = SchemaRegistry()
    registry.register("get_weather", weather_schema, strict=True)
    return registry


@pytest.mark.integration
class TestEndToEnd:
    """Drive the whole engine from an HTTP response."""

    @pytest.mark.asyncio
    async def test_streamed_http_response(self, weather_registry):
        """Test a mixed response delivered in small chunks over httpx."""
        sink = InMemoryMetricsSink()
        async with mock_client(split_every(mixed_response(), 17)) as client:
            async with client.stream("POST", "https://llm.test/v1/responses") as response:
                result = await reconstruct(response, registry=weather_registry, metrics_sink=sink)

        assert result.status == StreamStatus.COMPLETED
        assert result.response_id == "resp_e2e"
        assert result.text == "Checking the weather."
        assert result.usage["total_tokens"] == 52

        # Completion order is kept
        assert [c.call_id for c in result.tool_calls] == ["call_2", "call_1"]
        assert result.get_tool_call("call_1").status == ToolCallStatus.VALID
        assert result.get_tool_call("call_1").parsed == {"city": "Paris", "unit": "celsius"}
        invalid = result.get_tool_call("call_2")
        assert invalid.status == ToolCallStatus.INVALID
        assert invalid.violations[0].path == "/unit"

        summary = await sink.get_summary()
        assert summary.count == 1
        assert summary.statuses == {"completed": 1}

    @pytest.mark.asyncio
    async def test_buffered_http_response(self, weather_registry):
        """Test a response whose body was read in full."""
        response = httpx.Response(200, content=mixed_response())
        result = await reconstruct(response, registry=weather_registry)
        assert result.status == StreamStatus.COMPLETED
        assert len(result.tool_calls) == 2

    @pytest.mark.asyncio
    async def test_connection_dropped(self, weather_registry):
        """Test a dropped connection keeps the partial output."""
        body = mixed_response()
        cut = body.index(b"response.function_call_arguments.done")
        async with mock_client([body[:cut]], error=httpx.ReadError("peer closed")) as client:
            async with client.stream("POST", "https://llm.test/v1/responses") as response:
                controller = StreamController(response, registry=weather_registry)
                result = await controller.collect()

        assert result.status == StreamStatus.FAILED
        assert result.error_type == "TransportError"
        assert controller.error.details["retryable"] is True
        assert result.text == "Checking the weather."
        assert {p.call_id: p.arguments for p in result.partial_calls} == {
            "call_1": '{"city": "Paris", "unit": "celsius"}',
            "call_2": '{"city": "Bergen", "unit": "kelvin"}',
        }

    @pytest.mark.asyncio
    async def test_events_while_streaming(self, weather_registry):
        """Test events arrive in wire order with validation attached."""
        controller = StreamController(
            split_every(mixed_response(), 5),
            registry=weather_registry,
            options=EngineOptions(inactivity_timeout=5.0),
        )

        types = []
        completed_calls = {}
        async for event in controller:
            types.append(event.type)
            if event.type == "function_call_completed":
                completed_calls[event.call_id] = event.validation.valid

        assert types[0] == "stream_started"
        assert types[-1] == "response_completed"
        assert types.count("function_call_arguments_delta") == 4
        assert completed_calls == {"call_2": False, "call_1": True}
