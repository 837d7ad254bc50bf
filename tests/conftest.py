"""Shared pytest fixtures for LLM Stream Engine tests."""

import pytest
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file for tests
load_dotenv()

from llm_stream_engine.models.options import EngineOptions
from llm_stream_engine.observability.sinks import InMemoryMetricsSink
from llm_stream_engine.validation import SchemaRegistry, SchemaValidator


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests of a single component")
    config.addinivalue_line("markers", "integration: tests that drive the whole engine")
    config.addinivalue_line("markers", "slow: tests that wait on timers")


WEATHER_SCHEMA = {
    "type": "object",
    "properties": {
        "city": {"type": "string", "minLength": 1},
        "unit": {"type": "string", "enum": ["celsius", "fahrenheit"]},
        "days": {"type": "integer", "minimum": 1, "maximum": 14},
    },
    "required": ["city", "unit"],
}

TREE_SCHEMA = {
    "$defs": {
        "Node": {
            "type": "object",
            "properties": {
                "value": {"type": "integer"},
                "children": {"type": "array", "items": {"$ref": "#/$defs/Node"}},
            },
            "required": ["value"],
        }
    },
    "$ref": "#/$defs/Node",
}


class Invoice(BaseModel):
    """Structured output model used in validation tests."""
    number: str = Field(..., pattern=r"^INV-\d+$")
    amount: float = Field(..., ge=0)
    paid: bool = False


@pytest.fixture
def weather_schema():
    return WEATHER_SCHEMA


@pytest.fixture
def tree_schema():
    return TREE_SCHEMA


@pytest.fixture
def registry():
    """Registry with a weather tool schema and a recursive tree schema."""
    registry = SchemaRegistry()
    registry.register("get_weather", WEATHER_SCHEMA, strict=True)
    registry.register("tree", TREE_SCHEMA)
    return registry


@pytest.fixture
def validator(registry):
    return SchemaValidator(registry)


@pytest.fixture
def invoice_model():
    return Invoice


@pytest.fixture
def metrics_sink():
    return InMemoryMetricsSink(max_size=100)


@pytest.fixture
def fast_timeout_options():
    """Options with a short inactivity timeout."""
    return EngineOptions(inactivity_timeout=0.05)
