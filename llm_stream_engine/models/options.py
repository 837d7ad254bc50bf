"""
Engine configuration models.

This module provides the configuration options for one stream: framing
limits, timeout policy, default schema behaviour and debugging switches.
"""

import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional

from ..config.constants import DEFAULT_MAX_LINE_LENGTH, DEFAULT_SENTINEL, ENV_PREFIX


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_optional_float(value: str) -> Optional[float]:
    value = value.strip().lower()
    if value in ("", "none", "off", "0"):
        return None
    return float(value)


@dataclass
class EngineOptions:
    """
    Configuration for one stream controller.

    This class consolidates all engine options to avoid parameter sprawl
    and to give the CLI and the environment a single place to load into.
    """

    # Framing
    max_line_length: int = DEFAULT_MAX_LINE_LENGTH
    """Longest accepted field line in bytes; longer lines fail the decode."""

    sentinel: str = DEFAULT_SENTINEL
    """Payload value that marks the logical end of the stream."""

    # Timeout policy
    inactivity_timeout: Optional[float] = None
    """Seconds to wait for the next chunk; None waits forever."""

    # Structured output
    output_schema: Optional[str] = None
    """Registered schema name used to validate the aggregate output text."""

    validate_tool_calls: bool = True
    """Validate completed tool call arguments against the schema registered under the function name."""

    # Debugging
    log_events: bool = False
    """Log every classified event at debug level."""

    log_streaming_metrics: bool = False
    """Log the stream metrics when the stream terminates."""

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.max_line_length < 1:
            raise ValueError("max_line_length must be positive")
        if not self.sentinel:
            raise ValueError("sentinel must be a non-empty string")
        if self.inactivity_timeout is not None and self.inactivity_timeout <= 0:
            raise ValueError("inactivity_timeout must be positive or None")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "EngineOptions":
        """Create EngineOptions from dictionary.

        Args:
            config: Configuration dictionary

        Returns:
            EngineOptions instance
        """
        # Filter out unknown keys
        known_fields = {f.name for f in fields(cls)}
        filtered_config = {k: v for k, v in config.items() if k in known_fields}
        return cls(**filtered_config)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "EngineOptions":
        """Create EngineOptions from ``LLM_STREAM_*`` environment variables.

        Explicit keyword overrides win over the environment.
        """
        environ = os.environ if environ is None else environ
        config: Dict[str, Any] = {}

        if f"{ENV_PREFIX}MAX_LINE_LENGTH" in environ:
            config["max_line_length"] = int(environ[f"{ENV_PREFIX}MAX_LINE_LENGTH"])
        if f"{ENV_PREFIX}SENTINEL" in environ:
            config["sentinel"] = environ[f"{ENV_PREFIX}SENTINEL"]
        if f"{ENV_PREFIX}INACTIVITY_TIMEOUT" in environ:
            config["inactivity_timeout"] = _parse_optional_float(
                environ[f"{ENV_PREFIX}INACTIVITY_TIMEOUT"]
            )
        if f"{ENV_PREFIX}OUTPUT_SCHEMA" in environ:
            config["output_schema"] = environ[f"{ENV_PREFIX}OUTPUT_SCHEMA"] or None
        for name in ("validate_tool_calls", "log_events", "log_streaming_metrics"):
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in environ:
                config[name] = _parse_bool(environ[key])

        config.update(overrides)
        return cls.from_dict(config)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary.

        Returns:
            Configuration as dictionary
        """
        return {f.name: getattr(self, f.name) for f in fields(self)}


# Preset configurations for common use cases

DEFAULT_OPTIONS = EngineOptions()
"""Default options: no timeout, 1 MiB line limit."""

STRICT_OPTIONS = EngineOptions(
    max_line_length=64 * 1024,
    inactivity_timeout=30.0,
)
"""Options for untrusted producers: small line limit and an inactivity timeout."""

DEBUG_OPTIONS = EngineOptions(
    log_events=True,
    log_streaming_metrics=True,
)
"""Options for debugging with per-event logging and metrics."""
