"""Configuration constants for the streaming engine."""

from .constants import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_LINE_LENGTH,
    DEFAULT_SENTINEL,
    ENV_PREFIX,
)

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_MAX_LINE_LENGTH",
    "DEFAULT_SENTINEL",
    "ENV_PREFIX",
]
