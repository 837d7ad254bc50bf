"""
Engine constants

Central location for wire-format constants and configuration defaults.
"""

# Payload that marks the logical end of an event stream
DEFAULT_SENTINEL = "[DONE]"

# Longest accepted field line (bytes) before the decode fails
DEFAULT_MAX_LINE_LENGTH = 1024 * 1024

# Bound on nested $ref expansion while validating recursive structures
DEFAULT_MAX_DEPTH = 32

# Environment variable prefix for EngineOptions.from_env
ENV_PREFIX = "LLM_STREAM_"

# Wire event tags (OpenAI Responses API naming)
TAG_RESPONSE_CREATED = "response.created"
TAG_RESPONSE_IN_PROGRESS = "response.in_progress"
TAG_OUTPUT_TEXT_DELTA = "response.output_text.delta"
TAG_OUTPUT_TEXT_DONE = "response.output_text.done"
TAG_OUTPUT_ITEM_ADDED = "response.output_item.added"
TAG_OUTPUT_ITEM_DONE = "response.output_item.done"
TAG_CONTENT_PART_ADDED = "response.content_part.added"
TAG_CONTENT_PART_DONE = "response.content_part.done"
TAG_FUNCTION_ARGS_DELTA = "response.function_call_arguments.delta"
TAG_FUNCTION_ARGS_DONE = "response.function_call_arguments.done"
TAG_RESPONSE_COMPLETED = "response.completed"
TAG_RESPONSE_FAILED = "response.failed"
TAG_RESPONSE_INCOMPLETE = "response.incomplete"
TAG_REFUSAL_DELTA = "response.refusal.delta"
TAG_REFUSAL_DONE = "response.refusal.done"
TAG_ERROR = "error"
TAG_PING = "ping"
