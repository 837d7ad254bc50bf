"""CLI entry point for LLM Stream Engine."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import SchemaError
from .models.options import EngineOptions
from .models.results import StreamStatus, ToolCallStatus
from .streaming.controller import StreamController
from .validation import SchemaRegistry, SchemaValidator

_MARKS = {
    ToolCallStatus.VALID: "✓",
    ToolCallStatus.INVALID: "✗",
    ToolCallStatus.UNVALIDATED: "-",
}


def read_chunks(path: str, chunk_size: int) -> Iterator[bytes]:
    """Read a captured stream in fixed-size chunks.

    The file is opened right away so a missing file fails before streaming.
    """
    fh = open(path, "rb")

    def chunks() -> Iterator[bytes]:
        with fh:
            while True:
                chunk = fh.read(chunk_size)
                if not chunk:
                    return
                yield chunk

    return chunks()


def load_schema(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def build_registry(specs: List[str], strict: bool = False) -> SchemaRegistry:
    """Register ``NAME=PATH`` schema arguments; a bare PATH uses the file stem as name."""
    registry = SchemaRegistry()
    for spec in specs:
        name, sep, path = spec.partition("=")
        if not sep:
            name, path = Path(spec).stem, spec
        registry.register(name, load_schema(path), strict=strict)
    return registry


async def replay(args) -> int:
    """Replay a captured SSE stream through the engine."""
    options = EngineOptions.from_env(
        **{
            key: value
            for key, value in {
                "max_line_length": args.max_line_length,
                "inactivity_timeout": args.timeout,
                "output_schema": args.output_schema,
            }.items()
            if value is not None
        }
    )
    registry = build_registry(args.schema, strict=args.strict)
    controller = StreamController(
        read_chunks(args.file, args.chunk_size),
        registry=registry,
        options=options,
    )

    async for event in controller.stream():
        if args.events:
            print(f"{event.type}: {_describe(event)}")

    result = controller.result
    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        print(f"Status: {result.status.value}")
        if result.response_id:
            print(f"Response: {result.response_id}")
        if result.text:
            print(f"Text:\n{result.text}")
        for call in result.tool_calls:
            print(f"{_MARKS[call.status]} {call.name} ({call.call_id}): {call.arguments}")
            for violation in call.violations:
                print(f"   {violation.path or 'root'}: {violation.reason}")
        for call in result.partial_calls:
            print(f"… {call.name} ({call.call_id}) unfinished: {call.arguments}")
        if result.refusal:
            print(f"Refusal: {result.refusal}")
        if result.failure_reason:
            print(f"Reason: {result.failure_reason}")
    return 0 if result.status == StreamStatus.COMPLETED else 1


def validate_file(args) -> int:
    """Validate a JSON document against a schema file."""
    registry = build_registry([f"schema={args.schema}"], strict=args.strict)
    with open(args.document, "r", encoding="utf-8") as fh:
        result = SchemaValidator(registry).validate_json("schema", fh.read())
    if result.valid:
        print("Valid")
        return 0
    for error in result.errors():
        print(error)
    return 1


def _describe(event) -> str:
    fields = {k: v for k, v in vars(event).items() if k not in ("type", "validation") and v is not None}
    return ", ".join(f"{k}={v!r}" for k, v in fields.items())


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI function."""
    parser = argparse.ArgumentParser(description="LLM Stream Engine CLI")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Replay command
    replay_parser = subparsers.add_parser("replay", help="Replay a captured SSE stream")
    replay_parser.add_argument("file", help="File with the raw event stream")
    replay_parser.add_argument("--schema", action="append", default=[],
                               help="Tool schema as NAME=PATH (repeatable)")
    replay_parser.add_argument("--output-schema", help="Registered schema name for the output text")
    replay_parser.add_argument("--strict", action="store_true", help="Reject unknown properties")
    replay_parser.add_argument("--timeout", type=float, help="Inactivity timeout in seconds")
    replay_parser.add_argument("--max-line-length", type=int, help="Maximum line length in bytes")
    replay_parser.add_argument("--chunk-size", type=int, default=4096, help="Bytes per chunk read")
    replay_parser.add_argument("--events", action="store_true", help="Print every event")
    replay_parser.add_argument("--json", action="store_true", help="Print the result as JSON")

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a JSON document")
    validate_parser.add_argument("schema", help="Schema file")
    validate_parser.add_argument("document", help="JSON document file")
    validate_parser.add_argument("--strict", action="store_true", help="Reject unknown properties")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        if args.command == "replay":
            return asyncio.run(replay(args))
        if args.command == "validate":
            return validate_file(args)
    except (OSError, ValueError, SchemaError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
