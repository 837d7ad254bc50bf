"""Unit tests for the command line interface."""

import json

import pytest

from llm_stream_engine.cli import build_registry, main, read_chunks
from tests.helpers.sse_builders import (
    call_started,
    args_delta,
    done,
    response_created,
    text_delta,
    text_stream,
    tool_call_stream,
)


@pytest.fixture
def weather_file(tmp_path, weather_schema):
    path = tmp_path / "get_weather.json"
    path.write_text(json.dumps(weather_schema))
    return path


@pytest.mark.unit
class TestCLI:
    """Test the replay and validate commands."""

    def test_read_chunks(self, tmp_path):
        """Test a file is read in fixed-size chunks."""
        path = tmp_path / "stream.txt"
        path.write_bytes(b"abcdefg")
        assert list(read_chunks(str(path), 3)) == [b"abc", b"def", b"g"]

    def test_build_registry_names(self, weather_file):
        """Test NAME=PATH and bare PATH arguments."""
        registry = build_registry([f"lookup={weather_file}", str(weather_file)])
        assert registry.names() == ["lookup", "get_weather"]

    def test_replay_text(self, tmp_path, capsys):
        """Test replaying a completed text stream."""
        path = tmp_path / "stream.sse"
        path.write_bytes(text_stream(["Hello", " there"]))

        code = main(["replay", str(path), "--chunk-size", "7"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Status: completed" in out
        assert "Hello there" in out

    def test_replay_json(self, tmp_path, capsys, weather_file):
        """Test the JSON result output with a validated tool call."""
        path = tmp_path / "stream.sse"
        path.write_bytes(tool_call_stream("c1", "get_weather", ['{"city": "Oslo", "unit": "celsius"}']))

        code = main(["replay", str(path), "--schema", str(weather_file), "--json"])

        result = json.loads(capsys.readouterr().out)
        assert code == 0
        assert result["status"] == "completed"
        assert result["tool_calls"][0]["status"] == "valid"

    def test_replay_events(self, tmp_path, capsys):
        """Test every event is printed with --events."""
        path = tmp_path / "stream.sse"
        path.write_bytes(text_stream(["a"]))

        main(["replay", str(path), "--events"])

        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "stream_started: response_id='resp_1'"
        assert lines[1].startswith("output_text_delta: delta='a'")

    def test_replay_failure_exit_code(self, tmp_path, capsys):
        """Test a failed stream exits with 1 and prints the partial call."""
        path = tmp_path / "stream.sse"
        path.write_bytes(
            response_created() + text_delta("x") + call_started("c9", "lookup")
            + args_delta("c9", '{"q"') + done()
        )

        code = main(["replay", str(path)])

        out = capsys.readouterr().out
        assert code == 1
        assert "Status: failed" in out
        assert "lookup (c9) unfinished" in out
        assert "sentinel" in out

    def test_replay_missing_file(self, tmp_path, capsys):
        """Test an unreadable file exits with 2."""
        code = main(["replay", str(tmp_path / "missing.sse")])
        assert code == 2
        assert "Error:" in capsys.readouterr().err

    def test_replay_unknown_output_schema(self, tmp_path, capsys):
        """Test an unregistered output schema exits with 2."""
        path = tmp_path / "stream.sse"
        path.write_bytes(text_stream(["{}"]))
        assert main(["replay", str(path), "--output-schema", "nope"]) == 2

    def test_validate_valid(self, tmp_path, capsys, weather_file):
        """Test a valid document."""
        document = tmp_path / "doc.json"
        document.write_text('{"city": "Lima", "unit": "celsius", "days": 3}')
        assert main(["validate", str(weather_file), str(document)]) == 0
        assert capsys.readouterr().out.strip() == "Valid"

    def test_validate_invalid(self, tmp_path, capsys, weather_file):
        """Test violations are printed with their pointers."""
        document = tmp_path / "doc.json"
        document.write_text('{"city": "", "unit": "celsius", "extra": true}')

        code = main(["validate", "--strict", str(weather_file), str(document)])

        out = capsys.readouterr().out
        assert code == 1
        assert "/city" in out
        assert "/extra" in out

    def test_no_command(self, capsys):
        """Test running without a command prints help."""
        assert main([]) == 2
