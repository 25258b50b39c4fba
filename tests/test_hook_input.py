"""Tests for hookguard.hook_input"""

import io
import json

import pytest

from hookguard.hook_input import HookInvocation, parse_hook_input, read_hook_input


def test_parse_bash_payload():
    invocation = parse_hook_input(
        json.dumps({"tool_name": "Bash", "tool_input": {"command": "ls", "description": "list"}, "session_id": "s1"})
    )

    assert invocation.tool_name == "Bash"
    assert invocation.command == "ls"
    assert invocation.description == "list"
    assert invocation.session_id == "s1"


@pytest.mark.parametrize("key", ["file_path", "filePath", "path"])
def test_file_path_aliases(key):
    invocation = HookInvocation("Write", {key: "src/app.py"})
    assert invocation.file_path == "src/app.py"


@pytest.mark.parametrize("raw", ["", "   \n", "{not json", "[1, 2]", '"Bash"'])
def test_unusable_payload_is_none(raw):
    assert parse_hook_input(raw) is None


def test_non_dict_tool_input_is_dropped():
    invocation = parse_hook_input(json.dumps({"tool_name": "Bash", "tool_input": "rm -rf /"}))

    assert invocation.tool_input == {}
    assert invocation.command == ""


def test_non_string_fields_are_ignored():
    invocation = HookInvocation("Bash", {"command": ["rm", "-rf"], "file_path": 3})

    assert invocation.command == ""
    assert invocation.file_path == ""


def test_read_hook_input_from_stream():
    stream = io.StringIO(json.dumps({"tool_name": "Read", "tool_input": {"file_path": "a.txt"}}))

    assert read_hook_input(stream).file_path == "a.txt"


def test_oversized_input_is_rejected():
    stream = io.StringIO(json.dumps({"tool_name": "Bash", "tool_input": {"command": "x" * 200}}))

    assert read_hook_input(stream, max_size=100) is None


def test_tty_input_is_ignored():
    class Terminal(io.StringIO):
        def isatty(self):
            return True

    assert read_hook_input(Terminal('{"tool_name": "Bash"}')) is None
