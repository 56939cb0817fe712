import json

from editcore.errors import (
    ToolError,
    ToolErrorKind,
    format_tool_error,
    is_backtrackable,
    runtime_error,
    semantic_error,
    wrap_as_runtime,
    wrap_as_semantic,
)


def test_to_dict_and_json():
    err = semantic_error("bad request", error="file_not_read", path="a.py")
    assert err.to_dict() == {
        "error": True,
        "type": "semantic",
        "message": "bad request",
        "details": {"error": "file_not_read", "path": "a.py"},
    }
    assert json.loads(err.to_json())["details"]["path"] == "a.py"
    assert runtime_error("disk").to_dict() == {"error": True, "type": "runtime", "message": "disk"}


def test_format_tool_error():
    assert format_tool_error(runtime_error("disk full")) == "Error: disk full"
    payload = json.loads(format_tool_error(semantic_error("denied", path="x")))
    assert payload["type"] == "semantic"


def test_wrapping_keeps_tool_errors():
    original = semantic_error("keep me")
    assert wrap_as_runtime(original) is original
    assert wrap_as_semantic(original) is original

    wrapped = wrap_as_runtime(OSError("no space"), "Write")
    assert wrapped.kind is ToolErrorKind.RUNTIME
    assert wrapped.message == "Write: no space"
    assert wrap_as_semantic(ValueError("bad")).message == "bad"


def test_backtrackable():
    assert is_backtrackable(semantic_error("x"))
    assert not is_backtrackable(runtime_error("x"))
    assert not is_backtrackable(ValueError("x"))
    assert repr(ToolError(ToolErrorKind.RUNTIME, "m")) == "ToolError('runtime', 'm')"
