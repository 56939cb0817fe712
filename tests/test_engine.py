import time

import pytest

from editcore.engine import (
    EditEngine,
    LineRangeRequest,
    PatchRequest,
    SearchReplaceRequest,
    apply_line_edit,
    parse_edit_request,
)
from editcore.errors import ToolError, ToolErrorKind
from editcore.pending import confirm_pending
from editcore.settings import EditSettings
from editcore.streaming import split_lines, streaming_replace


def _engine(root, **settings):
    settings.setdefault("preview_mode", False)
    return EditEngine(str(root), EditSettings(**settings))


# Request parsing


def test_parse_edit_request_detects_modes():
    assert isinstance(parse_edit_request({"patch": "*** Begin Patch"}), PatchRequest)
    req = parse_edit_request({"path": "a", "search": "x", "replace": "y", "start_line": 5})
    assert isinstance(req, SearchReplaceRequest)
    assert req.start_line == 5
    req = parse_edit_request({"path": "a", "start_line": 2, "new_text": "z"})
    assert isinstance(req, LineRangeRequest)
    assert req.end_line is None


@pytest.mark.parametrize(
    "args, message",
    [
        ({}, "no edit mode specified"),
        ({"patch": ""}, "no edit mode specified"),
        ({"patch": "p", "search": "a", "replace": "b"}, "multiple edit modes"),
        ({"path": "a", "search": "x"}, "'replace' is required"),
        ({"path": "a", "end_line": 3}, "missing start_line"),
        ({"path": "a", "start_line": "abc", "new_text": "x"}, "invalid arguments"),
        ("not a dict", "invalid arguments"),
    ],
)
def test_parse_edit_request_errors(args, message):
    with pytest.raises(ToolError) as exc:
        parse_edit_request(args)
    assert exc.value.kind is ToolErrorKind.SEMANTIC
    assert message in exc.value.message


# Line edits


def test_apply_line_edit_replace_and_insert():
    assert apply_line_edit("a\nb\nc\n", 2, 2, "B") == ("a\nB\nc\n", 2, 2)
    assert apply_line_edit("a\nb\nc\n", 2, None, "X\n") == ("a\nX\nb\nc\n", 2, 2)
    assert apply_line_edit("a\nb\nc\n", 1, 2, "one\ntwo\nthree") == ("one\ntwo\nthree\nc\n", 1, 3)
    assert apply_line_edit("a\nb", 3, None, "c") == ("a\nb\nc", 3, 3)


def test_apply_line_edit_bounds():
    with pytest.raises(ToolError, match="start_line 0 is invalid"):
        apply_line_edit("a\nb", 0, 1, "x")
    with pytest.raises(ToolError, match="beyond end of file"):
        apply_line_edit("a\nb", 1, 10, "x")
    with pytest.raises(ToolError, match="start_line 4 is invalid"):
        apply_line_edit("a\nb", 4, None, "x")


def test_apply_line_edit_empty_text_deletes_lines():
    assert apply_line_edit("a\nb\nc\n", 2, 2, "")[0] == "a\nc\n"
    assert apply_line_edit("a\nb\nc", 3, 3, "")[0] == "a\nb\n"
    assert apply_line_edit("a\nb\nc\n", 1, 3, "")[0] == ""


@pytest.mark.parametrize("content", ["a\nb\nc\n", "a\nb\nc", "only\n", "x\n\ny\n"])
@pytest.mark.parametrize("new_text", ["", "Z", "Z\n", "P\nQ", "P\nQ\n"])
def test_line_edit_in_memory_matches_streaming(tmp_path, content, new_text):
    total = len(split_lines(content))
    ranges = [(s, e) for s in range(1, total + 1) for e in range(s, total + 1)]
    ranges += [(s, None) for s in range(1, total + 2)]
    path = tmp_path / "f.txt"
    for start, end in ranges:
        expected, _first, _last = apply_line_edit(content, start, end, new_text)
        path.write_bytes(content.encode("utf-8"))
        streaming_replace(str(path), start, start - 1 if end is None else end, new_text)
        assert path.read_bytes().decode("utf-8") == expected, (start, end)


def test_edit_lines_on_existing_file(tmp_path):
    (tmp_path / "f.txt").write_text("a\nb\nc\n")
    result = _engine(tmp_path).edit(parse_edit_request({"path": "f.txt", "start_line": 2, "end_line": 2, "new_text": "B"}))
    assert result["success"] is True
    assert (tmp_path / "f.txt").read_text() == "a\nB\nc\n"
    assert ">2│B" in result["after_edit"]


def test_edit_lines_creates_missing_file_with_warning(tmp_path):
    result = _engine(tmp_path).edit(parse_edit_request({"path": "n.txt", "start_line": 5, "new_text": "hello\n"}))
    assert result["created"] is True
    assert result["warning"].startswith("Line numbers (5-0) are ignored for new files.")
    assert (tmp_path / "n.txt").read_text() == "hello\n"


# Search/replace


def test_search_replace_exact(tmp_path):
    (tmp_path / "f.py").write_text("def f():\n    return 1\n")
    result = _engine(tmp_path).edit(
        parse_edit_request({"path": "f.py", "search": "return 1", "replace": "return 2"})
    )
    assert result["success"] is True
    assert result["message"] == "Edit applied successfully"
    assert "note" not in result
    assert "-    return 1\n+    return 2\n" in result["diff"]
    assert (tmp_path / "f.py").read_text() == "def f():\n    return 2\n"


def test_search_replace_whitespace_normalized_adds_note(tmp_path):
    (tmp_path / "f.py").write_text("def f():  \n    return 1\n")
    result = _engine(tmp_path).edit(
        parse_edit_request(
            {"path": "f.py", "search": "def f():\n    return 1", "replace": "def g():\n    return 1"}
        )
    )
    assert result["note"] == "Match found using whitespace normalization (trailing spaces ignored)"
    assert (tmp_path / "f.py").read_text() == "def g():\n    return 1\n"


def test_search_replace_fuzzy_only_when_enabled(tmp_path):
    (tmp_path / "f.py").write_text("def foo():\n    return compute(a, b)\n")
    args = {"path": "f.py", "search": "def foo():\n    return compute(a, c)", "replace": "def foo():\n    return 0"}
    assert _engine(tmp_path).edit(parse_edit_request(args))["error"] == "no_match"

    result = _engine(tmp_path, fuzzy_threshold=0.8).edit(parse_edit_request(args))
    assert result["note"] == "Match found using fuzzy matching (approximate content match)"
    assert (tmp_path / "f.py").read_text() == "def foo():\n    return 0\n"


def test_search_replace_multiple_matches(tmp_path):
    (tmp_path / "f.py").write_text("x = 1\ny\nx = 1\n")
    result = _engine(tmp_path).edit(parse_edit_request({"path": "f.py", "search": "x = 1", "replace": "x = 2"}))
    assert result["error"] == "multiple_matches"
    assert result["count"] == 2
    assert result["at_lines"] == [1, 3]
    assert (tmp_path / "f.py").read_text() == "x = 1\ny\nx = 1\n"


def test_search_replace_no_match_suggests_similar_line(tmp_path):
    (tmp_path / "f.py").write_text("alpha = compute(1)\nbeta\n")
    result = _engine(tmp_path).edit(
        parse_edit_request({"path": "f.py", "search": "alpha = compute(2)", "replace": "z"})
    )
    assert result["error"] == "no_match"
    assert result["similar_at_line"] == 1
    assert result["similar_text"] == "alpha = compute(1)"


def test_search_replace_identical_is_semantic_error(tmp_path):
    (tmp_path / "f.py").write_text("a\n")
    with pytest.raises(ToolError, match="identical"):
        _engine(tmp_path).edit(parse_edit_request({"path": "f.py", "search": "a", "replace": "a"}))


def test_identical_empty_search_does_not_create_file(tmp_path):
    with pytest.raises(ToolError, match="identical"):
        _engine(tmp_path).edit(SearchReplaceRequest(path="new.txt", search="", replace=""))
    assert not (tmp_path / "new.txt").exists()


def test_no_match_in_sizeable_file_returns_quickly(tmp_path):
    rows = "".join(f"    value_{i:04d} = compute(item_{i:04d}) + offset\n" for i in range(5000))
    (tmp_path / "f.py").write_text(rows)
    search = "\n".join(f"    missing_{i} = other(thing_{i})" for i in range(10))

    started = time.monotonic()
    result = _engine(tmp_path, fuzzy_threshold=0.8).edit(
        parse_edit_request({"path": "f.py", "search": search, "replace": "x = 1"})
    )
    assert time.monotonic() - started < 2.0
    assert result["error"] == "no_match"
    assert (tmp_path / "f.py").read_text() == rows


def test_search_replace_new_files(tmp_path):
    engine = _engine(tmp_path)
    result = engine.edit(parse_edit_request({"path": "pkg/new.py", "search": "", "replace": "x = 1\n"}))
    assert result["created"] is True
    assert (tmp_path / "pkg" / "new.py").read_text() == "x = 1\n"

    result = engine.edit(parse_edit_request({"path": "other.py", "search": "x", "replace": "y"}))
    assert result["error"] == "new_file_with_search"

    result = engine.edit(parse_edit_request({"path": "pkg/new.py", "search": "", "replace": "y"}))
    assert result["error"] == "empty_search"


def test_search_replace_with_line_hint(tmp_path):
    (tmp_path / "f.txt").write_text("".join(f"row {i:02d}\n" for i in range(1, 11)))
    engine = _engine(tmp_path)
    result = engine.edit(
        parse_edit_request({"path": "f.txt", "search": "row 05", "replace": "ROW 05", "start_line": 3, "end_line": 6})
    )
    assert result["streaming_edit"] is True
    assert result["lines_affected"] == "5-5"
    lines = (tmp_path / "f.txt").read_text().split("\n")
    assert lines[4] == "ROW 05"
    assert len(lines) == 11

    result = engine.edit(
        parse_edit_request({"path": "f.txt", "search": "row 09", "replace": "x", "start_line": 3, "end_line": 6})
    )
    assert result["error"] == "no_match_in_range"

    result = engine.edit(
        parse_edit_request({"path": "f.txt", "search": "row 01", "replace": "x", "start_line": 20})
    )
    assert result["error"] == "start_line_beyond_eof"
    assert result["total_lines"] == 10

    result = engine.edit(
        parse_edit_request({"path": "f.txt", "search": "row 01", "replace": "x", "start_line": 0})
    )
    assert result["error"] == "invalid_start_line"


# Preview mode


def test_preview_stages_until_confirm(tmp_path):
    target = tmp_path / "f.txt"
    target.write_text("hello\n")
    engine = _engine(tmp_path, preview_mode=True)
    result = engine.edit(parse_edit_request({"path": "f.txt", "search": "hello", "replace": "bye"}))
    assert result["status"] == "pending_confirmation"
    assert result["next_step"].startswith("STOP. You MUST call Edit.confirm or Edit.cancel next.")
    assert target.read_text() == "hello\n"
    assert engine.session.pending_edit_path() == "f.txt"

    confirmed = confirm_pending(engine.session)
    assert confirmed["success"] is True
    assert target.read_text() == "bye\n"


def test_preview_of_new_file(tmp_path):
    engine = _engine(tmp_path, preview_mode=True)
    result = engine.edit(parse_edit_request({"path": "n.txt", "search": "", "replace": "x\n"}))
    assert result["is_new_file"] is True
    assert result["message"] == "NEW FILE will be created"
    assert not (tmp_path / "n.txt").exists()
    assert confirm_pending(engine.session)["created"] is True
    assert (tmp_path / "n.txt").read_text() == "x\n"


# Paths


def test_paths_outside_workspace_are_denied(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    with pytest.raises(ToolError) as exc:
        _engine(root).edit(parse_edit_request({"path": "../escape.txt", "search": "", "replace": "x"}))
    assert exc.value.details["error"] == "path_outside_workspace"
    assert not (tmp_path / "escape.txt").exists()

    with pytest.raises(ToolError, match="path is required"):
        _engine(root).edit(parse_edit_request({"search": "", "replace": "x"}))


def test_read_before_edit(tmp_path):
    (tmp_path / "f.txt").write_text("a\n")
    engine = _engine(tmp_path, read_before_edit_msgs=2)
    engine.read_tracker.next_message()

    with pytest.raises(ToolError) as exc:
        engine.check_read_before_edit("f.txt")
    assert exc.value.details["error"] == "file_not_read"
    assert exc.value.details["next_step"] == 'read {"path": "f.txt"}'

    engine.read_tracker.record_read(str(tmp_path / "f.txt"))
    engine.check_read_before_edit("f.txt")
    engine.check_read_before_edit("missing.txt")

    for _ in range(3):
        engine.read_tracker.next_message()
    with pytest.raises(ToolError):
        engine.check_read_before_edit("f.txt")


# Patch mode


def test_patch_single_update_returns_file_result(tmp_path):
    (tmp_path / "m.py").write_text("def f():\n    x = 1\n    return x\n")
    patch = "\n".join(
        [
            "*** Begin Patch",
            "*** Update File: m.py",
            "@@ def f():",
            "     x = 1",
            "-    return x",
            "+    return x + 1",
            "*** End Patch",
        ]
    )
    result = _engine(tmp_path).edit(parse_edit_request({"patch": patch}))
    assert result["success"] is True
    assert result["action"] == "updated"
    assert result["chunks"] == 1
    assert (tmp_path / "m.py").read_text() == "def f():\n    x = 1\n    return x + 1\n"


def test_patch_multiple_files(tmp_path):
    (tmp_path / "a.txt").write_text("one\ntwo\n")
    (tmp_path / "gone.txt").write_text("bye\n")
    patch = "\n".join(
        [
            "*** Begin Patch",
            "*** Update File: a.txt",
            " one",
            "-two",
            "+TWO",
            "*** Add File: sub/b.txt",
            "+hello",
            "+world",
            "*** Delete File: gone.txt",
            "*** End Patch",
        ]
    )
    result = _engine(tmp_path).edit(parse_edit_request({"patch": patch}))
    assert result["success"] is True
    assert result["files"] == 3
    assert [r["action"] for r in result["results"]] == ["updated", "created", "deleted"]
    assert result["results"][1]["lines"] == 2
    assert (tmp_path / "a.txt").read_text() == "one\nTWO\n"
    assert (tmp_path / "sub" / "b.txt").read_text() == "hello\nworld\n"
    assert not (tmp_path / "gone.txt").exists()


def test_patch_failure_reports_applied_files(tmp_path):
    patch = "\n".join(
        [
            "*** Begin Patch",
            "*** Add File: first.txt",
            "+ok",
            "*** Update File: missing.txt",
            "-x",
            "+y",
            "*** End Patch",
        ]
    )
    result = _engine(tmp_path).edit(parse_edit_request({"patch": patch}))
    assert result["success"] is False
    assert result["error"] == "patch_failed"
    assert result["failed_file"] == "missing.txt"
    assert "file does not exist" in result["message"]
    assert [r["path"] for r in result["applied_so_far"]] == ["first.txt"]


def test_patch_add_existing_and_delete_missing(tmp_path):
    (tmp_path / "here.txt").write_text("x\n")
    engine = _engine(tmp_path)
    add = "*** Begin Patch\n*** Add File: here.txt\n+y\n*** End Patch"
    assert "file already exists" in engine.edit(parse_edit_request({"patch": add}))["message"]
    delete = "*** Begin Patch\n*** Delete File: nope.txt\n*** End Patch"
    assert "file does not exist" in engine.edit(parse_edit_request({"patch": delete}))["message"]


@pytest.mark.parametrize(
    "patch, message",
    [
        ("   \n", "patch cannot be empty"),
        ("*** Begin Patch\n*** End Patch", "no file operations found in patch"),
        ("*** Begin Patch\n*** Update File: a\n?? bad\n*** End Patch", "invalid patch format: line 3"),
    ],
)
def test_patch_errors(tmp_path, patch, message):
    with pytest.raises(ToolError) as exc:
        _engine(tmp_path).edit(PatchRequest(patch=patch))
    assert message in exc.value.message


def test_preview_patch_stages_one_file(tmp_path):
    (tmp_path / "a.txt").write_text("one\n")
    engine = _engine(tmp_path, preview_mode=True)
    two_files = "*** Begin Patch\n*** Add File: x.txt\n+x\n*** Add File: y.txt\n+y\n*** End Patch"
    with pytest.raises(ToolError, match="one file at a time"):
        engine.edit(parse_edit_request({"patch": two_files}))

    one_file = "*** Begin Patch\n*** Update File: a.txt\n-one\n+uno\n*** End Patch"
    result = engine.edit(parse_edit_request({"patch": one_file}))
    assert result["status"] == "pending_confirmation"
    assert (tmp_path / "a.txt").read_text() == "one\n"
    confirm_pending(engine.session)
    assert (tmp_path / "a.txt").read_text() == "uno\n"


# Whole-file writes


def test_write_file_creates_then_stages_overwrite(tmp_path):
    engine = _engine(tmp_path)
    result = engine.write_file("d/w.txt", "a\nb\n")
    assert result == {"success": True, "path": "d/w.txt", "action": "created", "lines": 2, "bytes": 4}

    result = engine.write_file("d/w.txt", "new\n")
    assert result["status"] == "pending_confirmation"
    assert result["old_lines"] == 2
    assert result["new_size"] == 4
    assert (tmp_path / "d" / "w.txt").read_text() == "a\nb\n"
    assert confirm_pending(engine.session, prefer_write=True)["action"] == "overwritten"
    assert (tmp_path / "d" / "w.txt").read_text() == "new\n"
