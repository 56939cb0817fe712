import difflib
import random

import pytest

from editcore.errors import ToolError, ToolErrorKind
from editcore.locator import MatchLevel
from editcore.patch import (
    Chunk,
    PatchApplyError,
    apply_chunks,
    build_added_file,
    find_chunk_position,
    match_context_lines,
    parse_patch,
)


def test_match_context_lines_levels():
    lines = ["a", "b  ", "  c", "d"]
    assert match_context_lines(lines, ["b", "c"]) == -1
    assert match_context_lines(lines, ["b", "  c"], MatchLevel.RSTRIP) == 1
    assert match_context_lines(lines, ["b", "c"], MatchLevel.STRIP) == 1
    assert match_context_lines(lines, []) == 0
    assert match_context_lines(["a"], ["a", "b"]) == -1


def test_simple_update_reports_edit_span():
    content = "one\ntwo\nthree\nfour\n"
    chunk = Chunk(context=["one"], deletions=["two"], additions=["TWO", "2"], post_context=["three"])
    result = apply_chunks(content, [chunk])
    assert result.new_content == "one\nTWO\n2\nthree\nfour\n"
    assert (result.edit_start, result.edit_end) == (2, 3)


def test_context_with_trailing_whitespace_still_matches():
    content = "def f():   \n    return 1\n"
    chunk = Chunk(context=["def f():"], deletions=["    return 1"], additions=["    return 2"])
    assert apply_chunks(content, [chunk]).new_content == "def f():   \n    return 2\n"


def test_scope_marker_locates_chunk_without_context():
    content = "class A:\n    pass\nclass B:\n    x = 1\n"
    chunk = Chunk(scope="CLASS b", deletions=["    x = 1"], additions=["    x = 2"])
    assert find_chunk_position(content.split("\n"), chunk) == 3
    assert apply_chunks(content, [chunk]).new_content == "class A:\n    pass\nclass B:\n    x = 2\n"


def test_deletions_alone_locate_chunk():
    content = "a\nb\nc\n"
    chunk = Chunk(deletions=["b"])
    result = apply_chunks(content, [chunk])
    assert result.new_content == "a\nc\n"
    assert (result.edit_start, result.edit_end) == (2, 2)


def test_chunks_apply_top_to_bottom():
    content = "x = 1\nsep\nx = 1\n"
    chunks = [
        Chunk(context=["x = 1"], additions=["first"]),
        Chunk(context=["x = 1"], additions=["second"]),
    ]
    result = apply_chunks(content, chunks)
    assert result.new_content == "x = 1\nfirst\nsep\nx = 1\nsecond\n"


def test_chunk_landing_above_earlier_chunks_shifts_span():
    content = "\n".join(f"l{i}" for i in range(1, 11))
    chunks = [
        Chunk(context=["l7"], deletions=["l8"], additions=["A", "B"]),
        Chunk(context=["l2"], additions=["X", "Y", "Z"]),
    ]
    result = apply_chunks(content, chunks)
    lines = result.new_content.split("\n")
    assert lines[2:5] == ["X", "Y", "Z"]
    assert (lines[10], lines[11]) == ("A", "B")
    assert (result.edit_start, result.edit_end) == (3, 12)


def test_deletion_mismatch_is_reported_with_chunk_number():
    content = "a\nb\nc\n"
    chunks = [
        Chunk(context=["a"], deletions=["b"], additions=["B"]),
        Chunk(context=["B"], deletions=["nope"], additions=["x"]),
    ]
    with pytest.raises(PatchApplyError) as exc:
        apply_chunks(content, chunks)
    assert str(exc.value).startswith("chunk 2: deletion mismatch at line 3")
    assert exc.value.line == 3


def test_missing_context_carries_rendered_hint():
    chunk = Chunk(scope="def nowhere()", context=["missing"], deletions=["x"], start_line=3)
    with pytest.raises(PatchApplyError) as exc:
        apply_chunks("a\nb\n", [chunk])
    assert "could not locate context in file" in str(exc.value)
    assert exc.value.line == 3
    assert exc.value.hint == "@@ def nowhere()\n missing\n-x"


def test_deletion_past_end_of_file():
    with pytest.raises(PatchApplyError, match="beyond end of file"):
        apply_chunks("a\nb", [Chunk(context=["b"], deletions=["c"])])


def test_noop_patch_is_semantic_error():
    with pytest.raises(ToolError) as exc:
        apply_chunks("a\nb\n", [Chunk(context=["a"], deletions=["b"], additions=["b"])])
    assert exc.value.kind is ToolErrorKind.SEMANTIC
    assert "no changes" in exc.value.message


def test_build_added_file():
    patches = parse_patch("*** Begin Patch\n*** Add File: n.txt\n+one\n+\n+two\n*** End Patch")
    assert build_added_file(patches[0].chunks) == "one\n\ntwo\n"
    assert build_added_file([]) == ""


def _chunks_from_diff(a, b):
    """One chunk per changed region, with up to three equal lines before it."""
    chunks = []
    equal_start = 0
    matcher = difflib.SequenceMatcher(a=a, b=b, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            equal_start = i1
            continue
        chunks.append(
            Chunk(
                context=a[max(equal_start, i1 - 3) : i1],
                deletions=a[i1:i2],
                additions=b[j1:j2],
            )
        )
    return chunks


@pytest.mark.parametrize("seed", range(20))
def test_generated_patches_reproduce_target(seed):
    rng = random.Random(seed)
    counter = iter(range(10_000))

    def fresh():
        return f"line {next(counter)} {rng.choice(['foo', 'bar', 'baz'])}"

    header = "# header"
    a = [header] + [fresh() for _ in range(rng.randint(5, 40))]
    b = [header]
    for line in a[1:]:
        roll = rng.random()
        if roll < 0.15:
            continue
        if roll < 0.3:
            b.append(fresh())
        elif roll < 0.4:
            b.extend([line, fresh()])
        else:
            b.append(line)
    if b == a:
        b.append(fresh())

    result = apply_chunks("\n".join(a), _chunks_from_diff(a, b))
    assert result.new_content == "\n".join(b)
