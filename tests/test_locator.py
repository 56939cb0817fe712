from __future__ import annotations

from editcore.locator import (
    MatchLevel,
    context_around,
    count_matches,
    edit_line_range,
    find_match_positions,
    line_number_at,
    locate_text,
    map_normalized_span,
    normalize_rstrip,
    normalize_strip,
)


def test_normalizers_work_per_line() -> None:
    assert normalize_rstrip("a  \n\tb\t\n") == "a\n\tb\n"
    assert normalize_strip("  a  \n\tb\t\n") == "a\nb\n"


def test_exact_match() -> None:
    m = locate_text("a\nb\nc", "b")
    assert m.found
    assert m.level is MatchLevel.EXACT
    assert (m.start, m.end) == (2, 3)


def test_trailing_whitespace_level() -> None:
    content = "def f():  \n    return 1\n"
    m = locate_text(content, "def f():\n    return 1")
    assert m.found
    assert m.level is MatchLevel.RSTRIP
    assert content[m.start : m.end] == "def f():  \n    return 1"


def test_edge_whitespace_level_reports_level_two() -> None:
    content = "class A:\n        x = 1\n        y = 2\n"
    m = locate_text(content, "x = 1\ny = 2")
    assert m.found
    assert m.level is MatchLevel.STRIP
    assert content[m.start : m.end] == "x = 1\n        y = 2"


def test_normalized_match_replacement_keeps_surroundings() -> None:
    content = "start\n  value = 1   \nend\n"
    m = locate_text(content, "value = 1\nend")
    assert m.level is MatchLevel.RSTRIP
    new = content[: m.start] + "value = 2\nend" + content[m.end :]
    assert new == "start\n  value = 2\nend\n"


def test_span_ending_with_newline_maps_to_next_line_start() -> None:
    content = "a  \nb\n"
    normalized = normalize_rstrip(content)
    start, end = map_normalized_span(content, normalized, 0, 2, MatchLevel.RSTRIP)
    assert (start, end) == (0, 4)
    assert content[start:end] == "a  \n"


def test_fuzzy_only_when_threshold_positive() -> None:
    content = "def foo():\n    return compute(a, b)\n"
    search = "def foo():\n    return compute(a, c)"
    assert not locate_text(content, search).found

    m = locate_text(content, search, fuzzy_threshold=0.8)
    assert m.found
    assert m.level is MatchLevel.FUZZY
    assert content[m.start : m.end] == "def foo():\n    return compute(a, b)"


def test_not_found() -> None:
    m = locate_text("alpha\nbeta\n", "gamma")
    assert not m.found
    assert m.level is None


def test_count_and_positions() -> None:
    content = "x = 1\ny = 2\nx = 1\n"
    assert count_matches(content, "x = 1") == 2
    assert count_matches("abc", "") == 4
    assert find_match_positions(content, "x = 1") == [0, 12]
    assert find_match_positions(content, "") == []
    assert count_matches("aaaa", "aa") == 2


def test_line_number_and_context() -> None:
    content = "l1\nl2\nl3\nl4\nl5"
    assert line_number_at(content, 0) == 1
    assert line_number_at(content, content.index("l3")) == 3
    assert context_around(content, content.index("l3"), 1) == "l2\nl3\nl4"
    assert context_around(content, 0, 2) == "l1\nl2\nl3"


def test_edit_line_range() -> None:
    new = "a\nX\nY\nd\n"
    assert edit_line_range(new, 2, "X\nY") == (2, 3)
    assert edit_line_range(new, 2, "X\nY\n") == (2, 3)
    assert edit_line_range(new, 2, "") == (2, 2)
