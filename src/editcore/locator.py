from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Tuple

from editcore.fuzzy import FuzzyMatcher
from editcore.logger import logger


class MatchLevel(IntEnum):
    EXACT = 0
    RSTRIP = 1
    STRIP = 2
    FUZZY = 3


@dataclass(frozen=True)
class MatchResult:
    start: int = 0
    end: int = 0
    level: Optional[MatchLevel] = None
    found: bool = False

    @classmethod
    def not_found(cls) -> "MatchResult":
        return cls()


def normalize_rstrip(s: str) -> str:
    return "\n".join(line.rstrip(" \t") for line in s.split("\n"))


def normalize_strip(s: str) -> str:
    return "\n".join(line.strip() for line in s.split("\n"))


def _line_offsets(lines: List[str]) -> List[int]:
    offsets = []
    pos = 0
    for line in lines:
        offsets.append(pos)
        pos += len(line) + 1
    return offsets


def _locate(offsets: List[int], lines: List[str], pos: int) -> Tuple[int, int]:
    """(line index, column) of a character offset in a split buffer."""
    lo, hi = 0, len(offsets) - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if offsets[mid] <= pos:
            lo = mid
        else:
            hi = mid - 1
    return lo, min(pos - offsets[lo], len(lines[lo]))


def map_normalized_span(
    original: str,
    normalized: str,
    norm_start: int,
    norm_len: int,
    level: MatchLevel,
) -> Tuple[int, int]:
    """
    Map a span of a per-line normalized buffer back onto the original buffer.

    Normalization only removes whitespace at line edges, so lines stay
    aligned: a column inside a normalized line is shifted by the stripped
    indentation (STRIP only), a span ending at a normalized line end extends
    over the trailing whitespace removed from that line.
    """
    orig_lines = original.split("\n")
    norm_lines = normalized.split("\n")
    orig_offsets = _line_offsets(orig_lines)
    norm_offsets = _line_offsets(norm_lines)

    def indent(i: int) -> int:
        if level is MatchLevel.STRIP:
            line = orig_lines[i]
            return len(line) - len(line.lstrip())
        return 0

    start_line, start_col = _locate(norm_offsets, norm_lines, norm_start)
    start = orig_offsets[start_line] + indent(start_line) + start_col

    if norm_len == 0:
        return start, start
    norm_end = norm_start + norm_len
    end_line, end_col = _locate(norm_offsets, norm_lines, norm_end)
    if normalized[norm_end - 1] == "\n":
        # The span swallowed a newline and ends at the start of the next line.
        return start, orig_offsets[end_line]
    if end_col >= len(norm_lines[end_line]):
        end = orig_offsets[end_line] + len(orig_lines[end_line])
    else:
        end = orig_offsets[end_line] + indent(end_line) + end_col
    return start, min(end, len(original))


def locate_text(content: str, search: str, fuzzy_threshold: float = 0.0) -> MatchResult:
    """
    Find `search` in `content`, trying progressively looser comparisons:
    exact, trailing whitespace ignored, edge whitespace ignored, and finally a
    fuzzy block search when `fuzzy_threshold` is positive.
    """
    idx = content.find(search)
    if idx >= 0:
        return MatchResult(idx, idx + len(search), MatchLevel.EXACT, True)

    for level, normalize in (
        (MatchLevel.RSTRIP, normalize_rstrip),
        (MatchLevel.STRIP, normalize_strip),
    ):
        norm_content = normalize(content)
        norm_search = normalize(search)
        idx = norm_content.find(norm_search)
        if idx >= 0:
            start, end = map_normalized_span(
                content, norm_content, idx, len(norm_search), level
            )
            logger.debug("locate.normalized", level=int(level), start=start, end=end)
            return MatchResult(start, end, level, True)

    if fuzzy_threshold > 0:
        match = FuzzyMatcher(fuzzy_threshold).find_best_match(content, search)
        if match is not None:
            return MatchResult(match.start, match.end, MatchLevel.FUZZY, True)

    return MatchResult.not_found()


def count_matches(content: str, search: str) -> int:
    """Non-overlapping occurrences; an empty search matches at every position."""
    if not search:
        return len(content) + 1
    return content.count(search)


def find_match_positions(content: str, search: str) -> List[int]:
    if not search:
        return []
    positions = []
    pos = content.find(search)
    while pos >= 0:
        positions.append(pos)
        pos = content.find(search, pos + len(search))
    return positions


def line_number_at(content: str, offset: int) -> int:
    """1-based line number of a character offset."""
    return content.count("\n", 0, max(0, offset)) + 1


def context_around(content: str, offset: int, context_lines: int) -> str:
    lines = content.split("\n")
    target = line_number_at(content, offset) - 1
    lo = max(0, target - context_lines)
    hi = min(len(lines), target + context_lines + 1)
    return "\n".join(lines[lo:hi])


def edit_line_range(new_content: str, replace_start: int, replace_text: str) -> Tuple[int, int]:
    """1-based line span that `replace_text` occupies once written at `replace_start`."""
    start_line = line_number_at(new_content, replace_start)
    line_count = max(1, replace_text.count("\n") + (0 if replace_text.endswith("\n") else 1))
    return start_line, start_line + line_count - 1
