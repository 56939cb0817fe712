from __future__ import annotations

import time
from dataclasses import dataclass
from difflib import SequenceMatcher
from typing import Dict, List, Optional, Tuple

from editcore.logger import logger

# Inputs longer than this use the line-run heuristic instead of the exact
# character-level longest common substring.
LCS_EXACT_MAX_CHARS = 1000

# Ceiling for the estimated work of a windowed block search, counted in
# character pairs compared. Estimates above it skip the search and report no
# match. Calibrated so the worst accepted search finishes in about two seconds
# on CPython.
MAX_FUZZY_COST = 20_000_000

# Wall-clock limit for an accepted block search. A search still running past
# it stops and reports no match.
FUZZY_TIME_LIMIT = 2.0

# Ceiling for the character pairs compared while looking for a "did you mean"
# line or chunk. Above it the hint is skipped.
MAX_HINT_COST = 4_000_000

# Window sizes range over the search line count +/- this fraction.
WINDOW_SCALE = 0.1


@dataclass(frozen=True)
class FuzzyMatch:
    start: int
    end: int
    ratio: float
    text: str
    start_line: int
    end_line: int


def levenshtein_distance(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)

    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        curr = [i] + [0] * len(b)
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            curr[j] = min(prev[j] + 1, curr[j - 1] + 1, prev[j - 1] + cost)
        prev = curr
    return prev[len(b)]


def similarity_ratio(a: str, b: str) -> float:
    """1 - distance / longest length; two empty strings are identical."""
    if not a and not b:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))


def longest_common_substring(a: str, b: str) -> Tuple[int, int, int]:
    """Exact longest common substring as (start_a, start_b, length)."""
    if not a or not b:
        return 0, 0, 0
    m = SequenceMatcher(None, a, b, autojunk=False).find_longest_match(
        0, len(a), 0, len(b)
    )
    if m.size == 0:
        return 0, 0, 0
    return m.a, m.b, m.size


def longest_common_line_run(a: str, b: str) -> Tuple[int, int, int]:
    """
    Longest run of identical consecutive lines, reported as a character span
    (start_a, start_b, length). Lines of `b` are indexed by content so every
    candidate start is visited once.
    """
    lines_a = a.split("\n")
    lines_b = b.split("\n")

    index: Dict[str, List[int]] = {}
    for j, line in enumerate(lines_b):
        index.setdefault(line, []).append(j)

    best_len = 0
    best_i = 0
    best_j = 0
    for i, line in enumerate(lines_a):
        for j in index.get(line, ()):
            run = 0
            while (
                i + run < len(lines_a)
                and j + run < len(lines_b)
                and lines_a[i + run] == lines_b[j + run]
            ):
                run += 1
            if run > best_len:
                best_len = run
                best_i = i
                best_j = j

    if best_len == 0:
        return 0, 0, 0

    start_a = sum(len(line) + 1 for line in lines_a[:best_i])
    start_b = sum(len(line) + 1 for line in lines_b[:best_j])
    length = sum(len(line) for line in lines_a[best_i : best_i + best_len])
    length += best_len - 1
    return start_a, start_b, length


def longest_common_block(a: str, b: str) -> Tuple[int, int, int]:
    if not a or not b:
        return 0, 0, 0
    if len(a) > LCS_EXACT_MAX_CHARS or len(b) > LCS_EXACT_MAX_CHARS:
        return longest_common_line_run(a, b)
    return longest_common_substring(a, b)


def _count_matching_chars(a: str, b: str) -> int:
    matched = 0
    stack = [(a, b)]
    while stack:
        left, right = stack.pop()
        start_a, start_b, length = longest_common_block(left, right)
        if length == 0:
            continue
        matched += length
        if start_a > 0 and start_b > 0:
            stack.append((left[:start_a], right[:start_b]))
        end_a = start_a + length
        end_b = start_b + length
        if end_a < len(left) and end_b < len(right):
            stack.append((left[end_a:], right[end_b:]))
    return matched


def block_similarity_ratio(a: str, b: str) -> float:
    """Ratcliff/Obershelp style ratio: 2 * matched / (len(a) + len(b))."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return 2.0 * _count_matching_chars(a, b) / (len(a) + len(b))


def window_bounds(search_line_count: int, content_line_count: int) -> Tuple[int, int]:
    min_len = max(1, int(search_line_count * (1 - WINDOW_SCALE)))
    max_len = min(content_line_count, int(search_line_count * (1 + WINDOW_SCALE)))
    return min_len, max_len


def estimate_search_cost(content_lines: List[str], search: str) -> int:
    """
    Character pairs a block search is expected to compare: window sizes times
    window positions times the pairs scored per window. Scoring one window
    compares every search character with up to LCS_EXACT_MAX_CHARS window
    characters.
    """
    min_len, max_len = window_bounds(len(search.split("\n")), len(content_lines))
    window_range = max(0, max_len - min_len + 1)
    avg_positions = max(1, len(content_lines) - (min_len + max_len) // 2)
    chars = len(search)
    return window_range * avg_positions * chars * min(chars, LCS_EXACT_MAX_CHARS)


class _WindowScorer:
    """
    Scores content windows against one search block.

    The search is the matcher's second sequence, so its character index is
    built once. `real_quick_ratio` and `quick_ratio` bound the block ratio
    from above (matched characters never exceed the shared character counts),
    which lets windows that cannot beat the current best be skipped.
    """

    def __init__(self, search: str) -> None:
        self.search = search
        self.matcher = SequenceMatcher(None, autojunk=False)
        self.matcher.set_seq2(search)

    def score(self, chunk: str, floor: float, strict: bool) -> Optional[float]:
        """Block ratio of `chunk`, or None when it cannot reach `floor`."""
        m = self.matcher
        m.set_seq1(chunk)
        for bound in (m.real_quick_ratio, m.quick_ratio):
            b = bound()
            if b < floor or (strict and b <= floor):
                return None
        if len(chunk) <= LCS_EXACT_MAX_CHARS and len(self.search) <= LCS_EXACT_MAX_CHARS:
            # Same recursion as block_similarity_ratio on short inputs.
            return m.ratio()
        return block_similarity_ratio(chunk, self.search)


class FuzzyMatcher:
    def __init__(self, threshold: float) -> None:
        self.threshold = threshold

    def find_best_match(self, content: str, search: str) -> Optional[FuzzyMatch]:
        """
        Slide line windows sized within +/-10% of the search block across the
        content and return the best window scoring at least `threshold`.

        Returns None when nothing qualifies, when the estimated cost exceeds
        MAX_FUZZY_COST (the search is skipped entirely) and when the search
        runs past FUZZY_TIME_LIMIT.
        """
        if self.threshold <= 0 or not search:
            return None

        content_lines = content.split("\n")
        cost = estimate_search_cost(content_lines, search)
        if cost > MAX_FUZZY_COST:
            logger.debug(
                "fuzzy.skip",
                reason="cost",
                estimated_cost=cost,
                max_cost=MAX_FUZZY_COST,
            )
            return None

        min_len, max_len = window_bounds(len(search.split("\n")), len(content_lines))

        scorer = _WindowScorer(search)
        deadline = time.monotonic() + FUZZY_TIME_LIMIT

        best_ratio = 0.0
        best_start = -1
        best_end = -1
        for length in range(min_len, max_len + 1):
            for i in range(0, len(content_lines) - length + 1):
                if time.monotonic() > deadline:
                    logger.debug(
                        "fuzzy.skip",
                        reason="time",
                        estimated_cost=cost,
                        time_limit=FUZZY_TIME_LIMIT,
                    )
                    return None
                chunk = "\n".join(content_lines[i : i + length])
                if best_start < 0:
                    r = scorer.score(chunk, self.threshold, False)
                else:
                    r = scorer.score(chunk, best_ratio, True)
                if r is None:
                    continue
                if r > best_ratio and r >= self.threshold:
                    best_ratio = r
                    best_start = i
                    best_end = i + length

        if best_start < 0:
            return None

        byte_start = sum(len(line) + 1 for line in content_lines[:best_start])
        byte_end = byte_start + sum(
            len(line) for line in content_lines[best_start:best_end]
        )
        byte_end += best_end - best_start - 1
        byte_end = min(byte_end, len(content))

        logger.debug(
            "fuzzy.match",
            ratio=round(best_ratio, 3),
            start_line=best_start + 1,
            end_line=best_end,
        )
        return FuzzyMatch(
            start=byte_start,
            end=byte_end,
            ratio=best_ratio,
            text="\n".join(content_lines[best_start:best_end]),
            start_line=best_start + 1,
            end_line=best_end,
        )


def _length_bound(a: int, b: int) -> float:
    # Edit distance is at least the length difference.
    if not a and not b:
        return 1.0
    return min(a, b) / max(a, b)


def find_most_similar_line(
    content: str, search: str, min_ratio: float = 0.0
) -> Tuple[int, str, float]:
    """
    Best single line for a "did you mean" hint, as (line_no, line, ratio).

    Each trimmed line is compared against the whole search and against its
    first line; line_no is 1-based and 0 when nothing scored above
    `min_ratio`. Comparisons whose lengths alone keep them at or below the
    current best are skipped. When the remaining work is estimated above
    MAX_HINT_COST no line is reported.
    """
    first_line = search
    idx = search.find("\n")
    if idx > 0:
        first_line = search[:idx]
    whole = search.strip()
    first = first_line.strip()
    targets = [whole] if whole == first else [whole, first]

    lines = content.split("\n")
    trimmed_lines = [line.strip() for line in lines]
    cost = 0
    for trimmed in trimmed_lines:
        for target in targets:
            if _length_bound(len(trimmed), len(target)) > min_ratio:
                cost += len(trimmed) * len(target)
    if cost > MAX_HINT_COST:
        logger.debug("fuzzy.hint_skip", estimated_cost=cost, max_cost=MAX_HINT_COST)
        return 0, "", 0.0

    best_ratio = min_ratio
    best_no = 0
    best_line = ""
    for i, trimmed in enumerate(trimmed_lines):
        for target in targets:
            if _length_bound(len(trimmed), len(target)) <= best_ratio:
                continue
            r = similarity_ratio(trimmed, target)
            if r > best_ratio:
                best_ratio = r
                best_no = i + 1
                best_line = lines[i]
    if best_no == 0:
        return 0, "", 0.0
    return best_no, best_line, best_ratio


def _normalize_lines(s: str) -> str:
    return "\n".join(line.strip() for line in s.split("\n"))


def find_similar_chunk(
    content: str, search: str, context_lines: int = 0
) -> Tuple[int, str, float]:
    """
    Best window of the search's line count, compared with whitespace trimmed.
    Reports (0, "", 0.0) when the work is estimated above MAX_HINT_COST.
    """
    content_lines = content.split("\n")
    count = len(search.split("\n"))
    target = _normalize_lines(search)

    positions = max(0, len(content_lines) - count + 1)
    cost = positions * len(target) * len(target)
    if cost > MAX_HINT_COST:
        logger.debug("fuzzy.hint_skip", estimated_cost=cost, max_cost=MAX_HINT_COST)
        return 0, "", 0.0

    best_ratio = 0.0
    best_start = 0
    best_chunk = ""
    for i in range(positions):
        chunk = "\n".join(content_lines[i : i + count])
        normalized = _normalize_lines(chunk)
        if _length_bound(len(normalized), len(target)) <= best_ratio:
            continue
        r = similarity_ratio(normalized, target)
        if r > best_ratio:
            best_ratio = r
            best_start = i + 1
            best_chunk = chunk

    if best_ratio > 0.5 and context_lines > 0:
        lo = max(0, best_start - 1 - context_lines)
        hi = min(len(content_lines), best_start - 1 + count + context_lines)
        best_chunk = "\n".join(content_lines[lo:hi])

    return best_start, best_chunk, best_ratio
