from __future__ import annotations

import os
import stat
import tempfile
from typing import List, Optional, Tuple

from editcore.locator import locate_text
from editcore.logger import logger
from editcore.patch.models import Chunk, PatchApplyError
from editcore.search import LineSearcher
from editcore.settings import LARGE_FILE_THRESHOLD_DEFAULT

LARGE_FILE_THRESHOLD = LARGE_FILE_THRESHOLD_DEFAULT
STREAM_BUFFER_SIZE = 64 * 1024
NEW_FILE_MODE = 0o644
TEMP_PREFIX = ".edit-"
TEMP_SUFFIX = ".tmp"

# Fuzzy threshold used when locating a block inside a bounded line range.
RANGE_SEARCH_THRESHOLD = 0.8


def is_large_file(path: str, threshold: int = LARGE_FILE_THRESHOLD) -> Tuple[bool, int]:
    """(is_large, size); files that do not exist are never large."""
    try:
        size = os.stat(path).st_size
    except FileNotFoundError:
        return False, 0
    return size > threshold, size


def read_text(path: str) -> Optional[str]:
    """Whole file as text with line endings untouched, or None if it does not exist."""
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except FileNotFoundError:
        return None


def read_line_range(path: str, start: int, end: int) -> Tuple[str, int]:
    """
    Lines [start, end] (1-based, inclusive) joined with '\\n', and the total
    line count. The file is read line by line.
    """
    selected = []
    total = 0
    with open(path, "r", encoding="utf-8", newline="\n", buffering=STREAM_BUFFER_SIZE) as f:
        for line in f:
            total += 1
            if start <= total <= end:
                selected.append(line[:-1] if line.endswith("\n") else line)
    return "\n".join(selected), total


def _temp_in_dir(path: str) -> Tuple[int, str]:
    return tempfile.mkstemp(
        dir=os.path.dirname(os.path.abspath(path)), prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX
    )


def _copy_mode(src: str, dst: str, default: Optional[int]) -> None:
    try:
        mode = stat.S_IMODE(os.stat(src).st_mode)
    except FileNotFoundError:
        if default is None:
            return
        mode = default
    os.chmod(dst, mode)


def write_file_atomic(path: str, content: str, *, create_parents: bool = True) -> None:
    """Write through a temp file in the same directory and rename it over `path`."""
    parent = os.path.dirname(os.path.abspath(path))
    if create_parents:
        os.makedirs(parent, exist_ok=True)

    fd, tmp_path = _temp_in_dir(path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        _copy_mode(path, tmp_path, NEW_FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def split_lines(content: str) -> List[str]:
    """Lines of `content` with their '\\n' terminators, as a line reader yields them."""
    parts = content.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def replacement_text(new_text: str, prev_open: bool, close: bool) -> str:
    """
    Text written in place of replaced lines.

    `prev_open` means the line before the replacement has no terminator (it
    was the last line of the file); `close` means lines follow or the last
    replaced line ended with a newline. Empty `new_text` removes the lines.
    """
    if not new_text:
        return ""
    if prev_open:
        new_text = "\n" + new_text
    if close and not new_text.endswith("\n"):
        new_text += "\n"
    return new_text


def streaming_replace(path: str, start_line: int, end_line: int, new_text: str) -> None:
    """
    Replace lines [start_line, end_line] (1-based, inclusive) with `new_text`
    without loading the file. `end_line = start_line - 1` inserts before
    `start_line`.

    The result is the same as replacing the lines in memory (see
    `replacement_text`). The file mode is preserved and the result is renamed
    into place atomically.
    """
    fd, tmp_path = _temp_in_dir(path)
    try:
        with open(path, "rb", buffering=STREAM_BUFFER_SIZE) as src, os.fdopen(
            fd, "wb", buffering=STREAM_BUFFER_SIZE
        ) as dst:
            line_no = 0
            prev = b""
            while line_no < start_line - 1:
                line = src.readline()
                if not line:
                    break
                line_no += 1
                dst.write(line)
                prev = line

            last_skipped = b""
            while line_no < end_line:
                line = src.readline()
                if not line:
                    break
                line_no += 1
                last_skipped = line

            rest = src.read(STREAM_BUFFER_SIZE)
            payload = replacement_text(
                new_text,
                prev_open=bool(prev) and not prev.endswith(b"\n"),
                close=bool(rest) or last_skipped.endswith(b"\n"),
            )
            dst.write(payload.encode("utf-8"))
            while rest:
                dst.write(rest)
                rest = src.read(STREAM_BUFFER_SIZE)

        _copy_mode(path, tmp_path, None)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.debug(
        "streaming.replace", path=path, start_line=start_line, end_line=end_line
    )


def streaming_search_in_range(
    path: str,
    search: str,
    start: int,
    end: int,
    fuzzy_threshold: float = RANGE_SEARCH_THRESHOLD,
) -> Optional[Tuple[int, int]]:
    """File line numbers (first, last) of `search` within lines [start, end], or None."""
    text, _total = read_line_range(path, start, end)
    match = locate_text(text, search, fuzzy_threshold)
    if not match.found:
        return None
    first = start + text.count("\n", 0, match.start)
    last = start + text.count("\n", 0, max(match.start, match.end - 1))
    return first, last


# Window sizes used when locating a patch chunk inside a large file.
HINT_WINDOW_LINES = 50
SEARCH_LEAD_LINES = 10
SEARCH_TRAIL_LINES = 50


def select_window(
    path: str,
    chunk: Chunk,
    searcher: LineSearcher,
    line_offset: int = 0,
) -> Tuple[int, int]:
    """
    Line window (first, last) of a large file in which `chunk` should apply.

    A line hint gives a window of HINT_WINDOW_LINES around the hint, shifted
    by `line_offset` (the net line growth of chunks already written). Without
    a hint the first context line, or else the first deleted line, is looked
    up in the current file with `searcher`. The window may run past the end
    of the file; callers clamp it.
    """
    span = len(chunk.context) + len(chunk.deletions)
    if chunk.line_hint > 0:
        start = chunk.line_hint - HINT_WINDOW_LINES + line_offset
        end = chunk.line_hint + HINT_WINDOW_LINES + span + line_offset
    elif chunk.context:
        found = searcher.search(path, chunk.context[0])
        if found.count == 0:
            raise PatchApplyError("context not found in file")
        start = found.first_line - SEARCH_LEAD_LINES
        end = found.first_line + span + SEARCH_TRAIL_LINES
    elif chunk.deletions:
        found = searcher.search(path, chunk.deletions[0])
        if found.count == 0:
            raise PatchApplyError("deletion text not found in file")
        start = found.first_line - SEARCH_LEAD_LINES
        end = found.first_line + len(chunk.deletions) + SEARCH_TRAIL_LINES
    else:
        raise PatchApplyError(
            "no context, deletions, or line hint - cannot locate where to apply"
        )
    return max(1, start), end
