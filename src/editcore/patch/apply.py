from __future__ import annotations

from typing import Callable, Dict, List, Sequence

from editcore.errors import semantic_error
from editcore.locator import MatchLevel
from editcore.logger import logger

from .models import Chunk, ChunkApplyResult, PatchApplyError
from .v4a import render_chunk

_NORMALIZERS: Dict[MatchLevel, Callable[[str], str]] = {
    MatchLevel.EXACT: lambda s: s,
    MatchLevel.RSTRIP: lambda s: s.rstrip(" \t"),
    MatchLevel.STRIP: lambda s: s.strip(),
}


def match_context_lines(
    file_lines: Sequence[str],
    context: Sequence[str],
    fuzz: MatchLevel = MatchLevel.EXACT,
    start: int = 0,
) -> int:
    """Index of the first run of `context` at or after `start`, or -1."""
    if not context:
        return 0
    if len(context) > len(file_lines):
        return -1
    norm = _NORMALIZERS[fuzz]
    wanted = [norm(c) for c in context]
    for i in range(max(0, start), len(file_lines) - len(context) + 1):
        if all(norm(file_lines[i + j]) == w for j, w in enumerate(wanted)):
            return i
    return -1


def find_scope_marker(lines: Sequence[str], scope: str, start: int = 0) -> int:
    needle = scope.strip().lower()
    for i in range(max(0, start), len(lines)):
        if needle in lines[i].strip().lower():
            return i
    return -1


def _find_from(lines: Sequence[str], chunk: Chunk, start: int) -> int:
    if chunk.context:
        for fuzz in (MatchLevel.EXACT, MatchLevel.RSTRIP, MatchLevel.STRIP):
            pos = match_context_lines(lines, chunk.context, fuzz, start)
            if pos >= 0:
                return pos + len(chunk.context)

    if chunk.scope:
        pos = find_scope_marker(lines, chunk.scope, start)
        if pos >= 0:
            return pos + 1

    if chunk.deletions and not chunk.context:
        pos = match_context_lines(lines, chunk.deletions, MatchLevel.EXACT, start)
        if pos >= 0:
            return pos

    return -1


def find_chunk_position(lines: Sequence[str], chunk: Chunk, start: int = 0) -> int:
    """
    Line index at which the chunk's deletions begin.

    Tried in order: the pre-context (exact, then trailing whitespace ignored,
    then edge whitespace ignored; the position is right after the context),
    the scope marker (the line after it), and finally the deletions themselves
    when the chunk has no context. Chunks are expected top to bottom, so the
    search starts at `start` and only falls back to the whole file after that.
    """
    pos = _find_from(lines, chunk, start)
    if pos < 0 and start > 0:
        pos = _find_from(lines, chunk, 0)
    if pos < 0:
        raise PatchApplyError(
            "could not locate context in file",
            line=chunk.start_line,
            hint=render_chunk(chunk),
        )
    return pos


def apply_chunk_to_lines(lines: List[str], chunk: Chunk, pos: int) -> List[str]:
    for i, deleted in enumerate(chunk.deletions):
        idx = pos + i
        if idx >= len(lines):
            raise PatchApplyError(f"deletion line {idx + 1} beyond end of file", line=idx + 1)
        if lines[idx].strip() != deleted.strip():
            raise PatchApplyError(
                f"deletion mismatch at line {idx + 1}: "
                f"expected {deleted!r}, found {lines[idx]!r}",
                line=idx + 1,
            )
    return lines[:pos] + list(chunk.additions) + lines[pos + len(chunk.deletions) :]


def apply_chunks(content: str, chunks: Sequence[Chunk]) -> ChunkApplyResult:
    """
    Apply update chunks in order to an in-memory file.

    Raises PatchApplyError prefixed with the 1-based chunk number, and a
    semantic ToolError when the result is identical to the input.
    """
    lines = content.split("\n")
    edit_start = -1
    edit_end = -1
    cursor = 0

    for n, chunk in enumerate(chunks, 1):
        try:
            pos = find_chunk_position(lines, chunk, cursor)
            lines = apply_chunk_to_lines(lines, chunk, pos)
        except PatchApplyError as e:
            raise PatchApplyError(f"chunk {n}: {e}", line=e.line, hint=e.hint) from e

        # A chunk applied above the span recorded so far moves that span.
        delta = len(chunk.additions) - len(chunk.deletions)
        boundary = pos + len(chunk.deletions)
        if edit_start > boundary:
            edit_start += delta
        if edit_end > boundary:
            edit_end += delta

        chunk_start = pos + 1
        chunk_end = max(pos + len(chunk.additions), chunk_start)
        if edit_start == -1 or chunk_start < edit_start:
            edit_start = chunk_start
        edit_end = max(edit_end, chunk_end)
        cursor = pos + len(chunk.additions)
        logger.debug("patch.chunk_applied", chunk=n, position=chunk_start)

    new_content = "\n".join(lines)
    if new_content == content:
        raise semantic_error(
            "patch resulted in no changes - deletions and additions are identical"
        )

    if edit_start == -1:
        edit_start = 1
    if edit_end == -1:
        edit_end = edit_start
    return ChunkApplyResult(new_content, edit_start, edit_end)


def build_added_file(chunks: Sequence[Chunk]) -> str:
    """Content of an Add File section: every addition line, newline-terminated."""
    return "".join(line + "\n" for chunk in chunks for line in chunk.additions)
