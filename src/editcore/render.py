from __future__ import annotations

import difflib
from typing import List

# Lines of surrounding context shown around an edit in after_edit excerpts.
POST_EDIT_CONTEXT_LINES = 3

DIFF_CONTEXT_LINES = 3


def _diff_lines(text: str) -> List[str]:
    # Every line carries its terminator so hunks stay well-formed when the
    # file lacks a final newline.
    lines = text.splitlines(keepends=True)
    if lines and not lines[-1].endswith("\n"):
        lines[-1] += "\n"
    return lines


def render_unified_diff(old: str, new: str, filename: str) -> str:
    """Unified diff with three lines of context, labelled with `filename` on both sides."""
    return "".join(
        difflib.unified_diff(
            _diff_lines(old),
            _diff_lines(new),
            fromfile=filename,
            tofile=filename,
            n=DIFF_CONTEXT_LINES,
        )
    )


def render_region_diff(old_region: str, new_region: str, filename: str) -> str:
    """Diff of just an edited region of a large file."""
    if old_region and not old_region.endswith("\n"):
        old_region += "\n"
    if new_region and not new_region.endswith("\n"):
        new_region += "\n"
    return render_unified_diff(old_region, new_region, filename)


def render_post_edit_context(new_content: str, edit_start: int, edit_end: int) -> str:
    """
    Numbered excerpt of the file after an edit.

    Edited lines (1-based, inclusive) are marked with '>'. Context of
    POST_EDIT_CONTEXT_LINES surrounds them; line 1 and the last line are
    always shown, and a skipped gap is drawn as '...' only when it hides
    more than one line.
    """
    if not new_content:
        return ""
    lines = new_content.split("\n")
    total = len(lines)
    width = len(str(total))

    ctx_start = max(1, edit_start - POST_EDIT_CONTEXT_LINES)
    ctx_end = min(total, edit_end + POST_EDIT_CONTEXT_LINES)

    def fmt(num: int, edited: bool = False) -> str:
        text = lines[num - 1] if 0 < num <= total else ""
        marker = ">" if edited else " "
        return f"{marker}{num:>{width}}│{text}"

    out: List[str] = []
    if ctx_start > 1:
        out.append(fmt(1))
        if ctx_start == 3:
            out.append(fmt(2))
        elif ctx_start > 3:
            out.append("...")

    for num in range(ctx_start, ctx_end + 1):
        out.append(fmt(num, edit_start <= num <= edit_end))

    if ctx_end < total:
        if ctx_end == total - 2:
            out.append(fmt(total - 1))
        elif ctx_end < total - 2:
            out.append("...")
        out.append(fmt(total))

    return "\n".join(out)
