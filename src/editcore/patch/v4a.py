from __future__ import annotations

import re
from typing import List, Optional

from .models import ActionType, Chunk, FilePatch, PatchParseError


PATCH_SYSTEM_INSTRUCTION = r"""# Rules
* Pass the whole patch as the `patch` argument. Do not wrap it in JSON/YAML strings or Markdown fences.
* Do not add backslash-escapes (\n, \t, \") or html-escapes (&quot; and similar) unless they *literally* present in the source file.
* *Never* double-escape.

Required envelope:
*** Begin Patch
[YOUR_PATCH]
*** End Patch

[YOUR_PATCH] is a concatenation of file sections.

Allowed section headers per file:
- `*** Add File: <relative/path>`
- `*** Update File: <relative/path>`
- `*** Delete File: <relative/path>`

For Update files, changes are expressed with context blocks:

[1-3 lines of context before]
-<old line>
+<new line>
[1-3 lines of context after]

Context and anchors:
- Context must be an exact copy of the file lines with a single leading space.
- A blank context line is a completely empty line.
- Separate changes within one file with an @@ anchor. The anchor may name
  the enclosing class or function:
  @@ def method_name(...):
- Append `:line N` to an anchor to say roughly where the change is; this
  speeds up edits of very large files:
  @@ def method_name(...) :line 1200

Change lines:
- Use '-' for the old line, '+' for the new line.
- The text after the sign must be exact (including whitespace).

For Add files every content line starts with '+'.

## Minimal example:
*** Begin Patch
*** Update File: pkg/mod.py
@@ def calculate():
     x = 1
-    return x + 1
+    return x + 2
     # done
*** Add File: pkg/notes.txt
+hello
*** Delete File: scripts/old_tool.py
*** End Patch

# Self-Check (must pass before you call the tool)

* Envelope lines are present and exact: *** Begin Patch ... *** End Patch.
* Add/Update/Delete headers are correct.
* For Update sections: context matches the file exactly.
* Blank context lines are truly empty; non-blank context lines start with one space.
"""

BEGIN_MARKER = "*** Begin Patch"
END_MARKER = "*** End Patch"

_HEADERS = (
    ("*** Add File:", ActionType.ADD),
    ("*** Update File:", ActionType.UPDATE),
    ("*** Delete File:", ActionType.DELETE),
)

# Trailing ":line N" on a scope marker.
LINE_HINT_RE = re.compile(r":line\s+(\d+)\s*$")


def parse_scope(text: str) -> tuple[str, int]:
    """Split an @@ marker payload into (scope, line_hint)."""
    hint = 0
    m = LINE_HINT_RE.search(text)
    if m:
        hint = int(m.group(1))
        text = LINE_HINT_RE.sub("", text).strip()
    return text, hint


def parse_patch(text: str) -> List[FilePatch]:
    """
    Parse a V4A patch into file sections.

    Content outside the Begin/End envelope is ignored and a missing End marker
    is tolerated. Any line inside a file section that is not a header, an @@
    marker, empty, or prefixed with ' ', '-' or '+' raises PatchParseError.
    """
    patches: List[FilePatch] = []
    current_file: Optional[FilePatch] = None
    current_chunk: Optional[Chunk] = None
    in_patch = False

    def flush_chunk() -> None:
        nonlocal current_chunk
        if current_chunk is not None and current_file is not None:
            if not current_chunk.is_empty() or current_file.action is ActionType.ADD:
                current_file.chunks.append(current_chunk)
        current_chunk = None

    def flush_file() -> None:
        nonlocal current_file
        flush_chunk()
        if current_file is not None:
            patches.append(current_file)
        current_file = None

    for i, line in enumerate(text.split("\n")):
        lineno = i + 1
        if line.startswith(BEGIN_MARKER):
            in_patch = True
            continue
        if line.startswith(END_MARKER):
            flush_file()
            in_patch = False
            continue
        if not in_patch:
            continue

        header = next(((p, a) for p, a in _HEADERS if line.startswith(p)), None)
        if header is not None:
            prefix, action = header
            flush_file()
            current_file = FilePatch(action=action, path=line[len(prefix) :].strip())
            if action is ActionType.ADD:
                current_chunk = Chunk(start_line=lineno)
            continue

        if current_file is None:
            continue

        if line.startswith("@@ ") or line == "@@":
            flush_chunk()
            scope, hint = parse_scope(line[3:])
            current_chunk = Chunk(scope=scope, line_hint=hint, start_line=lineno)
            continue

        if current_chunk is None:
            current_chunk = Chunk(start_line=lineno)

        if not line or line[0] == " ":
            # An empty line is an empty context line.
            body = line[1:]
            if current_chunk.deletions or current_chunk.additions:
                current_chunk.post_context.append(body)
            else:
                current_chunk.context.append(body)
        elif line[0] == "-":
            current_chunk.deletions.append(line[1:])
        elif line[0] == "+":
            current_chunk.additions.append(line[1:])
        else:
            raise PatchParseError(
                f"line {lineno}: unexpected line format "
                f"(must start with space, -, +, or @@ ): {line!r}",
                line=lineno,
                text=line,
            )

    flush_file()
    return patches


def render_chunk(chunk: Chunk) -> str:
    """Render a chunk back into patch syntax; used in error hints."""
    out: List[str] = []
    if chunk.scope or chunk.line_hint:
        parts = ["@@"]
        if chunk.scope:
            parts.append(chunk.scope)
        if chunk.line_hint:
            parts.append(f":line {chunk.line_hint}")
        out.append(" ".join(parts))
    for ln in chunk.context:
        out.append(" " + ln if ln else "")
    for ln in chunk.deletions:
        out.append("-" + ln)
    for ln in chunk.additions:
        out.append("+" + ln)
    for ln in chunk.post_context:
        out.append(" " + ln if ln else "")
    return "\n".join(out)
