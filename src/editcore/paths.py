from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple

from editcore.errors import semantic_error

# Read-tracker history is bounded to this many entries times
# READ_HISTORY_FACTOR.
READ_TRACKER_MAX_ENTRIES = 10
READ_HISTORY_FACTOR = 5


@dataclass(frozen=True)
class ResolvedPath:
    full_path: str
    outside: bool


def resolve_path(root: str, path: str) -> ResolvedPath:
    """
    Resolve a caller-supplied path against the workspace root.

    '~/' expands to the home directory, relative paths are joined to `root`,
    and '.'/'..' segments are collapsed. `outside` is set when the result is
    not under `root`.
    """
    if path.startswith("~/"):
        path = os.path.join(os.path.expanduser("~"), path[2:])
    if not os.path.isabs(path):
        path = os.path.join(root, path)
    full = os.path.normpath(path)
    rel = os.path.relpath(full, os.path.normpath(os.path.abspath(root)))
    return ResolvedPath(full_path=full, outside=rel.startswith(".."))


class PathPolicy(Protocol):
    def check_write(self, path: str, resolved: ResolvedPath) -> None:
        """Raise a ToolError when writing to `resolved` is not allowed."""
        ...


class WorkspacePathPolicy:
    """Denies writes outside the workspace unless they fall under an extra root."""

    def __init__(
        self,
        root: str,
        *,
        allow_outside: bool = False,
        extra_roots: Sequence[str] = (),
    ) -> None:
        self.root = os.path.abspath(root)
        self.allow_outside = allow_outside
        self.extra_roots = [os.path.abspath(r) for r in extra_roots]

    def check_write(self, path: str, resolved: ResolvedPath) -> None:
        if not resolved.outside or self.allow_outside:
            return
        for extra in self.extra_roots:
            rel = os.path.relpath(resolved.full_path, extra)
            if not rel.startswith(".."):
                return
        raise semantic_error(
            f"access denied: '{path}' is outside the workspace",
            error="path_outside_workspace",
            path=path,
        )


class ReadTracker:
    """Remembers which files were read in which agent turn."""

    def __init__(self, max_entries: int = READ_TRACKER_MAX_ENTRIES) -> None:
        self._lock = threading.Lock()
        self._max_entries = max_entries
        self._reads: List[Tuple[str, int]] = []
        self._current = 0

    def record_read(self, path: str, message_id: int | None = None) -> None:
        abs_path = os.path.abspath(path)
        with self._lock:
            msg = self._current if message_id is None else message_id
            self._reads.append((abs_path, msg))
            limit = self._max_entries * READ_HISTORY_FACTOR
            if len(self._reads) > limit:
                del self._reads[: len(self._reads) - limit]

    def was_read_recently(self, path: str, current: int, within: int) -> bool:
        abs_path = os.path.abspath(path)
        min_id = current - within
        with self._lock:
            return any(p == abs_path and m >= min_id for p, m in self._reads)

    def current_message_id(self) -> int:
        with self._lock:
            return self._current

    def next_message(self) -> int:
        with self._lock:
            self._current += 1
            return self._current
