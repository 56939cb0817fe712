from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class ActionType(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class Chunk:
    scope: str = ""
    # 1-based line hint taken from a trailing ":line N" on the scope marker; 0 if absent.
    line_hint: int = 0
    context: List[str] = field(default_factory=list)
    deletions: List[str] = field(default_factory=list)
    additions: List[str] = field(default_factory=list)
    post_context: List[str] = field(default_factory=list)
    # Line in the patch text where this chunk started, for error reporting.
    start_line: Optional[int] = None

    def is_empty(self) -> bool:
        return not (
            self.scope
            or self.context
            or self.deletions
            or self.additions
            or self.post_context
        )


@dataclass
class FilePatch:
    action: ActionType
    path: str
    chunks: List[Chunk] = field(default_factory=list)


@dataclass
class ChunkApplyResult:
    new_content: str
    # 1-based line span of the edited region in new_content.
    edit_start: int
    edit_end: int


class PatchParseError(ValueError):
    """Patch text violates the grammar."""

    def __init__(self, message: str, line: Optional[int] = None, text: Optional[str] = None) -> None:
        super().__init__(message)
        self.line = line
        self.text = text


class PatchApplyError(ValueError):
    """A chunk could not be located or its deletions do not match the file."""

    def __init__(self, message: str, line: Optional[int] = None, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.line = line
        self.hint = hint
