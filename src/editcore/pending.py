from __future__ import annotations

import json
import os
import re
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from editcore.errors import ToolError, runtime_error, semantic_error
from editcore.logger import logger
from editcore.render import render_post_edit_context
from editcore.settings import PENDING_CONFIRM_RETRIES_DEFAULT
from editcore.state import Message, Role
from editcore.streaming import read_line_range, read_text, streaming_replace, write_file_atomic

EDIT_PENDING_NEXT_STEP = (
    "STOP. You MUST call Edit.confirm or Edit.cancel next. "
    "ALL other tools are BLOCKED until you confirm or cancel this edit."
)
WRITE_PENDING_NEXT_STEP = (
    "File exists. Call Write.confirm to overwrite or Write.cancel to abort."
)

PENDING_STATUS = "pending_confirmation"

# From this many blocked calls on, the BLOCKED message gets more insistent.
ESCALATE_AFTER = 3

CONFIRM_TOOLS = frozenset({"Edit.confirm", "Write.confirm"})
CANCEL_TOOLS = frozenset({"Edit.cancel", "Write.cancel"})
RESOLVE_TOOLS = CONFIRM_TOOLS | CANCEL_TOOLS

AUTO_CANCELLED_MARKER = "AUTO-CANCELLED:"

_PATH_FIELD_RE = re.compile(r'"path"\s*:\s*"((?:[^"\\]|\\.)*)"')


def count_lines(text: str) -> int:
    n = text.count("\n")
    if text and not text.endswith("\n"):
        n += 1
    return n


@dataclass
class PendingEdit:
    path: str
    full_path: str
    old_content: str
    new_content: str
    diff: str
    is_new_file: bool = False
    # 1-based span of the edit inside new_content.
    edit_start_line: int = 1
    edit_end_line: int = 1
    # For large files only a line window is held: old_content/new_content are
    # that window and this is its (first, last) line in the file.
    streaming_range: Optional[Tuple[int, int]] = None


@dataclass
class PendingWrite:
    path: str
    full_path: str
    content: str
    old_size: int
    old_lines: int


@dataclass(frozen=True)
class PendingEditState:
    has_pending: bool = False
    pending_path: str = ""
    last_pending_index: int = -1
    block_count_since_pending: int = 0


class EditSession:
    """
    Holds the single pending edit and the single pending whole-file write
    for one agent session. Every access goes through one lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._edit: Optional[PendingEdit] = None
        self._write: Optional[PendingWrite] = None

    def store_pending_edit(self, edit: PendingEdit) -> None:
        with self._lock:
            self._edit = edit
        logger.info("pending.stored", path=edit.path, new_file=edit.is_new_file)

    def begin_preview(
        self,
        path: str,
        full_path: str,
        old_content: str,
        new_content: str,
        diff: str,
        is_new_file: bool,
        edit_range: Tuple[int, int],
        streaming_range: Optional[Tuple[int, int]] = None,
    ) -> PendingEdit:
        """Stage a computed edit, replacing whatever edit was pending before."""
        edit = PendingEdit(
            path=path,
            full_path=full_path,
            old_content=old_content,
            new_content=new_content,
            diff=diff,
            is_new_file=is_new_file,
            edit_start_line=edit_range[0],
            edit_end_line=edit_range[1],
            streaming_range=streaming_range,
        )
        self.store_pending_edit(edit)
        return edit

    @property
    def pending_edit(self) -> Optional[PendingEdit]:
        with self._lock:
            return self._edit

    def pending_edit_path(self) -> str:
        with self._lock:
            return self._edit.path if self._edit is not None else ""

    def pending_diff(self) -> str:
        with self._lock:
            return self._edit.diff if self._edit is not None else ""

    def clear_pending_edit(self) -> None:
        with self._lock:
            self._edit = None

    def clear_pending_edit_for_path(self, path: str) -> None:
        with self._lock:
            if self._edit is not None and self._edit.path == path:
                self._edit = None

    def take_pending_edit(self) -> Optional[PendingEdit]:
        with self._lock:
            edit, self._edit = self._edit, None
            return edit

    def store_pending_write(self, write: PendingWrite) -> None:
        with self._lock:
            self._write = write
        logger.info("pending.write_stored", path=write.path)

    def pending_write_path(self) -> str:
        with self._lock:
            return self._write.path if self._write is not None else ""

    def take_pending_write(self) -> Optional[PendingWrite]:
        with self._lock:
            write, self._write = self._write, None
            return write


def build_success_result(
    path: str,
    diff: str,
    new_content: str,
    edit_start: int,
    edit_end: int,
    is_new_file: bool,
) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "success": True,
        "path": path,
        "diff": diff,
        "after_edit": render_post_edit_context(new_content, edit_start, edit_end),
    }
    if is_new_file:
        result["created"] = True
        result["message"] = "New file created"
    else:
        result["message"] = "Edit applied successfully"
    return result


def build_preview_result(
    path: str,
    diff: str,
    new_content: str,
    edit_start: int,
    edit_end: int,
    is_new_file: bool,
) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "status": PENDING_STATUS,
        "next_step": EDIT_PENDING_NEXT_STEP,
        "path": path,
        "diff": diff,
        "after_edit": render_post_edit_context(new_content, edit_start, edit_end),
    }
    if is_new_file:
        result["is_new_file"] = True
        result["message"] = "NEW FILE will be created"
    return result


def _extract_path(text: str) -> str:
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("path"), str):
        return payload["path"]
    m = _PATH_FIELD_RE.search(text)
    return m.group(1) if m else ""


def replay_pending_state(history: Iterable[Message]) -> PendingEditState:
    """
    Derive the pending-edit state from the conversation history.

    Only tool results count. A result mentioning pending_confirmation opens a
    pending state, a confirm or cancel result closes it, and every BLOCKED
    result seen while pending increments the block count. History is the
    source of truth; the in-memory session may be out of sync after the
    history was edited. An AUTO-CANCELLED result closes the pending state
    like a cancel does.
    """
    has_pending = False
    path = ""
    last_index = -1
    blocks = 0

    for i, message in enumerate(history):
        if message.role != Role.TOOL:
            continue
        text = message.text
        if PENDING_STATUS in text:
            has_pending = True
            path = _extract_path(text)
            last_index = i
            blocks = 0
        if message.tool_name in RESOLVE_TOOLS or AUTO_CANCELLED_MARKER in text:
            has_pending = False
            path = ""
            last_index = -1
            blocks = 0
        if has_pending and "BLOCKED:" in text and "pending edit on" in text:
            blocks += 1

    return PendingEditState(
        has_pending=has_pending,
        pending_path=path,
        last_pending_index=last_index,
        block_count_since_pending=blocks,
    )


def check_pending_block(
    tool_name: str,
    state: PendingEditState,
    session: Optional[EditSession] = None,
    max_ignored: int = PENDING_CONFIRM_RETRIES_DEFAULT,
) -> Optional[ToolError]:
    """
    Decide whether `tool_name` may run while an edit awaits confirmation.

    Returns None when the call may proceed, a semantic BLOCKED error while
    the edit is pending, or, once `max_ignored` blocked calls have piled up,
    drops the pending edit and returns a runtime AUTO-CANCELLED error so the
    caller can go on.
    """
    if not state.has_pending or tool_name in RESOLVE_TOOLS:
        return None

    path = state.pending_path
    blocks = state.block_count_since_pending
    diff = session.pending_diff() if session is not None else ""

    if blocks >= max_ignored:
        if session is not None:
            session.clear_pending_edit()
            session.take_pending_write()
        logger.warning("pending.auto_cancelled", path=path, ignored=blocks)
        return runtime_error(
            f"{AUTO_CANCELLED_MARKER} Pending edit on '{path}' was automatically cancelled "
            f"after {blocks} ignored responses. You may now proceed with your intended action."
        )

    if tool_name == "Edit":
        extra = (
            f"You have tried {blocks} times - Edit will NOT work until you "
            f"resolve the pending edit first!"
            if blocks >= ESCALATE_AFTER
            else ""
        )
    elif tool_name == "RestoreFile":
        extra = (
            f"You've been blocked {blocks} times. Did you mean to call Edit.cancel?"
            if blocks >= ESCALATE_AFTER
            else "Did you mean to call Edit.cancel to discard the pending edit?"
        )
    else:
        extra = f"You've been blocked {blocks} times!" if blocks >= ESCALATE_AFTER else ""

    message = f"BLOCKED: Your {tool_name} call was blocked due to a pending edit on '{path}'."
    if extra:
        message += " " + extra
    if diff:
        message += f"\n\nPending diff:\n```diff\n{diff}\n```"
    message += "\n\nCall Edit.confirm to apply this edit, or Edit.cancel to discard it."

    logger.info("pending.blocked", tool=tool_name, path=path, blocks=blocks)
    return semantic_error(message)


def apply_pending_edit(pending: PendingEdit) -> Dict[str, Any]:
    """Write a previewed edit after checking the file still matches the preview."""
    if pending.streaming_range is not None:
        return _apply_pending_window(pending, pending.streaming_range)

    current = read_text(pending.full_path)
    if current is None:
        if not pending.is_new_file:
            return {
                "success": False,
                "error": "file_deleted",
                "message": "File was deleted since the preview. Please call edit again.",
            }
    elif pending.is_new_file or current != pending.old_content:
        return {
            "success": False,
            "error": "file_changed",
            "message": "File has been modified since the preview. Please call edit again to get a new preview.",
        }

    write_file_atomic(pending.full_path, pending.new_content, create_parents=pending.is_new_file)
    logger.info("pending.confirmed", path=pending.path)
    return build_success_result(
        pending.path,
        pending.diff,
        pending.new_content,
        pending.edit_start_line,
        pending.edit_end_line,
        pending.is_new_file,
    )


def _apply_pending_window(pending: PendingEdit, window: Tuple[int, int]) -> Dict[str, Any]:
    first, last = window
    if not os.path.exists(pending.full_path):
        return {
            "success": False,
            "error": "file_deleted",
            "message": "File was deleted since the preview. Please call edit again.",
        }
    window, _total = read_line_range(pending.full_path, first, last)
    if window != pending.old_content:
        return {
            "success": False,
            "error": "file_changed",
            "message": "File has been modified since the preview. Please call edit again to get a new preview.",
        }

    streaming_replace(pending.full_path, first, last, pending.new_content)
    logger.info("pending.confirmed", path=pending.path, streaming=True)
    return {
        "success": True,
        "path": pending.path,
        "diff": pending.diff,
        "streaming_edit": True,
        "lines_affected": f"{pending.edit_start_line}-{pending.edit_end_line}",
        "message": "Edit applied successfully",
    }


def apply_pending_write(pending: PendingWrite) -> Dict[str, Any]:
    write_file_atomic(pending.full_path, pending.content)
    logger.info("pending.write_confirmed", path=pending.path)
    return {
        "success": True,
        "path": pending.path,
        "action": "overwritten",
        "lines": count_lines(pending.content),
        "bytes": len(pending.content.encode("utf-8")),
    }


def confirm_pending(session: EditSession, *, prefer_write: bool = False) -> Dict[str, Any]:
    """
    Apply whatever is pending. Edit.confirm and Write.confirm are synonyms;
    they only differ in which kind of pending operation they look at first.
    """
    if prefer_write:
        write = session.take_pending_write()
        if write is not None:
            return apply_pending_write(write)
        edit = session.take_pending_edit()
        if edit is not None:
            return apply_pending_edit(edit)
    else:
        edit = session.take_pending_edit()
        if edit is not None:
            return apply_pending_edit(edit)
        write = session.take_pending_write()
        if write is not None:
            return apply_pending_write(write)

    if prefer_write:
        return {
            "success": False,
            "error": "no_pending_operation",
            "message": (
                "No pending operation to confirm. This tool is only used after Edit or "
                "Write returns status='pending_confirmation'."
            ),
        }
    return {
        "success": False,
        "error": "no_pending_operation",
        "message": "Nothing to confirm. You must call Edit or Write first, then confirm to apply it.",
        "usage_hint": "Workflow: 1) read to see content, 2) edit/write to create change, 3) confirm to apply",
    }


def _edit_cancelled(edit: PendingEdit) -> Dict[str, Any]:
    logger.info("pending.cancelled", path=edit.path)
    return {
        "success": True,
        "path": edit.path,
        "message": "Edit cancelled. File was not modified.",
        "next_step": (
            "MODIFY your edit to correct for the issues you observed, then retry. "
            f'Read {{"path": "{edit.path}"}} if needed.'
        ),
    }


def _write_cancelled(write: PendingWrite) -> Dict[str, Any]:
    logger.info("pending.write_cancelled", path=write.path)
    return {
        "success": True,
        "path": write.path,
        "message": "Write cancelled. File was not modified.",
    }


def cancel_pending(session: EditSession, *, prefer_write: bool = False) -> Dict[str, Any]:
    """Discard whatever is pending without touching the filesystem."""
    if prefer_write:
        write = session.take_pending_write()
        if write is not None:
            return _write_cancelled(write)
        edit = session.take_pending_edit()
        if edit is not None:
            return _edit_cancelled(edit)
    else:
        edit = session.take_pending_edit()
        if edit is not None:
            return _edit_cancelled(edit)
        write = session.take_pending_write()
        if write is not None:
            return _write_cancelled(write)

    if prefer_write:
        return {
            "success": False,
            "error": "no_pending_operation",
            "message": "No pending operation to cancel.",
        }
    return {
        "success": False,
        "error": "no_pending_operation",
        "message": (
            "No pending operation to cancel. This tool is only used after Edit or "
            "Write returns status='pending_confirmation'."
        ),
        "did_you_mean": "RestoreFile",
        "hint": "To undo ALL changes already applied to a file, use restore_file with the file path.",
    }
