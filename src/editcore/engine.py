from __future__ import annotations

import os
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from editcore.errors import ToolError, semantic_error
from editcore.fuzzy import find_most_similar_line
from editcore.locator import (
    MatchLevel,
    count_matches,
    edit_line_range,
    find_match_positions,
    line_number_at,
    locate_text,
)
from editcore.logger import logger
from editcore.patch import (
    ActionType,
    Chunk,
    FilePatch,
    PatchApplyError,
    PatchParseError,
    apply_chunk_to_lines,
    apply_chunks,
    build_added_file,
    find_chunk_position,
    parse_patch,
)
from editcore.paths import PathPolicy, ReadTracker, WorkspacePathPolicy, resolve_path
from editcore.pending import (
    EDIT_PENDING_NEXT_STEP,
    PENDING_STATUS,
    WRITE_PENDING_NEXT_STEP,
    EditSession,
    PendingWrite,
    build_preview_result,
    build_success_result,
    count_lines,
)
from editcore.render import DIFF_CONTEXT_LINES, render_region_diff, render_unified_diff
from editcore.search import LineSearcher
from editcore.settings import EditSettings
from editcore.streaming import (
    is_large_file,
    read_line_range,
    read_text,
    replacement_text,
    select_window,
    split_lines,
    streaming_replace,
    write_file_atomic,
)

# Lines read around a match found by the external searcher in a large file.
AUTO_WINDOW_LINES = 10

# Minimum similarity for the "did you mean" hint on a failed search.
SIMILAR_HINT_RATIO = 0.4

_LEVEL_NOTES = {
    MatchLevel.RSTRIP: "Match found using whitespace normalization (trailing spaces ignored)",
    MatchLevel.STRIP: "Match found using whitespace normalization (leading/trailing spaces ignored)",
    MatchLevel.FUZZY: "Match found using fuzzy matching (approximate content match)",
}


class PatchRequest(BaseModel):
    mode: Literal["patch"] = "patch"
    patch: str


class SearchReplaceRequest(BaseModel):
    mode: Literal["searchreplace"] = "searchreplace"
    path: str
    search: str
    replace: str
    # Optional line window hint; enables the streaming path for any file size.
    start_line: Optional[int] = None
    end_line: Optional[int] = None


class LineRangeRequest(BaseModel):
    mode: Literal["lines"] = "lines"
    path: str
    start_line: int
    # None means insert before start_line instead of replacing.
    end_line: Optional[int] = None
    new_text: str = ""


EditRequest = Annotated[
    Union[PatchRequest, SearchReplaceRequest, LineRangeRequest],
    Field(discriminator="mode"),
]

_EDIT_REQUEST_ADAPTER: TypeAdapter = TypeAdapter(EditRequest)


def parse_edit_request(args: Any) -> Union[PatchRequest, SearchReplaceRequest, LineRangeRequest]:
    """
    Detect the edit mode from raw tool arguments and validate them.

    A non-empty `patch` selects patch mode, a present `search` selects
    search/replace and `start_line`/`end_line` select line mode. When
    `search` is present the line numbers are window hints, not a mode.
    """
    if not isinstance(args, dict):
        raise semantic_error("invalid arguments: expected an object")

    has_patch = bool(args.get("patch"))
    has_search = args.get("search") is not None
    has_lines = not has_search and (
        args.get("start_line") is not None or args.get("end_line") is not None
    )

    modes = sum((has_patch, has_search, has_lines))
    if modes == 0:
        raise semantic_error(
            "no edit mode specified - provide 'patch', 'search'+'replace', or 'start_line'+'new_text'"
        )
    if modes > 1:
        raise semantic_error(
            "multiple edit modes specified - use only one of: patch, search/replace, or line range"
        )

    payload = {k: v for k, v in args.items() if k != "mode"}
    if has_patch:
        payload = {"mode": "patch", "patch": args["patch"]}
    elif has_search:
        if args.get("replace") is None:
            raise semantic_error("'replace' is required when using 'search'")
        payload["mode"] = "searchreplace"
        payload.pop("new_text", None)
    else:
        if args.get("start_line") is None:
            raise semantic_error("missing start_line")
        payload["mode"] = "lines"
    payload.setdefault("path", "")

    try:
        return _EDIT_REQUEST_ADAPTER.validate_python(payload)
    except ValidationError as e:
        raise semantic_error(f"invalid arguments: {e}") from e


def apply_line_edit(
    content: str, start_line: int, end_line: Optional[int], new_text: str
) -> Tuple[str, int, int]:
    """
    Replace lines [start_line, end_line] of `content` with `new_text`, or
    insert `new_text` before `start_line` when `end_line` is None (appending
    at total + 1 is allowed). Returns (new_content, edit_start, edit_end).
    """
    lines = split_lines(content)
    resume = check_line_range(start_line, end_line, len(lines))

    head = lines[: start_line - 1]
    replaced = lines[start_line - 1 : resume]
    rest = lines[resume:]
    middle = replacement_text(
        new_text,
        prev_open=bool(head) and not head[-1].endswith("\n"),
        close=bool(rest) or (bool(replaced) and replaced[-1].endswith("\n")),
    )
    new_content = "".join(head) + middle + "".join(rest)

    new_lines = max(1, count_lines(new_text))
    return new_content, start_line, start_line + new_lines - 1


def check_line_range(start_line: int, end_line: Optional[int], total: int) -> int:
    """
    Validate a line edit against a file of `total` lines and return the
    1-based line after which the original content resumes.
    """
    insert = end_line is None
    max_start = total + 1 if insert else total
    if start_line < 1 or start_line > max_start:
        raise semantic_error(f"start_line {start_line} is invalid (file has {total} lines)")
    if end_line is not None and end_line > total:
        raise semantic_error(
            f"end_line {end_line} is beyond end of file (file has {total} lines)"
        )
    return start_line - 1 if end_line is None else end_line


def _new_file_span(content: str) -> int:
    return content.count("\n") + 1 if content else 1


class EditEngine:
    """
    Applies edit requests to files under a workspace root.

    Every path goes through the path policy before it is touched. In preview
    mode changes are staged on the `EditSession` instead of written.
    """

    def __init__(
        self,
        root: str,
        settings: Optional[EditSettings] = None,
        session: Optional[EditSession] = None,
        *,
        policy: Optional[PathPolicy] = None,
        searcher: Optional[LineSearcher] = None,
        read_tracker: Optional[ReadTracker] = None,
    ) -> None:
        self.root = os.path.abspath(root)
        self.settings = settings or EditSettings()
        self.session = session or EditSession()
        self.policy: PathPolicy = policy or WorkspacePathPolicy(
            self.root, allow_outside=self.settings.allow_outside_workspace
        )
        self.searcher = searcher or LineSearcher()
        self.read_tracker = read_tracker or ReadTracker()

    # Paths

    def resolve(self, path: str) -> str:
        if not path:
            raise semantic_error("path is required")
        resolved = resolve_path(self.root, path)
        self.policy.check_write(path, resolved)
        return resolved.full_path

    def check_read_before_edit(self, path: str) -> None:
        within = self.settings.read_before_edit_msgs
        if within <= 0 or not path:
            return
        if self.session.pending_edit_path() == path:
            return
        full_path = resolve_path(self.root, path).full_path
        if not os.path.exists(full_path):
            return
        current = self.read_tracker.current_message_id()
        if not self.read_tracker.was_read_recently(full_path, current, within):
            raise semantic_error(
                f"file not read recently: you must use read on '{path}' before "
                f"editing it (within last {within} tool calls)",
                error="file_not_read",
                path=path,
                next_step=f'read {{"path": "{path}"}}',
            )

    # Dispatch

    def edit(
        self, request: Union[PatchRequest, SearchReplaceRequest, LineRangeRequest]
    ) -> Dict[str, Any]:
        logger.debug("edit.request", mode=request.mode)
        if isinstance(request, PatchRequest):
            return self.edit_patch(request)
        if isinstance(request, SearchReplaceRequest):
            return self.edit_search_replace(request)
        return self.edit_lines(request)

    def finalize(
        self,
        path: str,
        full_path: str,
        old_content: str,
        new_content: str,
        diff: str,
        edit_start: int,
        edit_end: int,
        is_new_file: bool,
    ) -> Dict[str, Any]:
        """Stage the change in preview mode, otherwise write it and report success."""
        if self.settings.preview_mode:
            self.session.begin_preview(
                path,
                full_path,
                old_content,
                new_content,
                diff,
                is_new_file,
                (edit_start, edit_end),
            )
            return build_preview_result(
                path, diff, new_content, edit_start, edit_end, is_new_file
            )

        write_file_atomic(full_path, new_content, create_parents=is_new_file)
        logger.info("edit.applied", path=path, new_file=is_new_file)
        return build_success_result(
            path, diff, new_content, edit_start, edit_end, is_new_file
        )

    def _finalize_window(
        self,
        path: str,
        full_path: str,
        window: Tuple[int, int],
        old_text: str,
        new_text: str,
        diff: str,
        match_lines: Tuple[int, int],
    ) -> Dict[str, Any]:
        first, last = match_lines
        if self.settings.preview_mode:
            self.session.begin_preview(
                path,
                full_path,
                old_text,
                new_text,
                diff,
                False,
                (first, last),
                streaming_range=window,
            )
            return {
                "status": PENDING_STATUS,
                "next_step": EDIT_PENDING_NEXT_STEP,
                "diff": diff,
                "path": path,
                "streaming_edit": True,
                "match_start_line": first,
                "match_end_line": last,
            }

        streaming_replace(full_path, window[0], window[1], new_text)
        logger.info("edit.applied", path=path, streaming=True, window=window)
        return {
            "success": True,
            "diff": diff,
            "path": path,
            "streaming_edit": True,
            "lines_affected": f"{first}-{last}",
        }

    # Search/replace mode

    def edit_search_replace(self, req: SearchReplaceRequest) -> Dict[str, Any]:
        full_path = self.resolve(req.path)
        if req.search == req.replace:
            raise semantic_error(
                "search and replace text are identical - no change would be made"
            )
        self.session.clear_pending_edit_for_path(req.path)

        if req.start_line is not None:
            return self._search_replace_in_range(req, full_path)

        large, size = is_large_file(full_path, self.settings.large_file_threshold)
        if large:
            logger.debug("edit.large_file", path=req.path, size=size)
            return self._search_replace_large(req, full_path)

        content = read_text(full_path)
        if content is None:
            if req.search:
                return {
                    "success": False,
                    "error": "new_file_with_search",
                    "path": req.path,
                    "message": 'File does not exist. To create a new file, use empty search: {"search": "", "replace": "content"}',
                }
            diff = render_unified_diff("", req.replace, req.path)
            return self.finalize(
                req.path, full_path, "", req.replace, diff, 1, _new_file_span(req.replace), True
            )

        if not req.search:
            return {
                "success": False,
                "error": "empty_search",
                "path": req.path,
                "message": "Empty search is only valid for creating new files. For existing files, specify the text to replace.",
            }

        match = locate_text(content, req.search, self.settings.fuzzy_threshold)
        if not match.found:
            return self._no_match(content, req.search, req.path)

        if match.level is MatchLevel.EXACT:
            matches = count_matches(content, req.search)
            if matches > 1:
                return self._multiple_matches(content, req.search, req.path, matches)

        new_content = content[: match.start] + req.replace + content[match.end :]
        diff = render_unified_diff(content, new_content, req.path)
        edit_start, edit_end = edit_line_range(new_content, match.start, req.replace)
        logger.debug(
            "edit.search_replace",
            path=req.path,
            level=int(match.level),
            edit_start=edit_start,
            edit_end=edit_end,
        )

        result = self.finalize(
            req.path, full_path, content, new_content, diff, edit_start, edit_end, False
        )
        note = _LEVEL_NOTES.get(match.level)
        if note:
            result["note"] = note
        return result

    @staticmethod
    def _no_match(content: str, search: str, path: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": False,
            "error": "no_match",
            "path": path,
            "message": "Search text not found in file. The search text must exactly match the file content.",
            "hint": "Use Read to see the exact file content, then copy the text you want to replace.",
        }
        line_no, line, ratio = find_most_similar_line(content, search, SIMILAR_HINT_RATIO)
        if ratio > SIMILAR_HINT_RATIO:
            result["similar_at_line"] = line_no
            result["similar_text"] = line.strip()
            result["similarity"] = f"{ratio * 100:.0f}%"
        return result

    @staticmethod
    def _multiple_matches(content: str, search: str, path: str, count: int) -> Dict[str, Any]:
        at_lines = [line_number_at(content, pos) for pos in find_match_positions(content, search)]
        return {
            "success": False,
            "error": "multiple_matches",
            "path": path,
            "count": count,
            "at_lines": at_lines,
            "message": f"Search text matches {count} locations - add more surrounding context to make it unique",
            "hint": "Include more lines before/after the text you want to change to create a unique match",
        }

    def _search_replace_in_range(
        self, req: SearchReplaceRequest, full_path: str
    ) -> Dict[str, Any]:
        start = req.start_line or 0
        end = req.end_line if req.end_line is not None else start + self.settings.search_window_lines

        if start < 1:
            return {
                "success": False,
                "error": "invalid_start_line",
                "message": "start_line must be >= 1",
            }
        if end < start:
            return {
                "success": False,
                "error": "invalid_line_range",
                "message": f"end_line ({end}) must be >= start_line ({start})",
            }
        if not req.search:
            return {
                "success": False,
                "error": "empty_search",
                "path": req.path,
                "message": "Empty search is not allowed with start_line hint. Use without start_line to create new files.",
            }

        if not os.path.exists(full_path):
            raise semantic_error(f"file does not exist: {req.path}")
        text, total = read_line_range(full_path, start, end)
        if start > total:
            return {
                "success": False,
                "error": "start_line_beyond_eof",
                "path": req.path,
                "start_line": start,
                "total_lines": total,
                "message": f"start_line {start} is beyond end of file (file has {total} lines)",
            }

        idx = text.find(req.search)
        if idx < 0:
            return {
                "success": False,
                "error": "no_match_in_range",
                "path": req.path,
                "start_line": start,
                "end_line": end,
                "message": f"Search text not found in lines {start}-{end}. Try adjusting the line range or use Read to verify content.",
                "hint": f'Read {{"path": "{req.path}", "start": {start}, "limit": {end - start + 1}}}',
            }
        matches = count_matches(text, req.search)
        if matches > 1:
            return {
                "success": False,
                "error": "multiple_matches_in_range",
                "path": req.path,
                "count": matches,
                "start_line": start,
                "end_line": end,
                "message": f"Search text matches {matches} locations in lines {start}-{end} - add more context to make unique",
            }

        window = (start, min(end, total))
        return self._replace_in_window(req, full_path, window, text, idx)

    def _search_replace_large(self, req: SearchReplaceRequest, full_path: str) -> Dict[str, Any]:
        if not req.search:
            return {
                "success": False,
                "error": "empty_search_large_file",
                "path": req.path,
                "message": "Cannot create new file with empty search on large file path. File already exists.",
            }

        found = self.searcher.search(full_path, req.search)
        if found.count == 0:
            return {
                "success": False,
                "error": "no_match",
                "path": req.path,
                "message": "Search text not found in file.",
                "hint": "Use Read with start/limit to examine file content.",
            }
        if found.count > 1:
            return {
                "success": False,
                "error": "multiple_matches",
                "path": req.path,
                "count": found.count,
                "message": f"Search text matches {found.count} locations - add more surrounding context to make it unique",
            }

        search_lines = req.search.count("\n") + 1
        start = max(1, found.first_line - AUTO_WINDOW_LINES)
        end = found.first_line + search_lines + AUTO_WINDOW_LINES
        text, total = read_line_range(full_path, start, end)
        idx = text.find(req.search)
        if idx < 0:
            raise semantic_error("match lost during window read - file may have changed")

        window = (start, min(end, total))
        return self._replace_in_window(req, full_path, window, text, idx)

    def _replace_in_window(
        self,
        req: SearchReplaceRequest,
        full_path: str,
        window: Tuple[int, int],
        text: str,
        idx: int,
    ) -> Dict[str, Any]:
        match_end = idx + len(req.search)
        first = window[0] + text.count("\n", 0, idx)
        last = window[0] + text.count("\n", 0, max(idx, match_end - 1))
        new_text = text[:idx] + req.replace + text[match_end:]
        diff = render_region_diff(text, new_text, req.path)
        return self._finalize_window(
            req.path, full_path, window, text, new_text, diff, (first, last)
        )

    # Line-range mode

    def edit_lines(self, req: LineRangeRequest) -> Dict[str, Any]:
        if req.start_line < 1:
            raise semantic_error("start_line must be >= 1")
        if req.end_line is not None and req.end_line < req.start_line:
            raise semantic_error(
                f"end_line ({req.end_line}) must be >= start_line ({req.start_line})"
            )

        full_path = self.resolve(req.path)
        self.session.clear_pending_edit_for_path(req.path)

        large, size = is_large_file(full_path, self.settings.large_file_threshold)
        if large:
            logger.debug("edit.large_file", path=req.path, size=size)
            return self._edit_lines_large(req, full_path)

        content = read_text(full_path)
        if content is None:
            new_content = req.new_text
            diff = render_unified_diff("", new_content, req.path)
            result = self.finalize(
                req.path, full_path, "", new_content, diff, 1, _new_file_span(new_content), True
            )
            end = req.end_line if req.end_line is not None else 0
            if req.start_line != 1 or end != 1:
                result["warning"] = (
                    f"Line numbers ({req.start_line}-{end}) are ignored for new files. "
                    "The entire new_text becomes the file content."
                )
            return result

        new_content, edit_start, edit_end = apply_line_edit(
            content, req.start_line, req.end_line, req.new_text
        )
        diff = render_unified_diff(content, new_content, req.path)
        return self.finalize(
            req.path, full_path, content, new_content, diff, edit_start, edit_end, False
        )

    def _edit_lines_large(self, req: LineRangeRequest, full_path: str) -> Dict[str, Any]:
        """
        Line-range edit of a large file. Only the edited lines and their diff
        context are read; the change is streamed into place.
        """
        start = req.start_line
        last = start - 1 if req.end_line is None else req.end_line
        ctx_start = max(1, start - DIFF_CONTEXT_LINES)
        region, total = read_line_range(full_path, ctx_start, last + DIFF_CONTEXT_LINES)
        resume = check_line_range(start, req.end_line, total)

        region_lines = region.split("\n") if region else []
        lead = start - ctx_start
        keep = resume - ctx_start + 1
        old_text = "\n".join(region_lines[lead:keep])
        added = req.new_text.split("\n")
        if req.new_text.endswith("\n"):
            added.pop()
        if not req.new_text:
            added = []
        new_region = "\n".join(region_lines[:lead] + added + region_lines[keep:])
        diff = render_region_diff(region, new_region, req.path)

        first = start
        end = start + max(1, count_lines(req.new_text)) - 1
        return self._finalize_window(
            req.path, full_path, (start, resume), old_text, req.new_text, diff, (first, end)
        )

    # Patch mode

    def edit_patch(self, req: PatchRequest) -> Dict[str, Any]:
        if not req.patch.strip():
            raise semantic_error("patch cannot be empty")
        try:
            file_patches = parse_patch(req.patch)
        except PatchParseError as e:
            raise semantic_error(f"invalid patch format: {e}") from e
        if not file_patches:
            raise semantic_error("no file operations found in patch")

        staged = [fp for fp in file_patches if fp.action is not ActionType.DELETE]
        if self.settings.preview_mode and len(staged) > 1:
            raise semantic_error(
                "preview mode stages one file at a time - split the patch into "
                "separate Edit calls with one Add File or Update File each"
            )

        results: List[Dict[str, Any]] = []
        diffs: List[str] = []
        for fp in file_patches:
            try:
                result, diff = self._apply_file_patch(fp)
            except (PatchApplyError, ToolError, OSError) as e:
                logger.warning("patch.failed", path=fp.path, error=str(e))
                return {
                    "success": False,
                    "error": "patch_failed",
                    "failed_file": fp.path,
                    "message": str(e),
                    "applied_so_far": results,
                }
            results.append(result)
            if diff:
                diffs.append(diff)

        if len(file_patches) == 1:
            return results[0]
        return {
            "success": True,
            "files": len(file_patches),
            "results": results,
            "diff": "".join(d + "\n" for d in diffs),
        }

    def _apply_file_patch(self, fp: FilePatch) -> Tuple[Dict[str, Any], str]:
        full_path = self.resolve(fp.path)
        if fp.action is ActionType.DELETE:
            return self._delete_file(fp.path, full_path)
        if fp.action is ActionType.ADD:
            return self._add_file(fp.path, full_path, fp.chunks)
        return self._update_file(fp.path, full_path, fp.chunks)

    def _delete_file(self, path: str, full_path: str) -> Tuple[Dict[str, Any], str]:
        if not os.path.exists(full_path):
            raise PatchApplyError(f"file does not exist: {path}")
        os.remove(full_path)
        logger.info("patch.deleted", path=path)
        return {"action": "deleted", "path": path, "success": True}, ""

    def _add_file(
        self, path: str, full_path: str, chunks: List[Chunk]
    ) -> Tuple[Dict[str, Any], str]:
        if os.path.exists(full_path):
            raise PatchApplyError(f"file already exists: {path} (use Update File instead)")
        content = build_added_file(chunks)
        diff = render_unified_diff("", content, path)
        result = self.finalize(path, full_path, "", content, diff, 1, _new_file_span(content), True)
        result["action"] = "created"
        result["lines"] = content.count("\n")
        return result, diff

    def _update_file(
        self, path: str, full_path: str, chunks: List[Chunk]
    ) -> Tuple[Dict[str, Any], str]:
        large, _size = is_large_file(full_path, self.settings.large_file_threshold)
        if large:
            return self._update_file_large(path, full_path, chunks)

        content = read_text(full_path)
        if content is None:
            raise PatchApplyError(f"file does not exist: {path} (use Add File instead)")
        applied = apply_chunks(content, chunks)
        diff = render_unified_diff(content, applied.new_content, path)
        result = self.finalize(
            path,
            full_path,
            content,
            applied.new_content,
            diff,
            applied.edit_start,
            applied.edit_end,
            False,
        )
        result["chunks"] = len(chunks)
        result["action"] = "updated"
        return result, diff

    def _update_file_large(
        self, path: str, full_path: str, chunks: List[Chunk]
    ) -> Tuple[Dict[str, Any], str]:
        """
        Apply update chunks to a large file one window at a time. Each chunk
        is located in a line window (see `select_window`), applied in memory
        and streamed back before the next chunk is located.
        """
        if self.settings.preview_mode and len(chunks) > 1:
            raise PatchApplyError(
                "preview of large-file updates supports one chunk per call - "
                "split the patch into separate Edit calls"
            )

        diffs: List[str] = []
        offset = 0
        for n, chunk in enumerate(chunks, 1):
            try:
                start, end = select_window(full_path, chunk, self.searcher, offset)
            except PatchApplyError as e:
                raise PatchApplyError(f"chunk {n}: {e}", line=e.line, hint=e.hint) from e

            text, total = read_line_range(full_path, start, end)
            if start > total:
                raise PatchApplyError(
                    f"chunk {n}: search location beyond end of file ({total} lines)"
                )
            end = min(end, total)
            window_lines = text.split("\n")

            try:
                pos = find_chunk_position(window_lines, chunk)
            except PatchApplyError as e:
                if chunk.line_hint > 0:
                    raise PatchApplyError(
                        f"chunk {n}: could not find context near line {chunk.line_hint}: {e}",
                        line=e.line,
                        hint=e.hint,
                    ) from e
                raise PatchApplyError(
                    f"chunk {n}: could not match context: {e}", line=e.line, hint=e.hint
                ) from e
            try:
                new_lines = apply_chunk_to_lines(window_lines, chunk, pos)
            except PatchApplyError as e:
                raise PatchApplyError(f"chunk {n}: {e}", line=e.line, hint=e.hint) from e
            if new_lines == window_lines:
                raise semantic_error(
                    "patch resulted in no changes - deletions and additions are identical"
                )

            old_start = pos - min(len(chunk.context), pos)
            old_region = "\n".join(window_lines[old_start : pos + len(chunk.deletions)])
            new_region = "\n".join(new_lines[old_start : pos + len(chunk.additions)])
            diff = render_region_diff(old_region, new_region, path)
            new_text = "\n".join(new_lines)

            if self.settings.preview_mode:
                first = start + pos
                last = max(first, first + len(chunk.deletions) - 1)
                result = self._finalize_window(
                    path, full_path, (start, end), text, new_text, diff, (first, last)
                )
                result["chunks"] = len(chunks)
                result["action"] = "updated"
                return result, diff

            streaming_replace(full_path, start, end, new_text)
            diffs.append(diff)
            offset += len(chunk.additions) - len(chunk.deletions)
            logger.debug("patch.window_applied", path=path, chunk=n, start=start, end=end)

        diff = "".join(d + "\n" for d in diffs)
        return {
            "action": "updated",
            "path": path,
            "success": True,
            "chunks": len(chunks),
            "streaming_edit": True,
        }, diff

    # Whole-file write

    def write_file(self, path: str, content: str) -> Dict[str, Any]:
        """
        Create `path` with `content`, or stage an overwrite of an existing file
        that needs Write.confirm.
        """
        full_path = self.resolve(path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)

        if os.path.exists(full_path):
            old = read_text(full_path) or ""
            self.session.store_pending_write(
                PendingWrite(
                    path=path,
                    full_path=full_path,
                    content=content,
                    old_size=len(old.encode("utf-8")),
                    old_lines=count_lines(old),
                )
            )
            return {
                "status": PENDING_STATUS,
                "path": path,
                "next_step": WRITE_PENDING_NEXT_STEP,
                "old_size": len(old.encode("utf-8")),
                "old_lines": count_lines(old),
                "new_size": len(content.encode("utf-8")),
                "new_lines": count_lines(content),
            }

        write_file_atomic(full_path, content)
        logger.info("write.created", path=path)
        return {
            "success": True,
            "path": path,
            "action": "created",
            "lines": count_lines(content),
            "bytes": len(content.encode("utf-8")),
        }
