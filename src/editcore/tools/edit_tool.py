import json
from typing import Any, Dict

from editcore.engine import PatchRequest, parse_edit_request
from editcore.logger import logger
from editcore.patch import PATCH_SYSTEM_INSTRUCTION
from editcore.pending import cancel_pending, confirm_pending
from editcore.settings import EditMode, ToolSpec
from editcore.tools import base as tools_base

_DESCRIPTIONS = {
    EditMode.searchreplace: (
        "Edit a file by searching for exact text and replacing it. "
        "Content-based matching - no line numbers needed."
    ),
    EditMode.patch: "Edit a file using V4A-format patch with context lines.",
    EditMode.lines: (
        "Edit a file by replacing a range of lines, or insert before a line "
        "when end_line is omitted."
    ),
}

_PREVIEW_NOTES = (
    '\n- Edit returns diff and after_edit preview with status="pending_confirmation"'
    "\n- `Edit.confirm {}` to apply, `Edit.cancel {}` to retry"
)


def _schema(mode: EditMode) -> Dict[str, Any]:
    if mode is EditMode.patch:
        return {
            "type": "object",
            "properties": {
                "patch": {
                    "type": "string",
                    "description": "Complete patch in V4A format. See prompt for format details.",
                },
            },
            "required": ["patch"],
        }
    if mode is EditMode.lines:
        return {
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path to file (relative to workspace or absolute)",
                },
                "start_line": {
                    "type": "integer",
                    "description": "First line to replace (1-based).",
                },
                "end_line": {
                    "type": "integer",
                    "description": "Last line to replace (inclusive). Omit to insert before start_line.",
                },
                "new_text": {
                    "type": "string",
                    "description": "Replacement text for the line range.",
                },
            },
            "required": ["path", "start_line", "new_text"],
        }
    return {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to file (relative to workspace or absolute)",
            },
            "search": {
                "type": "string",
                "description": (
                    "Exact text to find in the file. Must match file content "
                    "character-for-character including whitespace and indentation."
                ),
            },
            "replace": {
                "type": "string",
                "description": "Text to replace the search match with.",
            },
            "start_line": {
                "type": "integer",
                "description": (
                    "Optional: Starting line number hint for large files (>1MB). "
                    "Limits search to lines [start_line, end_line]."
                ),
            },
            "end_line": {
                "type": "integer",
                "description": (
                    "Optional: Ending line number hint for large files. "
                    "Defaults to start_line + 100 if not provided."
                ),
            },
        },
        "required": ["path", "search", "replace"],
    }


def _prompt(mode: EditMode) -> str:
    if mode is EditMode.patch:
        return (
            "### Edit - Apply Patches (V4A Format)\n\n"
            '**Usage:** `Edit {"patch": "<V4A patch>"}`\n\n'
            "**Markers:**\n"
            "- `*** Begin Patch` / `*** End Patch` - wrap the entire patch\n"
            "- `*** Add File: path` / `*** Update File: path` / `*** Delete File: path`\n"
            "- `@@ scope` - optional: function/class name to help locate changes\n"
            "- `@@ scope :line 100` - optional line hint to speed up search\n\n"
            "**Rules:**\n"
            "1. Include 2-3 lines of context before and after changes\n"
            "2. Context lines must exactly match file content\n"
            "3. Always use Read before editing a file"
        )
    if mode is EditMode.lines:
        return (
            "### Edit - Replace Line Ranges\n\n"
            '**Usage:** `Edit {"path": "<file>", "start_line": N, "end_line": M, "new_text": "<text>"}`\n\n'
            "**Rules:**\n"
            "1. Line numbers are 1-based and inclusive\n"
            "2. Omit end_line to insert new_text before start_line\n"
            "3. For a missing file, new_text becomes the whole file\n"
            "4. Always use Read before editing a file"
        )
    return (
        "### Edit - Search and Replace in Files\n\n"
        '**Usage:** `Edit {"path": "<file>", "search": "<text to find>", "replace": "<replacement text>"}`\n\n'
        "**Rules:**\n"
        "1. The search text MUST exactly match file content (character-for-character including whitespace)\n"
        "2. Include enough context lines to make the match unique\n"
        "3. If multiple matches exist, add more surrounding context to disambiguate\n"
        '4. Use an empty search to create a new file: `{"search": "", "replace": "content"}`\n'
        "5. Always use Read before editing a file"
    )


@tools_base.ToolFactory.register("Edit")
class EditTool(tools_base.BaseTool):
    """
    Apply a patch, a search/replace pair or a line-range edit to project files.
    The advertised request shape follows the configured edit mode; all shapes
    are accepted at call time.
    """

    name = "Edit"

    def _mode(self, spec: ToolSpec) -> EditMode:
        raw = (spec.config or {}).get("mode")
        if isinstance(raw, str):
            try:
                return EditMode(raw.lower().strip())
            except ValueError:
                logger.warning("edit.unknown_mode", mode=raw)
        return self.prj.settings.edit.edit_mode

    async def run(self, req: tools_base.ToolReq, args: Any):
        engine = self.prj.engine
        request = parse_edit_request(args)
        if not isinstance(request, PatchRequest):
            engine.check_read_before_edit(request.path)
        result = engine.edit(request)
        return tools_base.ToolTextResponse(text=json.dumps(result, ensure_ascii=False))

    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        mode = self._mode(spec)
        description = _DESCRIPTIONS[mode]
        if mode is EditMode.patch:
            description = (
                description
                + "\n\n"
                + "Patch content must follow these format-specific instructions:\n"
                + PATCH_SYSTEM_INSTRUCTION
            )
        return {
            "name": self.name,
            "description": description,
            "parameters": _schema(mode),
        }

    def prompt_section(self, spec: ToolSpec) -> str:
        text = _prompt(self._mode(spec))
        if self.prj.settings.edit.preview_mode:
            text += _PREVIEW_NOTES
        return text


@tools_base.ToolFactory.register("Edit.confirm")
class EditConfirmTool(tools_base.BaseTool):
    """Apply the edit (or whole-file write) staged by the last preview."""

    name = "Edit.confirm"

    async def run(self, req: tools_base.ToolReq, args: Any):
        result = confirm_pending(self.prj.session)
        return tools_base.ToolTextResponse(text=json.dumps(result, ensure_ascii=False))

    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": (
                "Apply the pending edit shown in the last Edit preview. "
                "Fails without writing if the file changed since the preview."
            ),
            "parameters": {"type": "object", "properties": {}},
        }


@tools_base.ToolFactory.register("Edit.cancel")
class EditCancelTool(tools_base.BaseTool):
    """Discard the staged edit without touching the file."""

    name = "Edit.cancel"

    async def run(self, req: tools_base.ToolReq, args: Any):
        result = cancel_pending(self.prj.session)
        return tools_base.ToolTextResponse(text=json.dumps(result, ensure_ascii=False))

    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": "Discard the pending edit. The file is left unchanged.",
            "parameters": {"type": "object", "properties": {}},
        }
