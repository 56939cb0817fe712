import json
from typing import Any, Dict

from editcore.errors import semantic_error
from editcore.pending import cancel_pending, confirm_pending
from editcore.settings import ToolSpec
from editcore.tools import base as tools_base


@tools_base.ToolFactory.register("Write")
class WriteTool(tools_base.BaseTool):
    """
    Write a whole file. New files are created directly; overwriting an
    existing file is staged and needs Write.confirm.
    """

    name = "Write"

    async def run(self, req: tools_base.ToolReq, args: Any):
        if not isinstance(args, dict):
            raise semantic_error("invalid arguments: expected an object")
        path = args.get("path") or ""
        text = args.get("text")
        if not isinstance(path, str) or not path:
            raise semantic_error("path is required")
        if text is None:
            text = ""
        if not isinstance(text, str):
            raise semantic_error("invalid arguments: 'text' must be a string")

        result = self.prj.engine.write_file(path, text)
        return tools_base.ToolTextResponse(text=json.dumps(result, ensure_ascii=False))

    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": (
                "Write content to a file, creating it if it doesn't exist or "
                "overwriting if it does."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "Path to file (relative to workspace or absolute)",
                    },
                    "text": {
                        "type": "string",
                        "description": "Content to write to the file",
                    },
                },
                "required": ["path", "text"],
            },
        }

    def prompt_section(self, spec: ToolSpec) -> str:
        return (
            "### Write - Write Files\n\n"
            '**Usage:** `Write {"path": "<file>", "text": "<content>"}`\n\n'
            "Creates a new file or overwrites an existing file.\n\n"
            "**Overwrite Confirmation:**\n"
            '- Overwriting an existing file returns status="pending_confirmation"\n'
            "- `Write.confirm {}` - Apply the overwrite\n"
            "- `Write.cancel {}` - Cancel"
        )


@tools_base.ToolFactory.register("Write.confirm")
class WriteConfirmTool(tools_base.BaseTool):
    name = "Write.confirm"

    async def run(self, req: tools_base.ToolReq, args: Any):
        result = confirm_pending(self.prj.session, prefer_write=True)
        return tools_base.ToolTextResponse(text=json.dumps(result, ensure_ascii=False))

    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": "Confirm a pending write operation and overwrite the file.",
            "parameters": {"type": "object", "properties": {}},
        }


@tools_base.ToolFactory.register("Write.cancel")
class WriteCancelTool(tools_base.BaseTool):
    name = "Write.cancel"

    async def run(self, req: tools_base.ToolReq, args: Any):
        result = cancel_pending(self.prj.session, prefer_write=True)
        return tools_base.ToolTextResponse(text=json.dumps(result, ensure_ascii=False))

    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": "Cancel a pending write operation.",
            "parameters": {"type": "object", "properties": {}},
        }
