from __future__ import annotations

import json
import typing
from abc import ABC, abstractmethod
from typing import ClassVar

from rich import console as rich_console
from rich import syntax as rich_syntax
from rich import text as rich_text

from editcore.state import ToolCallReq, ToolCallResp

TOOL_NAME_STYLE = "bold"
META_STYLE = "dim"
PENDING_STYLE = "yellow"
ERROR_STYLE = "red"


def _try_parse_json(value: str) -> typing.Any:
    stripped = value.strip()
    if not stripped or stripped[0] not in ("{", "["):
        return value
    try:
        return json.loads(stripped)
    except ValueError:
        return value


def _header(tool_name: str, status: str = "", style: str = META_STYLE) -> rich_text.Text:
    header = rich_text.Text(no_wrap=True)
    header.append("● ", style=META_STYLE)
    header.append(tool_name, style=TOOL_NAME_STYLE)
    if status:
        header.append(" => ", style=META_STYLE)
        header.append(status, style=style)
    return header


def format_edit_input(tool_name: str, arguments: typing.Any) -> rich_console.RenderableType:
    """Render an Edit/Write call: patches as diffs, search/replace as a pair."""
    header = _header(tool_name)
    if not isinstance(arguments, dict):
        return rich_console.Group(header, rich_text.Text(str(arguments)))

    if arguments.get("patch"):
        return rich_console.Group(header, rich_syntax.Syntax(str(arguments["patch"]), "diff"))

    parts: typing.List[rich_console.RenderableType] = [header]
    path = arguments.get("path")
    if path:
        parts.append(rich_text.Text(str(path), style=META_STYLE))
    if arguments.get("search") is not None:
        parts.append(rich_text.Text(str(arguments["search"]), style="red"))
        parts.append(rich_text.Text(str(arguments.get("replace", "")), style="green"))
    elif arguments.get("new_text") is not None or arguments.get("text") is not None:
        body = arguments.get("new_text")
        if body is None:
            body = arguments.get("text")
        parts.append(rich_text.Text(str(body)))
    return rich_console.Group(*parts)


def format_edit_output(tool_name: str, result: typing.Any) -> rich_console.RenderableType:
    """
    Render a tool result payload. Previews and applied edits show their
    diff and after_edit excerpt; failures show the message in red.
    """
    if isinstance(result, str):
        result = _try_parse_json(result)
    if not isinstance(result, dict):
        return rich_console.Group(_header(tool_name), rich_text.Text(str(result)))

    if result.get("error") is True or (
        result.get("success") is False and isinstance(result.get("error"), str)
    ):
        message = str(result.get("message") or result.get("error"))
        body = rich_text.Text(message)
        body.stylize(ERROR_STYLE)
        return rich_console.Group(_header(tool_name, "failed", ERROR_STYLE), body)

    if result.get("status") == "pending_confirmation":
        header = _header(tool_name, "pending confirmation", PENDING_STYLE)
    else:
        header = _header(tool_name, str(result.get("message") or "ok"))

    parts: typing.List[rich_console.RenderableType] = [header]
    if result.get("path"):
        parts.append(rich_text.Text(str(result["path"]), style=META_STYLE))
    diff = result.get("diff")
    if isinstance(diff, str) and diff:
        parts.append(rich_syntax.Syntax(diff, "diff"))
    after = result.get("after_edit")
    if isinstance(after, str) and after:
        parts.append(rich_text.Text(after))
    for key in ("note", "warning"):
        if result.get(key):
            parts.append(rich_text.Text(str(result[key]), style=PENDING_STYLE))
    return rich_console.Group(*parts)


class BaseToolCallFormatter(ABC):
    @abstractmethod
    def format_input(
        self, tool_name: str, arguments: typing.Any
    ) -> rich_console.RenderableType | None:
        raise NotImplementedError

    @abstractmethod
    def format_output(
        self, tool_name: str, result: typing.Any
    ) -> rich_console.RenderableType | None:
        raise NotImplementedError


class ToolCallFormatterManager:
    """
    Formatter lookup by tool name. Tools without a registered formatter use
    the "generic" one.
    """

    _registry: ClassVar[dict[str, type[BaseToolCallFormatter]]] = {}
    _instance: ClassVar["ToolCallFormatterManager" | None] = None

    def __init__(self) -> None:
        self._instances: dict[str, BaseToolCallFormatter] = {}

    @classmethod
    def instance(cls) -> "ToolCallFormatterManager":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def register(
        cls,
        name: str,
        formatter_cls: type[BaseToolCallFormatter] | None = None,
    ):
        def _do_register(
            inner: type[BaseToolCallFormatter],
        ) -> type[BaseToolCallFormatter]:
            if name in cls._registry:
                raise ValueError(f"Tool call formatter '{name}' already registered.")
            cls._registry[name] = inner
            return inner

        if formatter_cls is None:
            return _do_register
        return _do_register(formatter_cls)

    def _get_instance(self, name: str) -> BaseToolCallFormatter | None:
        cached = self._instances.get(name)
        if cached is not None:
            return cached
        formatter_type = self._registry.get(name)
        if formatter_type is None:
            return None
        inst = formatter_type()
        self._instances[name] = inst
        return inst

    def resolve(self, tool_name: str) -> BaseToolCallFormatter | None:
        formatter = self._get_instance(tool_name)
        if formatter is not None:
            return formatter
        return self._get_instance("generic")

    def format_request(self, req: ToolCallReq) -> rich_console.RenderableType | None:
        formatter = self.resolve(req.name)
        if formatter is None:
            return None
        return formatter.format_input(req.name, req.arguments)

    def format_response(
        self, resp: ToolCallResp, text: str = ""
    ) -> rich_console.RenderableType | None:
        """Format a tool result; `text` stands in when the result is not a JSON object."""
        formatter = self.resolve(resp.name)
        if formatter is None:
            return None
        result = resp.result if resp.result is not None else text
        return formatter.format_output(resp.name, result)


@ToolCallFormatterManager.register("generic")
class GenericToolCallFormatter(BaseToolCallFormatter):
    def format_input(
        self, tool_name: str, arguments: typing.Any
    ) -> rich_console.RenderableType | None:
        if isinstance(arguments, (dict, list)):
            body = json.dumps(arguments, ensure_ascii=False)
        else:
            body = str(arguments)
        return rich_console.Group(_header(tool_name), rich_text.Text(body, style=META_STYLE))

    def format_output(
        self, tool_name: str, result: typing.Any
    ) -> rich_console.RenderableType | None:
        if isinstance(result, (dict, list)):
            body = json.dumps(result, ensure_ascii=False)
        else:
            body = str(result)
        return rich_console.Group(_header(tool_name, "done"), rich_text.Text(body))


class EditToolCallFormatter(BaseToolCallFormatter):
    def format_input(
        self, tool_name: str, arguments: typing.Any
    ) -> rich_console.RenderableType | None:
        return format_edit_input(tool_name, arguments)

    def format_output(
        self, tool_name: str, result: typing.Any
    ) -> rich_console.RenderableType | None:
        return format_edit_output(tool_name, result)


for _name in ("Edit", "Edit.confirm", "Edit.cancel", "Write", "Write.confirm", "Write.cancel"):
    ToolCallFormatterManager.register(_name, EditToolCallFormatter)
