from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from rich import console as rich_console

from editcore.display import ToolCallFormatterManager
from editcore.errors import ToolError, format_tool_error, semantic_error, wrap_as_runtime
from editcore.logger import logger
from editcore.pending import check_pending_block, replay_pending_state
from editcore.state import Message, ToolCallReq
from editcore.tools.base import ToolFactory, ToolReq, ToolTextResponse

if TYPE_CHECKING:
    from editcore.project import Project


class ToolRunner:
    """
    Runs tools for one agent session.

    Every call is gated on the pending-edit state replayed from the
    conversation history, so a model that ignores a pending preview is
    blocked until it confirms or cancels. When the caller does not supply a
    history the runner keeps its own, appending one tool-result message per
    call. With a console, each call and its result are printed through the
    registered tool call formatters.
    """

    def __init__(
        self, prj: "Project", console: Optional[rich_console.Console] = None
    ) -> None:
        self.prj = prj
        self.console = console
        self.formatters = ToolCallFormatterManager.instance()
        self.history: List[Message] = []

    async def call(
        self,
        name: str,
        args: Any,
        history: Optional[Sequence[Message]] = None,
    ) -> ToolTextResponse:
        own_history = history is None
        messages: Sequence[Message] = self.history if history is None else history
        arguments = args if isinstance(args, dict) else {}

        self._show(self.formatters.format_request(ToolCallReq(name=name, arguments=arguments)))
        self.prj.read_tracker.next_message()
        text = await self._call(name, args, messages)

        message = Message.tool_result(name, text, arguments)
        self._show(self.formatters.format_response(message.tool_call_responses[0], text))
        if own_history:
            self.history.append(message)
        return ToolTextResponse(text=text)

    def _show(self, renderable: Optional[rich_console.RenderableType]) -> None:
        if self.console is not None and renderable is not None:
            self.console.print(renderable)

    async def _call(self, name: str, args: Any, history: Sequence[Message]) -> str:
        tool_cls = ToolFactory.get(name)
        if tool_cls is None:
            return format_tool_error(semantic_error(f"unknown tool: {name}"))
        spec = self.prj.settings.tool_spec(name)
        if not spec.enabled:
            return format_tool_error(semantic_error(f"tool is disabled: {name}"))

        state = replay_pending_state(history)
        blocked = check_pending_block(
            name,
            state,
            self.prj.session,
            self.prj.settings.edit.pending_confirm_retries,
        )
        if blocked is not None:
            return format_tool_error(blocked)

        logger.info("tool.call", tool=name)
        tool = tool_cls(self.prj)
        try:
            resp = await tool.run(ToolReq(spec=spec, history=list(history)), args)
        except ToolError as e:
            logger.info("tool.error", tool=name, kind=e.kind.value, message=e.message)
            return format_tool_error(e)
        except OSError as e:
            err = wrap_as_runtime(e, name)
            logger.warning("tool.error", tool=name, kind=err.kind.value, message=err.message)
            return format_tool_error(err)

        if resp is None or resp.text is None:
            return ""
        return resp.text
