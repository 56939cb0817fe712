from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Optional


class ToolErrorKind(str, Enum):
    # Environment or infrastructure failures; retrying the same call may work.
    RUNTIME = "runtime"
    # The request itself is wrong; the model should revise its call.
    SEMANTIC = "semantic"


class ToolError(Exception):
    """Error surfaced to the agent as a structured tool result."""

    def __init__(
        self,
        kind: ToolErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": True,
            "type": self.kind.value,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def __repr__(self) -> str:
        return f"ToolError({self.kind.value!r}, {self.message!r})"


def semantic_error(message: str, **details: Any) -> ToolError:
    return ToolError(ToolErrorKind.SEMANTIC, message, details)


def runtime_error(message: str, **details: Any) -> ToolError:
    return ToolError(ToolErrorKind.RUNTIME, message, details)


def wrap_as_runtime(exc: BaseException, context: str = "") -> ToolError:
    if isinstance(exc, ToolError):
        return exc
    message = f"{context}: {exc}" if context else str(exc)
    return runtime_error(message)


def wrap_as_semantic(exc: BaseException, context: str = "") -> ToolError:
    if isinstance(exc, ToolError):
        return exc
    message = f"{context}: {exc}" if context else str(exc)
    return semantic_error(message)


def is_backtrackable(exc: BaseException) -> bool:
    """Semantic errors are the ones a model can fix by issuing a different call."""
    return isinstance(exc, ToolError) and exc.kind is ToolErrorKind.SEMANTIC


def format_tool_error(exc: ToolError) -> str:
    if exc.details:
        return exc.to_json()
    return f"Error: {exc.message}"
