import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    DEVELOPER = "developer"
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ToolCallStatus(str, Enum):
    CREATED = "created"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


class ToolCallReq(BaseModel):
    """
    A single tool call request.
    """

    id: Optional[str] = Field(
        default=None,
        description="Provider-issued id for this tool call (e.g., 'call_...')",
    )
    name: str = Field(..., description="Function name to call")
    arguments: Dict[str, Any] = Field(
        default_factory=dict, description="Decoded JSON arguments passed to the function"
    )


class ToolCallResp(BaseModel):
    """
    A single tool call response.
    """

    id: Optional[str] = Field(
        default=None,
        description="Provider-issued id for this tool call (e.g., 'call_...')",
    )
    status: ToolCallStatus = Field(
        default=ToolCallStatus.CREATED, description="Tool call status"
    )
    name: str = Field(..., description="Function name that was called")
    result: Optional[Union[Dict[str, Any], List[Dict[str, Any]]]] = Field(
        default=None,
        description="Decoded JSON result of the function call; None until completed",
    )
    created_at: datetime = Field(default_factory=utcnow)


class Message(BaseModel):
    """
    A single message of the conversation history, produced by a human, the
    model or a tool. Tool results carry the raw output in `text` and the
    tool name in `tool_call_responses`.
    """

    id: UUID = Field(
        default_factory=uuid4, description="Unique identifier for this message"
    )
    role: Role = Field(..., description="Sender role")
    text: str = Field(default="", description="Original message as received/emitted")

    tool_call_requests: List[ToolCallReq] = Field(
        default_factory=list,
        description="Tool call requests",
    )
    tool_call_responses: List[ToolCallResp] = Field(
        default_factory=list,
        description="Tool call responses",
    )
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def tool_result(
        cls,
        tool_name: str,
        text: str,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> "Message":
        """Tool result message; a JSON object in `text` is kept decoded as the result."""
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        requests = []
        if arguments is not None:
            requests.append(ToolCallReq(name=tool_name, arguments=arguments))
        return cls(
            role=Role.TOOL,
            text=text,
            tool_call_requests=requests,
            tool_call_responses=[
                ToolCallResp(
                    name=tool_name,
                    status=ToolCallStatus.COMPLETED,
                    result=parsed if isinstance(parsed, dict) else None,
                )
            ],
        )

    @property
    def tool_name(self) -> Optional[str]:
        if self.tool_call_responses:
            return self.tool_call_responses[0].name
        return None
