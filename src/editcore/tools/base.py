from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Type, TYPE_CHECKING
from enum import Enum
from pydantic import BaseModel, Field
from editcore.state import Message
from editcore.settings import ToolSpec

if TYPE_CHECKING:
    from editcore.project import Project


# Models
class ToolResponseType(str, Enum):
    text = "text"


class ToolTextResponse(BaseModel):
    type: ToolResponseType = Field(default=ToolResponseType.text)
    text: Optional[str] = None


class ToolReq(BaseModel):
    """A single tool invocation: the effective spec and the conversation so far."""

    spec: ToolSpec
    history: List[Message] = Field(default_factory=list)


class ToolFactory:
    """Registry of tool name -> tool class."""

    _registry: Dict[str, Type["BaseTool"]] = {}

    @classmethod
    def register(cls, name: str) -> Callable[[Type["BaseTool"]], Type["BaseTool"]]:
        def decorator(tool_cls: Type["BaseTool"]) -> Type["BaseTool"]:
            if name in cls._registry:
                raise ValueError(f"Tool with name '{name}' already registered.")
            cls._registry[name] = tool_cls
            return tool_cls

        return decorator

    @classmethod
    def unregister(cls, name: str) -> bool:
        """Unregister a tool by name. Returns True if removed, False if not present."""
        return cls._registry.pop(name, None) is not None

    @classmethod
    def get(cls, name: str) -> Optional[Type["BaseTool"]]:
        return cls._registry.get(name)

    @classmethod
    def all(cls) -> Dict[str, Type["BaseTool"]]:
        """Returns a copy of the tool registry."""
        return dict(cls._registry)


def get_tool(name: str) -> Optional[Type["BaseTool"]]:
    """Gets a tool class by name."""
    return ToolFactory.get(name)


class BaseTool(ABC):
    # Subclasses must set this to a unique string
    name: str

    def __init__(self, prj: "Project") -> None:
        self.prj = prj

    @abstractmethod
    async def run(self, req: ToolReq, args: Any) -> Optional[ToolTextResponse]:
        """
        Execute this tool within the context of the given Project.
        Args:
            req: ToolReq with the effective ToolSpec and the conversation history.
            args: Parsed arguments structure (e.g., dict). Not a JSON string.
        Returns:
            ToolTextResponse whose text is the JSON result for the model.
        """
        pass

    @abstractmethod
    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        """
        Return this tool's definition in OpenAI 'function' tool format,
        using JSON Schema for parameters.
        """
        pass

    def prompt_section(self, spec: ToolSpec) -> str:
        """Usage notes appended to the system prompt; empty when the tool has none."""
        return ""
