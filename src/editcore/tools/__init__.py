# Re-export the base tool interfaces and registry
from .base import (  # noqa: F401
    BaseTool,
    ToolFactory,
    ToolReq,
    ToolResponseType,
    ToolTextResponse,
    get_tool,
)

# Import built-in tools so they register with ToolFactory
from . import edit_tool, write_tool  # noqa: F401
from .runner import ToolRunner  # noqa: F401
