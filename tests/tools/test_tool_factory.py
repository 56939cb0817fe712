from __future__ import annotations

import pytest

from editcore import tools as tools_mod
from editcore.settings import ToolSpec
from tests.stub_project import make_project


@tools_mod.ToolFactory.register("test_decorated_tool")
class _DecoratedTool(tools_mod.BaseTool):
    name = "test_decorated_tool"

    async def run(self, req, args):
        return None

    async def openapi_spec(self, spec: ToolSpec):
        return {}


def test_tool_factory_decorator_and_helpers(tmp_path):
    cls = tools_mod.ToolFactory.get("test_decorated_tool")
    assert cls is _DecoratedTool
    assert tools_mod.get_tool("test_decorated_tool") is _DecoratedTool
    assert "test_decorated_tool" in tools_mod.ToolFactory.all()

    project = make_project(tmp_path)
    tool = cls(project)  # type: ignore[call-arg]
    assert isinstance(tool, _DecoratedTool)
    assert tool.prompt_section(ToolSpec(name="test_decorated_tool")) == ""

    with pytest.raises(ValueError, match="already registered"):
        tools_mod.ToolFactory.register("test_decorated_tool")(_DecoratedTool)

    assert tools_mod.ToolFactory.unregister("test_decorated_tool") is True
    assert tools_mod.ToolFactory.get("test_decorated_tool") is None
    assert tools_mod.ToolFactory.unregister("test_decorated_tool") is False


def test_builtin_tools_registered():
    registered = tools_mod.ToolFactory.all()
    for name in ("Edit", "Edit.confirm", "Edit.cancel", "Write", "Write.confirm", "Write.cancel"):
        assert name in registered


def test_tool_spec_coercion():
    assert ToolSpec.model_validate("Edit") == ToolSpec(name="Edit")
    spec = ToolSpec.model_validate({"name": "Edit", "config": None})
    assert spec.config == {}
    assert spec.enabled is True
    with pytest.raises(ValueError):
        ToolSpec.model_validate({"enabled": False})
