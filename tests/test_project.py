from __future__ import annotations

import logging
from pathlib import Path

import pytest

from editcore.errors import ToolError
from editcore.logger import LOGGER_NAME
from editcore.project import DEFAULT_CONFIG_RELPATH, Project, init_project
from editcore.settings import Settings, WorkspaceSettings


def _write_config(base: Path, text: str) -> Path:
    path = base / DEFAULT_CONFIG_RELPATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_project_wires_engine_to_session_and_tracker(tmp_path):
    project = Project(base_path=tmp_path)
    assert project.workspace_root == tmp_path
    assert project.engine.session is project.session
    assert project.engine.read_tracker is project.read_tracker
    assert project.engine.settings is project.settings.edit
    assert project.config_path is None


def test_relative_workspace_root_and_extra_roots(tmp_path):
    settings = Settings(workspace=WorkspaceSettings(root="ws", extra_roots=["shared"]))
    (tmp_path / "ws").mkdir()
    project = Project(base_path=tmp_path, settings=settings)
    assert project.workspace_root == tmp_path / "ws"

    result = project.engine.write_file("../shared/x.txt", "x")
    assert result["action"] == "created"
    assert (tmp_path / "shared" / "x.txt").read_text() == "x"

    with pytest.raises(ToolError):
        project.engine.write_file("../elsewhere/x.txt", "x")


def test_init_project_finds_config_in_ancestor(tmp_path):
    _write_config(tmp_path, "edit:\n  preview_mode: false\n  mode: lines\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    project = init_project(nested)
    assert project.base_path == tmp_path.resolve()
    assert project.settings.edit.preview_mode is False
    assert project.settings.edit.edit_mode.value == "lines"
    assert project.config_path == tmp_path.resolve() / DEFAULT_CONFIG_RELPATH

    project = init_project(nested, search_ancestors=False)
    assert project.base_path == nested.resolve()
    assert project.settings.edit.preview_mode is True


def test_from_base_path_applies_logging_settings(tmp_path):
    _write_config(tmp_path, "logging:\n  default_level: warning\n")
    try:
        project = Project.from_base_path(tmp_path)
        assert project.settings.logging is not None
        assert logging.getLogger(LOGGER_NAME).level == logging.WARNING
    finally:
        logging.getLogger(LOGGER_NAME).setLevel(logging.NOTSET)
