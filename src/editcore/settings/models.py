from enum import Enum
import logging
import re
from typing import Any, Dict, Final, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Variable replacement pattern.
# Supports:
#   - ${NAME}
#   - ${env:NAME}
# Ignores '$${NAME}' so it can be used to escape a literal '${NAME}'.
VAR_PATTERN = re.compile(
    r"(?<!\$)\$\{([A-Za-z_][A-Za-z0-9_]*(?::[A-Za-z_][A-Za-z0-9_]*)?)\}"
)

# Files above this size are edited through line windows instead of being
# loaded into memory.
LARGE_FILE_THRESHOLD_DEFAULT: Final[int] = 1024 * 1024

# Number of ignored responses after which a pending edit is dropped.
PENDING_CONFIRM_RETRIES_DEFAULT: Final[int] = 5

# Default size of the search window used when a line hint is given.
SEARCH_WINDOW_LINES_DEFAULT: Final[int] = 100


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"

    def to_logging(self) -> int:
        return logging.getLevelName(self.value.upper())


class EditMode(str, Enum):
    lines = "lines"
    searchreplace = "searchreplace"
    patch = "patch"


class EditSettings(BaseModel):
    # Which request shape the Edit tool advertises to the model.
    edit_mode: EditMode = EditMode.searchreplace
    # When enabled, edits are staged and require Edit.confirm before writing.
    preview_mode: bool = True
    # Similarity threshold for the fuzzy stage of the locator; 0 disables it.
    fuzzy_threshold: float = 0.0
    # A file must have been read within this many messages before it can be
    # edited. 0 disables the check.
    read_before_edit_msgs: int = 0
    pending_confirm_retries: int = PENDING_CONFIRM_RETRIES_DEFAULT
    large_file_threshold: int = LARGE_FILE_THRESHOLD_DEFAULT
    search_window_lines: int = SEARCH_WINDOW_LINES_DEFAULT
    # Permit writes that resolve outside the workspace root.
    allow_outside_workspace: bool = False

    @field_validator("fuzzy_threshold")
    @classmethod
    def _validate_threshold(cls, v: float) -> float:
        if v < 0.0 or v > 1.0:
            raise ValueError("fuzzy_threshold must be between 0.0 and 1.0")
        return v

    @field_validator("pending_confirm_retries")
    @classmethod
    def _validate_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("pending_confirm_retries must be at least 1")
        return v

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> Any:
        # Accept the short "mode" alias used in hand-written configs.
        if isinstance(v, dict) and "mode" in v and "edit_mode" not in v:
            v = dict(v)
            v["edit_mode"] = v.pop("mode")
        return v


class ToolSpec(BaseModel):
    """
    Per-tool settings. Tool-specific options live in `config`; a bare string
    is accepted as shorthand for a tool name.
    """

    name: str
    enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"name": v}
        if isinstance(v, dict):
            name = v.get("name")
            if not isinstance(name, str) or not name:
                raise ValueError("Tool spec must include non-empty 'name'")
            return {
                "name": name,
                "enabled": v.get("enabled", True),
                "config": v.get("config", {}) or {},
            }
        return v


class LoggingSettings(BaseModel):
    # Default level for the editcore logger if not overridden.
    default_level: LogLevel = LogLevel.info
    # Mapping of logger name -> level override (e.g., {"asyncio": "debug"})
    enabled_loggers: Dict[str, LogLevel] = Field(default_factory=dict)
    # Optional file that receives log output.
    log_file: Optional[str] = None


class WorkspaceSettings(BaseModel):
    root: str = "."
    # Extra directories that writes may target even though they are outside root.
    extra_roots: List[str] = Field(default_factory=list)


class Settings(BaseModel):
    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)
    edit: EditSettings = Field(default_factory=EditSettings)
    tools: List[ToolSpec] = Field(default_factory=list)
    logging: Optional[LoggingSettings] = Field(default=None)

    def tool_spec(self, name: str) -> ToolSpec:
        for spec in self.tools:
            if spec.name == name:
                return spec
        return ToolSpec(name=name)
