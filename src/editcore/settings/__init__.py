from .models import (  # noqa: F401
    VAR_PATTERN,
    LARGE_FILE_THRESHOLD_DEFAULT,
    PENDING_CONFIRM_RETRIES_DEFAULT,
    SEARCH_WINDOW_LINES_DEFAULT,
    LogLevel,
    EditMode,
    EditSettings,
    ToolSpec,
    LoggingSettings,
    WorkspaceSettings,
    Settings,
)
from .loader import load_settings  # noqa: F401
