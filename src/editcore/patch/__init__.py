from .models import (  # noqa: F401
    ActionType,
    Chunk,
    FilePatch,
    ChunkApplyResult,
    PatchParseError,
    PatchApplyError,
)
from .v4a import PATCH_SYSTEM_INSTRUCTION, parse_patch, parse_scope, render_chunk  # noqa: F401
from .apply import (  # noqa: F401
    match_context_lines,
    find_scope_marker,
    find_chunk_position,
    apply_chunk_to_lines,
    apply_chunks,
    build_added_file,
)
