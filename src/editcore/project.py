from pathlib import Path
from typing import Optional, Union

from .engine import EditEngine
from .logger import configure_logging
from .paths import ReadTracker, WorkspacePathPolicy
from .pending import EditSession
from .search import LineSearcher
from .settings import Settings
from .settings.loader import load_settings

DEFAULT_CONFIG_RELPATH = ".editcore/config.yaml"


class Project:
    """
    Per-workspace edit context: settings, the pending-edit session, the read
    tracker and the engine wired to them. One Project serves one agent session.
    """

    def __init__(
        self,
        base_path: Path,
        settings: Optional[Settings] = None,
        config_relpath: Optional[Path] = None,
    ):
        self.base_path: Path = base_path
        self.config_relpath: Optional[Path] = config_relpath
        self.settings: Settings = settings or Settings()

        root = Path(self.settings.workspace.root)
        if not root.is_absolute():
            root = base_path / root
        self.workspace_root: Path = root

        self.session: EditSession = EditSession()
        self.read_tracker: ReadTracker = ReadTracker()
        self.policy = WorkspacePathPolicy(
            str(root),
            allow_outside=self.settings.edit.allow_outside_workspace,
            extra_roots=[
                str(p if Path(p).is_absolute() else base_path / p)
                for p in self.settings.workspace.extra_roots
            ],
        )
        self.engine: EditEngine = EditEngine(
            str(root),
            self.settings.edit,
            self.session,
            policy=self.policy,
            searcher=LineSearcher(),
            read_tracker=self.read_tracker,
        )

    @property
    def config_path(self) -> Optional[Path]:
        if self.config_relpath is None:
            return None
        return self.base_path / self.config_relpath

    @classmethod
    def from_base_path(
        cls,
        base_path: Union[str, Path],
        *,
        search_ancestors: bool = True,
    ) -> "Project":
        return init_project(base_path, search_ancestors=search_ancestors)


def _find_project_root_with_config(start: Path, rel_config: Path) -> Optional[Path]:
    """
    Walk upwards from 'start' to filesystem root looking for rel_config (e.g., '.editcore/config.yaml').
    Returns the directory that contains rel_config if found; otherwise None.
    """
    current = start
    while True:
        candidate = current / rel_config
        if candidate.is_file():
            return current
        if current.parent == current:
            return None
        current = current.parent


def init_project(
    base_path: Union[str, Path],
    config_relpath: Union[str, Path] = DEFAULT_CONFIG_RELPATH,
    *,
    search_ancestors: bool = True,
) -> Project:
    """
    Initialize a Project by:
    1) Searching upwards for an existing .editcore/config.yaml (nearest ancestor) if search_ancestors is True.
    2) Otherwise, using the provided start directory; its config is loaded when present and defaults apply otherwise.
    """
    start_path = Path(base_path)
    start_dir = start_path if start_path.is_dir() else start_path.parent
    start_dir = start_dir.resolve()

    rel = Path(config_relpath)
    found_base = (
        _find_project_root_with_config(start_dir, rel) if search_ancestors else None
    )
    base = found_base if found_base is not None else start_dir
    config_path = base / rel

    if config_path.is_file():
        settings = load_settings(str(config_path))
    else:
        settings = Settings()

    if settings.logging is not None:
        configure_logging(settings.logging)

    return Project(base_path=base, settings=settings, config_relpath=rel)
