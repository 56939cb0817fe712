from pathlib import Path
from typing import Dict, List, Tuple

from editcore.project import Project
from editcore.search import LineSearchResult
from editcore.settings import EditSettings, Settings


def make_project(root: Path, **edit_overrides) -> Project:
    settings = Settings(edit=EditSettings(**edit_overrides))
    return Project(base_path=root, settings=settings)


class StubSearcher:
    """LineSearcher stand-in that scans the file in Python and records calls."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str]] = []

    def search(self, path: str, text: str) -> LineSearchResult:
        self.calls.append((path, text))
        pattern = text.split("\n", 1)[0]
        first = 0
        count = 0
        with open(path, "r", encoding="utf-8", newline="\n") as f:
            for line_no, line in enumerate(f, 1):
                if pattern in line:
                    count += 1
                    if first == 0:
                        first = line_no
        return LineSearchResult(first_line=first, count=count)


class FixedSearcher:
    """Returns canned results keyed by the searched line."""

    def __init__(self, results: Dict[str, LineSearchResult]) -> None:
        self.results = results

    def search(self, path: str, text: str) -> LineSearchResult:
        return self.results.get(text.split("\n", 1)[0], LineSearchResult(0, 0))
