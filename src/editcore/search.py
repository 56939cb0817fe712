from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from editcore.logger import logger

SEARCH_TIMEOUT_S = 60


@dataclass(frozen=True)
class LineSearchResult:
    # 1-based line of the first matching line; 0 when nothing matched.
    first_line: int
    # Number of matching lines.
    count: int


def first_line_of(text: str) -> str:
    idx = text.find("\n")
    return text[:idx] if idx > 0 else text


class LineSearcher:
    """
    Literal search for a single line of text inside one file.

    Uses ripgrep when available, then grep, and finally a streaming scan in
    Python. Only the first line of a multi-line pattern is searched for.
    """

    def __init__(self) -> None:
        self._command_cache: Dict[str, bool] = {}

    def _has_command(self, cmd: str) -> bool:
        if cmd not in self._command_cache:
            self._command_cache[cmd] = shutil.which(cmd) is not None
        return self._command_cache[cmd]

    def search(self, path: str, text: str) -> LineSearchResult:
        pattern = first_line_of(text)
        backends: List[tuple[str, Callable[[str, str], Optional[LineSearchResult]]]] = []
        if self._has_command("rg"):
            backends.append(("rg", self._search_with_rg))
        if self._has_command("grep"):
            backends.append(("grep", self._search_with_grep))

        for name, backend in backends:
            result = backend(pattern, path)
            if result is not None:
                logger.debug(
                    "search.lines",
                    backend=name,
                    path=path,
                    first_line=result.first_line,
                    count=result.count,
                )
                return result
        return self._search_with_python(pattern, path)

    def _run(self, cmd: List[str]) -> Optional[str]:
        proc = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=SEARCH_TIMEOUT_S,
        )
        # Exit status 1 means "no match" for both rg and grep.
        if proc.returncode == 1:
            return ""
        if proc.returncode != 0:
            logger.warning(
                "search.backend_failed",
                cmd=cmd[0],
                returncode=proc.returncode,
                stderr=proc.stderr.strip()[:200],
            )
            return None
        return proc.stdout

    @staticmethod
    def _parse(output: str) -> LineSearchResult:
        first = 0
        count = 0
        for row in output.splitlines():
            head, sep, _rest = row.partition(":")
            if not sep or not head.isdigit():
                continue
            count += 1
            if first == 0:
                first = int(head)
        return LineSearchResult(first_line=first, count=count)

    def _search_with_rg(self, pattern: str, path: str) -> Optional[LineSearchResult]:
        out = self._run(
            [
                "rg",
                "--fixed-strings",
                "--line-number",
                "--no-heading",
                "--no-filename",
                "--text",
                "--",
                pattern,
                path,
            ]
        )
        return None if out is None else self._parse(out)

    def _search_with_grep(self, pattern: str, path: str) -> Optional[LineSearchResult]:
        out = self._run(["grep", "-F", "-n", "-a", "--", pattern, path])
        return None if out is None else self._parse(out)

    @staticmethod
    def _search_with_python(pattern: str, path: str) -> LineSearchResult:
        first = 0
        count = 0
        with open(path, "r", encoding="utf-8", errors="replace", newline="\n") as f:
            for line_no, line in enumerate(f, 1):
                if pattern in line:
                    count += 1
                    if first == 0:
                        first = line_no
        return LineSearchResult(first_line=first, count=count)
