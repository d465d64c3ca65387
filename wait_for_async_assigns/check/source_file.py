"""Source file context handed to the lint rule."""

from __future__ import annotations

import ast
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Sequence


@dataclass(frozen=True)
class SourceFile:
    """One Python file: its name and, when read from disk, its text."""

    filename: str
    source: str = ""

    @classmethod
    def read(cls, path: Path) -> SourceFile:
        return cls(filename=str(path), source=path.read_text(encoding="utf-8"))

    @property
    def module_name(self) -> str:
        return Path(self.filename).stem

    def parse(self) -> ast.Module:
        """Parse the source; raises SyntaxError for invalid Python."""
        return ast.parse(self.source, filename=self.filename)

    def matches(self, patterns: Sequence[str]) -> bool:
        """Check the file name against glob patterns such as ``test_*.py``."""
        name = Path(self.filename).name
        return any(fnmatch(name, pattern) for pattern in patterns)
