"""Static checks for test suites that use live views."""

from wait_for_async_assigns.check.missing_wait import (
    CODE,
    DEFAULT_LINT_CONFIG,
    Issue,
    LintConfig,
    MissingWaitChecker,
    find_missing_wait_issues,
)
from wait_for_async_assigns.check.source_file import SourceFile

__all__ = [
    "CODE",
    "DEFAULT_LINT_CONFIG",
    "Issue",
    "LintConfig",
    "MissingWaitChecker",
    "SourceFile",
    "find_missing_wait_issues",
]
