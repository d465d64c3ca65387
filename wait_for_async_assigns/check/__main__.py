"""
Run the missing-wait check over test files.

Usage:
    python -m wait_for_async_assigns.check
    python -m wait_for_async_assigns.check tests/web tests/test_products.py
"""

import argparse
import sys
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

from wait_for_async_assigns.check.missing_wait import (
    DEFAULT_LINT_CONFIG,
    Issue,
    LintConfig,
    find_missing_wait_issues,
)
from wait_for_async_assigns.check.source_file import SourceFile


def iter_test_files(paths: Iterable[Path], config: LintConfig) -> Iterator[Path]:
    """Yield test files: explicit files as given, directories searched recursively."""
    for path in paths:
        if path.is_dir():
            for candidate in sorted(path.rglob("*.py")):
                if SourceFile(filename=str(candidate)).matches(config.test_file_patterns):
                    yield candidate
        else:
            yield path


def check_file(
    path: Path, config: LintConfig = DEFAULT_LINT_CONFIG
) -> Tuple[List[Issue], Optional[str]]:
    """Check one file. Returns its issues and a parse error, if any."""
    try:
        source_file = SourceFile.read(path)
        tree = source_file.parse()
    except (SyntaxError, UnicodeDecodeError) as e:
        return [], f"Could not parse file: {e}"

    return find_missing_wait_issues(tree, source_file, config), None


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m wait_for_async_assigns.check",
        description="Flag live view tests that never call wait_for_async_assigns",
    )
    parser.add_argument(
        "paths",
        nargs="*",
        type=Path,
        default=[Path("tests")],
        help="Test files or directories to check (default: tests)",
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true", help="Only print issues"
    )
    args = parser.parse_args(argv)

    missing = [path for path in args.paths if not path.exists()]
    if missing:
        for path in missing:
            print(f"❌ {path} does not exist", file=sys.stderr)
        return 2

    total_files = 0
    total_issues = 0
    failed_files = 0

    for path in iter_test_files(args.paths, DEFAULT_LINT_CONFIG):
        total_files += 1
        issues, error = check_file(path)

        if error is not None:
            failed_files += 1
            print(f"{path}: {error}")
            continue

        for issue in issues:
            print(issue.format(str(path)))
        total_issues += len(issues)

    if not args.quiet:
        if total_issues or failed_files:
            print(
                f"❌ Found {total_issues} missing waits in {total_files} files"
                + (f" ({failed_files} could not be parsed)" if failed_files else "")
            )
        else:
            print(f"✅ No missing waits in {total_files} files")

    return 1 if total_issues or failed_files else 0


if __name__ == "__main__":
    sys.exit(main())
