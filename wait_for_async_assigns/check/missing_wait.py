"""
Lint rule: live view tests must call ``wait_for_async_assigns``.

A test that opens a live view successfully may leave ``assign_async`` or
``start_async`` tasks running when it returns, and fixture teardown then
races those tasks. This rule flags such tests.

What it checks, in test modules (``test_*.py``, ``*_test.py``):

1. A test function matches a successful ``live()`` result, i.e. a ``match``
   on ``live(conn, ...)``, or on a name assigned from it earlier in the same
   test, with a ``case ("ok", view, ...)`` or ``case ("ok", view)`` pattern.
2. The same test never calls ``wait_for_async_assigns(view)`` (or the older
   ``wait_for_async_tasks(view)``).

Tests that expect ``live()`` to fail are not flagged:

    match await live(conn, "/admin"):
        case ("error", {"redirect": redirect}):
            assert redirect["to"] == "/login"

Test functions are found at module level and one level down inside test
classes (``class TestProducts:`` or ``unittest.TestCase`` subclasses).

The rule runs as a flake8 plugin (code ``WFA001``) or through
``python -m wait_for_async_assigns.check``.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field
from typing import FrozenSet, Iterator, List, Set, Tuple, Type, Union

from wait_for_async_assigns.check.source_file import SourceFile

CODE = "WFA001"
MESSAGE = (
    "Live view test matching a successful `live()` result should call "
    "`wait_for_async_assigns(view)` to prevent connection errors."
)

TestFunction = Union[ast.FunctionDef, ast.AsyncFunctionDef]


@dataclass(frozen=True)
class LintConfig:
    """Names and patterns the rule recognises."""

    test_file_patterns: Tuple[str, ...] = ("test_*.py", "*_test.py")
    test_function_prefix: str = "test"
    test_class_prefix: str = "Test"
    success_tag: str = "ok"
    open_calls: FrozenSet[str] = field(default_factory=lambda: frozenset({"live"}))
    wait_calls: FrozenSet[str] = field(
        default_factory=lambda: frozenset(
            {"wait_for_async_assigns", "wait_for_async_tasks"}
        )
    )


DEFAULT_LINT_CONFIG = LintConfig()


@dataclass(frozen=True)
class Issue:
    """One finding, anchored at the offending test's ``def`` line."""

    message: str
    line: int
    column: int = 0
    code: str = CODE
    priority: str = "high"
    category: str = "warning"

    def format(self, filename: str) -> str:
        return f"{filename}:{self.line}:{self.column + 1}: {self.code} {self.message}"


def _call_name(func: ast.expr) -> str:
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return ""


class WaitUsageScanner(ast.NodeVisitor):
    """Walks one test function and records the two facts the rule needs."""

    def __init__(self, config: LintConfig) -> None:
        self.config = config
        self.has_success_open = False
        self.has_wait_call = False
        self.open_results: Set[str] = set()

    def visit_Assign(self, node: ast.Assign) -> None:
        """Remember names bound to a ``live(...)`` result."""
        if self._is_open_call(node.value):
            self.open_results.update(
                target.id for target in node.targets if isinstance(target, ast.Name)
            )
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        if (
            node.value is not None
            and self._is_open_call(node.value)
            and isinstance(node.target, ast.Name)
        ):
            self.open_results.add(node.target.id)
        self.generic_visit(node)

    def visit_Match(self, node: ast.Match) -> None:
        """A ``match`` on ``live(...)`` or its result with an ``("ok", view, ...)`` case."""
        if self._is_open_subject(node.subject) and any(
            self._is_success_pattern(case.pattern) for case in node.cases
        ):
            self.has_success_open = True
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        """A wait call with at least one argument."""
        if _call_name(node.func) in self.config.wait_calls and (
            node.args or node.keywords
        ):
            self.has_wait_call = True
        self.generic_visit(node)

    def _is_open_subject(self, node: ast.expr) -> bool:
        if isinstance(node, ast.Name):
            return node.id in self.open_results
        return self._is_open_call(node)

    def _is_open_call(self, node: ast.expr) -> bool:
        if isinstance(node, ast.Await):
            node = node.value
        return (
            isinstance(node, ast.Call)
            and _call_name(node.func) in self.config.open_calls
            and bool(node.args or node.keywords)
        )

    def _is_success_pattern(self, pattern: ast.pattern) -> bool:
        if isinstance(pattern, ast.MatchAs) and pattern.pattern is not None:
            return self._is_success_pattern(pattern.pattern)
        if isinstance(pattern, ast.MatchOr):
            return any(self._is_success_pattern(p) for p in pattern.patterns)
        if not isinstance(pattern, ast.MatchSequence) or len(pattern.patterns) < 2:
            return False

        first = pattern.patterns[0]
        return (
            isinstance(first, ast.MatchValue)
            and isinstance(first.value, ast.Constant)
            and first.value.value == self.config.success_tag
        )


def _is_test_function(node: ast.stmt, config: LintConfig) -> bool:
    return isinstance(
        node, (ast.FunctionDef, ast.AsyncFunctionDef)
    ) and node.name.startswith(config.test_function_prefix)


def _is_test_class(node: ast.ClassDef, config: LintConfig) -> bool:
    if node.name.startswith(config.test_class_prefix):
        return True
    return any(_call_name(base).endswith("TestCase") for base in node.bases)


def extract_tests(body: List[ast.stmt], config: LintConfig) -> List[TestFunction]:
    """Test functions in source order, flattening test classes one level."""
    tests: List[TestFunction] = []
    for node in body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if _is_test_function(node, config):
                tests.append(node)
        elif isinstance(node, ast.ClassDef) and _is_test_class(node, config):
            tests.extend(
                child
                for child in node.body
                if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef))
                and _is_test_function(child, config)
            )
    return tests


def check_test(test: TestFunction, config: LintConfig) -> List[Issue]:
    scanner = WaitUsageScanner(config)
    scanner.visit(test)

    if scanner.has_success_open and not scanner.has_wait_call:
        return [Issue(message=MESSAGE, line=test.lineno, column=test.col_offset)]
    return []


def find_missing_wait_issues(
    tree: ast.AST, source_file: SourceFile, config: LintConfig = DEFAULT_LINT_CONFIG
) -> List[Issue]:
    """
    Find tests that open a live view successfully without waiting afterwards.

    Files whose name does not match the test patterns yield no issues.
    """
    if not isinstance(tree, ast.Module):
        return []
    if not source_file.matches(config.test_file_patterns):
        return []

    return [
        issue
        for test in extract_tests(tree.body, config)
        for issue in check_test(test, config)
    ]


class MissingWaitChecker:
    """flake8 plugin entry point for ``WFA001``."""

    name = "wait-for-async-assigns"
    version = "0.1.0"

    def __init__(self, tree: ast.AST, filename: str = "stdin") -> None:
        self.tree = tree
        self.filename = filename

    def run(self) -> Iterator[Tuple[int, int, str, Type[MissingWaitChecker]]]:
        source_file = SourceFile(filename=self.filename)
        for issue in find_missing_wait_issues(self.tree, source_file):
            yield issue.line, issue.column, f"{issue.code} {issue.message}", type(self)
