"""
Async assign states using discriminated unions.

Every key passed to ``assign_async`` holds one of these states. A key starts
out loading and moves to ok or failed exactly once per task.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union


@dataclass(frozen=True)
class AsyncLoading:
    """Task spawned, no result yet."""

    state: Literal["loading"] = "loading"


@dataclass(frozen=True)
class AsyncOk:
    """Task finished and produced a value for this key."""

    result: object
    state: Literal["ok"] = "ok"


@dataclass(frozen=True)
class AsyncFailed:
    """Task raised, was cancelled, or did not return this key."""

    reason: object
    state: Literal["failed"] = "failed"


AsyncResult = Union[AsyncLoading, AsyncOk, AsyncFailed]


def is_loading(value: object) -> bool:
    """Check if an assign value is a pending async result."""
    return isinstance(value, AsyncLoading)
