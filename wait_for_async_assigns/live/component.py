"""
Live view base class and the socket handed to its callbacks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import (
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from wait_for_async_assigns.live.async_result import AsyncLoading

logger = logging.getLogger(__name__)

Assigns = Dict[str, object]
Params = Mapping[str, str]
Session = Mapping[str, object]
AsyncFn = Callable[[], Awaitable[object]]
AsyncReply = Union[Tuple[Literal["ok"], object], Tuple[Literal["exit"], object]]


class Redirect(Exception):
    """Raised from a callback to send the client elsewhere."""

    def __init__(self, to: str) -> None:
        super().__init__(to)
        self.to = to


@dataclass(frozen=True)
class AsyncOperation:
    """An async task requested by a callback, spawned by the channel afterwards."""

    kind: Literal["assign", "start"]
    name: str
    keys: Tuple[str, ...]
    fn: AsyncFn


@dataclass
class Socket:
    """State of one live view instance as seen by its callbacks."""

    connected: bool = False
    assigns: Assigns = field(default_factory=dict)
    pending_async: List[AsyncOperation] = field(default_factory=list)
    navigate_to: Optional[str] = None

    def assign(self, **values: object) -> Socket:
        self.assigns.update(values)
        return self

    def assign_async(self, keys: Union[str, Sequence[str]], fn: AsyncFn) -> Socket:
        """
        Load one or more assigns in a background task.

        The keys are set to ``AsyncLoading`` right away. ``fn`` must return a
        mapping holding a value for every key; the channel replaces each key
        with ``AsyncOk`` or ``AsyncFailed`` once the task finishes. Nothing is
        spawned until the socket is connected.
        """
        key_tuple = (keys,) if isinstance(keys, str) else tuple(keys)
        if not key_tuple:
            raise ValueError("assign_async needs at least one key")

        for key in key_tuple:
            self.assigns[key] = AsyncLoading()

        if self.connected:
            self.pending_async.append(
                AsyncOperation(
                    kind="assign", name=",".join(key_tuple), keys=key_tuple, fn=fn
                )
            )
        return self

    def start_async(self, name: str, fn: AsyncFn) -> Socket:
        """Run ``fn`` in the background and report to ``handle_async``."""
        if self.connected:
            self.pending_async.append(
                AsyncOperation(kind="start", name=name, keys=(), fn=fn)
            )
        return self

    def push_navigate(self, to: str) -> Socket:
        """Navigate the client to ``to`` once the current callback returns."""
        self.navigate_to = to
        return self

    def take_navigation(self) -> Optional[str]:
        to, self.navigate_to = self.navigate_to, None
        return to

    def drain_async(self) -> List[AsyncOperation]:
        operations, self.pending_async = self.pending_async, []
        return operations


class LiveView:
    """
    Base class for server-rendered live views.

    Subclasses implement ``render`` and usually ``mount``; ``handle_event``
    and ``handle_async`` are optional.
    """

    async def mount(self, params: Params, session: Session, socket: Socket) -> None:
        return None

    def render(self, assigns: Assigns) -> str:
        raise NotImplementedError(f"{type(self).__name__} must implement render()")

    async def handle_event(
        self, event: str, value: Mapping[str, object], socket: Socket
    ) -> None:
        raise ValueError(f"{type(self).__name__} does not handle event {event!r}")

    async def handle_async(self, name: str, result: AsyncReply, socket: Socket) -> None:
        logger.debug(f"{type(self).__name__} ignored async result for {name}")
