"""
Completion watches for background asyncio tasks.

A watch is a one-shot subscription: when the watched task finishes, for
whatever reason, a single ``Down`` signal carrying the watch's ref is posted
to a ``Mailbox``. Receivers pick their own signal out of the mailbox by ref,
so signals may arrive in any order.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence, Union

Worker = asyncio.Task[None]
ExitReason = Union[Literal["normal", "cancelled"], BaseException]


@dataclass(frozen=True)
class Down:
    """Termination signal for one watched task."""

    ref: str
    task: Worker
    reason: ExitReason


@dataclass(frozen=True)
class CompletionWatch:
    """Watch token returned by ``monitor``."""

    ref: str
    task: Worker


@dataclass
class Mailbox:
    """Holds ``Down`` signals until a receiver asks for them by ref."""

    messages: List[Down] = field(default_factory=list)
    _arrived: asyncio.Event = field(default_factory=asyncio.Event)

    def post(self, message: Down) -> None:
        self.messages.append(message)
        self._arrived.set()

    def _take(self, ref: str) -> Optional[Down]:
        for index, message in enumerate(self.messages):
            if message.ref == ref:
                return self.messages.pop(index)
        return None

    async def receive(self, ref: str, timeout: float) -> Optional[Down]:
        """
        Wait up to ``timeout`` seconds for the signal matching ``ref``.

        Signals for other refs stay queued. Returns None when the timeout
        elapses first.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            message = self._take(ref)
            if message is not None:
                return message

            remaining = deadline - loop.time()
            if remaining <= 0:
                return None

            self._arrived.clear()
            try:
                await asyncio.wait_for(self._arrived.wait(), remaining)
            except asyncio.TimeoutError:
                return self._take(ref)


def exit_reason(task: Worker) -> ExitReason:
    """Describe how a finished task ended."""
    if task.cancelled():
        return "cancelled"
    error = task.exception()
    return error if error is not None else "normal"


def monitor(task: Worker, mailbox: Mailbox) -> CompletionWatch:
    """
    Watch ``task`` and post a ``Down`` to ``mailbox`` when it finishes.

    A task that is already done still delivers its signal, on the next loop
    iteration.
    """
    ref = uuid.uuid4().hex

    def _on_done(done: Worker) -> None:
        mailbox.post(Down(ref=ref, task=done, reason=exit_reason(done)))

    task.add_done_callback(_on_done)
    return CompletionWatch(ref=ref, task=task)


async def await_down(
    watches: Sequence[CompletionWatch], mailbox: Mailbox, timeout: float
) -> List[CompletionWatch]:
    """
    Wait for each watch's signal in registration order.

    ``timeout`` bounds each individual wait, not the whole call. On the first
    wait that times out the rest are abandoned. Returns the watches that were
    still pending, empty when every signal arrived.
    """
    for index, watch in enumerate(watches):
        if await mailbox.receive(watch.ref, timeout) is None:
            return list(watches[index:])
    return []
