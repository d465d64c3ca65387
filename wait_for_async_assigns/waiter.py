"""
Wait for a live view's background tasks before a test exits.

When a test triggers ``assign_async`` or ``start_async`` work, the event that
started it returns immediately while the task keeps running. If the test then
finishes, fixture teardown (closing database sessions, disposing engines)
races the still-running task and fails with errors unrelated to the test:

    sqlalchemy.exc.InterfaceError: connection is closed

Calling ``wait_for_async_assigns(view)`` at the end of the test watches every
task the view owns at that moment and waits for each to finish.

    async def test_loads_products(conn: Conn) -> None:
        match await live(conn, "/products"):
            case ("ok", view, _html):
                pass
        html = await render_async(view)
        assert "Products" in html

        await wait_for_async_assigns(view)
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol

from wait_for_async_assigns.config import WaitConfig
from wait_for_async_assigns.live.channel import CallOk, CallResult, TargetUnavailable
from wait_for_async_assigns.watch import Mailbox, Worker, await_down, monitor


class AsyncTaskOwner(Protocol):
    """Anything that can report the background tasks it currently owns."""

    async def async_tasks(self) -> CallResult[List[Worker]]:
        ...


class WaitTarget(Protocol):
    """A view handle as returned by ``live()``."""

    @property
    def channel(self) -> AsyncTaskOwner:
        ...

    @property
    def config(self) -> WaitConfig:
        ...


async def wait_for_async_assigns(
    view: WaitTarget, timeout: Optional[int] = None
) -> None:
    """
    Wait for all of the view's async operations to finish.

    Args:
        view: The view handle returned by ``live()``
        timeout: Milliseconds to wait for each task. Defaults to the view's
            ``WaitConfig.assert_receive_timeout``, the same value
            ``render_async`` uses.

    The set of tasks is a snapshot taken when the call starts; tasks spawned
    afterwards are not waited on. A task still running at the deadline ends
    the wait without an error, as does a view that has already stopped or
    is too busy to answer the snapshot query within the timeout.
    """
    timeout_ms = view.config.assert_receive_timeout if timeout is None else timeout

    result: CallResult[List[Worker]]
    try:
        result = await asyncio.wait_for(view.channel.async_tasks(), timeout_ms / 1000)
    except asyncio.TimeoutError:
        result = TargetUnavailable(reason=f"no reply within {timeout_ms}ms")

    match result:
        case TargetUnavailable():
            return None
        case CallOk(value=tasks):
            mailbox = Mailbox()
            watches = [monitor(task, mailbox) for task in tasks]
            await await_down(watches, mailbox, timeout_ms / 1000)
    return None


# Older name, kept so existing suites keep working.
wait_for_async_tasks = wait_for_async_assigns
