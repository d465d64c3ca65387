"""
Tests for completion watches and the mailbox.

Signals must be matched by ref, so a task finishing early never hides the
signal of a task registered before it.
"""

import asyncio

import pytest

from wait_for_async_assigns.watch import (
    CompletionWatch,
    Down,
    Mailbox,
    await_down,
    exit_reason,
    monitor,
)


async def _sleep_then_return(delay: float) -> None:
    await asyncio.sleep(delay)


async def _fail() -> None:
    raise RuntimeError("query failed")


@pytest.mark.unit
class TestMonitor:
    """Test that each watch delivers exactly one Down signal."""

    @pytest.mark.asyncio
    async def test_normal_exit(self) -> None:
        mailbox = Mailbox()
        task = asyncio.create_task(_sleep_then_return(0.01))
        watch = monitor(task, mailbox)

        down = await mailbox.receive(watch.ref, timeout=1.0)

        assert isinstance(down, Down)
        assert down.ref == watch.ref
        assert down.task is task
        assert down.reason == "normal"
        assert mailbox.messages == []

    @pytest.mark.asyncio
    async def test_failed_task_reports_its_exception(self) -> None:
        mailbox = Mailbox()
        task = asyncio.create_task(_fail())
        watch = monitor(task, mailbox)

        down = await mailbox.receive(watch.ref, timeout=1.0)

        assert down is not None
        assert isinstance(down.reason, RuntimeError)
        assert str(down.reason) == "query failed"

    @pytest.mark.asyncio
    async def test_cancelled_task(self) -> None:
        mailbox = Mailbox()
        task = asyncio.create_task(_sleep_then_return(10))
        watch = monitor(task, mailbox)
        task.cancel()

        down = await mailbox.receive(watch.ref, timeout=1.0)

        assert down is not None
        assert down.reason == "cancelled"

    @pytest.mark.asyncio
    async def test_already_finished_task_still_signals(self) -> None:
        mailbox = Mailbox()
        task = asyncio.create_task(_sleep_then_return(0))
        await task

        watch = monitor(task, mailbox)
        down = await mailbox.receive(watch.ref, timeout=1.0)

        assert down is not None
        assert exit_reason(task) == "normal"

    @pytest.mark.asyncio
    async def test_refs_are_unique(self) -> None:
        mailbox = Mailbox()
        task = asyncio.create_task(_sleep_then_return(0))
        first = monitor(task, mailbox)
        second = monitor(task, mailbox)
        await task

        assert first.ref != second.ref
        assert await mailbox.receive(second.ref, timeout=1.0) is not None
        assert await mailbox.receive(first.ref, timeout=1.0) is not None


@pytest.mark.unit
class TestMailboxReceive:
    """Test selective receive by ref."""

    @pytest.mark.asyncio
    async def test_out_of_order_signals_are_kept(self) -> None:
        mailbox = Mailbox()
        slow = monitor(asyncio.create_task(_sleep_then_return(0.05)), mailbox)
        fast = monitor(asyncio.create_task(_sleep_then_return(0.0)), mailbox)

        slow_down = await mailbox.receive(slow.ref, timeout=1.0)

        assert slow_down is not None
        # The fast task's signal arrived first and is still waiting.
        assert [message.ref for message in mailbox.messages] == [fast.ref]
        assert await mailbox.receive(fast.ref, timeout=0.01) is not None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self) -> None:
        mailbox = Mailbox()
        task = asyncio.create_task(_sleep_then_return(10))
        watch = monitor(task, mailbox)

        loop = asyncio.get_running_loop()
        started = loop.time()
        down = await mailbox.receive(watch.ref, timeout=0.05)
        elapsed = loop.time() - started

        assert down is None
        assert elapsed >= 0.04
        assert not task.done()

        task.cancel()

    @pytest.mark.asyncio
    async def test_ignores_signals_for_other_refs(self) -> None:
        mailbox = Mailbox()
        other = monitor(asyncio.create_task(_sleep_then_return(0)), mailbox)
        watched = asyncio.create_task(_sleep_then_return(10))
        watch = monitor(watched, mailbox)

        assert await mailbox.receive(watch.ref, timeout=0.05) is None
        assert [message.ref for message in mailbox.messages] == [other.ref]

        watched.cancel()


@pytest.mark.unit
class TestAwaitDown:
    """Test waiting for a set of watches with a per-watch deadline."""

    @pytest.mark.asyncio
    async def test_empty_set_returns_immediately(self) -> None:
        assert await await_down([], Mailbox(), timeout=10) == []

    @pytest.mark.asyncio
    async def test_all_signals_arrive(self) -> None:
        mailbox = Mailbox()
        tasks = [
            asyncio.create_task(_sleep_then_return(delay)) for delay in (0.03, 0.0, 0.01)
        ]
        watches = [monitor(task, mailbox) for task in tasks]

        pending = await await_down(watches, mailbox, timeout=1.0)

        assert pending == []
        assert all(task.done() for task in tasks)

    @pytest.mark.asyncio
    async def test_deadline_applies_to_each_watch(self) -> None:
        """Total wait may exceed the deadline as long as no single wait does."""
        mailbox = Mailbox()
        tasks = [asyncio.create_task(_sleep_then_return(d)) for d in (0.1, 0.25)]
        watches = [monitor(task, mailbox) for task in tasks]

        loop = asyncio.get_running_loop()
        started = loop.time()
        pending = await await_down(watches, mailbox, timeout=0.2)

        assert pending == []
        assert loop.time() - started >= 0.2

    @pytest.mark.asyncio
    async def test_first_timeout_abandons_the_rest(self) -> None:
        mailbox = Mailbox()
        stuck = asyncio.create_task(_sleep_then_return(10))
        done = asyncio.create_task(_sleep_then_return(0))
        watches = [monitor(stuck, mailbox), monitor(done, mailbox)]

        pending = await await_down(watches, mailbox, timeout=0.05)

        assert pending == watches
        assert all(isinstance(watch, CompletionWatch) for watch in pending)

        stuck.cancel()
