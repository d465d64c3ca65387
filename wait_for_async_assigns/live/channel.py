"""
Channel that owns one connected live view instance.

The channel runs the view in its own asyncio task and serialises everything
that touches it (client events, renders, async results, introspection)
through a single inbox. Background tasks spawned by ``assign_async`` and
``start_async`` post their reply to the inbox before they finish, so anything
queued after a task has finished sees that task's effect.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Generic, List, Literal, Mapping, Optional, TypeVar, Union

from wait_for_async_assigns.live.async_result import AsyncFailed, AsyncOk
from wait_for_async_assigns.live.component import (
    AsyncOperation,
    AsyncReply,
    LiveView,
    Params,
    Redirect,
    Session,
    Socket,
)
from wait_for_async_assigns.watch import Worker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TargetUnavailableError(Exception):
    """Raised when a call needs a channel that is no longer running."""

    pass


@dataclass(frozen=True)
class CallOk(Generic[T]):
    """Successful reply from the channel."""

    value: T


@dataclass(frozen=True)
class TargetUnavailable:
    """The channel had stopped, or stopped before replying."""

    reason: str


CallResult = Union[CallOk[T], TargetUnavailable]


@dataclass(frozen=True)
class Rendered:
    """Event outcome: the view re-rendered."""

    html: str


@dataclass(frozen=True)
class Redirected:
    """Outcome of a callback that raised ``Redirect``."""

    to: str


JoinResult = Union[Rendered, Redirected]
EventResult = Union[Rendered, Redirected]


@dataclass(frozen=True)
class _Call:
    kind: Literal["render", "event", "async_tasks"]
    reply: asyncio.Future[CallResult[object]]
    event: str = ""
    value: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class _AsyncDone:
    operation: AsyncOperation
    task: Optional[Worker]
    reply: AsyncReply


_InboxMessage = Union[_Call, _AsyncDone]


class LiveChannel:
    """Owns a live view instance, its socket and its background tasks."""

    def __init__(
        self,
        view: LiveView,
        path: str,
        params: Optional[Params] = None,
        session: Optional[Session] = None,
    ) -> None:
        self.view = view
        self.path = path
        self.params: Params = dict(params or {})
        self.session: Session = dict(session or {})
        self.socket = Socket(connected=True)
        self._inbox: asyncio.Queue[_InboxMessage] = asyncio.Queue()
        self._tasks: Dict[str, Worker] = {}
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._current_call: Optional[_Call] = None
        self.stop_reason: Optional[str] = None

    @property
    def is_alive(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def join(self) -> JoinResult:
        """
        Mount the view as connected and start serving calls.

        A ``Redirect`` raised by mount is returned as ``Redirected`` and the
        channel never starts. Any other error propagates.
        """
        view_name = type(self.view).__name__
        try:
            await self.view.mount(self.params, self.session, self.socket)
            _raise_navigation(self.socket)
        except Redirect as redirect:
            logger.info(f"{view_name} redirected to {redirect.to} during mount")
            self.stop_reason = "redirect"
            return Redirected(to=redirect.to)
        except Exception as e:
            logger.error(f"{view_name} failed to mount at {self.path}: {e}")
            self.stop_reason = "mount failed"
            raise

        html = self.view.render(self.socket.assigns)
        self._loop_task = asyncio.create_task(
            self._run(), name=f"live-channel:{self.path}"
        )
        self._spawn_pending()
        logger.info(f"{view_name} joined at {self.path}")
        return Rendered(html=html)

    async def stop(self) -> None:
        """Stop the channel and cancel its in-flight background tasks."""
        tasks = list(self._tasks.values())
        if self._loop_task is not None and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(
                    f"{type(self.view).__name__} at {self.path} failed while stopping: {e}"
                )
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def render(self) -> CallResult[object]:
        return await self._call(_Call(kind="render", reply=self._new_reply()))

    async def push_event(
        self, event: str, value: Optional[Mapping[str, object]] = None
    ) -> CallResult[object]:
        return await self._call(
            _Call(
                kind="event",
                reply=self._new_reply(),
                event=event,
                value=dict(value or {}),
            )
        )

    async def async_tasks(self) -> CallResult[List[Worker]]:
        """Snapshot of the background tasks currently owned by the view."""
        result = await self._call(_Call(kind="async_tasks", reply=self._new_reply()))
        if isinstance(result, TargetUnavailable):
            return result
        tasks = result.value if isinstance(result.value, list) else []
        return CallOk(value=[task for task in tasks if isinstance(task, asyncio.Task)])

    def _new_reply(self) -> asyncio.Future[CallResult[object]]:
        return asyncio.get_running_loop().create_future()

    async def _call(self, call: _Call) -> CallResult[object]:
        if not self.is_alive:
            return TargetUnavailable(reason=self.stop_reason or "not joined")

        self._inbox.put_nowait(call)
        return await call.reply

    async def _run(self) -> None:
        try:
            while True:
                message = await self._inbox.get()
                if isinstance(message, _AsyncDone):
                    if not await self._apply_async_reply(message):
                        return
                else:
                    self._current_call = message
                    keep_running = await self._handle_call(message)
                    self._current_call = None
                    if not keep_running:
                        return
        finally:
            self._shutdown()

    async def _handle_call(self, call: _Call) -> bool:
        """Serve one call. Returns False when the channel must stop."""
        view_name = type(self.view).__name__

        if call.kind == "async_tasks":
            _resolve(call.reply, CallOk(value=list(self._tasks.values())))
            return True

        try:
            if call.kind == "render":
                value: object = self._render()
            else:
                logger.debug(f"{view_name} handling event {call.event!r}")
                await self.view.handle_event(call.event, call.value, self.socket)
                _raise_navigation(self.socket)
                self._spawn_pending()
                value = Rendered(html=self._render())
        except Redirect as redirect:
            logger.info(f"{view_name} redirected to {redirect.to}")
            self.stop_reason = "redirect"
            _resolve(call.reply, CallOk(value=Redirected(to=redirect.to)))
            return False
        except Exception as e:
            logger.error(f"{view_name} crashed handling {call.kind} {call.event!r}: {e}")
            self.stop_reason = f"crashed: {e}"
            _fail(call.reply, e)
            return False

        _resolve(call.reply, CallOk(value=value))
        return True

    async def _apply_async_reply(self, done: _AsyncDone) -> bool:
        operation = done.operation
        if done.task is not None and self._tasks.get(operation.name) is not done.task:
            return True  # superseded by a newer task with the same name
        self._tasks.pop(operation.name, None)

        if operation.kind == "assign":
            self._assign_async_reply(operation, done.reply)
            return True

        try:
            await self.view.handle_async(operation.name, done.reply, self.socket)
            _raise_navigation(self.socket)
        except Redirect as redirect:
            logger.info(f"{type(self.view).__name__} navigated to {redirect.to}")
            self.stop_reason = "redirect"
            return False
        except Exception as e:
            logger.error(
                f"{type(self.view).__name__} crashed handling async {operation.name}: {e}"
            )
            self.stop_reason = f"crashed: {e}"
            return False

        self._spawn_pending()
        return True

    def _assign_async_reply(self, operation: AsyncOperation, reply: AsyncReply) -> None:
        status, payload = reply
        for key in operation.keys:
            if status == "exit":
                self.socket.assigns[key] = AsyncFailed(reason=payload)
            elif isinstance(payload, Mapping) and key in payload:
                self.socket.assigns[key] = AsyncOk(result=payload[key])
            else:
                self.socket.assigns[key] = AsyncFailed(
                    reason=f"expected {operation.name} to return a value for {key!r}"
                )

    def _render(self) -> str:
        return self.view.render(self.socket.assigns)

    def _spawn_pending(self) -> None:
        for operation in self.socket.drain_async():
            previous = self._tasks.get(operation.name)
            if previous is not None and not previous.done():
                previous.cancel()
            self._tasks[operation.name] = asyncio.create_task(
                self._run_async(operation), name=f"live-async:{operation.name}"
            )
            logger.debug(f"Started async task {operation.name} for {self.path}")

    async def _run_async(self, operation: AsyncOperation) -> None:
        reply: AsyncReply
        try:
            value = await operation.fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Async task {operation.name} failed: {e}")
            reply = ("exit", e)
        else:
            reply = ("ok", value)
        self._inbox.put_nowait(
            _AsyncDone(operation=operation, task=asyncio.current_task(), reply=reply)
        )

    def _shutdown(self) -> None:
        reason = self.stop_reason or "stopped"
        self.stop_reason = reason

        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        self._tasks.clear()

        pending = [self._current_call] if self._current_call is not None else []
        while not self._inbox.empty():
            message = self._inbox.get_nowait()
            if isinstance(message, _Call):
                pending.append(message)
        for call in pending:
            _resolve(call.reply, TargetUnavailable(reason=reason))

        logger.info(f"{type(self.view).__name__} at {self.path} stopped: {reason}")


def _raise_navigation(socket: Socket) -> None:
    to = socket.take_navigation()
    if to is not None:
        raise Redirect(to)


def _resolve(
    reply: asyncio.Future[CallResult[object]], result: CallResult[object]
) -> None:
    # The caller may have given up waiting.
    if not reply.done():
        reply.set_result(result)


def _fail(reply: asyncio.Future[CallResult[object]], error: Exception) -> None:
    if not reply.done():
        reply.set_exception(error)


def unwrap(result: CallResult[T]) -> T:
    """Return a call's value or raise ``TargetUnavailableError``."""
    match result:
        case CallOk():
            return result.value
        case TargetUnavailable():
            raise TargetUnavailableError(result.reason)
