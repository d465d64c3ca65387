"""
Test harness for live views.

``live(conn, path)`` performs the HTTP dead render through the app, then
mounts a connected instance in-process and hands back a ``LiveViewTest``
handle. The result is a tagged tuple so tests can match on it:

    match await live(conn, "/products"):
        case ("ok", view, html):
            ...
        case ("error", {"redirect": redirect}):
            ...
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, Literal, Mapping, Optional, Tuple, Union

import httpx
from fastapi import FastAPI

from wait_for_async_assigns.config import DEFAULT_WAIT_CONFIG, WaitConfig
from wait_for_async_assigns.live.channel import (
    CallOk,
    LiveChannel,
    Redirected,
    Rendered,
    TargetUnavailable,
    TargetUnavailableError,
    unwrap,
)
from wait_for_async_assigns.live.router import SESSION_HEADER, LiveRouteNotFound, LiveRouter
from wait_for_async_assigns.watch import Mailbox, await_down, monitor

LiveError = Tuple[Literal["error"], Dict[str, Dict[str, str]]]


class AsyncTimeoutError(AssertionError):
    """Async work was still running when ``render_async`` gave up."""

    pass


@dataclass
class Conn:
    """Test connection: the app under test plus per-test settings."""

    app: FastAPI
    config: WaitConfig = DEFAULT_WAIT_CONFIG
    session: Dict[str, object] = field(default_factory=dict)
    base_url: str = "http://testserver"

    def put_session(self, **values: object) -> Conn:
        self.session.update(values)
        return self


@dataclass
class LiveViewTest:
    """Handle on a connected live view instance under test."""

    channel: LiveChannel
    config: WaitConfig
    path: str

    async def render(self) -> str:
        html = unwrap(await self.channel.render())
        return str(html)

    async def render_click(
        self, event: str, value: Optional[Mapping[str, object]] = None
    ) -> Union[str, LiveError]:
        """Send an event and return the new render, or the redirect tuple."""
        result = await self.channel.push_event(event, value)
        match result:
            case CallOk(value=Redirected(to=to)):
                return ("error", {"redirect": {"to": to}})
            case CallOk(value=Rendered(html=html)):
                return html
            case TargetUnavailable(reason=reason):
                raise TargetUnavailableError(reason)
            case _:
                raise TypeError(f"Unexpected event reply: {result!r}")

    async def render_async(self, timeout: Optional[int] = None) -> str:
        """
        Wait for the view's async tasks, then render.

        Unlike ``wait_for_async_assigns`` this is an assertion: a task still
        running after ``timeout`` milliseconds raises ``AsyncTimeoutError``.
        """
        timeout_ms = self.config.assert_receive_timeout if timeout is None else timeout
        tasks = unwrap(await self.channel.async_tasks())

        mailbox = Mailbox()
        watches = [monitor(task, mailbox) for task in tasks]
        pending = await await_down(watches, mailbox, timeout_ms / 1000)
        if pending:
            names = ", ".join(watch.task.get_name() for watch in pending)
            raise AsyncTimeoutError(
                f"expected async tasks to finish within {timeout_ms}ms, still running: {names}"
            )

        return await self.render()

    async def stop(self) -> None:
        await self.channel.stop()


LiveOk = Tuple[Literal["ok"], LiveViewTest, str]
LiveResult = Union[LiveOk, LiveError]


def build_conn(
    app: FastAPI,
    config: Optional[WaitConfig] = None,
    session: Optional[Mapping[str, object]] = None,
) -> Conn:
    return Conn(app=app, config=config or DEFAULT_WAIT_CONFIG, session=dict(session or {}))


def _live_router(app: FastAPI) -> LiveRouter:
    router = getattr(app.state, "live_router", None)
    if not isinstance(router, LiveRouter):
        raise ValueError("No LiveRouter is mounted on this app")
    return router


async def live(
    conn: Conn, path: str, session: Optional[Mapping[str, object]] = None
) -> LiveResult:
    """
    Open a live view at ``path``.

    Returns ``("ok", view, html)`` with the connected render, or
    ``("error", {"redirect": {"to": ...}})`` when mount redirects. Raises
    ``LiveRouteNotFound`` when nothing is served at ``path``.
    """
    router = _live_router(conn.app)
    merged_session = {**conn.session, **(session or {})}

    transport = httpx.ASGITransport(app=conn.app)
    async with httpx.AsyncClient(transport=transport, base_url=conn.base_url) as client:
        response = await client.get(
            path, headers={SESSION_HEADER: json.dumps(merged_session, default=str)}
        )

    if response.is_redirect:
        return ("error", {"redirect": {"to": response.headers["location"]}})
    if response.status_code == 404:
        raise LiveRouteNotFound(f"No live view registered for {path}")
    response.raise_for_status()

    channel = router.new_channel(path, merged_session)
    result = await channel.join()
    match result:
        case Redirected(to=to):
            return ("error", {"redirect": {"to": to}})
        case Rendered(html=html):
            return ("ok", LiveViewTest(channel=channel, config=conn.config, path=path), html)


async def render(view: LiveViewTest) -> str:
    return await view.render()


async def render_click(
    view: LiveViewTest, event: str, value: Optional[Mapping[str, object]] = None
) -> Union[str, LiveError]:
    return await view.render_click(event, value)


async def render_async(view: LiveViewTest, timeout: Optional[int] = None) -> str:
    return await view.render_async(timeout)
