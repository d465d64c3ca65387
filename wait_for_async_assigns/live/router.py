"""
Routing for live views and their FastAPI mount point.

Each registered path gets an HTTP GET route serving the initial (dead)
render, and all views share a single websocket endpoint over which a client
joins a path and then sends events.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from re import Pattern
from typing import Dict, List, Optional, Tuple, Type, Union
from urllib.parse import parse_qsl, urlsplit

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from starlette.routing import compile_path

from wait_for_async_assigns.live.channel import (
    CallOk,
    LiveChannel,
    Redirected,
    Rendered,
    TargetUnavailable,
)
from wait_for_async_assigns.live.component import LiveView, Redirect, Session, Socket
from wait_for_async_assigns.live.messages import (
    ErrorMessage,
    EventMessage,
    JoinMessage,
    PongMessage,
    RedirectMessage,
    RenderMessage,
    ServerMessage,
    parse_client_message,
)

logger = logging.getLogger(__name__)

# Carries the test session for the dead render; real apps use their own auth.
SESSION_HEADER = "x-live-session"
DEFAULT_WEBSOCKET_PATH = "/live/websocket"


class LiveRouteNotFound(LookupError):
    """Raised when no live view is registered for a path."""

    pass


@dataclass(frozen=True)
class LiveRoute:
    """A path template bound to a live view class."""

    path: str
    view_cls: Type[LiveView]
    regex: Pattern[str]

    def match(self, path: str) -> Optional[Dict[str, str]]:
        matched = self.regex.match(path)
        return matched.groupdict() if matched else None


class LiveRouter:
    """Registry of live routes, mountable on a FastAPI app."""

    def __init__(self, websocket_path: str = DEFAULT_WEBSOCKET_PATH) -> None:
        self.websocket_path = websocket_path
        self.routes: List[LiveRoute] = []

    def live(self, path: str, view_cls: Type[LiveView]) -> None:
        """Register ``view_cls`` at ``path`` (FastAPI path syntax, e.g. ``/items/{id}``)."""
        if any(route.path == path for route in self.routes):
            raise ValueError(f"Live route {path} is already registered")
        regex, _format, _convertors = compile_path(path)
        self.routes.append(LiveRoute(path=path, view_cls=view_cls, regex=regex))

    def resolve(self, url: str) -> Tuple[LiveRoute, Dict[str, str]]:
        """
        Find the route for ``url`` and build the view's params.

        Params merge the query string with the path params; path params win.
        """
        parts = urlsplit(url)
        for route in self.routes:
            path_params = route.match(parts.path)
            if path_params is not None:
                return route, {**dict(parse_qsl(parts.query)), **path_params}
        raise LiveRouteNotFound(f"No live view registered for {parts.path}")

    def new_channel(self, url: str, session: Optional[Session] = None) -> LiveChannel:
        route, params = self.resolve(url)
        return LiveChannel(route.view_cls(), urlsplit(url).path, params, session)

    async def dead_render(
        self, url: str, session: Optional[Session] = None
    ) -> Union[Rendered, Redirected]:
        """Mount and render a disconnected instance; no async work is started."""
        route, params = self.resolve(url)
        view = route.view_cls()
        socket = Socket(connected=False)
        try:
            await view.mount(params, dict(session or {}), socket)
            navigate_to = socket.take_navigation()
            if navigate_to is not None:
                raise Redirect(navigate_to)
        except Redirect as redirect:
            return Redirected(to=redirect.to)
        return Rendered(html=view.render(socket.assigns))

    def mount(self, app: FastAPI) -> None:
        """Add the HTTP routes and the websocket endpoint to ``app``."""
        app.state.live_router = self
        for route in self.routes:
            app.add_api_route(
                route.path,
                self._http_endpoint,
                methods=["GET"],
                response_class=HTMLResponse,
                include_in_schema=False,
            )
        app.add_api_websocket_route(self.websocket_path, self._websocket_endpoint)
        logger.info(
            f"Mounted {len(self.routes)} live routes, websocket at {self.websocket_path}"
        )

    async def _http_endpoint(self, request: Request) -> Response:
        try:
            session = _decode_session(request.headers.get(SESSION_HEADER))
        except ValueError as e:
            return HTMLResponse(f"Invalid session: {e}", status_code=400)

        url = str(request.url.path)
        if request.url.query:
            url = f"{url}?{request.url.query}"

        result = await self.dead_render(url, session)
        match result:
            case Redirected(to=to):
                return RedirectResponse(to, status_code=302)
            case Rendered(html=html):
                return HTMLResponse(_page(html, self.websocket_path))

    async def _websocket_endpoint(self, websocket: WebSocket) -> None:
        await websocket.accept()
        channel: Optional[LiveChannel] = None
        logger.info("Live websocket connected")

        try:
            while True:
                message_text = await websocket.receive_text()
                try:
                    message_data = json.loads(message_text)
                except json.JSONDecodeError as e:
                    logger.error(f"Invalid JSON on live websocket: {e}")
                    reply: ServerMessage = ErrorMessage(error="Invalid JSON format")
                else:
                    reply, channel = await self._handle_message(message_data, channel)

                await websocket.send_text(reply.model_dump_json())

        except WebSocketDisconnect:
            logger.info("Live websocket disconnected")

        finally:
            if channel is not None:
                await channel.stop()

    async def _handle_message(
        self, message_data: object, channel: Optional[LiveChannel]
    ) -> Tuple[ServerMessage, Optional[LiveChannel]]:
        if not isinstance(message_data, dict):
            return ErrorMessage(error="Invalid message format"), channel

        try:
            message = parse_client_message(message_data)
        except ValueError as e:
            return ErrorMessage(error="Invalid message", detail=str(e)), channel

        match message:
            case JoinMessage():
                return await self._join(message, channel)
            case EventMessage():
                return await self._push_event(message, channel)
            case _:
                return PongMessage(), channel

    async def _join(
        self, message: JoinMessage, channel: Optional[LiveChannel]
    ) -> Tuple[ServerMessage, Optional[LiveChannel]]:
        if channel is not None and channel.is_alive:
            return ErrorMessage(error="Already joined", detail=channel.path), channel

        try:
            new_channel = self.new_channel(message.path, message.session)
        except LiveRouteNotFound as e:
            return ErrorMessage(error="Not found", detail=str(e)), None

        try:
            result = await new_channel.join()
        except Exception as e:
            return ErrorMessage(error="Mount failed", detail=str(e)), None

        match result:
            case Redirected(to=to):
                return RedirectMessage(to=to), None
            case Rendered(html=html):
                return RenderMessage(html=html), new_channel

    async def _push_event(
        self, message: EventMessage, channel: Optional[LiveChannel]
    ) -> Tuple[ServerMessage, Optional[LiveChannel]]:
        if channel is None:
            return ErrorMessage(error="Not joined"), None

        try:
            result = await channel.push_event(message.event, message.value)
        except Exception as e:
            return ErrorMessage(error="Event failed", detail=str(e)), None

        match result:
            case TargetUnavailable(reason=reason):
                return ErrorMessage(error="View unavailable", detail=reason), None
            case CallOk(value=Redirected(to=to)):
                return RedirectMessage(to=to), None
            case CallOk(value=Rendered(html=html)):
                return RenderMessage(html=html), channel
            case _:
                return ErrorMessage(error="Unexpected reply"), channel


def _decode_session(raw: Optional[str]) -> Dict[str, object]:
    if not raw:
        return {}
    decoded = json.loads(raw)
    if not isinstance(decoded, dict):
        raise ValueError("session must be a JSON object")
    return decoded


def _page(html: str, websocket_path: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        f'<html><body><div data-live-root data-live-socket="{websocket_path}">'
        f"{html}</div></body></html>"
    )
