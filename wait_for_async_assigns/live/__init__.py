"""
Live views

Server-rendered views whose state lives in a channel on the server, with
background loading through ``assign_async`` and ``start_async``.
"""

from wait_for_async_assigns.live.async_result import (
    AsyncFailed,
    AsyncLoading,
    AsyncOk,
    AsyncResult,
)
from wait_for_async_assigns.live.channel import (
    CallOk,
    CallResult,
    LiveChannel,
    TargetUnavailable,
    TargetUnavailableError,
)
from wait_for_async_assigns.live.component import LiveView, Redirect, Socket
from wait_for_async_assigns.live.router import LiveRouteNotFound, LiveRouter

__all__ = [
    "AsyncFailed",
    "AsyncLoading",
    "AsyncOk",
    "AsyncResult",
    "CallOk",
    "CallResult",
    "LiveChannel",
    "LiveRouteNotFound",
    "LiveRouter",
    "LiveView",
    "Redirect",
    "Socket",
    "TargetUnavailable",
    "TargetUnavailableError",
]
