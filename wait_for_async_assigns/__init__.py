"""
wait_for_async_assigns

Waits for a live view's background tasks to finish before a test exits, so
fixture teardown does not race work the view started with ``assign_async``
or ``start_async``. A companion lint rule flags tests that open a live view
successfully but never wait.

    from wait_for_async_assigns import wait_for_async_assigns
    from wait_for_async_assigns.live.testing import live, render_async

    async def test_loads_products(conn: Conn) -> None:
        match await live(conn, "/products"):
            case ("ok", view, _html):
                pass
        assert "Products" in await render_async(view)

        await wait_for_async_assigns(view)
"""

from wait_for_async_assigns.config import (
    DEFAULT_ASSERT_RECEIVE_TIMEOUT,
    DEFAULT_WAIT_CONFIG,
    WaitConfig,
)
from wait_for_async_assigns.waiter import wait_for_async_assigns, wait_for_async_tasks

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_ASSERT_RECEIVE_TIMEOUT",
    "DEFAULT_WAIT_CONFIG",
    "WaitConfig",
    "wait_for_async_assigns",
    "wait_for_async_tasks",
]
