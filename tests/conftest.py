"""
Pytest configuration and fixtures for live view testing.
"""

from typing import AsyncIterator, List

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tests.live_views import (
    AdminLive,
    DashboardLive,
    ItemLive,
    ProductsLive,
    SlowRepository,
    bind_repository,
)
from wait_for_async_assigns.config import WaitConfig
from wait_for_async_assigns.live import LiveRouter
from wait_for_async_assigns.live.testing import Conn, LiveViewTest, build_conn


@pytest.fixture
def repository() -> SlowRepository:
    """Fresh repository per test so completion counts start at zero."""
    return SlowRepository()


@pytest.fixture
def live_router(repository: SlowRepository) -> LiveRouter:
    router = LiveRouter()
    router.live("/products", bind_repository(ProductsLive, repository))
    router.live("/dashboard", bind_repository(DashboardLive, repository))
    router.live("/admin", AdminLive)
    router.live("/items/{item_id}", ItemLive)
    return router


@pytest.fixture
def app(live_router: LiveRouter) -> FastAPI:
    application = FastAPI()
    live_router.mount(application)
    return application


@pytest.fixture
def wait_config() -> WaitConfig:
    """Generous timeout so slow CI machines do not flake."""
    return WaitConfig(assert_receive_timeout=1000)


@pytest.fixture
def conn(app: FastAPI, wait_config: WaitConfig) -> Conn:
    return build_conn(app, wait_config)


@pytest.fixture
def test_client(app: FastAPI) -> TestClient:
    """Synchronous client for the HTTP routes and the websocket endpoint."""
    return TestClient(app)


@pytest_asyncio.fixture
async def opened_views() -> AsyncIterator[List[LiveViewTest]]:
    """Collects views opened by a test and stops them afterwards."""
    views: List[LiveViewTest] = []
    yield views
    for view in views:
        await view.stop()
