"""Pytest configuration and fixtures."""

from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from api import ProjectLayouts
from api import state as api_state
from layout import SugiyamaSolver


@pytest.fixture(autouse=True)
def db_dir(tmp_path, monkeypatch):
    """Point project storage at a temporary folder for each test."""
    monkeypatch.setenv("FORGE_DB_DIR", str(tmp_path / "db"))
    return tmp_path / "db"


@pytest.fixture
async def layouts() -> AsyncGenerator[ProjectLayouts, None]:
    layouts = ProjectLayouts(SugiyamaSolver(), debounce_ms=20)
    api_state.init_api_state(None, layouts)
    yield layouts
    await layouts.discard()


@pytest.fixture
async def client(layouts) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    from main import app

    # importing main registers its own layouts; point the routes back at the test instance
    api_state.init_api_state(None, layouts)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
