from typing import AsyncGenerator, Callable

import pytest
from httpx import ASGITransport, AsyncClient

from main import app
from worktime.api.dependencies import get_session_factory
from worktime.core.database import get_async_session
from worktime.core.security import create_access_token


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the per-test database"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable:
    """Bearer headers for a user"""
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role.value)}"}
    return _headers
