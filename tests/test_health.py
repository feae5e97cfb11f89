"""Tests for the GET /health endpoint."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from shelfwise.api import app


@pytest.fixture
def unreachable_db() -> Any:
    """Sessions whose first query fails as if Postgres were down."""
    session = AsyncMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, ConnectionRefusedError("db down"))
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    factory.return_value.__aexit__.return_value = False
    with patch("shelfwise.api.AsyncSessionLocal", factory):
        yield


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_healthy_database(self, client: AsyncClient) -> None:
        resp = await client.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy", "dependencies": {"database": "healthy"}}

    @pytest.mark.asyncio
    async def test_unreachable_database_is_503(self, unreachable_db: Any) -> None:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.get("/health")

        assert resp.status_code == 503
        assert resp.json() == {"status": "unhealthy", "dependencies": {"database": "unhealthy"}}

    @pytest.mark.asyncio
    async def test_not_mounted_under_api_prefix(self, client: AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 404
