"""
Unit tests for application wiring: health endpoints and startup.
"""

import pytest
from httpx import AsyncClient, ASGITransport

from api.main import create_app
from common.core.config import Settings
from common.core.exceptions import ConfigurationError


@pytest.mark.asyncio
class TestHealth:
    async def test_healthz(self, anonymous_client):
        response = await anonymous_client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_health(self, anonymous_client):
        response = await anonymous_client.get("/api/v1/health/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_db_health(self, anonymous_client):
        response = await anonymous_client.get("/api/v1/health/db")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}


@pytest.mark.asyncio
class TestStartup:
    async def test_missing_stripe_key_fails_startup(self):
        app = create_app(
            settings=Settings(
                stripe_secret_key="",
                database_url_override="sqlite+aiosqlite:///:memory:",
            )
        )

        with pytest.raises(ConfigurationError):
            async with app.router.lifespan_context(app):
                pass

    async def test_lifespan_builds_missing_clients(self):
        settings = Settings(
            stripe_secret_key="sk_test_123",
            database_url_override="sqlite+aiosqlite:///:memory:",
        )
        app = create_app(settings=settings)

        async with app.router.lifespan_context(app):
            assert app.state.session_factory is not None
            assert app.state.payment_provider.api_key == "sk_test_123"
            assert app.state.price_catalog is not None

            async with AsyncClient(
                transport=ASGITransport(app=app), base_url="http://test"
            ) as client:
                response = await client.get("/api/v1/health/db")
            assert response.json()["database"] == "connected"
