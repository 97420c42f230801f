"""Health endpoint tests."""

from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from creativehub.api.deps import get_email_service
from creativehub.database import get_session
from creativehub.main import app
from creativehub.services.email import EmailService


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_ready(client: AsyncClient):
    response = await client.get("/api/health/ready")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "store": "connected",
        "email": "configured",
        "email_backend": "RecordingEmailBackend",
    }


@pytest.mark.asyncio
async def test_ready_without_store(client: AsyncClient):
    broken = AsyncMock(spec=AsyncSession)
    broken.execute.side_effect = OperationalError("SELECT 1", {}, Exception("connection lost"))

    async def override_get_session():
        yield broken

    app.dependency_overrides[get_session] = override_get_session

    response = await client.get("/api/health/ready")
    assert response.status_code == 503
    assert response.json()["status"] == "unavailable"
    assert response.json()["store"] == "disconnected"


@pytest.mark.asyncio
async def test_ready_refuses_console_email_in_production(client: AsyncClient):
    app.dependency_overrides[get_email_service] = lambda: EmailService()

    with patch("creativehub.services.email.settings") as mock_settings:
        mock_settings.email_backend = "console"
        mock_settings.is_production = True
        response = await client.get("/api/health/ready")

    assert response.status_code == 503
    assert response.json()["email"] == "misconfigured"
    assert response.json()["store"] == "connected"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/api/health", headers={"X-Request-ID": "req-abc"})
    assert response.headers["X-Request-ID"] == "req-abc"

    generated = await client.get("/api/health")
    assert generated.headers["X-Request-ID"]
