"""Health, readiness and version endpoints."""

import pytest


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_ready_without_redis_is_degraded(self, client):
        response = await client.get("/ready")
        assert response.status_code == 200
        data = response.json()
        assert data["checks"]["database"] == "ok"
        assert data["checks"]["redis"].startswith("error")
        assert data["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_version(self, client):
        response = await client.get("/version")
        assert response.json()["version"] == "0.1.0"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-Id": "abc123"})
        assert response.headers["X-Request-Id"] == "abc123"
