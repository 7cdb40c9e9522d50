"""
Tests for health check endpoints.
"""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from mailsync.main import app

client = TestClient(app)


def test_healthz_endpoint():
    """Test the basic health check endpoint."""
    response = client.get("/healthz")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


def test_readyz_healthy_database():
    db_health = {
        "healthy": True,
        "service": "database_pool",
        "pool_stats": {"pool_size": 3, "pool_available": 2},
    }
    with (
        patch("mailsync.routes.health.fast_redis.ping", new=AsyncMock(return_value=True)),
        patch("mailsync.routes.health.db_health_check", new=AsyncMock(return_value=db_health)),
    ):
        response = client.get("/readyz")

    assert response.status_code == 200
    data = response.json()
    assert data["overall_ok"] is True
    assert data["checks"]["database"]["pool_stats"]["pool_size"] == 3


def test_readyz_redis_down_does_not_block_readiness():
    with (
        patch("mailsync.routes.health.fast_redis.ping", new=AsyncMock(return_value=False)),
        patch(
            "mailsync.routes.health.db_health_check",
            new=AsyncMock(return_value={"healthy": True}),
        ),
    ):
        data = client.get("/readyz").json()

    assert data["overall_ok"] is True
    assert data["checks"]["redis"]["ok"] is False


def test_readyz_database_down():
    with (
        patch("mailsync.routes.health.fast_redis.ping", new=AsyncMock(return_value=True)),
        patch(
            "mailsync.routes.health.db_health_check",
            new=AsyncMock(return_value={"healthy": False, "error": "Pool not initialized"}),
        ),
    ):
        data = client.get("/readyz").json()

    assert data["overall_ok"] is False
    assert data["checks"]["database"]["error"] == "Pool not initialized"
