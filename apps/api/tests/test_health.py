import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from app.main import app
from app.routers import health


async def test_health_endpoint() -> None:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-Id"]


async def test_request_id_is_echoed() -> None:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/health", headers={"X-Request-Id": "req-123"})

    assert response.headers["X-Request-Id"] == "req-123"


async def test_db_health_endpoint() -> None:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/healthz/db")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_ready_reports_redis_outage(monkeypatch: pytest.MonkeyPatch) -> None:
    def _down() -> bool:
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(health, "check_redis_health", _down)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/ready")

    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["status"] == "not_ready"
    assert detail["checks"] == {"db": "ok", "redis": "down"}


async def test_ready_when_dependencies_answer(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(health, "check_redis_health", lambda: True)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"
