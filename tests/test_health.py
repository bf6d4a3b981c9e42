import httpx
import pytest
from fastapi.testclient import TestClient

from app.api.routes import health as health_routes
from app.core.errors import DiscordApiError
from app.main import app
from app.services.discord_api import DiscordGateway


async def _ok_check() -> dict[str, str]:
    return {"status": "ok"}


def _patch_checks(monkeypatch, **overrides) -> None:
    monkeypatch.setattr(health_routes, "_check_database", overrides.get("database", _ok_check))
    monkeypatch.setattr(health_routes, "_check_discord", overrides.get("discord", _ok_check))
    monkeypatch.setattr(health_routes, "_check_redis", overrides.get("redis", _ok_check))


def test_health_ok(monkeypatch) -> None:
    _patch_checks(monkeypatch)

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["timestamp"]
    assert payload["services"] == {
        "server": {"status": "ok"},
        "database": {"status": "ok"},
        "discord": {"status": "ok"},
        "redis": {"status": "ok"},
    }


def test_live_ok() -> None:
    client = TestClient(app)
    response = client.get("/live")
    assert response.status_code == 200
    assert response.json() == {"status": "live"}


def test_health_is_degraded_but_200_when_discord_failed(monkeypatch) -> None:
    async def _failed_discord() -> dict[str, str]:
        return {"status": "error", "message": "discord_unavailable"}

    _patch_checks(monkeypatch, discord=_failed_discord)

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["services"]["discord"] == {"status": "error", "message": "discord_unavailable"}


def test_health_returns_503_when_database_failed(monkeypatch) -> None:
    async def _failed_database() -> dict[str, str]:
        return {"status": "error", "message": "database_unavailable"}

    _patch_checks(monkeypatch, database=_failed_database)

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_health_echoes_request_id(monkeypatch) -> None:
    _patch_checks(monkeypatch)

    client = TestClient(app)
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_database_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenSession:
        async def __aenter__(self):
            raise OSError("password=secret")

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _BrokenSession())

    result = await health_routes._check_database()
    assert result == {"status": "error", "message": "database_unavailable"}


@pytest.mark.asyncio
async def test_discord_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenGateway:
        async def probe(self) -> None:
            raise DiscordApiError("Discord API error", status_code=401, body="token=secret", endpoint="/users/@me")

    monkeypatch.setattr(health_routes, "get_discord_gateway", lambda: _BrokenGateway())

    result = await health_routes._check_discord()
    assert result == {"status": "error", "message": "discord_unavailable"}


@pytest.mark.asyncio
async def test_discord_check_handles_transport_errors(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = DiscordGateway(bot_token="bot-token", guild_id="111", transport=httpx.MockTransport(handler))
    monkeypatch.setattr(health_routes, "get_discord_gateway", lambda: gateway)

    result = await health_routes._check_discord()
    assert result == {"status": "error", "message": "discord_unavailable"}
