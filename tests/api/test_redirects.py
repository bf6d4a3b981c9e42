from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.api.routes import redirects
from app.core.errors import GoneError, NotFoundError, RateLimitExceededError
from app.main import app
from tests.services.service_fixtures import RecordingOrchestrator


@pytest.fixture
def orchestrator(monkeypatch) -> RecordingOrchestrator:
    recorder = RecordingOrchestrator()

    async def _no_limit(**kwargs: object) -> None:
        return None

    monkeypatch.setattr(
        redirects,
        "get_settings",
        lambda: SimpleNamespace(
            trusted_proxies="",
            redirect_rate_limit_max=200,
            redirect_rate_limit_window_ms=900_000,
        ),
    )
    monkeypatch.setattr(redirects, "enforce_rate_limit", _no_limit)
    monkeypatch.setattr(redirects, "get_orchestrator", lambda: recorder)
    return recorder


def test_short_link_redirects_and_records_click(monkeypatch, orchestrator) -> None:
    async def _resolve(short_code: str) -> str:
        return f"https://example.com/{short_code}"

    monkeypatch.setattr(redirects, "resolve_short_link", _resolve)

    client = TestClient(app)
    response = client.get("/book-call", follow_redirects=False)

    assert response.status_code == 301
    assert response.headers["location"] == "https://example.com/book-call"
    assert orchestrator.spawned == [("record_short_link_click", {"short_code": "book-call"})]


@pytest.mark.parametrize(("error", "status_code"), [(NotFoundError("missing"), 404), (GoneError("gone"), 410)])
def test_unavailable_links(monkeypatch, orchestrator, error: Exception, status_code: int) -> None:
    async def _resolve(short_code: str) -> str:
        raise error

    monkeypatch.setattr(redirects, "resolve_short_link", _resolve)

    client = TestClient(app)
    response = client.get("/whatever", follow_redirects=False)

    assert response.status_code == status_code
    assert orchestrator.spawned == []


def test_rate_limited_redirect(monkeypatch, orchestrator) -> None:
    async def _limited(**kwargs: object) -> None:
        raise RateLimitExceededError(retry_after=30)

    monkeypatch.setattr(redirects, "enforce_rate_limit", _limited)

    client = TestClient(app)
    response = client.get("/book-call", follow_redirects=False)

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "30"


def test_health_route_is_not_shadowed_by_short_links(monkeypatch, orchestrator) -> None:
    async def _resolve(short_code: str) -> str:
        raise AssertionError("short link lookup must not run for /live")

    monkeypatch.setattr(redirects, "resolve_short_link", _resolve)

    client = TestClient(app)
    assert client.get("/live").json() == {"status": "live"}
