from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import RateLimitExceededError
from app.services import rate_limiter

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _SessionContext:
    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail

    async def __aenter__(self) -> object:
        if self._fail:
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _SessionLocal:
    def __init__(self, *, fail: bool = False) -> None:
        self._fail = fail

    def begin(self) -> _SessionContext:
        return _SessionContext(fail=self._fail)


class _InMemoryTokens:
    """Fixed-window counter with the same contract as the SQL repo."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], tuple[int, datetime]] = {}

    async def try_consume(self, session, *, token_key, token_type, max_requests, window_ms, now_utc):
        key = (token_key, token_type)
        row = self.rows.get(key)
        if row is None or row[1] <= now_utc:
            self.rows[key] = (1, now_utc + timedelta(milliseconds=window_ms))
            return self.rows[key]
        count, reset_at = row
        if count >= max_requests:
            return None
        self.rows[key] = (count + 1, reset_at)
        return self.rows[key]

    async def get_reset_at(self, session, *, token_key, token_type):
        row = self.rows.get((token_key, token_type))
        return row[1] if row is not None else None


@pytest.fixture
def tokens(monkeypatch) -> _InMemoryTokens:
    store = _InMemoryTokens()
    monkeypatch.setattr(rate_limiter, "SessionLocal", _SessionLocal())
    monkeypatch.setattr(rate_limiter, "RateLimitTokensRepo", store)
    return store


@pytest.mark.asyncio
async def test_exactly_max_requests_allowed_per_window(tokens) -> None:
    results = [
        await rate_limiter.check_rate_limit(
            token_key="10.0.0.1",
            token_type="webhook",
            max_requests=3,
            window_ms=60_000,
            now_utc=NOW,
        )
        for _ in range(4)
    ]

    assert [result.allowed for result in results] == [True, True, True, False]
    assert [result.remaining for result in results[:3]] == [2, 1, 0]
    assert results[3].retry_after == 60


@pytest.mark.asyncio
async def test_window_resets_after_expiry(tokens) -> None:
    for _ in range(2):
        await rate_limiter.check_rate_limit(
            token_key="10.0.0.1", token_type="redirect", max_requests=2, window_ms=1_000, now_utc=NOW
        )

    later = await rate_limiter.check_rate_limit(
        token_key="10.0.0.1",
        token_type="redirect",
        max_requests=2,
        window_ms=1_000,
        now_utc=NOW + timedelta(seconds=1),
    )
    assert later.allowed is True
    assert later.remaining == 1


@pytest.mark.asyncio
async def test_storage_failure_fails_open(monkeypatch) -> None:
    monkeypatch.setattr(rate_limiter, "SessionLocal", _SessionLocal(fail=True))

    result = await rate_limiter.check_rate_limit(
        token_key="10.0.0.1", token_type="webhook", max_requests=1, window_ms=1_000, now_utc=NOW
    )
    assert result.allowed is True


@pytest.mark.asyncio
async def test_enforce_raises_with_retry_after(tokens) -> None:
    await rate_limiter.enforce_rate_limit(client_ip=None, token_type="webhook", max_requests=1, window_ms=5_000)

    with pytest.raises(RateLimitExceededError) as exc_info:
        await rate_limiter.enforce_rate_limit(client_ip=None, token_type="webhook", max_requests=1, window_ms=5_000)

    assert exc_info.value.retry_after > 0
    assert ("unknown", "webhook") in tokens.rows
