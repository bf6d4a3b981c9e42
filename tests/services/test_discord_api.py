from __future__ import annotations

import json

import httpx
import pytest

from app.core.errors import DiscordApiError, DiscordRateLimitExceededError
from app.services.discord_api import DiscordGateway, bucket_key


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _gateway(handler, clock: _FakeClock) -> DiscordGateway:
    return DiscordGateway(
        bot_token="bot-token",
        guild_id="111",
        transport=httpx.MockTransport(handler),
        sleep=clock.sleep,
        clock=clock,
        wall_clock=clock,
    )


def test_bucket_key_generalizes_ids_and_strips_query() -> None:
    assert bucket_key("/guilds/123/members/456/roles/789?reason=x") == "/guilds/{id}/members/{id}/roles/{id}"
    assert bucket_key("/users/@me/channels") == "/users/@me/channels"


@pytest.mark.asyncio
async def test_429_waits_for_retry_after_then_succeeds() -> None:
    clock = _FakeClock()
    calls: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(clock.now)
        if len(calls) == 1:
            return httpx.Response(429, headers={"retry-after": "2"}, json={"retry_after": 2})
        return httpx.Response(200, json={"id": "42"})

    gateway = _gateway(handler, clock)
    channel_id = await gateway.get_or_create_dm_channel("555")

    assert channel_id == "42"
    assert len(calls) == 2
    assert clock.sleeps and clock.sleeps[0] >= 2
    assert calls[1] - calls[0] >= 2


@pytest.mark.asyncio
async def test_429_gives_up_after_three_attempts() -> None:
    clock = _FakeClock()
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, headers={"retry-after": "2"})

    gateway = _gateway(handler, clock)
    with pytest.raises(DiscordRateLimitExceededError):
        await gateway.add_member_role("555", "777")

    assert len(calls) == 3
    assert clock.sleeps == [pytest.approx(2.1), pytest.approx(2.1)]


@pytest.mark.asyncio
async def test_retry_after_falls_back_to_json_body() -> None:
    clock = _FakeClock()
    responses = iter(
        [
            httpx.Response(429, json={"retry_after": 0.5}),
            httpx.Response(204),
        ]
    )

    gateway = _gateway(lambda request: next(responses), clock)
    await gateway.remove_member_role("555", "777")

    assert clock.sleeps == [pytest.approx(0.6)]


@pytest.mark.asyncio
async def test_exhausted_bucket_waits_before_next_call() -> None:
    clock = _FakeClock()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={
                "x-ratelimit-remaining": "0",
                "x-ratelimit-reset-after": "3",
                "x-ratelimit-limit": "5",
            },
            json=[],
        )

    gateway = _gateway(handler, clock)
    await gateway.list_guild_roles()
    bucket = gateway.bucket_state("/guilds/111/roles")
    assert bucket is not None
    assert bucket.remaining == 0
    assert bucket.limit == 5
    assert clock.sleeps == []

    await gateway.list_guild_roles()
    assert clock.sleeps == [pytest.approx(3.1)]


@pytest.mark.asyncio
async def test_non_2xx_raises_discord_api_error() -> None:
    clock = _FakeClock()
    gateway = _gateway(lambda request: httpx.Response(403, json={"message": "Missing Permissions"}), clock)

    with pytest.raises(DiscordApiError) as exc_info:
        await gateway.add_member_role("555", "777")

    assert exc_info.value.http_status == 403
    assert exc_info.value.endpoint == "PUT /guilds/{id}/members/{id}/roles/{id}"
    assert "Missing Permissions" in exc_info.value.body


@pytest.mark.asyncio
async def test_transport_timeout_raises_discord_api_error() -> None:
    clock = _FakeClock()
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectTimeout("timed out", request=request)

    gateway = _gateway(handler, clock)
    with pytest.raises(DiscordApiError) as exc_info:
        await gateway.exchange_code("abc", client_id="c", client_secret="s", redirect_uri="https://x/cb")

    assert exc_info.value.http_status == 0
    assert exc_info.value.endpoint == "POST /oauth2/token"
    assert isinstance(exc_info.value.__cause__, httpx.ConnectTimeout)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_client_is_reused_until_closed() -> None:
    clock = _FakeClock()
    gateway = _gateway(lambda request: httpx.Response(200, json={"id": "42"}), clock)

    await gateway.probe()
    first_client = gateway._client
    await gateway.probe()

    assert first_client is not None
    assert gateway._client is first_client

    await gateway.aclose()
    assert first_client.is_closed
    assert gateway._client is None

    await gateway.probe()
    assert gateway._client is not first_client
    await gateway.aclose()


@pytest.mark.asyncio
async def test_get_member_returns_none_for_unknown_member() -> None:
    clock = _FakeClock()
    gateway = _gateway(lambda request: httpx.Response(404, json={"code": 10007}), clock)

    assert await gateway.get_member("555") is None


@pytest.mark.asyncio
async def test_find_role_id_caches_exact_name_matches() -> None:
    clock = _FakeClock()
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json=[
                {"id": "1", "name": "1-on-1 mentee"},
                {"id": "2", "name": "1-on-1 Mentee"},
            ],
        )

    gateway = _gateway(handler, clock)
    assert await gateway.find_role_id("1-on-1 Mentee") == "2"
    assert await gateway.find_role_id("1-on-1 Mentee") == "2"
    assert await gateway.find_role_id("Missing") is None

    assert len(calls) == 2
    assert calls[0].headers["Authorization"] == "Bot bot-token"


@pytest.mark.asyncio
async def test_oauth_calls_use_form_body_and_bearer_auth() -> None:
    clock = _FakeClock()
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path.endswith("/oauth2/token"):
            return httpx.Response(200, json={"access_token": "user-token"})
        if request.method == "PUT":
            return httpx.Response(201, json={})
        return httpx.Response(200, json={"id": "555", "username": "mentee"})

    gateway = _gateway(handler, clock)
    token = await gateway.exchange_code("abc", client_id="cid", client_secret="secret", redirect_uri="https://x/cb")
    user = await gateway.get_current_user(token)
    added = await gateway.add_guild_member(user["id"], token)

    assert token == "user-token"
    assert added is True
    token_request, user_request, join_request = seen
    assert "Authorization" not in token_request.headers
    assert b"grant_type=authorization_code" in token_request.content
    assert user_request.headers["Authorization"] == "Bearer user-token"
    assert json.loads(join_request.content) == {"access_token": "user-token"}
    assert join_request.url.path.endswith("/guilds/111/members/555")
