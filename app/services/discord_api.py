from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import lru_cache
from time import monotonic
from typing import Any

import httpx
import structlog

from app.core.config import get_settings
from app.core.errors import DiscordApiError, DiscordRateLimitExceededError
from app.core.ttl_cache import TTLCache

logger = structlog.get_logger(__name__)

DISCORD_API_BASE_URL = "https://discord.com/api/v10"
DISCORD_OAUTH_AUTHORIZE_URL = "https://discord.com/oauth2/authorize"
RATE_LIMIT_BUFFER_SECONDS = 0.1
BUCKET_SWEEP_INTERVAL_SECONDS = 300.0
BUCKET_IDLE_TTL_SECONDS = 600.0
DEFAULT_BUCKET_LIMIT = 50
DEFAULT_RETRY_AFTER_SECONDS = 1.0
DEFAULT_MAX_ATTEMPTS = 3
# Reported as the status of requests that never got an HTTP response.
TRANSPORT_ERROR_STATUS = 0

_NUMERIC_SEGMENT_RE = re.compile(r"/\d+")


@dataclass(frozen=True, slots=True)
class RateLimitBucket:
    remaining: int
    reset_at: float
    limit: int


def bucket_key(path: str) -> str:
    """``/guilds/123/members/456?x=1`` -> ``/guilds/{id}/members/{id}``."""
    return _NUMERIC_SEGMENT_RE.sub("/{id}", path.split("?", maxsplit=1)[0])


def _parse_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


class DiscordGateway:
    """Rate-limit aware client for the Discord REST API.

    Every call goes through ``_request``: it waits while the endpoint bucket
    is exhausted, records the bucket headers of each response and retries
    HTTP 429 after the advertised ``retry-after``. Bucket state is advisory
    and lives in a TTL cache, so a restart only costs one extra 429.
    """

    def __init__(
        self,
        *,
        bot_token: str,
        guild_id: str,
        base_url: str = DISCORD_API_BASE_URL,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        buckets: TTLCache[RateLimitBucket] | None = None,
        role_cache: TTLCache[str] | None = None,
        role_cache_ttl_seconds: float = 3600.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = monotonic,
        wall_clock: Callable[[], float] = time.time,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._bot_token = bot_token
        self._guild_id = guild_id
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._transport = transport
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep
        self._max_attempts = max(1, int(max_attempts))
        self._buckets = buckets or TTLCache(default_ttl_seconds=BUCKET_IDLE_TTL_SECONDS, clock=clock)
        self._role_cache = role_cache or TTLCache(default_ttl_seconds=role_cache_ttl_seconds, clock=clock)
        self._last_sweep_at = clock()
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    @property
    def guild_id(self) -> str:
        return self._guild_id

    def bucket_state(self, path: str) -> RateLimitBucket | None:
        return self._buckets.get(bucket_key(path))

    def _maybe_sweep(self) -> None:
        now = self._clock()
        if now - self._last_sweep_at < BUCKET_SWEEP_INTERVAL_SECONDS:
            return
        self._last_sweep_at = now
        swept_buckets = self._buckets.sweep()
        swept_roles = self._role_cache.sweep()
        if swept_buckets or swept_roles:
            logger.debug("discord_cache_swept", buckets=swept_buckets, roles=swept_roles)

    async def _wait_for_bucket(self, key: str) -> None:
        bucket = self._buckets.get(key)
        if bucket is None or bucket.remaining > 0:
            return
        wait_seconds = bucket.reset_at - self._clock()
        if wait_seconds <= 0:
            return
        logger.info("discord_bucket_exhausted_waiting", endpoint=key, wait_seconds=round(wait_seconds, 3))
        await self._sleep(wait_seconds + RATE_LIMIT_BUFFER_SECONDS)

    def _store_bucket(self, key: str, *, remaining: int, reset_after: float, limit: int) -> None:
        reset_after = max(0.0, reset_after)
        self._buckets.set(
            key,
            RateLimitBucket(remaining=remaining, reset_at=self._clock() + reset_after, limit=limit),
            ttl_seconds=max(BUCKET_IDLE_TTL_SECONDS, reset_after + RATE_LIMIT_BUFFER_SECONDS),
        )

    def _update_bucket(self, key: str, headers: httpx.Headers) -> None:
        remaining = _parse_int(headers.get("x-ratelimit-remaining"))
        if remaining is None:
            return
        reset_after = _parse_float(headers.get("x-ratelimit-reset-after"))
        if reset_after is None:
            reset_epoch = _parse_float(headers.get("x-ratelimit-reset"))
            reset_after = reset_epoch - self._wall_clock() if reset_epoch is not None else 0.0
        limit = _parse_int(headers.get("x-ratelimit-limit")) or DEFAULT_BUCKET_LIMIT
        self._store_bucket(key, remaining=remaining, reset_after=reset_after, limit=limit)

    @staticmethod
    def _retry_after_seconds(response: httpx.Response) -> float:
        header_value = _parse_float(response.headers.get("retry-after"))
        if header_value is not None:
            return max(0.0, header_value)
        try:
            body = response.json()
        except ValueError:
            return DEFAULT_RETRY_AFTER_SECONDS
        if isinstance(body, dict):
            body_value = body.get("retry_after")
            if isinstance(body_value, (int, float)) and not isinstance(body_value, bool):
                return max(0.0, float(body_value))
        return DEFAULT_RETRY_AFTER_SECONDS

    def _auth_headers(self, auth: str | None, bearer_token: str | None) -> dict[str, str]:
        if auth == "bot":
            return {"Authorization": f"Bot {self._bot_token}"}
        if auth == "bearer" and bearer_token:
            return {"Authorization": f"Bearer {bearer_token}"}
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
        auth: str | None = "bot",
        bearer_token: str | None = None,
    ) -> httpx.Response:
        key = bucket_key(path)
        endpoint = f"{method} {key}"
        self._maybe_sweep()
        headers = self._auth_headers(auth, bearer_token)

        last_response: httpx.Response | None = None
        for attempt in range(1, self._max_attempts + 1):
            await self._wait_for_bucket(key)
            try:
                response = await self._get_client().request(
                    method,
                    path,
                    json=json,
                    data=data,
                    headers=headers,
                )
            except httpx.HTTPError as exc:
                logger.warning(
                    "discord_transport_error",
                    endpoint=endpoint,
                    error_type=type(exc).__name__,
                    attempt=attempt,
                )
                raise DiscordApiError(
                    f"Discord request failed: {type(exc).__name__}",
                    status_code=TRANSPORT_ERROR_STATUS,
                    body="",
                    endpoint=endpoint,
                ) from exc
            self._update_bucket(key, response.headers)

            if response.status_code == 429:
                last_response = response
                retry_after = self._retry_after_seconds(response)
                bucket = self._buckets.get(key)
                self._store_bucket(
                    key,
                    remaining=0,
                    reset_after=retry_after,
                    limit=bucket.limit if bucket is not None else DEFAULT_BUCKET_LIMIT,
                )
                logger.warning(
                    "discord_rate_limited",
                    endpoint=endpoint,
                    retry_after=retry_after,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    is_global=response.headers.get("x-ratelimit-global") == "true",
                )
                if attempt < self._max_attempts:
                    await self._sleep(retry_after + RATE_LIMIT_BUFFER_SECONDS)
                continue

            if response.is_success:
                return response

            logger.warning(
                "discord_api_error",
                endpoint=endpoint,
                status_code=response.status_code,
            )
            raise DiscordApiError(
                status_code=response.status_code,
                body=response.text,
                endpoint=endpoint,
            )

        raise DiscordRateLimitExceededError(
            f"Discord rate limit not cleared after {self._max_attempts} attempts",
            status_code=429,
            body=last_response.text if last_response is not None else "",
            endpoint=endpoint,
        )

    async def get_or_create_dm_channel(self, user_id: str) -> str:
        response = await self._request("POST", "/users/@me/channels", json={"recipient_id": user_id})
        return str(response.json()["id"])

    async def send_dm(self, user_id: str, content: str) -> str:
        channel_id = await self.get_or_create_dm_channel(user_id)
        response = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            json={"content": content},
        )
        return str(response.json()["id"])

    async def list_guild_roles(self) -> list[dict[str, Any]]:
        response = await self._request("GET", f"/guilds/{self._guild_id}/roles")
        roles = response.json()
        return roles if isinstance(roles, list) else []

    async def find_role_id(self, role_name: str) -> str | None:
        cache_key = f"{self._guild_id}:{role_name}"
        cached = self._role_cache.get(cache_key)
        if cached is not None:
            return cached

        for role in await self.list_guild_roles():
            if role.get("name") == role_name:
                role_id = str(role["id"])
                self._role_cache.set(cache_key, role_id)
                return role_id
        return None

    async def add_member_role(self, user_id: str, role_id: str) -> None:
        await self._request("PUT", f"/guilds/{self._guild_id}/members/{user_id}/roles/{role_id}")

    async def remove_member_role(self, user_id: str, role_id: str) -> None:
        await self._request("DELETE", f"/guilds/{self._guild_id}/members/{user_id}/roles/{role_id}")

    async def get_member(self, user_id: str) -> dict[str, Any] | None:
        try:
            response = await self._request("GET", f"/guilds/{self._guild_id}/members/{user_id}")
        except DiscordApiError as exc:
            if exc.http_status == 404:
                return None
            raise
        return response.json()

    async def add_guild_member(self, user_id: str, access_token: str) -> bool:
        """Returns True when the user was added, False when already a member."""
        response = await self._request(
            "PUT",
            f"/guilds/{self._guild_id}/members/{user_id}",
            json={"access_token": access_token},
        )
        return response.status_code == 201

    async def exchange_code(
        self,
        code: str,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> str:
        response = await self._request(
            "POST",
            "/oauth2/token",
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
            },
            auth=None,
        )
        return str(response.json()["access_token"])

    async def get_current_user(self, access_token: str) -> dict[str, Any]:
        response = await self._request("GET", "/users/@me", auth="bearer", bearer_token=access_token)
        return response.json()

    async def probe(self) -> None:
        await self._request("GET", "/users/@me")


@lru_cache(maxsize=1)
def get_discord_gateway() -> DiscordGateway:
    settings = get_settings()
    return DiscordGateway(
        bot_token=settings.discord_bot_token,
        guild_id=settings.discord_guild_id,
        timeout_seconds=settings.discord_api_timeout_seconds,
        role_cache_ttl_seconds=settings.discord_role_cache_ttl_seconds,
    )


async def close_discord_gateway() -> None:
    if get_discord_gateway.cache_info().currsize == 0:
        return
    await get_discord_gateway().aclose()
