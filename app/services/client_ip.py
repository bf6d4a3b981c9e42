from __future__ import annotations

import hashlib
import hmac
import ipaddress
from functools import lru_cache

from fastapi import Request


@lru_cache(maxsize=32)
def _parse_allowlist(
    allowlist: str,
) -> tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...]:
    networks: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = []
    for raw_entry in allowlist.split(","):
        entry = raw_entry.strip()
        if not entry:
            continue

        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue

    return tuple(networks)


def _parse_ip(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    if not candidate:
        return None
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return None


def is_trusted_proxy(*, proxy_ip: str | None, trusted_proxies: str) -> bool:
    if proxy_ip is None:
        return False
    networks = _parse_allowlist(trusted_proxies)
    if not networks:
        return False
    parsed_ip = ipaddress.ip_address(proxy_ip)
    return any(parsed_ip in network for network in networks)


def extract_client_ip(
    request: Request,
    *,
    trusted_proxies: str = "",
) -> str | None:
    """Peer address, or the first ``X-Forwarded-For`` hop when the peer is a trusted proxy."""
    client_host = _parse_ip(request.client.host if request.client is not None else None)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for and is_trusted_proxy(proxy_ip=client_host, trusted_proxies=trusted_proxies):
        return _parse_ip(forwarded_for.split(",", maxsplit=1)[0])

    return client_host


def hash_ip(client_ip: str | None, *, key: str) -> str | None:
    """Keyed HMAC-SHA256 of the address; None when there is no address or no key."""
    if not client_ip or not key:
        return None
    return hmac.new(key.encode("utf-8"), client_ip.encode("utf-8"), hashlib.sha256).hexdigest()
