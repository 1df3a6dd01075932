from __future__ import annotations

import ipaddress
import secrets
from functools import lru_cache

from fastapi import Request

INTERNAL_TOKEN_HEADER = "X-Internal-Token"
DENIED_IP_NOT_ALLOWED = "ip_not_allowed"
DENIED_INVALID_CREDENTIALS = "invalid_credentials"

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


@lru_cache(maxsize=32)
def parse_networks(raw: str) -> tuple[Network, ...]:
    """Comma-separated hosts or CIDR blocks; unparsable entries are dropped."""
    networks: list[Network] = []
    for entry in (item.strip() for item in raw.split(",")):
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            continue
    return tuple(networks)


def _as_ip(value: str | None) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    if not value or not value.strip():
        return None
    try:
        return ipaddress.ip_address(value.strip())
    except ValueError:
        return None


def ip_in_networks(client_ip: str | None, raw_networks: str) -> bool:
    parsed = _as_ip(client_ip)
    if parsed is None:
        return False
    return any(parsed in network for network in parse_networks(raw_networks))


def extract_client_ip(request: Request, *, trusted_proxies: str = "") -> str | None:
    """Resolve the caller address, honouring X-Forwarded-For only when the peer is a trusted proxy.

    The forwarded chain is walked from the right so that hops added by our own
    proxies are skipped and a client-supplied prefix cannot spoof the address.
    """
    peer = _as_ip(request.client.host if request.client is not None else None)
    if peer is None:
        return None
    forwarded_for = request.headers.get("X-Forwarded-For")
    if not forwarded_for or not ip_in_networks(str(peer), trusted_proxies):
        return str(peer)

    for hop in reversed(forwarded_for.split(",")):
        hop_ip = _as_ip(hop)
        if hop_ip is None:
            return None
        if not ip_in_networks(str(hop_ip), trusted_proxies):
            return str(hop_ip)
    return str(peer)


def _presented_token(request: Request) -> str | None:
    token = request.headers.get(INTERNAL_TOKEN_HEADER)
    if token:
        return token
    authorization = request.headers.get("Authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def internal_access_denial(
    request: Request,
    *,
    expected_token: str,
    allowlist: str,
    trusted_proxies: str = "",
) -> tuple[str | None, str | None]:
    """Returns ``(client_ip, denial_reason)``; the reason is None when access is granted."""
    client_ip = extract_client_ip(request, trusted_proxies=trusted_proxies)
    if not ip_in_networks(client_ip, allowlist):
        return client_ip, DENIED_IP_NOT_ALLOWED

    presented = _presented_token(request)
    if not expected_token or not presented or not secrets.compare_digest(expected_token, presented):
        return client_ip, DENIED_INVALID_CREDENTIALS
    return client_ip, None
