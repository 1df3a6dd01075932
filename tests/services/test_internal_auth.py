from __future__ import annotations

from types import SimpleNamespace

import pytest

from referral_ledger.services.internal_auth import (
    DENIED_INVALID_CREDENTIALS,
    DENIED_IP_NOT_ALLOWED,
    extract_client_ip,
    internal_access_denial,
    ip_in_networks,
    parse_networks,
)

OPS_ALLOWLIST = "10.20.0.0/16,2001:db8::/32"
LOAD_BALANCERS = "172.16.0.10,172.16.0.11"


def _request(*, peer: str | None, headers: dict[str, str] | None = None) -> SimpleNamespace:
    return SimpleNamespace(
        headers=headers or {},
        client=SimpleNamespace(host=peer) if peer is not None else None,
    )


def test_parse_networks_accepts_hosts_and_blocks_and_drops_garbage() -> None:
    networks = parse_networks("10.20.0.0/16, 172.16.0.10 ,not-an-ip,,::1")

    assert [str(network) for network in networks] == ["10.20.0.0/16", "172.16.0.10/32", "::1/128"]


@pytest.mark.parametrize(
    ("client_ip", "expected"),
    [
        ("10.20.4.7", True),
        ("2001:db8::5", True),
        ("10.21.0.1", False),
        ("testclient", False),
        (None, False),
    ],
)
def test_ip_in_networks_matches_ops_allowlist(client_ip: str | None, expected: bool) -> None:
    assert ip_in_networks(client_ip, OPS_ALLOWLIST) is expected


def test_empty_allowlist_admits_nobody() -> None:
    assert ip_in_networks("10.20.4.7", "") is False


def test_forwarded_chain_resolves_to_first_untrusted_hop_from_the_right() -> None:
    request = _request(
        peer="172.16.0.11",
        headers={"X-Forwarded-For": "203.0.113.9, 10.20.4.7, 172.16.0.10"},
    )

    assert extract_client_ip(request, trusted_proxies=LOAD_BALANCERS) == "10.20.4.7"


def test_forwarded_chain_ignored_when_peer_is_not_a_load_balancer() -> None:
    request = _request(peer="198.51.100.10", headers={"X-Forwarded-For": "10.20.4.7"})

    assert extract_client_ip(request, trusted_proxies=LOAD_BALANCERS) == "198.51.100.10"


def test_forwarded_chain_with_garbage_hop_yields_no_address() -> None:
    request = _request(peer="172.16.0.10", headers={"X-Forwarded-For": "10.20.4.7, bogus"})

    assert extract_client_ip(request, trusted_proxies=LOAD_BALANCERS) is None


def test_missing_peer_yields_no_address() -> None:
    assert extract_client_ip(_request(peer=None)) is None


def test_ops_caller_behind_load_balancer_with_token_is_admitted() -> None:
    request = _request(
        peer="172.16.0.10",
        headers={"X-Forwarded-For": "10.20.4.7", "X-Internal-Token": "ops-secret"},
    )

    assert internal_access_denial(
        request,
        expected_token="ops-secret",
        allowlist=OPS_ALLOWLIST,
        trusted_proxies=LOAD_BALANCERS,
    ) == ("10.20.4.7", None)


def test_bearer_authorization_is_accepted_as_internal_token() -> None:
    request = _request(peer="10.20.4.7", headers={"Authorization": "Bearer ops-secret"})

    _, denial = internal_access_denial(request, expected_token="ops-secret", allowlist=OPS_ALLOWLIST)

    assert denial is None


@pytest.mark.parametrize(
    ("peer", "headers", "expected_token", "reason"),
    [
        ("198.51.100.10", {"X-Internal-Token": "ops-secret"}, "ops-secret", DENIED_IP_NOT_ALLOWED),
        ("10.20.4.7", {}, "ops-secret", DENIED_INVALID_CREDENTIALS),
        ("10.20.4.7", {"X-Internal-Token": "guess"}, "ops-secret", DENIED_INVALID_CREDENTIALS),
        ("10.20.4.7", {"Authorization": "Basic b3BzOnNlY3JldA=="}, "ops-secret", DENIED_INVALID_CREDENTIALS),
        ("10.20.4.7", {"X-Internal-Token": ""}, "", DENIED_INVALID_CREDENTIALS),
    ],
)
def test_internal_access_denial_reasons(
    peer: str,
    headers: dict[str, str],
    expected_token: str,
    reason: str,
) -> None:
    _, denial = internal_access_denial(
        _request(peer=peer, headers=headers),
        expected_token=expected_token,
        allowlist=OPS_ALLOWLIST,
    )

    assert denial == reason
