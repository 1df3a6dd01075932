from __future__ import annotations

from types import SimpleNamespace

from fastapi.testclient import TestClient

from referral_ledger.api.routes import referrals_helpers
from referral_ledger.main import app


def _settings(*, allowlist: str, trusted_proxies: str = "") -> SimpleNamespace:
    return SimpleNamespace(
        internal_api_token="internal-secret",
        internal_api_allowlist=allowlist,
        internal_api_trusted_proxies=trusted_proxies,
    )


def test_internal_referral_activation_rejects_missing_token(monkeypatch) -> None:
    monkeypatch.setattr(referrals_helpers, "get_settings", lambda: _settings(allowlist="127.0.0.1/32"))

    client = TestClient(app)
    response = client.post("/internal/referrals/activate", json={"referral_id": 1})

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_internal_referral_activation_rejects_disallowed_ip(monkeypatch) -> None:
    monkeypatch.setattr(referrals_helpers, "get_settings", lambda: _settings(allowlist="192.168.0.0/16"))

    client = TestClient(app)
    response = client.post(
        "/internal/referrals/activate",
        json={"referral_id": 1},
        headers={
            "X-Internal-Token": "internal-secret",
            "X-Forwarded-For": "10.0.0.25",
        },
    )

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_internal_referral_expire_rejects_missing_token(monkeypatch) -> None:
    monkeypatch.setattr(referrals_helpers, "get_settings", lambda: _settings(allowlist="127.0.0.1/32"))

    client = TestClient(app)
    response = client.post("/internal/referrals/5/expire", json={})

    assert response.status_code == 403
    assert response.json() == {"detail": {"code": "E_FORBIDDEN"}}


def test_assert_internal_access_accepts_allowed_ip_with_token(monkeypatch) -> None:
    monkeypatch.setattr(referrals_helpers, "get_settings", lambda: _settings(allowlist="127.0.0.1/32"))
    request = SimpleNamespace(
        headers={"X-Internal-Token": "internal-secret"},
        client=SimpleNamespace(host="127.0.0.1"),
    )

    referrals_helpers.assert_internal_access(request)  # type: ignore[arg-type]
