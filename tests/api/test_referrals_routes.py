from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from referral_ledger.api.routes import referrals as referrals_routes
from referral_ledger.main import app
from referral_ledger.referrals.errors import (
    ReferralAlreadyExistsError,
    ReferralInvalidIdentityError,
    ReferralNotFoundError,
    ReferralStoreUnavailableError,
    RewardAlreadyClaimedError,
    RewardExpiredError,
    RewardNotFoundError,
)
from referral_ledger.referrals.tiers import DEFAULT_TIERS
from referral_ledger.referrals.types import (
    ClaimOutcome,
    ClickOutcome,
    CodeLookup,
    ReferralHistoryItem,
    ReferralHistoryPage,
    ReferralInvitation,
    RewardsOverview,
    RewardView,
    SignupOutcome,
    StatisticsSnapshot,
    TierProgress,
)

UTC = timezone.utc
SESSION = object()


@asynccontextmanager
async def _fake_transaction():
    yield SESSION


@asynccontextmanager
async def _unavailable_transaction():
    raise ReferralStoreUnavailableError("store busy")
    yield SESSION  # pragma: no cover


@pytest.fixture(autouse=True)
def _patch_transaction(monkeypatch) -> None:
    monkeypatch.setattr(referrals_routes, "referral_transaction", _fake_transaction)


def _reward_view(*, reward_entry_id: int, claimed: bool = False) -> RewardView:
    return RewardView(
        reward_entry_id=reward_entry_id,
        referral_id=reward_entry_id + 100,
        reward_minutes=60,
        reward_credit_cents=0,
        tier_level=1,
        tier_name="Bronze",
        awarded_at=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
        expires_at=datetime(2027, 3, 1, 12, 0, tzinfo=UTC),
        claimed=claimed,
        claimed_at=datetime(2026, 3, 2, 12, 0, tzinfo=UTC) if claimed else None,
    )


def test_track_click_records_context(monkeypatch) -> None:
    calls: list[dict[str, object]] = []

    async def fake_record_click(session, *, referral_code: str, now_utc, context):
        assert session is SESSION
        calls.append({"code": referral_code, "context": context})
        return ClickOutcome(recorded=True, referral_id=1, status="clicked", clicked_count=1)

    monkeypatch.setattr(referrals_routes.ReferralService, "record_click", fake_record_click)

    client = TestClient(app)
    response = client.post(
        "/referrals/track",
        json={"code": "abc-123", "action": "click", "utm_source": "newsletter"},
        headers={"User-Agent": "pytest-agent"},
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "action": "click"}
    assert calls[0]["code"] == "abc-123"
    context = calls[0]["context"]
    assert context.user_agent == "pytest-agent"
    assert context.utm_source == "newsletter"


def test_track_signup_passes_identity(monkeypatch) -> None:
    calls: list[dict[str, object]] = []

    async def fake_record_signup(
        session,
        *,
        referral_code: str,
        referred_identity: str,
        referred_party_id: int,
        now_utc,
    ):
        del session, now_utc
        calls.append(
            {
                "code": referral_code,
                "identity": referred_identity,
                "party": referred_party_id,
            }
        )
        return SignupOutcome(referral_id=1, status="signed_up", recorded=True, idempotent_replay=False)

    monkeypatch.setattr(referrals_routes.ReferralService, "record_signup", fake_record_signup)

    client = TestClient(app)
    response = client.post(
        "/referrals/track",
        json={
            "code": "ABC-123",
            "action": "signup",
            "referred_identity": "friend@example.com",
            "referred_party_id": 77,
        },
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "action": "signup"}
    assert calls == [{"code": "ABC-123", "identity": "friend@example.com", "party": 77}]


@pytest.mark.parametrize(
    "payload",
    [
        {"code": "ABC-123", "action": "activate"},
        {"action": "click"},
        {"code": "ABC-123", "action": "signup", "referred_identity": "friend@example.com"},
        {"code": "<script>", "action": "click"},
        {"code": "AB C", "action": "signup", "referred_identity": "friend@example.com", "referred_party_id": 7},
        {"code": "ABC-123", "action": "signup", "referred_identity": "   ", "referred_party_id": 7},
        ["not", "an", "object"],
    ],
)
def test_track_rejects_malformed_payload(payload: object) -> None:
    client = TestClient(app)
    response = client.post("/referrals/track", json=payload)

    assert response.status_code == 400
    assert response.json() == {"detail": {"code": "E_REFERRAL_TRACK_INVALID"}}


def test_track_rejects_non_json_body() -> None:
    client = TestClient(app)
    response = client.post(
        "/referrals/track",
        content=b"code=ABC-123",
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )

    assert response.status_code == 400


def test_track_unknown_code_returns_404(monkeypatch) -> None:
    async def fake_record_click(session, *, referral_code: str, now_utc, context):
        raise ReferralNotFoundError(referral_code)

    monkeypatch.setattr(referrals_routes.ReferralService, "record_click", fake_record_click)

    client = TestClient(app)
    response = client.post("/referrals/track", json={"code": "NOPE-99", "action": "click"})

    assert response.status_code == 404
    assert response.json() == {"detail": {"code": "E_REFERRAL_NOT_FOUND"}}


def test_track_returns_503_with_retry_after_when_store_unavailable(monkeypatch) -> None:
    monkeypatch.setattr(referrals_routes, "referral_transaction", _unavailable_transaction)

    client = TestClient(app)
    response = client.post("/referrals/track", json={"code": "ABC-123", "action": "click"})

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json() == {"detail": {"code": "E_STORE_UNAVAILABLE"}}


def test_lookup_referral_code_returns_entry_tier(monkeypatch) -> None:
    async def fake_lookup(session, *, referral_code: str, now_utc):
        del session, now_utc
        return CodeLookup(referral_code=referral_code.upper(), valid=True, entry_tier=DEFAULT_TIERS[0])

    monkeypatch.setattr(referrals_routes.ReferralService, "lookup_referral_code", fake_lookup)

    client = TestClient(app)
    response = client.get("/referrals/codes/abc-123")

    assert response.status_code == 200
    assert response.json() == {
        "code": "ABC-123",
        "valid": True,
        "entry_tier": {
            "level": 1,
            "name": "Bronze",
            "referrals_required": 1,
            "reward_minutes": 60,
            "reward_credit_cents": 0,
        },
    }


def test_lookup_referral_code_reports_invalid_code(monkeypatch) -> None:
    async def fake_lookup(session, *, referral_code: str, now_utc):
        del session, now_utc
        return CodeLookup(referral_code=referral_code, valid=False, entry_tier=None)

    monkeypatch.setattr(referrals_routes.ReferralService, "lookup_referral_code", fake_lookup)

    client = TestClient(app)
    response = client.get("/referrals/codes/unknown")

    assert response.status_code == 200
    assert response.json() == {"code": "unknown", "valid": False, "entry_tier": None}


def test_create_invitation_requires_account_header() -> None:
    client = TestClient(app)
    response = client.post("/referrals/invitations", json={"referred_email": "friend@example.com"})

    assert response.status_code == 401
    assert response.json() == {"detail": {"code": "E_UNAUTHENTICATED"}}


def test_create_invitation_returns_created_referral(monkeypatch) -> None:
    async def fake_create(
        session,
        *,
        referrer_id: int,
        referred_identity: str,
        product_context,
        referrer_identity,
        now_utc,
    ):
        del session, now_utc
        assert referrer_id == 42
        assert referrer_identity == "owner@example.com"
        assert product_context == "pro"
        return ReferralInvitation(
            referral_id=9,
            referral_code="K7QM-3XPA",
            referral_link="http://localhost:3000/signup?ref=K7QM-3XPA",
            referred_identity=referred_identity.lower(),
            product_context="pro",
            expires_at=datetime(2026, 6, 1, 0, 0, tzinfo=UTC),
        )

    monkeypatch.setattr(referrals_routes.ReferralService, "create_referral", fake_create)

    client = TestClient(app)
    response = client.post(
        "/referrals/invitations",
        json={"referred_email": "Friend@Example.com", "product_context": "pro"},
        headers={"X-Account-Id": "42", "X-Account-Email": "owner@example.com"},
    )

    assert response.status_code == 201
    payload = response.json()
    assert payload["referral_id"] == 9
    assert payload["referral_code"] == "K7QM-3XPA"
    assert payload["referred_email"] == "friend@example.com"
    assert payload["referral_link"].endswith("ref=K7QM-3XPA")


@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (ReferralInvalidIdentityError("bad"), 422, "E_REFERRAL_IDENTITY_INVALID"),
        (ReferralAlreadyExistsError("dup"), 409, "E_REFERRAL_ALREADY_EXISTS"),
    ],
)
def test_create_invitation_maps_domain_errors(
    monkeypatch,
    error: Exception,
    status_code: int,
    code: str,
) -> None:
    async def fake_create(session, **kwargs):
        raise error

    monkeypatch.setattr(referrals_routes.ReferralService, "create_referral", fake_create)

    client = TestClient(app)
    response = client.post(
        "/referrals/invitations",
        json={"referred_email": "friend@example.com"},
        headers={"X-Account-Id": "42"},
    )

    assert response.status_code == status_code
    assert response.json() == {"detail": {"code": code}}


def test_rewards_overview_groups_entries(monkeypatch) -> None:
    async def fake_overview(session, *, beneficiary_id: int, now_utc):
        del session, now_utc
        assert beneficiary_id == 42
        return RewardsOverview(
            active=(_reward_view(reward_entry_id=1),),
            expired=(),
            claimed=(_reward_view(reward_entry_id=2, claimed=True),),
            available_minutes=60,
            available_credit_cents=0,
            claimed_minutes=60,
            claimed_credit_cents=0,
        )

    monkeypatch.setattr(referrals_routes.ReferralService, "get_rewards_overview", fake_overview)

    client = TestClient(app)
    response = client.get("/referrals/rewards", headers={"X-Account-Id": "42"})

    assert response.status_code == 200
    payload = response.json()
    assert [item["reward_id"] for item in payload["active"]] == [1]
    assert [item["reward_id"] for item in payload["claimed"]] == [2]
    assert payload["summary"] == {
        "active_count": 1,
        "expired_count": 0,
        "claimed_count": 1,
        "available_minutes": 60,
        "available_credit_cents": 0,
        "claimed_minutes": 60,
        "claimed_credit_cents": 0,
    }


def test_claim_one_requires_reward_id() -> None:
    client = TestClient(app)
    response = client.post("/referrals/claim", json={"mode": "one"}, headers={"X-Account-Id": "42"})

    assert response.status_code == 422
    assert response.json() == {"detail": {"code": "E_REWARD_ID_REQUIRED"}}


def test_claim_all_returns_totals(monkeypatch) -> None:
    async def fake_claim_all(session, *, beneficiary_id: int, now_utc):
        del session, now_utc
        assert beneficiary_id == 42
        return ClaimOutcome(claimed_count=2, minutes=260, credit_cents=0, reward_entry_ids=(3, 4))

    monkeypatch.setattr(referrals_routes.ReferralService, "claim_all_rewards", fake_claim_all)

    client = TestClient(app)
    response = client.post("/referrals/claim", json={"mode": "all"}, headers={"X-Account-Id": "42"})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "claimed_count": 2,
        "minutes": 260,
        "credit_cents": 0,
        "reward_ids": [3, 4],
    }


@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (RewardNotFoundError("missing"), 404, "E_REWARD_NOT_FOUND"),
        (RewardAlreadyClaimedError("claimed"), 409, "E_REWARD_ALREADY_CLAIMED"),
        (RewardExpiredError("expired"), 410, "E_REWARD_EXPIRED"),
    ],
)
def test_claim_one_maps_domain_errors(
    monkeypatch,
    error: Exception,
    status_code: int,
    code: str,
) -> None:
    async def fake_claim(session, *, beneficiary_id: int, reward_entry_id: int, now_utc):
        del session, beneficiary_id, now_utc
        assert reward_entry_id == 5
        raise error

    monkeypatch.setattr(referrals_routes.ReferralService, "claim_reward", fake_claim)

    client = TestClient(app)
    response = client.post(
        "/referrals/claim",
        json={"mode": "one", "reward_id": 5},
        headers={"X-Account-Id": "42"},
    )

    assert response.status_code == status_code
    assert response.json() == {"detail": {"code": code}}


def test_statistics_returns_progress(monkeypatch) -> None:
    async def fake_statistics(session, *, beneficiary_id: int):
        del session
        return StatisticsSnapshot(
            beneficiary_id=beneficiary_id,
            total_referrals_sent=4,
            total_clicks=9,
            total_signups=3,
            total_active=3,
            total_rewards_earned=3,
            total_minutes_earned=320,
            total_credit_cents_earned=0,
            total_minutes_claimed=60,
            total_credit_cents_claimed=0,
            available_minutes=260,
            available_credit_cents=0,
            last_referral_at=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
            last_reward_at=datetime(2026, 3, 5, 12, 0, tzinfo=UTC),
            progress=TierProgress(
                current_tier=DEFAULT_TIERS[1],
                next_tier=DEFAULT_TIERS[2],
                referrals_counted=3,
                referrals_to_next_tier=2,
            ),
            tiers=DEFAULT_TIERS,
        )

    monkeypatch.setattr(referrals_routes.ReferralService, "get_statistics", fake_statistics)

    client = TestClient(app)
    response = client.get("/referrals/statistics", headers={"X-Account-Id": "42"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["total_clicks"] == 9
    assert payload["available_minutes"] == 260
    assert payload["progress"]["current_tier"]["name"] == "Silver"
    assert payload["progress"]["next_tier"]["name"] == "Gold"
    assert payload["progress"]["referrals_to_next_tier"] == 2
    assert [tier["name"] for tier in payload["tiers"]] == ["Bronze", "Silver", "Gold", "Platinum"]


@pytest.mark.parametrize("account_header", ["abc", "0", "-4"])
def test_statistics_rejects_invalid_account_header(account_header: str) -> None:
    client = TestClient(app)
    response = client.get("/referrals/statistics", headers={"X-Account-Id": account_header})

    assert response.status_code == 401


def test_history_returns_page_with_funnel_timestamps(monkeypatch) -> None:
    calls: list[dict[str, object]] = []

    async def fake_history(session, *, referrer_id: int, status, page: int, limit: int):
        assert session is SESSION
        calls.append({"referrer_id": referrer_id, "status": status, "page": page, "limit": limit})
        return ReferralHistoryPage(
            items=(
                ReferralHistoryItem(
                    referral_id=5,
                    referral_code="K7QM-3XPA",
                    referred_identity="friend@example.com",
                    product_context="default",
                    status="signed_up",
                    clicked_count=2,
                    created_at=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
                    last_clicked_at=datetime(2026, 3, 1, 13, 0, tzinfo=UTC),
                    signup_at=datetime(2026, 3, 2, 9, 0, tzinfo=UTC),
                    activated_at=None,
                    rewarded_at=None,
                    closed_at=None,
                    expires_at=datetime(2026, 5, 30, 12, 0, tzinfo=UTC),
                ),
            ),
            page=2,
            limit=5,
            total=6,
        )

    monkeypatch.setattr(referrals_routes.ReferralService, "get_referral_history", fake_history)

    client = TestClient(app)
    response = client.get(
        "/referrals/history",
        params={"page": 2, "limit": 5, "status": "Signed_Up"},
        headers={"X-Account-Id": "42"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert calls == [{"referrer_id": 42, "status": "signed_up", "page": 2, "limit": 5}]
    assert payload["pagination"] == {"page": 2, "limit": 5, "total": 6, "total_pages": 2}
    assert payload["referrals"][0]["referred_email"] == "friend@example.com"
    assert payload["referrals"][0]["signup_at"] == "2026-03-02T09:00:00Z"
    assert payload["referrals"][0]["activated_at"] is None


def test_history_treats_all_as_no_status_filter(monkeypatch) -> None:
    seen: list[object] = []

    async def fake_history(session, *, referrer_id: int, status, page: int, limit: int):
        del session, referrer_id
        seen.append((status, page, limit))
        return ReferralHistoryPage(items=(), page=page, limit=limit, total=0)

    monkeypatch.setattr(referrals_routes.ReferralService, "get_referral_history", fake_history)

    client = TestClient(app)
    response = client.get("/referrals/history", params={"status": "all"}, headers={"X-Account-Id": "42"})

    assert response.status_code == 200
    assert seen == [(None, 1, 10)]
    assert response.json()["pagination"] == {"page": 1, "limit": 10, "total": 0, "total_pages": 1}


def test_history_rejects_unknown_status() -> None:
    client = TestClient(app)
    response = client.get("/referrals/history", params={"status": "paid"}, headers={"X-Account-Id": "42"})

    assert response.status_code == 422
    assert response.json() == {"detail": {"code": "E_REFERRAL_STATUS_INVALID"}}


@pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 51}, {"page": 0}])
def test_history_rejects_out_of_range_paging(params: dict[str, int]) -> None:
    client = TestClient(app)
    response = client.get("/referrals/history", params=params, headers={"X-Account-Id": "42"})

    assert response.status_code == 422


def test_history_requires_account_header() -> None:
    client = TestClient(app)
    response = client.get("/referrals/history")

    assert response.status_code == 401
