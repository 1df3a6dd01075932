from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from referral_ledger.db.session import SessionLocal
from referral_ledger.referrals.service import ReferralService
from tests.integration.referrals_fixtures import UTC, _create_referral_row, _invite_and_sign_up

NOW_UTC = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


async def _seed_history() -> list[int]:
    ids = []
    for idx in range(5):
        ids.append(
            await _create_referral_row(
                referrer_id=10,
                referred_identity=f"hist-{idx}@x.com",
                referral_code=f"HIST-0{idx}",
                created_at=NOW_UTC + timedelta(hours=idx),
                expires_at=NOW_UTC + timedelta(days=90),
            )
        )
    await _create_referral_row(
        referrer_id=11,
        referred_identity="other@x.com",
        referral_code="OTHER-01",
        created_at=NOW_UTC,
    )
    return ids


@pytest.mark.asyncio
async def test_history_pages_newest_first_for_referrer_only() -> None:
    ids = await _seed_history()

    async with SessionLocal() as session:
        first_page = await ReferralService.get_referral_history(session, referrer_id=10, page=1, limit=2)
        last_page = await ReferralService.get_referral_history(session, referrer_id=10, page=3, limit=2)
        beyond = await ReferralService.get_referral_history(session, referrer_id=10, page=4, limit=2)

    assert [item.referral_id for item in first_page.items] == [ids[4], ids[3]]
    assert (first_page.total, first_page.total_pages) == (5, 3)
    assert [item.referral_id for item in last_page.items] == [ids[0]]
    assert beyond.items == ()
    assert beyond.total == 5


@pytest.mark.asyncio
async def test_history_filters_by_status_and_exposes_funnel_timestamps() -> None:
    await _seed_history()
    signed = await _invite_and_sign_up(
        referrer_id=10,
        referred_identity="signed@x.com",
        referred_party_id=77,
        now_utc=NOW_UTC + timedelta(days=1),
    )

    async with SessionLocal() as session:
        history = await ReferralService.get_referral_history(session, referrer_id=10, status="signed_up")
        everything = await ReferralService.get_referral_history(session, referrer_id=10)

    assert history.total == 1
    (item,) = history.items
    assert item.referral_id == signed.referral_id
    assert item.status == "signed_up"
    assert item.signup_at == NOW_UTC + timedelta(days=1)
    assert item.activated_at is None
    assert everything.total == 6
    assert everything.limit == 10


@pytest.mark.asyncio
async def test_history_clamps_paging_arguments() -> None:
    await _seed_history()

    async with SessionLocal() as session:
        history = await ReferralService.get_referral_history(session, referrer_id=10, page=0, limit=500)

    assert (history.page, history.limit) == (1, 50)
    assert len(history.items) == 5
