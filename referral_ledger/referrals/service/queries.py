from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.core.referral_codes import normalize_referral_code
from referral_ledger.db.models.referral_reward_entries import RewardLedgerEntry
from referral_ledger.db.models.referrals import Referral
from referral_ledger.db.repo.referral_statistics_repo import ReferralStatisticsRepo
from referral_ledger.db.repo.referral_tiers_repo import ReferralTiersRepo
from referral_ledger.db.repo.referrals_repo import ReferralsRepo
from referral_ledger.db.repo.reward_entries_repo import RewardEntriesRepo
from referral_ledger.referrals.constants import (
    HISTORY_DEFAULT_PAGE_SIZE,
    HISTORY_MAX_PAGE_SIZE,
    OPEN_FUNNEL_STATUSES,
)
from referral_ledger.referrals.tiers import DEFAULT_TIERS, next_tier_after, tier_for, validate_tier_table
from referral_ledger.referrals.types import (
    CodeLookup,
    ReferralHistoryItem,
    ReferralHistoryPage,
    RewardsOverview,
    RewardView,
    StatisticsSnapshot,
    TierDefinition,
    TierProgress,
)


async def load_tier_table(session: AsyncSession) -> tuple[TierDefinition, ...]:
    rows = await ReferralTiersRepo.list_ordered(session)
    if not rows:
        return DEFAULT_TIERS
    return validate_tier_table(
        [
            TierDefinition(
                level=row.level,
                name=row.name,
                referrals_required=row.referrals_required,
                reward_minutes=row.reward_minutes,
                reward_credit_cents=row.reward_credit_cents,
            )
            for row in rows
        ]
    )


def _reward_view(entry: RewardLedgerEntry) -> RewardView:
    return RewardView(
        reward_entry_id=entry.id,
        referral_id=entry.referral_id,
        reward_minutes=entry.reward_minutes,
        reward_credit_cents=entry.reward_credit_cents,
        tier_level=entry.tier_level,
        tier_name=entry.tier_name,
        awarded_at=entry.awarded_at,
        expires_at=entry.expires_at,
        claimed=entry.claimed,
        claimed_at=entry.claimed_at,
    )


def build_tier_progress(
    qualifying_count: int,
    tiers: tuple[TierDefinition, ...],
) -> TierProgress:
    next_tier = next_tier_after(qualifying_count, tiers)
    return TierProgress(
        current_tier=tier_for(qualifying_count, tiers),
        next_tier=next_tier,
        referrals_counted=qualifying_count,
        referrals_to_next_tier=(
            max(0, next_tier.referrals_required - qualifying_count) if next_tier else 0
        ),
    )


async def get_rewards_overview(
    session: AsyncSession,
    *,
    beneficiary_id: int,
    now_utc: datetime,
) -> RewardsOverview:
    entries = await RewardEntriesRepo.list_for_beneficiary(session, beneficiary_id=beneficiary_id)

    active: list[RewardView] = []
    expired: list[RewardView] = []
    claimed: list[RewardView] = []
    for entry in entries:
        view = _reward_view(entry)
        if entry.claimed:
            claimed.append(view)
        elif entry.expires_at is not None and now_utc > entry.expires_at:
            expired.append(view)
        else:
            active.append(view)

    return RewardsOverview(
        active=tuple(active),
        expired=tuple(expired),
        claimed=tuple(claimed),
        available_minutes=sum(item.reward_minutes for item in active),
        available_credit_cents=sum(item.reward_credit_cents for item in active),
        claimed_minutes=sum(item.reward_minutes for item in claimed),
        claimed_credit_cents=sum(item.reward_credit_cents for item in claimed),
    )


async def get_statistics(session: AsyncSession, *, beneficiary_id: int) -> StatisticsSnapshot:
    tiers = await load_tier_table(session)
    row = await ReferralStatisticsRepo.get(session, beneficiary_id=beneficiary_id)
    if row is None:
        return StatisticsSnapshot(
            beneficiary_id=beneficiary_id,
            total_referrals_sent=0,
            total_clicks=0,
            total_signups=0,
            total_active=0,
            total_rewards_earned=0,
            total_minutes_earned=0,
            total_credit_cents_earned=0,
            total_minutes_claimed=0,
            total_credit_cents_claimed=0,
            available_minutes=0,
            available_credit_cents=0,
            last_referral_at=None,
            last_reward_at=None,
            progress=build_tier_progress(0, tiers),
            tiers=tiers,
        )

    return StatisticsSnapshot(
        beneficiary_id=beneficiary_id,
        total_referrals_sent=row.total_referrals_sent,
        total_clicks=row.total_clicks,
        total_signups=row.total_signups,
        total_active=row.total_active,
        total_rewards_earned=row.total_rewards_earned,
        total_minutes_earned=row.total_minutes_earned,
        total_credit_cents_earned=row.total_credit_cents_earned,
        total_minutes_claimed=row.total_minutes_claimed,
        total_credit_cents_claimed=row.total_credit_cents_claimed,
        available_minutes=row.available_minutes,
        available_credit_cents=row.available_credit_cents,
        last_referral_at=row.last_referral_at,
        last_reward_at=row.last_reward_at,
        progress=build_tier_progress(row.total_rewards_earned, tiers),
        tiers=tiers,
    )


async def lookup_referral_code(
    session: AsyncSession,
    *,
    referral_code: str,
    now_utc: datetime,
) -> CodeLookup:
    normalized_code = normalize_referral_code(referral_code)
    if normalized_code is None:
        return CodeLookup(referral_code=referral_code.strip().upper(), valid=False, entry_tier=None)

    referral = await ReferralsRepo.get_by_code(session, referral_code=normalized_code)
    valid = (
        referral is not None
        and referral.status in OPEN_FUNNEL_STATUSES
        and (referral.expires_at is None or now_utc <= referral.expires_at)
    )
    if not valid:
        return CodeLookup(referral_code=normalized_code, valid=False, entry_tier=None)

    tiers = await load_tier_table(session)
    return CodeLookup(
        referral_code=normalized_code,
        valid=True,
        entry_tier=tiers[0] if tiers else None,
    )


def _history_item(referral: Referral) -> ReferralHistoryItem:
    return ReferralHistoryItem(
        referral_id=referral.id,
        referral_code=referral.referral_code,
        referred_identity=referral.referred_identity,
        product_context=referral.product_context,
        status=referral.status,
        clicked_count=referral.clicked_count,
        created_at=referral.created_at,
        last_clicked_at=referral.last_clicked_at,
        signup_at=referral.signup_at,
        activated_at=referral.activated_at,
        rewarded_at=referral.rewarded_at,
        closed_at=referral.closed_at,
        expires_at=referral.expires_at,
    )


async def get_referral_history(
    session: AsyncSession,
    *,
    referrer_id: int,
    status: str | None = None,
    page: int = 1,
    limit: int = HISTORY_DEFAULT_PAGE_SIZE,
) -> ReferralHistoryPage:
    """Newest-first page of the referrer's referrals, optionally narrowed to one status."""
    page = max(1, int(page))
    limit = min(max(1, int(limit)), HISTORY_MAX_PAGE_SIZE)
    total = await ReferralsRepo.count_for_referrer(session, referrer_id=referrer_id, status=status)
    rows = await ReferralsRepo.list_for_referrer(
        session,
        referrer_id=referrer_id,
        status=status,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return ReferralHistoryPage(
        items=tuple(_history_item(row) for row in rows),
        page=page,
        limit=limit,
        total=total,
    )
