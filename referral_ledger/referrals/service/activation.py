from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.core.config import get_settings
from referral_ledger.db.models.referral_reward_entries import RewardLedgerEntry
from referral_ledger.db.repo.outbox_events_repo import OutboxEventsRepo
from referral_ledger.db.repo.referral_statistics_repo import ReferralStatisticsRepo
from referral_ledger.db.repo.referrals_repo import ReferralsRepo
from referral_ledger.db.repo.reward_entries_repo import RewardEntriesRepo
from referral_ledger.referrals.constants import (
    OUTBOX_EVENT_REWARD_GRANTED,
    OUTBOX_STATUS_PENDING,
    STATUS_ACTIVE,
    STATUS_REWARDED,
    STATUS_SIGNED_UP,
)
from referral_ledger.referrals.errors import ReferralNotEligibleError, ReferralNotFoundError
from referral_ledger.referrals.identity import normalize_referred_identity
from referral_ledger.referrals.tiers import tier_for
from referral_ledger.referrals.transitions import EVENT_ACTIVATE, EVENT_REWARD, resolve_transition
from referral_ledger.referrals.types import RewardOutcome

from .balances import DEFAULT_BALANCE_GATEWAY, AccountBalanceGateway
from .queries import load_tier_table
from .time_utils import stamp_after

logger = structlog.get_logger(__name__)


def _outcome(entry: RewardLedgerEntry, *, idempotent_replay: bool) -> RewardOutcome:
    return RewardOutcome(
        referral_id=entry.referral_id,
        reward_entry_id=entry.id,
        beneficiary_id=entry.beneficiary_id,
        reward_minutes=entry.reward_minutes,
        reward_credit_cents=entry.reward_credit_cents,
        tier_level=entry.tier_level,
        tier_name=entry.tier_name,
        awarded_at=entry.awarded_at,
        expires_at=entry.expires_at,
        idempotent_replay=idempotent_replay,
    )


async def _replay_existing(session: AsyncSession, *, referral_id: int) -> RewardOutcome | None:
    existing = await RewardEntriesRepo.get_by_referral_id(session, referral_id=referral_id)
    if existing is None:
        return None
    logger.info(
        "referral_reward_replayed",
        referral_id=referral_id,
        reward_entry_id=existing.id,
    )
    return _outcome(existing, idempotent_replay=True)


async def activate_referral(
    session: AsyncSession,
    *,
    referral_id: int,
    now_utc: datetime,
    balance_gateway: AccountBalanceGateway = DEFAULT_BALANCE_GATEWAY,
) -> RewardOutcome:
    settings = get_settings()

    referral = await ReferralsRepo.get_by_id_for_update(session, referral_id)
    if referral is None:
        raise ReferralNotFoundError

    if referral.status in (STATUS_ACTIVE, STATUS_REWARDED):
        replay = await _replay_existing(session, referral_id=referral.id)
        if replay is not None:
            return replay
        raise ReferralNotEligibleError
    if referral.status != STATUS_SIGNED_UP:
        raise ReferralNotEligibleError

    tiers = await load_tier_table(session)
    # Locking the aggregate row serializes awards per referrer, so the count read
    # here is the true number of earlier awards.
    statistics = await ReferralStatisticsRepo.get_or_create_for_update(
        session,
        beneficiary_id=referral.referrer_id,
    )
    earned_before = int(statistics.total_rewards_earned)
    tier = tier_for(earned_before + 1, tiers, fallback_to_lowest=True)

    activated_at = stamp_after(
        now_utc,
        referral.created_at,
        referral.last_clicked_at,
        referral.signup_at,
    )
    validity_days = settings.referral_reward_validity_days
    expires_at = activated_at + timedelta(days=validity_days) if validity_days > 0 else None

    entry_id = await RewardEntriesRepo.try_create(
        session,
        referral_id=referral.id,
        beneficiary_id=referral.referrer_id,
        reward_minutes=tier.reward_minutes,
        reward_credit_cents=tier.reward_credit_cents,
        tier_level=tier.level,
        tier_name=tier.name,
        awarded_at=activated_at,
        expires_at=expires_at,
    )
    if entry_id is None:
        replay = await _replay_existing(session, referral_id=referral.id)
        if replay is None:
            raise ReferralNotEligibleError
        return replay

    referral.status = resolve_transition(referral.status, EVENT_ACTIVATE)
    referral.activated_at = activated_at
    referral.status = resolve_transition(referral.status, EVENT_REWARD)
    referral.rewarded_at = activated_at
    referral.updated_at = activated_at

    await ReferralStatisticsRepo.record_award(
        session,
        beneficiary_id=referral.referrer_id,
        reward_minutes=tier.reward_minutes,
        reward_credit_cents=tier.reward_credit_cents,
        tier_level=tier.level,
        awarded_at=activated_at,
    )

    bonus_minutes = settings.referred_party_bonus_minutes
    bonus_credit_cents = settings.referred_party_bonus_credit_cents
    if referral.referred_party_id is not None and (bonus_minutes > 0 or bonus_credit_cents > 0):
        await balance_gateway.credit(
            session,
            account_id=referral.referred_party_id,
            minutes=bonus_minutes,
            credit_cents=bonus_credit_cents,
            reason="referred_party_bonus",
            now_utc=activated_at,
        )

    await OutboxEventsRepo.create(
        session,
        event_type=OUTBOX_EVENT_REWARD_GRANTED,
        payload={
            "referral_id": referral.id,
            "reward_entry_id": entry_id,
            "beneficiary_id": referral.referrer_id,
            "reward_minutes": tier.reward_minutes,
            "reward_credit_cents": tier.reward_credit_cents,
            "tier_level": tier.level,
            "tier_name": tier.name,
            "awarded_at": activated_at.isoformat(),
        },
        status=OUTBOX_STATUS_PENDING,
    )
    logger.info(
        "referral_reward_awarded",
        referral_id=referral.id,
        reward_entry_id=entry_id,
        beneficiary_id=referral.referrer_id,
        tier_level=tier.level,
        reward_minutes=tier.reward_minutes,
        reward_credit_cents=tier.reward_credit_cents,
    )
    return RewardOutcome(
        referral_id=referral.id,
        reward_entry_id=entry_id,
        beneficiary_id=referral.referrer_id,
        reward_minutes=tier.reward_minutes,
        reward_credit_cents=tier.reward_credit_cents,
        tier_level=tier.level,
        tier_name=tier.name,
        awarded_at=activated_at,
        expires_at=expires_at,
        idempotent_replay=False,
    )


async def activate_referred_identity(
    session: AsyncSession,
    *,
    referred_identity: str,
    now_utc: datetime,
    balance_gateway: AccountBalanceGateway = DEFAULT_BALANCE_GATEWAY,
) -> RewardOutcome:
    normalized_identity = normalize_referred_identity(referred_identity)
    if normalized_identity is None:
        raise ReferralNotEligibleError

    referral = await ReferralsRepo.get_oldest_by_identity_in_statuses(
        session,
        referred_identity=normalized_identity,
        statuses=(STATUS_SIGNED_UP,),
    )
    if referral is None:
        referral = await ReferralsRepo.get_oldest_by_identity_in_statuses(
            session,
            referred_identity=normalized_identity,
            statuses=(STATUS_ACTIVE, STATUS_REWARDED),
        )
    if referral is None:
        raise ReferralNotEligibleError

    return await activate_referral(
        session,
        referral_id=referral.id,
        now_utc=now_utc,
        balance_gateway=balance_gateway,
    )
