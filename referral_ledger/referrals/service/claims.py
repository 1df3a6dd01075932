from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.repo.referral_statistics_repo import ReferralStatisticsRepo
from referral_ledger.db.repo.reward_entries_repo import RewardEntriesRepo
from referral_ledger.referrals.errors import (
    RewardAlreadyClaimedError,
    RewardExpiredError,
    RewardNotFoundError,
)
from referral_ledger.referrals.types import ClaimOutcome

from .balances import DEFAULT_BALANCE_GATEWAY, AccountBalanceGateway

logger = structlog.get_logger(__name__)

EMPTY_CLAIM = ClaimOutcome(claimed_count=0, minutes=0, credit_cents=0, reward_entry_ids=())


async def _apply_claim(
    session: AsyncSession,
    *,
    beneficiary_id: int,
    minutes: int,
    credit_cents: int,
    now_utc: datetime,
    balance_gateway: AccountBalanceGateway,
) -> None:
    await ReferralStatisticsRepo.record_claim(
        session,
        beneficiary_id=beneficiary_id,
        minutes=minutes,
        credit_cents=credit_cents,
    )
    await balance_gateway.credit(
        session,
        account_id=beneficiary_id,
        minutes=minutes,
        credit_cents=credit_cents,
        reason="referral_reward_claim",
        now_utc=now_utc,
    )


async def claim_reward(
    session: AsyncSession,
    *,
    beneficiary_id: int,
    reward_entry_id: int,
    now_utc: datetime,
    balance_gateway: AccountBalanceGateway = DEFAULT_BALANCE_GATEWAY,
) -> ClaimOutcome:
    entry = await RewardEntriesRepo.get_for_beneficiary_for_update(
        session,
        entry_id=reward_entry_id,
        beneficiary_id=beneficiary_id,
    )
    if entry is None:
        raise RewardNotFoundError
    if entry.claimed:
        raise RewardAlreadyClaimedError
    if entry.expires_at is not None and now_utc > entry.expires_at:
        raise RewardExpiredError

    claimed = await RewardEntriesRepo.mark_claimed(session, entry_id=entry.id, now_utc=now_utc)
    if not claimed:
        raise RewardAlreadyClaimedError

    await _apply_claim(
        session,
        beneficiary_id=beneficiary_id,
        minutes=entry.reward_minutes,
        credit_cents=entry.reward_credit_cents,
        now_utc=now_utc,
        balance_gateway=balance_gateway,
    )
    logger.info(
        "referral_rewards_claimed",
        beneficiary_id=beneficiary_id,
        mode="one",
        claimed_count=1,
        minutes=entry.reward_minutes,
        credit_cents=entry.reward_credit_cents,
    )
    return ClaimOutcome(
        claimed_count=1,
        minutes=entry.reward_minutes,
        credit_cents=entry.reward_credit_cents,
        reward_entry_ids=(entry.id,),
    )


async def claim_all_rewards(
    session: AsyncSession,
    *,
    beneficiary_id: int,
    now_utc: datetime,
    balance_gateway: AccountBalanceGateway = DEFAULT_BALANCE_GATEWAY,
) -> ClaimOutcome:
    rows = await RewardEntriesRepo.claim_all_for_beneficiary(
        session,
        beneficiary_id=beneficiary_id,
        now_utc=now_utc,
    )
    if not rows:
        return EMPTY_CLAIM

    minutes = sum(row[1] for row in rows)
    credit_cents = sum(row[2] for row in rows)
    await _apply_claim(
        session,
        beneficiary_id=beneficiary_id,
        minutes=minutes,
        credit_cents=credit_cents,
        now_utc=now_utc,
        balance_gateway=balance_gateway,
    )
    logger.info(
        "referral_rewards_claimed",
        beneficiary_id=beneficiary_id,
        mode="all",
        claimed_count=len(rows),
        minutes=minutes,
        credit_cents=credit_cents,
    )
    return ClaimOutcome(
        claimed_count=len(rows),
        minutes=minutes,
        credit_cents=credit_cents,
        reward_entry_ids=tuple(sorted(row[0] for row in rows)),
    )
