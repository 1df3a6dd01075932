from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.models.referral_reward_entries import RewardLedgerEntry


def _claimable_filter(now_utc: datetime):
    return (
        RewardLedgerEntry.claimed.is_(False),
        or_(RewardLedgerEntry.expires_at.is_(None), RewardLedgerEntry.expires_at >= now_utc),
    )


class RewardEntriesRepo:
    @staticmethod
    async def try_create(
        session: AsyncSession,
        *,
        referral_id: int,
        beneficiary_id: int,
        reward_minutes: int,
        reward_credit_cents: int,
        tier_level: int,
        tier_name: str,
        awarded_at: datetime,
        expires_at: datetime | None,
    ) -> int | None:
        """Returns the new entry id, or None when the referral already has an entry."""
        stmt = (
            postgresql_insert(RewardLedgerEntry)
            .values(
                referral_id=referral_id,
                beneficiary_id=beneficiary_id,
                reward_minutes=reward_minutes,
                reward_credit_cents=reward_credit_cents,
                tier_level=tier_level,
                tier_name=tier_name,
                awarded_at=awarded_at,
                expires_at=expires_at,
                claimed=False,
            )
            .on_conflict_do_nothing(index_elements=[RewardLedgerEntry.referral_id])
            .returning(RewardLedgerEntry.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_referral_id(
        session: AsyncSession,
        *,
        referral_id: int,
    ) -> RewardLedgerEntry | None:
        stmt = select(RewardLedgerEntry).where(RewardLedgerEntry.referral_id == referral_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_for_beneficiary_for_update(
        session: AsyncSession,
        *,
        entry_id: int,
        beneficiary_id: int,
    ) -> RewardLedgerEntry | None:
        stmt = (
            select(RewardLedgerEntry)
            .where(
                RewardLedgerEntry.id == entry_id,
                RewardLedgerEntry.beneficiary_id == beneficiary_id,
            )
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_claimed(
        session: AsyncSession,
        *,
        entry_id: int,
        now_utc: datetime,
    ) -> bool:
        stmt = (
            update(RewardLedgerEntry)
            .where(RewardLedgerEntry.id == entry_id, *_claimable_filter(now_utc))
            .values(claimed=True, claimed_at=now_utc)
            .returning(RewardLedgerEntry.id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def claim_all_for_beneficiary(
        session: AsyncSession,
        *,
        beneficiary_id: int,
        now_utc: datetime,
    ) -> list[tuple[int, int, int]]:
        """Claims every eligible entry in one conditional update.

        Rows locked or claimed by a concurrent claim are re-checked by PostgreSQL after
        the lock is released, so an entry is never returned twice.
        """
        stmt = (
            update(RewardLedgerEntry)
            .where(
                RewardLedgerEntry.beneficiary_id == beneficiary_id,
                *_claimable_filter(now_utc),
            )
            .values(claimed=True, claimed_at=now_utc)
            .returning(
                RewardLedgerEntry.id,
                RewardLedgerEntry.reward_minutes,
                RewardLedgerEntry.reward_credit_cents,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return [(int(row[0]), int(row[1]), int(row[2])) for row in result.all()]

    @staticmethod
    async def list_for_beneficiary(
        session: AsyncSession,
        *,
        beneficiary_id: int,
    ) -> list[RewardLedgerEntry]:
        stmt = (
            select(RewardLedgerEntry)
            .where(RewardLedgerEntry.beneficiary_id == beneficiary_id)
            .order_by(RewardLedgerEntry.awarded_at.desc(), RewardLedgerEntry.id.desc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
