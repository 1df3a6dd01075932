from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.models.referral_statistics import ReferralStatistics

# Every write is a single INSERT .. ON CONFLICT DO UPDATE with column-relative
# expressions, so concurrent callers never overwrite each other's increments.


async def _upsert(
    session: AsyncSession,
    *,
    beneficiary_id: int,
    insert_values: dict[str, object],
    update_values: dict[str, object],
) -> None:
    stmt = (
        postgresql_insert(ReferralStatistics)
        .values(beneficiary_id=beneficiary_id, **insert_values)
        .on_conflict_do_update(
            index_elements=[ReferralStatistics.beneficiary_id],
            set_={**update_values, "updated_at": func.now()},
        )
    )
    await session.execute(stmt)


class ReferralStatisticsRepo:
    @staticmethod
    async def get(session: AsyncSession, *, beneficiary_id: int) -> ReferralStatistics | None:
        stmt = (
            select(ReferralStatistics)
            .where(ReferralStatistics.beneficiary_id == beneficiary_id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_or_create_for_update(
        session: AsyncSession,
        *,
        beneficiary_id: int,
    ) -> ReferralStatistics:
        await session.execute(
            postgresql_insert(ReferralStatistics)
            .values(beneficiary_id=beneficiary_id)
            .on_conflict_do_nothing(index_elements=[ReferralStatistics.beneficiary_id])
        )
        stmt = (
            select(ReferralStatistics)
            .where(ReferralStatistics.beneficiary_id == beneficiary_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    @staticmethod
    async def record_referral_sent(
        session: AsyncSession,
        *,
        beneficiary_id: int,
        sent_at: datetime,
    ) -> None:
        await _upsert(
            session,
            beneficiary_id=beneficiary_id,
            insert_values={"total_referrals_sent": 1, "last_referral_at": sent_at},
            update_values={
                "total_referrals_sent": ReferralStatistics.total_referrals_sent + 1,
                "last_referral_at": func.greatest(ReferralStatistics.last_referral_at, sent_at),
            },
        )

    @staticmethod
    async def record_click(session: AsyncSession, *, beneficiary_id: int) -> None:
        await _upsert(
            session,
            beneficiary_id=beneficiary_id,
            insert_values={"total_clicks": 1},
            update_values={"total_clicks": ReferralStatistics.total_clicks + 1},
        )

    @staticmethod
    async def record_signup(session: AsyncSession, *, beneficiary_id: int) -> None:
        await _upsert(
            session,
            beneficiary_id=beneficiary_id,
            insert_values={"total_signups": 1},
            update_values={"total_signups": ReferralStatistics.total_signups + 1},
        )

    @staticmethod
    async def record_award(
        session: AsyncSession,
        *,
        beneficiary_id: int,
        reward_minutes: int,
        reward_credit_cents: int,
        tier_level: int,
        awarded_at: datetime,
    ) -> None:
        await _upsert(
            session,
            beneficiary_id=beneficiary_id,
            insert_values={
                "total_active": 1,
                "total_rewards_earned": 1,
                "total_minutes_earned": reward_minutes,
                "total_credit_cents_earned": reward_credit_cents,
                "available_minutes": reward_minutes,
                "available_credit_cents": reward_credit_cents,
                "current_tier": tier_level,
                "last_reward_at": awarded_at,
            },
            update_values={
                "total_active": ReferralStatistics.total_active + 1,
                "total_rewards_earned": ReferralStatistics.total_rewards_earned + 1,
                "total_minutes_earned": ReferralStatistics.total_minutes_earned + reward_minutes,
                "total_credit_cents_earned": (
                    ReferralStatistics.total_credit_cents_earned + reward_credit_cents
                ),
                "available_minutes": ReferralStatistics.available_minutes + reward_minutes,
                "available_credit_cents": (
                    ReferralStatistics.available_credit_cents + reward_credit_cents
                ),
                "current_tier": func.greatest(ReferralStatistics.current_tier, tier_level),
                "last_reward_at": func.greatest(ReferralStatistics.last_reward_at, awarded_at),
            },
        )

    @staticmethod
    async def record_claim(
        session: AsyncSession,
        *,
        beneficiary_id: int,
        minutes: int,
        credit_cents: int,
    ) -> None:
        await _upsert(
            session,
            beneficiary_id=beneficiary_id,
            insert_values={
                "total_minutes_claimed": minutes,
                "total_credit_cents_claimed": credit_cents,
            },
            update_values={
                "available_minutes": func.greatest(
                    ReferralStatistics.available_minutes - minutes, 0
                ),
                "available_credit_cents": func.greatest(
                    ReferralStatistics.available_credit_cents - credit_cents, 0
                ),
                "total_minutes_claimed": ReferralStatistics.total_minutes_claimed + minutes,
                "total_credit_cents_claimed": (
                    ReferralStatistics.total_credit_cents_claimed + credit_cents
                ),
            },
        )
