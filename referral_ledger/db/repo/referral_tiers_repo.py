from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.models.referral_tiers import ReferralTier


class ReferralTiersRepo:
    @staticmethod
    async def list_ordered(session: AsyncSession) -> list[ReferralTier]:
        stmt = select(ReferralTier).order_by(ReferralTier.referrals_required.asc())
        result = await session.execute(stmt)
        return list(result.scalars().all())
