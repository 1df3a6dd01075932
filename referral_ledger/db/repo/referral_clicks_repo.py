from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.models.referral_clicks import ReferralClick


class ReferralClicksRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        referral_id: int,
        clicked_at: datetime,
        ip_address: str | None,
        user_agent: str | None,
        referer: str | None,
        utm_source: str | None,
        utm_medium: str | None,
        utm_campaign: str | None,
    ) -> ReferralClick:
        click = ReferralClick(
            referral_id=referral_id,
            clicked_at=clicked_at,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None,
            referer=referer[:1024] if referer else None,
            utm_source=utm_source,
            utm_medium=utm_medium,
            utm_campaign=utm_campaign,
        )
        session.add(click)
        await session.flush()
        return click

    @staticmethod
    async def count_for_referral(session: AsyncSession, *, referral_id: int) -> int:
        stmt = select(func.count(ReferralClick.id)).where(ReferralClick.referral_id == referral_id)
        result = await session.execute(stmt)
        return int(result.scalar_one() or 0)
