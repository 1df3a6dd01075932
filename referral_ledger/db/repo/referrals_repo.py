from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.models.referrals import Referral


class ReferralsRepo:
    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, referral_id: int) -> Referral | None:
        stmt = select(Referral).where(Referral.id == referral_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code(session: AsyncSession, *, referral_code: str) -> Referral | None:
        stmt = select(Referral).where(Referral.referral_code == referral_code)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code_for_update(
        session: AsyncSession,
        *,
        referral_code: str,
    ) -> Referral | None:
        stmt = select(Referral).where(Referral.referral_code == referral_code).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_code_and_identity_for_update(
        session: AsyncSession,
        *,
        referral_code: str,
        referred_identity: str,
    ) -> Referral | None:
        stmt = (
            select(Referral)
            .where(
                Referral.referral_code == referral_code,
                Referral.referred_identity == referred_identity,
            )
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_identity_and_context(
        session: AsyncSession,
        *,
        referred_identity: str,
        product_context: str,
    ) -> Referral | None:
        stmt = select(Referral).where(
            Referral.referred_identity == referred_identity,
            Referral.product_context == product_context,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_oldest_by_identity_in_statuses(
        session: AsyncSession,
        *,
        referred_identity: str,
        statuses: tuple[str, ...],
    ) -> Referral | None:
        stmt = (
            select(Referral)
            .where(
                Referral.referred_identity == referred_identity,
                Referral.status.in_(statuses),
            )
            .order_by(Referral.created_at.asc(), Referral.id.asc())
            .limit(1)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def try_create(
        session: AsyncSession,
        *,
        referrer_id: int,
        referred_identity: str,
        product_context: str,
        referral_code: str,
        created_at: datetime,
        expires_at: datetime | None,
    ) -> int | None:
        """Inserts a pending referral; returns None when a unique key (code or identity) is taken."""
        stmt = (
            postgresql_insert(Referral)
            .values(
                referrer_id=referrer_id,
                referred_identity=referred_identity,
                product_context=product_context,
                referral_code=referral_code,
                status="pending",
                clicked_count=0,
                created_at=created_at,
                updated_at=created_at,
                expires_at=expires_at,
            )
            .on_conflict_do_nothing()
            .returning(Referral.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_expirable_for_update(
        session: AsyncSession,
        *,
        now_utc: datetime,
        statuses: tuple[str, ...],
        limit: int,
    ) -> list[Referral]:
        stmt = (
            select(Referral)
            .where(
                Referral.status.in_(statuses),
                Referral.expires_at.is_not(None),
                Referral.expires_at < now_utc,
            )
            .order_by(Referral.expires_at.asc(), Referral.id.asc())
            .limit(max(1, int(limit)))
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_for_referrer(
        session: AsyncSession,
        *,
        referrer_id: int,
        status: str | None,
        limit: int,
        offset: int,
    ) -> list[Referral]:
        stmt = select(Referral).where(Referral.referrer_id == referrer_id)
        if status is not None:
            stmt = stmt.where(Referral.status == status)
        stmt = (
            stmt.order_by(Referral.created_at.desc(), Referral.id.desc())
            .limit(max(1, int(limit)))
            .offset(max(0, int(offset)))
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_for_referrer(
        session: AsyncSession,
        *,
        referrer_id: int,
        status: str | None,
    ) -> int:
        stmt = select(func.count(Referral.id)).where(Referral.referrer_id == referrer_id)
        if status is not None:
            stmt = stmt.where(Referral.status == status)
        result = await session.execute(stmt)
        return int(result.scalar_one())
