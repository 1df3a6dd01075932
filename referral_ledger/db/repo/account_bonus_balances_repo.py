from __future__ import annotations

from datetime import datetime

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.models.account_bonus_balances import AccountBonusBalance


class AccountBonusBalancesRepo:
    @staticmethod
    async def credit(
        session: AsyncSession,
        *,
        account_id: int,
        minutes: int,
        credit_cents: int,
        now_utc: datetime,
    ) -> None:
        stmt = (
            postgresql_insert(AccountBonusBalance)
            .values(
                account_id=account_id,
                bonus_minutes=minutes,
                bonus_credit_cents=credit_cents,
                updated_at=now_utc,
            )
            .on_conflict_do_update(
                index_elements=[AccountBonusBalance.account_id],
                set_={
                    "bonus_minutes": AccountBonusBalance.bonus_minutes + minutes,
                    "bonus_credit_cents": AccountBonusBalance.bonus_credit_cents + credit_cents,
                    "updated_at": now_utc,
                },
            )
        )
        await session.execute(stmt)
