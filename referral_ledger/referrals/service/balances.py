from __future__ import annotations

from datetime import datetime
from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.repo.account_bonus_balances_repo import AccountBonusBalancesRepo

logger = structlog.get_logger(__name__)


class AccountBalanceGateway(Protocol):
    """Credits bonus value to an account inside the caller's transaction.

    Implementations must write through ``session`` (or otherwise enlist in the same
    unit of work) so a failed claim never leaves a credited balance behind.
    """

    async def credit(
        self,
        session: AsyncSession,
        *,
        account_id: int,
        minutes: int,
        credit_cents: int,
        reason: str,
        now_utc: datetime,
    ) -> None: ...


class SqlAccountBalanceGateway:
    async def credit(
        self,
        session: AsyncSession,
        *,
        account_id: int,
        minutes: int,
        credit_cents: int,
        reason: str,
        now_utc: datetime,
    ) -> None:
        if minutes <= 0 and credit_cents <= 0:
            return
        await AccountBonusBalancesRepo.credit(
            session,
            account_id=account_id,
            minutes=minutes,
            credit_cents=credit_cents,
            now_utc=now_utc,
        )
        logger.info(
            "account_bonus_balance_credited",
            account_id=account_id,
            minutes=minutes,
            credit_cents=credit_cents,
            reason=reason,
        )


DEFAULT_BALANCE_GATEWAY: AccountBalanceGateway = SqlAccountBalanceGateway()
