from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, text
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.db.models.base import Base


class AccountBonusBalance(Base):
    __tablename__ = "account_bonus_balances"
    __table_args__ = (
        CheckConstraint(
            "bonus_minutes >= 0 AND bonus_credit_cents >= 0",
            name="ck_account_bonus_balances_non_negative",
        ),
    )

    account_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    bonus_minutes: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    bonus_credit_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
