from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Integer, text
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.db.models.base import Base


class ReferralStatistics(Base):
    __tablename__ = "referral_statistics"
    __table_args__ = (
        CheckConstraint(
            "total_clicks >= 0 AND total_signups >= 0 AND total_active >= 0 "
            "AND total_rewards_earned >= 0 AND total_referrals_sent >= 0",
            name="ck_referral_statistics_totals_non_negative",
        ),
        CheckConstraint(
            "available_minutes >= 0 AND available_credit_cents >= 0",
            name="ck_referral_statistics_available_non_negative",
        ),
        CheckConstraint(
            "total_minutes_earned >= 0 AND total_credit_cents_earned >= 0 "
            "AND total_minutes_claimed >= 0 AND total_credit_cents_claimed >= 0",
            name="ck_referral_statistics_amounts_non_negative",
        ),
        CheckConstraint("current_tier >= 0", name="ck_referral_statistics_tier_non_negative"),
    )

    beneficiary_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    total_referrals_sent: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_clicks: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_signups: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_active: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_rewards_earned: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    total_minutes_earned: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    total_credit_cents_earned: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    total_minutes_claimed: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    total_credit_cents_claimed: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    available_minutes: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    available_credit_cents: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0, server_default=text("0")
    )
    current_tier: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_referral_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_reward_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
