from __future__ import annotations

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.db.models.base import Base


class ReferralTier(Base):
    __tablename__ = "referral_tiers"
    __table_args__ = (
        CheckConstraint("level > 0", name="ck_referral_tiers_level_positive"),
        CheckConstraint(
            "referrals_required > 0",
            name="ck_referral_tiers_required_positive",
        ),
        CheckConstraint(
            "reward_minutes >= 0 AND reward_credit_cents >= 0",
            name="ck_referral_tiers_rewards_non_negative",
        ),
        UniqueConstraint("referrals_required", name="uq_referral_tiers_required"),
        UniqueConstraint("name", name="uq_referral_tiers_name"),
    )

    level: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(32), nullable=False)
    referrals_required: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_credit_cents: Mapped[int] = mapped_column(Integer, nullable=False)
