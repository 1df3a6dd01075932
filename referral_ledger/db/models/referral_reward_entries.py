from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.db.models.base import Base


class RewardLedgerEntry(Base):
    __tablename__ = "referral_reward_entries"
    __table_args__ = (
        # One award per referral. Concurrent activations rely on this, not on status checks.
        UniqueConstraint("referral_id", name="uq_referral_reward_entries_referral"),
        CheckConstraint(
            "reward_minutes >= 0",
            name="ck_referral_reward_entries_minutes_non_negative",
        ),
        CheckConstraint(
            "reward_credit_cents >= 0",
            name="ck_referral_reward_entries_credit_non_negative",
        ),
        CheckConstraint(
            "claimed = false OR claimed_at IS NOT NULL",
            name="ck_referral_reward_entries_claimed_stamped",
        ),
        CheckConstraint(
            "claimed_at IS NULL OR expires_at IS NULL OR claimed_at <= expires_at",
            name="ck_referral_reward_entries_claimed_before_expiry",
        ),
        Index("idx_referral_reward_entries_beneficiary_awarded", "beneficiary_id", "awarded_at"),
        Index(
            "idx_referral_reward_entries_unclaimed",
            "beneficiary_id",
            "expires_at",
            postgresql_where=text("claimed = false"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    referral_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("referrals.id"),
        nullable=False,
    )
    beneficiary_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    reward_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_credit_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tier_level: Mapped[int] = mapped_column(Integer, nullable=False)
    tier_name: Mapped[str] = mapped_column(String(32), nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claimed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
