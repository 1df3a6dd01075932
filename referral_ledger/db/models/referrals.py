from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from referral_ledger.db.models.base import Base


class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','clicked','signed_up','active','rewarded','expired','cancelled')",
            name="ck_referrals_status",
        ),
        CheckConstraint("clicked_count >= 0", name="ck_referrals_clicked_count_non_negative"),
        CheckConstraint(
            "referred_identity = lower(referred_identity)",
            name="ck_referrals_identity_lowercase",
        ),
        CheckConstraint(
            "referred_party_id IS NULL OR referred_party_id <> referrer_id",
            name="ck_referrals_no_self_referral",
        ),
        CheckConstraint(
            "last_clicked_at IS NULL OR last_clicked_at >= created_at",
            name="ck_referrals_clicked_after_created",
        ),
        CheckConstraint(
            "signup_at IS NULL OR signup_at >= COALESCE(last_clicked_at, created_at)",
            name="ck_referrals_signup_ordered",
        ),
        CheckConstraint(
            "activated_at IS NULL OR activated_at >= COALESCE(signup_at, last_clicked_at, created_at)",
            name="ck_referrals_activation_ordered",
        ),
        CheckConstraint(
            "rewarded_at IS NULL OR rewarded_at >= "
            "COALESCE(activated_at, signup_at, last_clicked_at, created_at)",
            name="ck_referrals_reward_ordered",
        ),
        CheckConstraint(
            "status NOT IN ('signed_up','active','rewarded') "
            "OR (signup_at IS NOT NULL AND referred_party_id IS NOT NULL)",
            name="ck_referrals_signed_up_bound",
        ),
        CheckConstraint(
            "status NOT IN ('active','rewarded') OR activated_at IS NOT NULL",
            name="ck_referrals_active_stamped",
        ),
        CheckConstraint(
            "status <> 'rewarded' OR rewarded_at IS NOT NULL",
            name="ck_referrals_rewarded_stamped",
        ),
        UniqueConstraint("referral_code", name="uq_referrals_code"),
        UniqueConstraint(
            "referred_identity",
            "product_context",
            name="uq_referrals_identity_context",
        ),
        Index("idx_referrals_referrer_created", "referrer_id", "created_at"),
        Index("idx_referrals_referred_party", "referred_party_id"),
        Index(
            "idx_referrals_open_deadline",
            "expires_at",
            postgresql_where=text("status IN ('pending','clicked')"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    referrer_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    product_context: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        server_default=text("'default'"),
    )
    referral_code: Mapped[str] = mapped_column(String(32), nullable=False)
    referred_identity: Mapped[str] = mapped_column(String(320), nullable=False)
    referred_party_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    clicked_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signup_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rewarded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
