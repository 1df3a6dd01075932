"""referral_ledger_initial_schema

Revision ID: 5b1e0c7d9a21
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5b1e0c7d9a21"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

DEFAULT_TIERS = (
    {"level": 1, "name": "Bronze", "referrals_required": 1, "reward_minutes": 60, "reward_credit_cents": 0},
    {"level": 2, "name": "Silver", "referrals_required": 3, "reward_minutes": 200, "reward_credit_cents": 0},
    {"level": 3, "name": "Gold", "referrals_required": 5, "reward_minutes": 500, "reward_credit_cents": 5000},
    {
        "level": 4,
        "name": "Platinum",
        "referrals_required": 10,
        "reward_minutes": 1000,
        "reward_credit_cents": 10000,
    },
)


def _counter(name: str, type_: sa.types.TypeEngine | None = None) -> sa.Column:
    return sa.Column(name, type_ or sa.Integer(), nullable=False, server_default=sa.text("0"))


def upgrade() -> None:
    op.create_table(
        "referrals",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("referrer_id", sa.BigInteger(), nullable=False),
        sa.Column("product_context", sa.String(32), nullable=False, server_default=sa.text("'default'")),
        sa.Column("referral_code", sa.String(32), nullable=False),
        sa.Column("referred_identity", sa.String(320), nullable=False),
        sa.Column("referred_party_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        _counter("clicked_count"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signup_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rewarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','clicked','signed_up','active','rewarded','expired','cancelled')",
            name="ck_referrals_status",
        ),
        sa.CheckConstraint("clicked_count >= 0", name="ck_referrals_clicked_count_non_negative"),
        sa.CheckConstraint(
            "referred_identity = lower(referred_identity)",
            name="ck_referrals_identity_lowercase",
        ),
        sa.CheckConstraint(
            "referred_party_id IS NULL OR referred_party_id <> referrer_id",
            name="ck_referrals_no_self_referral",
        ),
        sa.CheckConstraint(
            "last_clicked_at IS NULL OR last_clicked_at >= created_at",
            name="ck_referrals_clicked_after_created",
        ),
        sa.CheckConstraint(
            "signup_at IS NULL OR signup_at >= COALESCE(last_clicked_at, created_at)",
            name="ck_referrals_signup_ordered",
        ),
        sa.CheckConstraint(
            "activated_at IS NULL OR activated_at >= COALESCE(signup_at, last_clicked_at, created_at)",
            name="ck_referrals_activation_ordered",
        ),
        sa.CheckConstraint(
            "rewarded_at IS NULL OR rewarded_at >= "
            "COALESCE(activated_at, signup_at, last_clicked_at, created_at)",
            name="ck_referrals_reward_ordered",
        ),
        sa.CheckConstraint(
            "status NOT IN ('signed_up','active','rewarded') "
            "OR (signup_at IS NOT NULL AND referred_party_id IS NOT NULL)",
            name="ck_referrals_signed_up_bound",
        ),
        sa.CheckConstraint(
            "status NOT IN ('active','rewarded') OR activated_at IS NOT NULL",
            name="ck_referrals_active_stamped",
        ),
        sa.CheckConstraint(
            "status <> 'rewarded' OR rewarded_at IS NOT NULL",
            name="ck_referrals_rewarded_stamped",
        ),
        sa.UniqueConstraint("referral_code", name="uq_referrals_code"),
        sa.UniqueConstraint(
            "referred_identity",
            "product_context",
            name="uq_referrals_identity_context",
        ),
    )
    op.create_index("idx_referrals_referrer_created", "referrals", ["referrer_id", "created_at"])
    op.create_index("idx_referrals_referred_party", "referrals", ["referred_party_id"])
    op.create_index(
        "idx_referrals_open_deadline",
        "referrals",
        ["expires_at"],
        postgresql_where=sa.text("status IN ('pending','clicked')"),
    )

    op.create_table(
        "referral_reward_entries",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("referral_id", sa.BigInteger(), nullable=False),
        sa.Column("beneficiary_id", sa.BigInteger(), nullable=False),
        sa.Column("reward_minutes", sa.Integer(), nullable=False),
        sa.Column("reward_credit_cents", sa.Integer(), nullable=False),
        sa.Column("tier_level", sa.Integer(), nullable=False),
        sa.Column("tier_name", sa.String(32), nullable=False),
        sa.Column("awarded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"]),
        sa.UniqueConstraint("referral_id", name="uq_referral_reward_entries_referral"),
        sa.CheckConstraint(
            "reward_minutes >= 0",
            name="ck_referral_reward_entries_minutes_non_negative",
        ),
        sa.CheckConstraint(
            "reward_credit_cents >= 0",
            name="ck_referral_reward_entries_credit_non_negative",
        ),
        sa.CheckConstraint(
            "claimed = false OR claimed_at IS NOT NULL",
            name="ck_referral_reward_entries_claimed_stamped",
        ),
        sa.CheckConstraint(
            "claimed_at IS NULL OR expires_at IS NULL OR claimed_at <= expires_at",
            name="ck_referral_reward_entries_claimed_before_expiry",
        ),
    )
    op.create_index(
        "idx_referral_reward_entries_beneficiary_awarded",
        "referral_reward_entries",
        ["beneficiary_id", "awarded_at"],
    )
    op.create_index(
        "idx_referral_reward_entries_unclaimed",
        "referral_reward_entries",
        ["beneficiary_id", "expires_at"],
        postgresql_where=sa.text("claimed = false"),
    )

    op.create_table(
        "referral_statistics",
        sa.Column("beneficiary_id", sa.BigInteger(), primary_key=True),
        _counter("total_referrals_sent"),
        _counter("total_clicks"),
        _counter("total_signups"),
        _counter("total_active"),
        _counter("total_rewards_earned"),
        _counter("total_minutes_earned", sa.BigInteger()),
        _counter("total_credit_cents_earned", sa.BigInteger()),
        _counter("total_minutes_claimed", sa.BigInteger()),
        _counter("total_credit_cents_claimed", sa.BigInteger()),
        _counter("available_minutes", sa.BigInteger()),
        _counter("available_credit_cents", sa.BigInteger()),
        _counter("current_tier"),
        sa.Column("last_referral_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_reward_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "total_clicks >= 0 AND total_signups >= 0 AND total_active >= 0 "
            "AND total_rewards_earned >= 0 AND total_referrals_sent >= 0",
            name="ck_referral_statistics_totals_non_negative",
        ),
        sa.CheckConstraint(
            "available_minutes >= 0 AND available_credit_cents >= 0",
            name="ck_referral_statistics_available_non_negative",
        ),
        sa.CheckConstraint(
            "total_minutes_earned >= 0 AND total_credit_cents_earned >= 0 "
            "AND total_minutes_claimed >= 0 AND total_credit_cents_claimed >= 0",
            name="ck_referral_statistics_amounts_non_negative",
        ),
        sa.CheckConstraint("current_tier >= 0", name="ck_referral_statistics_tier_non_negative"),
    )

    tiers = op.create_table(
        "referral_tiers",
        sa.Column("level", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(32), nullable=False),
        sa.Column("referrals_required", sa.Integer(), nullable=False),
        sa.Column("reward_minutes", sa.Integer(), nullable=False),
        sa.Column("reward_credit_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("level > 0", name="ck_referral_tiers_level_positive"),
        sa.CheckConstraint("referrals_required > 0", name="ck_referral_tiers_required_positive"),
        sa.CheckConstraint(
            "reward_minutes >= 0 AND reward_credit_cents >= 0",
            name="ck_referral_tiers_rewards_non_negative",
        ),
        sa.UniqueConstraint("referrals_required", name="uq_referral_tiers_required"),
        sa.UniqueConstraint("name", name="uq_referral_tiers_name"),
    )
    op.bulk_insert(tiers, list(DEFAULT_TIERS))

    op.create_table(
        "referral_clicks",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("referral_id", sa.BigInteger(), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("referer", sa.String(1024), nullable=True),
        sa.Column("utm_source", sa.String(128), nullable=True),
        sa.Column("utm_medium", sa.String(128), nullable=True),
        sa.Column("utm_campaign", sa.String(128), nullable=True),
        sa.Column("clicked_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"]),
    )
    op.create_index(
        "idx_referral_clicks_referral_clicked",
        "referral_clicks",
        ["referral_id", "clicked_at"],
    )

    op.create_table(
        "account_bonus_balances",
        sa.Column("account_id", sa.BigInteger(), primary_key=True),
        _counter("bonus_minutes", sa.BigInteger()),
        _counter("bonus_credit_cents", sa.BigInteger()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "bonus_minutes >= 0 AND bonus_credit_cents >= 0",
            name="ck_account_bonus_balances_non_negative",
        ),
    )

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        _counter("attempts"),
        sa.Column("last_error", sa.String(256), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('PENDING','SENT','FAILED')", name="ck_outbox_events_status"),
        sa.CheckConstraint("attempts >= 0", name="ck_outbox_events_attempts_non_negative"),
    )
    op.create_index("idx_outbox_events_status_created", "outbox_events", ["status", "created_at"])

    # Ledger rows are never deleted and only ever flip from unclaimed to claimed.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_referral_reward_entries_guard()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                RAISE EXCEPTION 'referral_reward_entries rows cannot be deleted';
            END IF;
            IF OLD.claimed
               OR NOT NEW.claimed
               OR NEW.referral_id IS DISTINCT FROM OLD.referral_id
               OR NEW.beneficiary_id IS DISTINCT FROM OLD.beneficiary_id
               OR NEW.reward_minutes IS DISTINCT FROM OLD.reward_minutes
               OR NEW.reward_credit_cents IS DISTINCT FROM OLD.reward_credit_cents
               OR NEW.tier_level IS DISTINCT FROM OLD.tier_level
               OR NEW.tier_name IS DISTINCT FROM OLD.tier_name
               OR NEW.awarded_at IS DISTINCT FROM OLD.awarded_at
               OR NEW.expires_at IS DISTINCT FROM OLD.expires_at THEN
                RAISE EXCEPTION 'referral_reward_entries only allows the unclaimed -> claimed update';
            END IF;
            RETURN NEW;
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_referral_reward_entries_guard
        BEFORE UPDATE OR DELETE ON referral_reward_entries
        FOR EACH ROW
        EXECUTE FUNCTION fn_referral_reward_entries_guard();
        """
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_referrals_no_delete()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION 'referrals rows are retained for audit and cannot be deleted';
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_referrals_no_delete
        BEFORE DELETE ON referrals
        FOR EACH ROW
        EXECUTE FUNCTION fn_referrals_no_delete();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_referrals_no_delete ON referrals;")
    op.execute("DROP FUNCTION IF EXISTS fn_referrals_no_delete();")
    op.execute("DROP TRIGGER IF EXISTS trg_referral_reward_entries_guard ON referral_reward_entries;")
    op.execute("DROP FUNCTION IF EXISTS fn_referral_reward_entries_guard();")

    op.drop_index("idx_outbox_events_status_created", table_name="outbox_events")
    op.drop_table("outbox_events")
    op.drop_table("account_bonus_balances")
    op.drop_index("idx_referral_clicks_referral_clicked", table_name="referral_clicks")
    op.drop_table("referral_clicks")
    op.drop_table("referral_tiers")
    op.drop_table("referral_statistics")
    op.drop_index("idx_referral_reward_entries_unclaimed", table_name="referral_reward_entries")
    op.drop_index(
        "idx_referral_reward_entries_beneficiary_awarded",
        table_name="referral_reward_entries",
    )
    op.drop_table("referral_reward_entries")
    op.drop_index("idx_referrals_open_deadline", table_name="referrals")
    op.drop_index("idx_referrals_referred_party", table_name="referrals")
    op.drop_index("idx_referrals_referrer_created", table_name="referrals")
    op.drop_table("referrals")
