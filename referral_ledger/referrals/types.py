from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class TierDefinition:
    level: int
    name: str
    referrals_required: int
    reward_minutes: int
    reward_credit_cents: int


@dataclass(frozen=True, slots=True)
class ReferralInvitation:
    referral_id: int
    referral_code: str
    referral_link: str
    referred_identity: str
    product_context: str
    expires_at: datetime | None


@dataclass(frozen=True, slots=True)
class ClickOutcome:
    recorded: bool
    referral_id: int | None = None
    status: str | None = None
    clicked_count: int | None = None


@dataclass(frozen=True, slots=True)
class SignupOutcome:
    referral_id: int
    status: str
    recorded: bool
    idempotent_replay: bool


@dataclass(frozen=True, slots=True)
class RewardOutcome:
    referral_id: int
    reward_entry_id: int
    beneficiary_id: int
    reward_minutes: int
    reward_credit_cents: int
    tier_level: int
    tier_name: str
    awarded_at: datetime
    expires_at: datetime | None
    idempotent_replay: bool


@dataclass(frozen=True, slots=True)
class ClaimOutcome:
    claimed_count: int
    minutes: int
    credit_cents: int
    reward_entry_ids: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class ReferralClosure:
    referral_id: int
    status: str
    idempotent_replay: bool


@dataclass(frozen=True, slots=True)
class RewardView:
    reward_entry_id: int
    referral_id: int
    reward_minutes: int
    reward_credit_cents: int
    tier_level: int
    tier_name: str
    awarded_at: datetime
    expires_at: datetime | None
    claimed: bool
    claimed_at: datetime | None


@dataclass(frozen=True, slots=True)
class RewardsOverview:
    active: tuple[RewardView, ...]
    expired: tuple[RewardView, ...]
    claimed: tuple[RewardView, ...]
    available_minutes: int
    available_credit_cents: int
    claimed_minutes: int
    claimed_credit_cents: int


@dataclass(frozen=True, slots=True)
class TierProgress:
    current_tier: TierDefinition
    next_tier: TierDefinition | None
    referrals_counted: int
    referrals_to_next_tier: int


@dataclass(frozen=True, slots=True)
class StatisticsSnapshot:
    beneficiary_id: int
    total_referrals_sent: int
    total_clicks: int
    total_signups: int
    total_active: int
    total_rewards_earned: int
    total_minutes_earned: int
    total_credit_cents_earned: int
    total_minutes_claimed: int
    total_credit_cents_claimed: int
    available_minutes: int
    available_credit_cents: int
    last_referral_at: datetime | None
    last_reward_at: datetime | None
    progress: TierProgress
    tiers: tuple[TierDefinition, ...]


@dataclass(frozen=True, slots=True)
class CodeLookup:
    referral_code: str
    valid: bool
    entry_tier: TierDefinition | None


@dataclass(frozen=True, slots=True)
class ClickContext:
    ip_address: str | None = None
    user_agent: str | None = None
    referer: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None


@dataclass(frozen=True, slots=True)
class ReferralHistoryItem:
    referral_id: int
    referral_code: str
    referred_identity: str
    product_context: str
    status: str
    clicked_count: int
    created_at: datetime
    last_clicked_at: datetime | None
    signup_at: datetime | None
    activated_at: datetime | None
    rewarded_at: datetime | None
    closed_at: datetime | None
    expires_at: datetime | None


@dataclass(frozen=True, slots=True)
class ReferralHistoryPage:
    items: tuple[ReferralHistoryItem, ...]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return max(1, (self.total + self.limit - 1) // self.limit)
