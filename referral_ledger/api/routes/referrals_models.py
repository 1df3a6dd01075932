from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ReferralTrackRequest(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    action: Literal["click", "signup"]
    referred_identity: str | None = Field(default=None, min_length=1, max_length=320)
    referred_party_id: int | None = Field(default=None, gt=0)
    utm_source: str | None = Field(default=None, max_length=128)
    utm_medium: str | None = Field(default=None, max_length=128)
    utm_campaign: str | None = Field(default=None, max_length=128)


class ReferralTrackResponse(BaseModel):
    success: bool
    action: str


class TierResponse(BaseModel):
    level: int = Field(ge=0)
    name: str
    referrals_required: int = Field(ge=0)
    reward_minutes: int = Field(ge=0)
    reward_credit_cents: int = Field(ge=0)


class ReferralCodeLookupResponse(BaseModel):
    code: str
    valid: bool
    entry_tier: TierResponse | None = None


class ReferralInvitationRequest(BaseModel):
    referred_email: str = Field(min_length=3, max_length=320)
    product_context: str | None = Field(default=None, max_length=32)


class ReferralInvitationResponse(BaseModel):
    referral_id: int = Field(gt=0)
    referral_code: str
    referral_link: str
    referred_email: str
    product_context: str
    expires_at: datetime | None = None


class RewardEntryResponse(BaseModel):
    reward_id: int = Field(gt=0)
    referral_id: int = Field(gt=0)
    reward_minutes: int = Field(ge=0)
    reward_credit_cents: int = Field(ge=0)
    tier_level: int = Field(ge=0)
    tier_name: str
    awarded_at: datetime
    expires_at: datetime | None = None
    claimed: bool
    claimed_at: datetime | None = None


class RewardsSummaryResponse(BaseModel):
    active_count: int = Field(ge=0)
    expired_count: int = Field(ge=0)
    claimed_count: int = Field(ge=0)
    available_minutes: int = Field(ge=0)
    available_credit_cents: int = Field(ge=0)
    claimed_minutes: int = Field(ge=0)
    claimed_credit_cents: int = Field(ge=0)


class RewardsOverviewResponse(BaseModel):
    active: list[RewardEntryResponse]
    expired: list[RewardEntryResponse]
    claimed: list[RewardEntryResponse]
    summary: RewardsSummaryResponse


class ReferralClaimRequest(BaseModel):
    mode: Literal["one", "all"]
    reward_id: int | None = Field(default=None, gt=0)


class ReferralClaimResponse(BaseModel):
    success: bool
    claimed_count: int = Field(ge=0)
    minutes: int = Field(ge=0)
    credit_cents: int = Field(ge=0)
    reward_ids: list[int]


class TierProgressResponse(BaseModel):
    current_tier: TierResponse
    next_tier: TierResponse | None = None
    referrals_counted: int = Field(ge=0)
    referrals_to_next_tier: int = Field(ge=0)


class ReferralStatisticsResponse(BaseModel):
    total_referrals_sent: int = Field(ge=0)
    total_clicks: int = Field(ge=0)
    total_signups: int = Field(ge=0)
    total_active: int = Field(ge=0)
    total_rewards_earned: int = Field(ge=0)
    total_minutes_earned: int = Field(ge=0)
    total_credit_cents_earned: int = Field(ge=0)
    total_minutes_claimed: int = Field(ge=0)
    total_credit_cents_claimed: int = Field(ge=0)
    available_minutes: int = Field(ge=0)
    available_credit_cents: int = Field(ge=0)
    last_referral_at: datetime | None = None
    last_reward_at: datetime | None = None
    progress: TierProgressResponse
    tiers: list[TierResponse]


class ReferralActivationRequest(BaseModel):
    referral_id: int | None = Field(default=None, gt=0)
    referred_identity: str | None = Field(default=None, min_length=1, max_length=320)


class RewardOutcomeResponse(BaseModel):
    referral_id: int = Field(gt=0)
    reward_id: int = Field(gt=0)
    beneficiary_id: int = Field(gt=0)
    reward_minutes: int = Field(ge=0)
    reward_credit_cents: int = Field(ge=0)
    tier_level: int = Field(ge=0)
    tier_name: str
    awarded_at: datetime
    expires_at: datetime | None = None


class ReferralActivationResponse(BaseModel):
    success: bool
    message: str | None = None
    idempotent_replay: bool = False
    reward: RewardOutcomeResponse | None = None


class ReferralClosureRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=256)


class ReferralClosureResponse(BaseModel):
    referral_id: int = Field(gt=0)
    status: str
    idempotent_replay: bool


class BillingWebhookResponse(BaseModel):
    received: bool
    processed: bool


class ReferralHistoryItemResponse(BaseModel):
    referral_id: int = Field(gt=0)
    referral_code: str
    referred_email: str
    product_context: str
    status: str
    clicked_count: int = Field(ge=0)
    created_at: datetime
    last_clicked_at: datetime | None = None
    signup_at: datetime | None = None
    activated_at: datetime | None = None
    rewarded_at: datetime | None = None
    closed_at: datetime | None = None
    expires_at: datetime | None = None


class PaginationResponse(BaseModel):
    page: int = Field(ge=1)
    limit: int = Field(ge=1)
    total: int = Field(ge=0)
    total_pages: int = Field(ge=1)


class ReferralHistoryResponse(BaseModel):
    referrals: list[ReferralHistoryItemResponse]
    pagination: PaginationResponse
