from __future__ import annotations

import structlog
from fastapi import HTTPException, Request

from referral_ledger.core.config import get_settings
from referral_ledger.referrals.types import (
    ReferralHistoryItem,
    RewardOutcome,
    RewardView,
    TierDefinition,
    TierProgress,
)
from referral_ledger.services.internal_auth import internal_access_denial
from referral_ledger.workers.tasks.referrals import dispatch_referral_notifications

from .referrals_models import (
    ReferralHistoryItemResponse,
    RewardEntryResponse,
    RewardOutcomeResponse,
    TierProgressResponse,
    TierResponse,
)

logger = structlog.get_logger(__name__)

ACCOUNT_ID_HEADER = "X-Account-Id"
STORE_RETRY_AFTER_SECONDS = "1"
NO_PENDING_REFERRAL_MESSAGE = "no pending referral"


def resolve_account_id(request: Request) -> int:
    raw_value = request.headers.get(ACCOUNT_ID_HEADER)
    if raw_value is None:
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHENTICATED"})
    try:
        account_id = int(raw_value.strip())
    except ValueError:
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHENTICATED"}) from None
    if account_id <= 0:
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHENTICATED"})
    return account_id


def store_unavailable() -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={"code": "E_STORE_UNAVAILABLE"},
        headers={"Retry-After": STORE_RETRY_AFTER_SECONDS},
    )


def assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip, denial = internal_access_denial(
        request,
        expected_token=settings.internal_api_token,
        allowlist=settings.internal_api_allowlist,
        trusted_proxies=settings.internal_api_trusted_proxies,
    )
    if denial is not None:
        logger.warning("internal_referrals_auth_failed", reason=denial, client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def enqueue_reward_notification(outcome: RewardOutcome) -> None:
    """Schedules notification delivery without blocking on or failing the award."""
    if outcome.idempotent_replay:
        return
    try:
        dispatch_referral_notifications.delay()
    except Exception:
        logger.exception(
            "referral_notification_enqueue_failed",
            referral_id=outcome.referral_id,
            reward_entry_id=outcome.reward_entry_id,
        )


def tier_as_response(tier: TierDefinition) -> TierResponse:
    return TierResponse(
        level=tier.level,
        name=tier.name,
        referrals_required=tier.referrals_required,
        reward_minutes=tier.reward_minutes,
        reward_credit_cents=tier.reward_credit_cents,
    )


def progress_as_response(progress: TierProgress) -> TierProgressResponse:
    return TierProgressResponse(
        current_tier=tier_as_response(progress.current_tier),
        next_tier=tier_as_response(progress.next_tier) if progress.next_tier else None,
        referrals_counted=progress.referrals_counted,
        referrals_to_next_tier=progress.referrals_to_next_tier,
    )


def reward_view_as_response(view: RewardView) -> RewardEntryResponse:
    return RewardEntryResponse(
        reward_id=view.reward_entry_id,
        referral_id=view.referral_id,
        reward_minutes=view.reward_minutes,
        reward_credit_cents=view.reward_credit_cents,
        tier_level=view.tier_level,
        tier_name=view.tier_name,
        awarded_at=view.awarded_at,
        expires_at=view.expires_at,
        claimed=view.claimed,
        claimed_at=view.claimed_at,
    )


def reward_outcome_as_response(outcome: RewardOutcome) -> RewardOutcomeResponse:
    return RewardOutcomeResponse(
        referral_id=outcome.referral_id,
        reward_id=outcome.reward_entry_id,
        beneficiary_id=outcome.beneficiary_id,
        reward_minutes=outcome.reward_minutes,
        reward_credit_cents=outcome.reward_credit_cents,
        tier_level=outcome.tier_level,
        tier_name=outcome.tier_name,
        awarded_at=outcome.awarded_at,
        expires_at=outcome.expires_at,
    )


def history_item_as_response(item: ReferralHistoryItem) -> ReferralHistoryItemResponse:
    return ReferralHistoryItemResponse(
        referral_id=item.referral_id,
        referral_code=item.referral_code,
        referred_email=item.referred_identity,
        product_context=item.product_context,
        status=item.status,
        clicked_count=item.clicked_count,
        created_at=item.created_at,
        last_clicked_at=item.last_clicked_at,
        signup_at=item.signup_at,
        activated_at=item.activated_at,
        rewarded_at=item.rewarded_at,
        closed_at=item.closed_at,
        expires_at=item.expires_at,
    )
