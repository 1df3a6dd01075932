from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import ValidationError

from referral_ledger.core.config import get_settings
from referral_ledger.core.referral_codes import normalize_referral_code
from referral_ledger.db.transactions import referral_transaction
from referral_ledger.referrals.constants import (
    HISTORY_DEFAULT_PAGE_SIZE,
    HISTORY_MAX_PAGE_SIZE,
    REFERRAL_STATUSES,
)
from referral_ledger.referrals.errors import (
    ReferralAlreadyExistsError,
    ReferralInvalidIdentityError,
    ReferralNotFoundError,
    ReferralStoreUnavailableError,
    RewardAlreadyClaimedError,
    RewardExpiredError,
    RewardNotFoundError,
)
from referral_ledger.referrals.identity import normalize_referred_identity
from referral_ledger.referrals.service import ReferralService
from referral_ledger.referrals.types import ClickContext
from referral_ledger.services.internal_auth import extract_client_ip

from .referrals_helpers import (
    history_item_as_response,
    progress_as_response,
    resolve_account_id,
    reward_view_as_response,
    store_unavailable,
    tier_as_response,
)
from .referrals_models import (
    PaginationResponse,
    ReferralClaimRequest,
    ReferralClaimResponse,
    ReferralCodeLookupResponse,
    ReferralHistoryResponse,
    ReferralInvitationRequest,
    ReferralInvitationResponse,
    ReferralStatisticsResponse,
    ReferralTrackRequest,
    ReferralTrackResponse,
    RewardsOverviewResponse,
    RewardsSummaryResponse,
)

router = APIRouter(prefix="/referrals", tags=["referrals"])
logger = structlog.get_logger(__name__)


async def _parse_track_request(request: Request) -> ReferralTrackRequest:
    try:
        raw_payload = await request.json()
        payload = ReferralTrackRequest.model_validate(raw_payload)
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail={"code": "E_REFERRAL_TRACK_INVALID"}) from None
    if normalize_referral_code(payload.code) is None:
        raise HTTPException(status_code=400, detail={"code": "E_REFERRAL_TRACK_INVALID"})
    if payload.action == "signup" and (
        normalize_referred_identity(payload.referred_identity) is None
        or payload.referred_party_id is None
    ):
        raise HTTPException(status_code=400, detail={"code": "E_REFERRAL_TRACK_INVALID"})
    return payload


@router.post("/track", response_model=ReferralTrackResponse)
async def track_referral(request: Request) -> ReferralTrackResponse:
    payload = await _parse_track_request(request)
    now_utc = datetime.now(timezone.utc)

    try:
        async with referral_transaction() as session:
            if payload.action == "click":
                await ReferralService.record_click(
                    session,
                    referral_code=payload.code,
                    now_utc=now_utc,
                    context=ClickContext(
                        ip_address=extract_client_ip(
                            request,
                            trusted_proxies=get_settings().internal_api_trusted_proxies,
                        ),
                        user_agent=request.headers.get("User-Agent"),
                        referer=request.headers.get("Referer"),
                        utm_source=payload.utm_source,
                        utm_medium=payload.utm_medium,
                        utm_campaign=payload.utm_campaign,
                    ),
                )
            else:
                await ReferralService.record_signup(
                    session,
                    referral_code=payload.code,
                    referred_identity=payload.referred_identity or "",
                    referred_party_id=int(payload.referred_party_id or 0),
                    now_utc=now_utc,
                )
    except ReferralNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_REFERRAL_NOT_FOUND"}) from exc
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    return ReferralTrackResponse(success=True, action=payload.action)


@router.get("/codes/{code}", response_model=ReferralCodeLookupResponse)
async def lookup_referral_code(code: str) -> ReferralCodeLookupResponse:
    now_utc = datetime.now(timezone.utc)
    try:
        async with referral_transaction() as session:
            lookup = await ReferralService.lookup_referral_code(
                session,
                referral_code=code,
                now_utc=now_utc,
            )
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    return ReferralCodeLookupResponse(
        code=lookup.referral_code,
        valid=lookup.valid,
        entry_tier=tier_as_response(lookup.entry_tier) if lookup.entry_tier else None,
    )


@router.post("/invitations", response_model=ReferralInvitationResponse, status_code=201)
async def create_referral_invitation(
    payload: ReferralInvitationRequest,
    request: Request,
) -> ReferralInvitationResponse:
    referrer_id = resolve_account_id(request)
    now_utc = datetime.now(timezone.utc)

    try:
        async with referral_transaction() as session:
            invitation = await ReferralService.create_referral(
                session,
                referrer_id=referrer_id,
                referred_identity=payload.referred_email,
                product_context=payload.product_context,
                referrer_identity=request.headers.get("X-Account-Email"),
                now_utc=now_utc,
            )
    except ReferralInvalidIdentityError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_REFERRAL_IDENTITY_INVALID"}) from exc
    except ReferralAlreadyExistsError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_REFERRAL_ALREADY_EXISTS"}) from exc
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    return ReferralInvitationResponse(
        referral_id=invitation.referral_id,
        referral_code=invitation.referral_code,
        referral_link=invitation.referral_link,
        referred_email=invitation.referred_identity,
        product_context=invitation.product_context,
        expires_at=invitation.expires_at,
    )


@router.get("/rewards", response_model=RewardsOverviewResponse)
async def get_referral_rewards(request: Request) -> RewardsOverviewResponse:
    beneficiary_id = resolve_account_id(request)
    now_utc = datetime.now(timezone.utc)
    try:
        async with referral_transaction() as session:
            overview = await ReferralService.get_rewards_overview(
                session,
                beneficiary_id=beneficiary_id,
                now_utc=now_utc,
            )
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    return RewardsOverviewResponse(
        active=[reward_view_as_response(item) for item in overview.active],
        expired=[reward_view_as_response(item) for item in overview.expired],
        claimed=[reward_view_as_response(item) for item in overview.claimed],
        summary=RewardsSummaryResponse(
            active_count=len(overview.active),
            expired_count=len(overview.expired),
            claimed_count=len(overview.claimed),
            available_minutes=overview.available_minutes,
            available_credit_cents=overview.available_credit_cents,
            claimed_minutes=overview.claimed_minutes,
            claimed_credit_cents=overview.claimed_credit_cents,
        ),
    )


@router.post("/claim", response_model=ReferralClaimResponse)
async def claim_referral_rewards(
    payload: ReferralClaimRequest,
    request: Request,
) -> ReferralClaimResponse:
    beneficiary_id = resolve_account_id(request)
    if payload.mode == "one" and payload.reward_id is None:
        raise HTTPException(status_code=422, detail={"code": "E_REWARD_ID_REQUIRED"})
    now_utc = datetime.now(timezone.utc)

    try:
        async with referral_transaction() as session:
            if payload.mode == "one":
                outcome = await ReferralService.claim_reward(
                    session,
                    beneficiary_id=beneficiary_id,
                    reward_entry_id=int(payload.reward_id or 0),
                    now_utc=now_utc,
                )
            else:
                outcome = await ReferralService.claim_all_rewards(
                    session,
                    beneficiary_id=beneficiary_id,
                    now_utc=now_utc,
                )
    except RewardNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_REWARD_NOT_FOUND"}) from exc
    except RewardAlreadyClaimedError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_REWARD_ALREADY_CLAIMED"}) from exc
    except RewardExpiredError as exc:
        raise HTTPException(status_code=410, detail={"code": "E_REWARD_EXPIRED"}) from exc
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    return ReferralClaimResponse(
        success=True,
        claimed_count=outcome.claimed_count,
        minutes=outcome.minutes,
        credit_cents=outcome.credit_cents,
        reward_ids=list(outcome.reward_entry_ids),
    )


@router.get("/statistics", response_model=ReferralStatisticsResponse)
async def get_referral_statistics(request: Request) -> ReferralStatisticsResponse:
    beneficiary_id = resolve_account_id(request)
    try:
        async with referral_transaction() as session:
            snapshot = await ReferralService.get_statistics(session, beneficiary_id=beneficiary_id)
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    return ReferralStatisticsResponse(
        total_referrals_sent=snapshot.total_referrals_sent,
        total_clicks=snapshot.total_clicks,
        total_signups=snapshot.total_signups,
        total_active=snapshot.total_active,
        total_rewards_earned=snapshot.total_rewards_earned,
        total_minutes_earned=snapshot.total_minutes_earned,
        total_credit_cents_earned=snapshot.total_credit_cents_earned,
        total_minutes_claimed=snapshot.total_minutes_claimed,
        total_credit_cents_claimed=snapshot.total_credit_cents_claimed,
        available_minutes=snapshot.available_minutes,
        available_credit_cents=snapshot.available_credit_cents,
        last_referral_at=snapshot.last_referral_at,
        last_reward_at=snapshot.last_reward_at,
        progress=progress_as_response(snapshot.progress),
        tiers=[tier_as_response(tier) for tier in snapshot.tiers],
    )


@router.get("/history", response_model=ReferralHistoryResponse)
async def get_referral_history(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=HISTORY_DEFAULT_PAGE_SIZE, ge=1, le=HISTORY_MAX_PAGE_SIZE),
    status: str | None = Query(default=None, min_length=1, max_length=16),
) -> ReferralHistoryResponse:
    referrer_id = resolve_account_id(request)
    status_filter: str | None = None
    if status is not None:
        normalized_status = status.strip().lower()
        if normalized_status != "all":
            if normalized_status not in REFERRAL_STATUSES:
                raise HTTPException(status_code=422, detail={"code": "E_REFERRAL_STATUS_INVALID"})
            status_filter = normalized_status

    try:
        async with referral_transaction() as session:
            history = await ReferralService.get_referral_history(
                session,
                referrer_id=referrer_id,
                status=status_filter,
                page=page,
                limit=limit,
            )
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    return ReferralHistoryResponse(
        referrals=[history_item_as_response(item) for item in history.items],
        pagination=PaginationResponse(
            page=history.page,
            limit=history.limit,
            total=history.total,
            total_pages=history.total_pages,
        ),
    )
