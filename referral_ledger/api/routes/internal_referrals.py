from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Request

from referral_ledger.db.transactions import referral_transaction
from referral_ledger.referrals.errors import (
    ReferralNotEligibleError,
    ReferralNotFoundError,
    ReferralStoreUnavailableError,
    ReferralTransitionError,
)
from referral_ledger.referrals.service import ReferralService

from .referrals_helpers import (
    NO_PENDING_REFERRAL_MESSAGE,
    assert_internal_access,
    enqueue_reward_notification,
    reward_outcome_as_response,
    store_unavailable,
)
from .referrals_models import (
    ReferralActivationRequest,
    ReferralActivationResponse,
    ReferralClosureRequest,
    ReferralClosureResponse,
)

router = APIRouter(prefix="/internal/referrals", tags=["internal", "referrals"])
logger = structlog.get_logger(__name__)


@router.post("/activate", response_model=ReferralActivationResponse)
async def activate_referral(
    payload: ReferralActivationRequest,
    request: Request,
) -> ReferralActivationResponse:
    assert_internal_access(request)
    if (payload.referral_id is None) == (payload.referred_identity is None):
        raise HTTPException(status_code=422, detail={"code": "E_ACTIVATION_TARGET_INVALID"})
    now_utc = datetime.now(timezone.utc)

    try:
        async with referral_transaction() as session:
            if payload.referral_id is not None:
                outcome = await ReferralService.activate_referral(
                    session,
                    referral_id=payload.referral_id,
                    now_utc=now_utc,
                )
            else:
                outcome = await ReferralService.activate_referred_identity(
                    session,
                    referred_identity=payload.referred_identity or "",
                    now_utc=now_utc,
                )
    except ReferralNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_REFERRAL_NOT_FOUND"}) from exc
    except ReferralNotEligibleError:
        return ReferralActivationResponse(success=False, message=NO_PENDING_REFERRAL_MESSAGE)
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    enqueue_reward_notification(outcome)
    return ReferralActivationResponse(
        success=True,
        idempotent_replay=outcome.idempotent_replay,
        reward=reward_outcome_as_response(outcome),
    )


async def _close_referral(
    *,
    referral_id: int,
    payload: ReferralClosureRequest,
    request: Request,
    action: str,
) -> ReferralClosureResponse:
    assert_internal_access(request)
    now_utc = datetime.now(timezone.utc)
    reason = payload.reason or "admin"
    close = ReferralService.expire_referral if action == "expire" else ReferralService.cancel_referral

    try:
        async with referral_transaction() as session:
            closure = await close(
                session,
                referral_id=referral_id,
                now_utc=now_utc,
                reason=reason,
            )
    except ReferralNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_REFERRAL_NOT_FOUND"}) from exc
    except ReferralTransitionError as exc:
        logger.info(
            "internal_referral_close_rejected",
            referral_id=referral_id,
            action=action,
            current_status=exc.status,
        )
        raise HTTPException(status_code=409, detail={"code": "E_REFERRAL_STATUS_CONFLICT"}) from exc
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    return ReferralClosureResponse(
        referral_id=closure.referral_id,
        status=closure.status,
        idempotent_replay=closure.idempotent_replay,
    )


@router.post("/{referral_id}/expire", response_model=ReferralClosureResponse)
async def expire_referral(
    referral_id: int,
    payload: ReferralClosureRequest,
    request: Request,
) -> ReferralClosureResponse:
    return await _close_referral(
        referral_id=referral_id,
        payload=payload,
        request=request,
        action="expire",
    )


@router.post("/{referral_id}/cancel", response_model=ReferralClosureResponse)
async def cancel_referral(
    referral_id: int,
    payload: ReferralClosureRequest,
    request: Request,
) -> ReferralClosureResponse:
    return await _close_referral(
        referral_id=referral_id,
        payload=payload,
        request=request,
        action="cancel",
    )
