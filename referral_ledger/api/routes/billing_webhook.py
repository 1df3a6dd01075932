from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, Request

from referral_ledger.core.config import get_settings
from referral_ledger.db.transactions import referral_transaction
from referral_ledger.referrals.errors import (
    ReferralNotEligibleError,
    ReferralNotFoundError,
    ReferralStoreUnavailableError,
)
from referral_ledger.referrals.service import ReferralService
from referral_ledger.services.billing_signatures import (
    BILLING_SIGNATURE_HEADER,
    is_valid_billing_signature,
)

from .referrals_helpers import enqueue_reward_notification, store_unavailable
from .referrals_models import BillingWebhookResponse

router = APIRouter(prefix="/webhooks/billing", tags=["webhooks"])
logger = structlog.get_logger(__name__)

ACTIVATION_EVENT_TYPES = frozenset({"subscription.activated", "subscription.payment_succeeded"})


def _assert_signature(*, body: bytes, signature: str | None) -> None:
    settings = get_settings()
    secret = settings.billing_webhook_secret
    if not secret:
        if settings.app_env == "prod":
            logger.error("billing_webhook_secret_missing")
            raise HTTPException(status_code=500, detail={"code": "E_WEBHOOK_NOT_CONFIGURED"})
        return
    if not is_valid_billing_signature(body=body, secret=secret, received_signature=signature):
        logger.warning("billing_webhook_auth_failed", reason="invalid_signature")
        raise HTTPException(status_code=401, detail={"code": "E_WEBHOOK_SIGNATURE_INVALID"})


def _extract_customer_email(payload: dict[str, Any]) -> str | None:
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    customer = data.get("customer")
    if not isinstance(customer, dict):
        return None
    email = customer.get("email")
    if not isinstance(email, str) or not email.strip():
        return None
    return email


@router.post("/referral-activation", response_model=BillingWebhookResponse)
async def billing_referral_activation(request: Request) -> BillingWebhookResponse:
    body = await request.body()
    _assert_signature(body=body, signature=request.headers.get(BILLING_SIGNATURE_HEADER))

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail={"code": "E_WEBHOOK_PAYLOAD_INVALID"}) from None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail={"code": "E_WEBHOOK_PAYLOAD_INVALID"})

    event_type = payload.get("event_type")
    if event_type not in ACTIVATION_EVENT_TYPES:
        logger.info("billing_webhook_ignored", reason="event_type", event_type=event_type)
        return BillingWebhookResponse(received=True, processed=False)

    customer_email = _extract_customer_email(payload)
    if customer_email is None:
        logger.warning("billing_webhook_ignored", reason="missing_customer_email", event_type=event_type)
        return BillingWebhookResponse(received=True, processed=False)

    now_utc = datetime.now(timezone.utc)
    try:
        async with referral_transaction() as session:
            outcome = await ReferralService.activate_referred_identity(
                session,
                referred_identity=customer_email,
                now_utc=now_utc,
            )
    except (ReferralNotEligibleError, ReferralNotFoundError):
        logger.info("billing_webhook_ignored", reason="no_pending_referral", event_type=event_type)
        return BillingWebhookResponse(received=True, processed=False)
    except ReferralStoreUnavailableError as exc:
        raise store_unavailable() from exc

    enqueue_reward_notification(outcome)
    logger.info(
        "billing_webhook_processed",
        event_type=event_type,
        referral_id=outcome.referral_id,
        idempotent_replay=outcome.idempotent_replay,
    )
    return BillingWebhookResponse(received=True, processed=True)
