from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.core.config import get_settings
from referral_ledger.core.referral_codes import build_referral_link, generate_referral_code
from referral_ledger.db.repo.referral_statistics_repo import ReferralStatisticsRepo
from referral_ledger.db.repo.referrals_repo import ReferralsRepo
from referral_ledger.referrals.constants import REFERRAL_CODE_LENGTH, REFERRAL_CODE_MAX_ATTEMPTS
from referral_ledger.referrals.errors import (
    ReferralAlreadyExistsError,
    ReferralInvalidIdentityError,
    ReferralStoreUnavailableError,
)
from referral_ledger.referrals.identity import (
    is_email_identity,
    normalize_product_context,
    normalize_referred_identity,
)
from referral_ledger.referrals.types import ReferralInvitation

logger = structlog.get_logger(__name__)


async def create_referral(
    session: AsyncSession,
    *,
    referrer_id: int,
    referred_identity: str,
    now_utc: datetime,
    product_context: str | None = None,
    referrer_identity: str | None = None,
) -> ReferralInvitation:
    settings = get_settings()

    normalized_identity = normalize_referred_identity(referred_identity)
    if normalized_identity is None or not is_email_identity(normalized_identity):
        raise ReferralInvalidIdentityError("referred identity must be an e-mail address")
    if referrer_identity is not None and (
        normalize_referred_identity(referrer_identity) == normalized_identity
    ):
        raise ReferralInvalidIdentityError("self-referral is not allowed")
    normalized_context = normalize_product_context(product_context)
    if normalized_context is None:
        raise ReferralInvalidIdentityError("invalid product context")

    existing = await ReferralsRepo.get_by_identity_and_context(
        session,
        referred_identity=normalized_identity,
        product_context=normalized_context,
    )
    if existing is not None:
        raise ReferralAlreadyExistsError

    expires_at = now_utc + timedelta(days=settings.referral_signup_window_days)
    referral_id: int | None = None
    referral_code = ""
    for _ in range(REFERRAL_CODE_MAX_ATTEMPTS):
        referral_code = generate_referral_code(REFERRAL_CODE_LENGTH)
        referral_id = await ReferralsRepo.try_create(
            session,
            referrer_id=referrer_id,
            referred_identity=normalized_identity,
            product_context=normalized_context,
            referral_code=referral_code,
            created_at=now_utc,
            expires_at=expires_at,
        )
        if referral_id is not None:
            break
        raced = await ReferralsRepo.get_by_identity_and_context(
            session,
            referred_identity=normalized_identity,
            product_context=normalized_context,
        )
        if raced is not None:
            raise ReferralAlreadyExistsError
    if referral_id is None:
        logger.error("referral_code_allocation_failed", referrer_id=referrer_id)
        raise ReferralStoreUnavailableError("could not allocate a unique referral code")

    await ReferralStatisticsRepo.record_referral_sent(
        session,
        beneficiary_id=referrer_id,
        sent_at=now_utc,
    )
    logger.info(
        "referral_created",
        referral_id=referral_id,
        referrer_id=referrer_id,
        product_context=normalized_context,
    )
    return ReferralInvitation(
        referral_id=referral_id,
        referral_code=referral_code,
        referral_link=build_referral_link(
            base_url=settings.referral_link_base_url,
            referral_code=referral_code,
        ),
        referred_identity=normalized_identity,
        product_context=normalized_context,
        expires_at=expires_at,
    )
