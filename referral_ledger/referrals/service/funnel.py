from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.core.referral_codes import normalize_referral_code
from referral_ledger.db.models.referrals import Referral
from referral_ledger.db.repo.referral_clicks_repo import ReferralClicksRepo
from referral_ledger.db.repo.referral_statistics_repo import ReferralStatisticsRepo
from referral_ledger.db.repo.referrals_repo import ReferralsRepo
from referral_ledger.referrals.constants import (
    OPEN_FUNNEL_STATUSES,
    SIGNED_UP_OR_LATER_STATUSES,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_PENDING,
    TERMINAL_STATUSES,
)
from referral_ledger.referrals.errors import ReferralNotFoundError
from referral_ledger.referrals.identity import normalize_referred_identity
from referral_ledger.referrals.transitions import (
    EVENT_CANCEL,
    EVENT_CLICK,
    EVENT_EXPIRE,
    EVENT_SIGNUP,
    resolve_transition,
)
from referral_ledger.referrals.types import (
    ClickContext,
    ClickOutcome,
    ReferralClosure,
    SignupOutcome,
)

from .time_utils import stamp_after

logger = structlog.get_logger(__name__)


def _latest_funnel_timestamp(referral: Referral) -> tuple[datetime | None, ...]:
    return (
        referral.created_at,
        referral.last_clicked_at,
        referral.signup_at,
        referral.activated_at,
        referral.rewarded_at,
    )


def _signup_deadline_passed(referral: Referral, now_utc: datetime) -> bool:
    return (
        referral.status in OPEN_FUNNEL_STATUSES
        and referral.expires_at is not None
        and now_utc > referral.expires_at
    )


def _close(referral: Referral, *, event: str, now_utc: datetime) -> None:
    referral.status = resolve_transition(referral.status, event)
    referral.closed_at = stamp_after(now_utc, *_latest_funnel_timestamp(referral))
    referral.updated_at = referral.closed_at


async def record_click(
    session: AsyncSession,
    *,
    referral_code: str,
    now_utc: datetime,
    context: ClickContext | None = None,
) -> ClickOutcome:
    normalized_code = normalize_referral_code(referral_code)
    if normalized_code is None:
        return ClickOutcome(recorded=False)

    referral = await ReferralsRepo.get_by_code_for_update(session, referral_code=normalized_code)
    if referral is None:
        logger.info("referral_click_ignored", reason="unknown_code")
        return ClickOutcome(recorded=False)
    if referral.status in TERMINAL_STATUSES:
        logger.info("referral_click_ignored", reason="terminal", referral_id=referral.id)
        return ClickOutcome(recorded=False, referral_id=referral.id, status=referral.status)
    if _signup_deadline_passed(referral, now_utc):
        _close(referral, event=EVENT_EXPIRE, now_utc=now_utc)
        logger.info("referral_expired", referral_id=referral.id, reason="signup_deadline")
        return ClickOutcome(recorded=False, referral_id=referral.id, status=referral.status)

    referral.clicked_count = int(referral.clicked_count) + 1
    if referral.status in OPEN_FUNNEL_STATUSES:
        # Later stages keep their own timestamps; a click after signup only counts.
        referral.last_clicked_at = stamp_after(now_utc, referral.created_at, referral.last_clicked_at)
        if referral.status == STATUS_PENDING:
            referral.status = resolve_transition(referral.status, EVENT_CLICK)
    referral.updated_at = stamp_after(now_utc, referral.updated_at)

    await ReferralStatisticsRepo.record_click(session, beneficiary_id=referral.referrer_id)
    click_context = context or ClickContext()
    await ReferralClicksRepo.create(
        session,
        referral_id=referral.id,
        clicked_at=now_utc,
        ip_address=click_context.ip_address,
        user_agent=click_context.user_agent,
        referer=click_context.referer,
        utm_source=click_context.utm_source,
        utm_medium=click_context.utm_medium,
        utm_campaign=click_context.utm_campaign,
    )
    logger.info(
        "referral_click_recorded",
        referral_id=referral.id,
        status=referral.status,
        clicked_count=referral.clicked_count,
    )
    return ClickOutcome(
        recorded=True,
        referral_id=referral.id,
        status=referral.status,
        clicked_count=referral.clicked_count,
    )


async def record_signup(
    session: AsyncSession,
    *,
    referral_code: str,
    referred_identity: str,
    referred_party_id: int,
    now_utc: datetime,
) -> SignupOutcome:
    normalized_code = normalize_referral_code(referral_code)
    normalized_identity = normalize_referred_identity(referred_identity)
    if normalized_code is None or normalized_identity is None:
        raise ReferralNotFoundError

    referral = await ReferralsRepo.get_by_code_and_identity_for_update(
        session,
        referral_code=normalized_code,
        referred_identity=normalized_identity,
    )
    if referral is None:
        raise ReferralNotFoundError

    if referral.status in SIGNED_UP_OR_LATER_STATUSES:
        if referral.referred_party_id != referred_party_id:
            logger.warning(
                "referral_signup_party_mismatch",
                referral_id=referral.id,
                bound_party_id=referral.referred_party_id,
                received_party_id=referred_party_id,
            )
        return SignupOutcome(
            referral_id=referral.id,
            status=referral.status,
            recorded=False,
            idempotent_replay=True,
        )
    if referral.status in (STATUS_EXPIRED, STATUS_CANCELLED):
        logger.info("referral_signup_ignored", reason=referral.status, referral_id=referral.id)
        return SignupOutcome(
            referral_id=referral.id,
            status=referral.status,
            recorded=False,
            idempotent_replay=False,
        )
    if referred_party_id == referral.referrer_id:
        logger.warning("referral_signup_ignored", reason="self_referral", referral_id=referral.id)
        return SignupOutcome(
            referral_id=referral.id,
            status=referral.status,
            recorded=False,
            idempotent_replay=False,
        )
    if _signup_deadline_passed(referral, now_utc):
        _close(referral, event=EVENT_EXPIRE, now_utc=now_utc)
        logger.info("referral_expired", referral_id=referral.id, reason="signup_deadline")
        return SignupOutcome(
            referral_id=referral.id,
            status=referral.status,
            recorded=False,
            idempotent_replay=False,
        )

    referral.status = resolve_transition(referral.status, EVENT_SIGNUP)
    referral.signup_at = stamp_after(now_utc, referral.created_at, referral.last_clicked_at)
    referral.referred_party_id = referred_party_id
    referral.updated_at = referral.signup_at

    await ReferralStatisticsRepo.record_signup(session, beneficiary_id=referral.referrer_id)
    logger.info(
        "referral_signup_recorded",
        referral_id=referral.id,
        referred_party_id=referred_party_id,
    )
    return SignupOutcome(
        referral_id=referral.id,
        status=referral.status,
        recorded=True,
        idempotent_replay=False,
    )


async def _close_referral(
    session: AsyncSession,
    *,
    referral_id: int,
    event: str,
    target_status: str,
    now_utc: datetime,
    reason: str,
) -> ReferralClosure:
    referral = await ReferralsRepo.get_by_id_for_update(session, referral_id)
    if referral is None:
        raise ReferralNotFoundError
    if referral.status == target_status:
        return ReferralClosure(
            referral_id=referral.id,
            status=referral.status,
            idempotent_replay=True,
        )

    _close(referral, event=event, now_utc=now_utc)
    logger.info(
        f"referral_{target_status}",
        referral_id=referral.id,
        reason=reason,
    )
    return ReferralClosure(referral_id=referral.id, status=referral.status, idempotent_replay=False)


async def expire_referral(
    session: AsyncSession,
    *,
    referral_id: int,
    now_utc: datetime,
    reason: str = "admin",
) -> ReferralClosure:
    return await _close_referral(
        session,
        referral_id=referral_id,
        event=EVENT_EXPIRE,
        target_status=STATUS_EXPIRED,
        now_utc=now_utc,
        reason=reason,
    )


async def cancel_referral(
    session: AsyncSession,
    *,
    referral_id: int,
    now_utc: datetime,
    reason: str = "admin",
) -> ReferralClosure:
    return await _close_referral(
        session,
        referral_id=referral_id,
        event=EVENT_CANCEL,
        target_status=STATUS_CANCELLED,
        now_utc=now_utc,
        reason=reason,
    )


async def expire_overdue_referrals(
    session: AsyncSession,
    *,
    now_utc: datetime,
    limit: int,
) -> int:
    referrals = await ReferralsRepo.list_expirable_for_update(
        session,
        now_utc=now_utc,
        statuses=OPEN_FUNNEL_STATUSES,
        limit=limit,
    )
    for referral in referrals:
        _close(referral, event=EVENT_EXPIRE, now_utc=now_utc)
    return len(referrals)
