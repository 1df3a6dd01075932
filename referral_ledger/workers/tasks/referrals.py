from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import structlog

from referral_ledger.core.config import get_settings
from referral_ledger.db.repo.outbox_events_repo import OutboxEventsRepo
from referral_ledger.db.session import SessionLocal
from referral_ledger.referrals.constants import (
    EXPIRY_SWEEP_BATCH_SIZE,
    NOTIFICATION_DISPATCH_BATCH_SIZE,
    OUTBOX_EVENT_REWARD_GRANTED,
)
from referral_ledger.referrals.service import ReferralService
from referral_ledger.services.notifications_delivery import build_notification_body, post_notification
from referral_ledger.workers.asyncio_runner import run_async_job
from referral_ledger.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
REFERRAL_NOTIFICATION_EVENT_TYPES = (OUTBOX_EVENT_REWARD_GRANTED,)
EXPIRY_SWEEP_MAX_BATCHES = 20
# Longer than a full batch of posts at the client timeout.
NOTIFICATION_DISPATCH_LEASE = timedelta(minutes=15)


async def run_referral_expiry_sweep_async(
    *,
    batch_size: int = EXPIRY_SWEEP_BATCH_SIZE,
) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    expired_total = 0
    batches = 0
    while batches < EXPIRY_SWEEP_MAX_BATCHES:
        async with SessionLocal.begin() as session:
            expired = await ReferralService.expire_overdue_referrals(
                session,
                now_utc=now_utc,
                limit=batch_size,
            )
        batches += 1
        expired_total += expired
        if expired < batch_size:
            break

    result = {"expired_total": expired_total, "batches": batches}
    logger.info("referral_expiry_sweep_finished", **result)
    return result


async def dispatch_referral_notifications_async(
    *,
    batch_size: int = NOTIFICATION_DISPATCH_BATCH_SIZE,
) -> dict[str, int]:
    settings = get_settings()
    result = {"selected": 0, "sent": 0, "failed": 0}
    if not settings.notification_webhook_url:
        logger.info("referral_notification_dispatch_skipped", reason="webhook_not_configured")
        return result

    async with SessionLocal.begin() as session:
        events = await OutboxEventsRepo.claim_dispatchable(
            session,
            event_types=REFERRAL_NOTIFICATION_EVENT_TYPES,
            max_attempts=settings.notification_max_attempts,
            limit=batch_size,
            now_utc=datetime.now(timezone.utc),
            lease=NOTIFICATION_DISPATCH_LEASE,
        )
        bodies = [
            (
                int(event.id),
                event.event_type,
                build_notification_body(
                    event_id=int(event.id),
                    event_type=event.event_type,
                    payload=event.payload,
                ),
            )
            for event in events
        ]
    result["selected"] = len(bodies)
    if not bodies:
        logger.info("referral_notification_dispatch_finished", **result)
        return result

    outcomes: list[tuple[int, bool, str | None]] = []
    async with httpx.AsyncClient(timeout=settings.notification_timeout_seconds) as client:
        for event_id, event_type, body in bodies:
            delivered, error = await post_notification(
                client=client,
                url=settings.notification_webhook_url,
                body=body,
                event_type=event_type,
                event_id=event_id,
            )
            outcomes.append((event_id, delivered, error))
            result["sent" if delivered else "failed"] += 1

    async with SessionLocal.begin() as session:
        for event_id, delivered, error in outcomes:
            await OutboxEventsRepo.mark_attempt(
                session,
                event_id=event_id,
                delivered=delivered,
                error=error,
            )

    logger.info("referral_notification_dispatch_finished", **result)
    return result


@celery_app.task(name="referral_ledger.workers.tasks.referrals.run_referral_expiry_sweep")
def run_referral_expiry_sweep(batch_size: int = EXPIRY_SWEEP_BATCH_SIZE) -> dict[str, int]:
    return run_async_job(run_referral_expiry_sweep_async(batch_size=batch_size))


@celery_app.task(name="referral_ledger.workers.tasks.referrals.dispatch_referral_notifications")
def dispatch_referral_notifications(
    batch_size: int = NOTIFICATION_DISPATCH_BATCH_SIZE,
) -> dict[str, int]:
    return run_async_job(dispatch_referral_notifications_async(batch_size=batch_size))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "referral-expiry-sweep-every-15-minutes": {
            "task": "referral_ledger.workers.tasks.referrals.run_referral_expiry_sweep",
            "schedule": 900.0,
            "options": {"queue": "q_normal"},
        },
        "referral-notification-dispatch-every-minute": {
            "task": "referral_ledger.workers.tasks.referrals.dispatch_referral_notifications",
            "schedule": 60.0,
            "options": {"queue": "q_normal"},
        },
    }
)
