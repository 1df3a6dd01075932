from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.models.outbox_events import OutboxEvent


class OutboxEventsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        event_type: str,
        payload: dict[str, object],
        status: str,
    ) -> OutboxEvent:
        event = OutboxEvent(
            event_type=event_type,
            payload=payload,
            status=status,
            attempts=0,
        )
        session.add(event)
        await session.flush()
        return event

    @staticmethod
    async def claim_dispatchable(
        session: AsyncSession,
        *,
        event_types: tuple[str, ...],
        max_attempts: int,
        limit: int,
        now_utc: datetime,
        lease: timedelta,
    ) -> list[OutboxEvent]:
        """Lock a batch of due events and stamp the attempt so other workers skip them until the lease ends."""
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.event_type.in_(event_types),
                OutboxEvent.status.in_(("PENDING", "FAILED")),
                OutboxEvent.attempts < max_attempts,
                or_(
                    OutboxEvent.last_attempt_at.is_(None),
                    OutboxEvent.last_attempt_at <= now_utc - lease,
                ),
            )
            .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
            .limit(max(1, int(limit)))
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        events = list(result.scalars().all())
        for event in events:
            event.attempts = int(event.attempts) + 1
            event.last_attempt_at = now_utc
        await session.flush()
        return events

    @staticmethod
    async def mark_attempt(
        session: AsyncSession,
        *,
        event_id: int,
        delivered: bool,
        error: str | None,
    ) -> None:
        await session.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .values(
                status="SENT" if delivered else "FAILED",
                last_error=None if delivered else (error or "unknown")[:256],
            )
        )
