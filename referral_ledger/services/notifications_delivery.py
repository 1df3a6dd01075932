from __future__ import annotations

from typing import Any

import httpx
import structlog

logger = structlog.get_logger("referral_ledger.services.notifications")


async def post_notification(
    *,
    client: httpx.AsyncClient,
    url: str,
    body: dict[str, Any],
    event_type: str,
    event_id: int,
) -> tuple[bool, str | None]:
    try:
        response = await client.post(url, json=body)
        response.raise_for_status()
        return True, None
    except httpx.HTTPStatusError as exc:
        logger.warning(
            "referral_notification_delivery_failed",
            event_type=event_type,
            event_id=event_id,
            status_code=exc.response.status_code,
        )
        return False, f"http_{exc.response.status_code}"
    except httpx.HTTPError as exc:
        logger.warning(
            "referral_notification_delivery_failed",
            event_type=event_type,
            event_id=event_id,
            error_type=type(exc).__name__,
        )
        return False, type(exc).__name__


def build_notification_body(*, event_id: int, event_type: str, payload: dict[str, object]) -> dict[str, Any]:
    return {
        "event_id": event_id,
        "event_type": event_type,
        "payload": payload,
    }
