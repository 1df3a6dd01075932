from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from referral_ledger.core.config import get_settings
from referral_ledger.db.session import SessionLocal
from referral_ledger.referrals.service import ReferralService
from referral_ledger.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

Check = Callable[[], Awaitable[dict[str, Any]]]


def _failed(dependency: str, error: str, exc: Exception | None = None) -> dict[str, Any]:
    if exc is not None:
        # Exception text can carry DSNs or credentials; only the type is logged.
        logger.warning("health_check_failed", dependency=dependency, error_type=type(exc).__name__)
    return {"status": "failed", "error": error}


async def _check_referral_store() -> dict[str, Any]:
    """The database answers and the tier table the award engine reads is usable."""
    try:
        async with SessionLocal() as session:
            tiers = await ReferralService.load_tier_table(session)
    except ValueError as exc:
        return _failed("database", "referral_tiers_invalid", exc)
    except Exception as exc:
        return _failed("database", "database_unavailable", exc)
    return {"status": "ok", "tiers": len(tiers)}


async def _check_redis() -> dict[str, Any]:
    redis_client: Redis | None = None
    try:
        redis_client = Redis.from_url(get_settings().redis_url)
        if await redis_client.ping() is not True:
            return _failed("redis", "redis_unexpected_ping_response")
        return {"status": "ok"}
    except Exception as exc:
        return _failed("redis", "redis_unavailable", exc)
    finally:
        if redis_client is not None:
            await redis_client.aclose()


def _ping_celery_workers() -> dict[str, Any]:
    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        replies = (inspector.ping() if inspector is not None else None) or {}
    except Exception as exc:
        return _failed("celery", "celery_unavailable", exc)
    if not replies:
        return _failed("celery", "no_celery_workers")
    return {"status": "ok", "workers": len(replies)}


async def _check_celery_workers() -> dict[str, Any]:
    return await asyncio.to_thread(_ping_celery_workers)


async def _run_checks(checks: dict[str, Check]) -> tuple[bool, dict[str, dict[str, Any]]]:
    results = await asyncio.gather(*(check() for check in checks.values()))
    named = dict(zip(checks, results))
    return all(result.get("status") == "ok" for result in results), named


def _report(*, passed: bool, ok_label: str, failed_label: str, checks: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_200_OK if passed else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_label if passed else failed_label, "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/ready")
async def ready() -> JSONResponse:
    passed, checks = await _run_checks({"database": _check_referral_store, "redis": _check_redis})
    return _report(passed=passed, ok_label="ready", failed_label="not_ready", checks=checks)


@router.get("/health")
async def health() -> JSONResponse:
    passed, checks = await _run_checks(
        {
            "database": _check_referral_store,
            "redis": _check_redis,
            "celery": _check_celery_workers,
        }
    )
    return _report(passed=passed, ok_label="ok", failed_label="degraded", checks=checks)
