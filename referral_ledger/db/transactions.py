from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from referral_ledger.db.session import SessionLocal
from referral_ledger.referrals.errors import ReferralStoreUnavailableError

logger = structlog.get_logger(__name__)

# serialization_failure, deadlock_detected, lock_not_available, query_canceled
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01", "55P03", "57014"})


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    cause = getattr(orig, "__cause__", None)
    value = getattr(cause, "sqlstate", None)
    return str(value) if value else None


def is_transient_store_failure(exc: BaseException) -> bool:
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError):
        return exc.connection_invalidated or _sqlstate(exc) in TRANSIENT_SQLSTATES
    return False


@asynccontextmanager
async def referral_transaction() -> AsyncIterator[AsyncSession]:
    """Runs the block in one transaction; transient aborts surface as a retryable error.

    The transaction is rolled back before the error is raised, so callers never see
    partially applied state.
    """
    try:
        async with SessionLocal.begin() as session:
            yield session
    except DBAPIError as exc:
        if not is_transient_store_failure(exc):
            raise
        logger.warning(
            "referral_store_transient_failure",
            sqlstate=_sqlstate(exc),
            error_type=type(exc.orig).__name__ if exc.orig is not None else None,
        )
        raise ReferralStoreUnavailableError("referral store temporarily unavailable") from exc
