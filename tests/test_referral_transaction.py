from __future__ import annotations

from types import SimpleNamespace

import pytest
from sqlalchemy.exc import DBAPIError, OperationalError

from referral_ledger.db import transactions
from referral_ledger.referrals.errors import ReferralStoreUnavailableError


class _OrigError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


class _SessionContext:
    async def __aenter__(self) -> object:
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


def _dbapi_error(sqlstate: str) -> DBAPIError:
    return DBAPIError("UPDATE referrals SET status = $1", {}, _OrigError(sqlstate))


@pytest.mark.parametrize("sqlstate", ["40001", "40P01", "55P03", "57014"])
def test_is_transient_store_failure_for_retryable_sqlstates(sqlstate: str) -> None:
    assert transactions.is_transient_store_failure(_dbapi_error(sqlstate)) is True


def test_is_transient_store_failure_rejects_integrity_errors() -> None:
    assert transactions.is_transient_store_failure(_dbapi_error("23505")) is False
    assert transactions.is_transient_store_failure(ValueError("boom")) is False


def test_is_transient_store_failure_accepts_operational_errors() -> None:
    error = OperationalError("SELECT 1", {}, _OrigError("08006"))
    assert transactions.is_transient_store_failure(error) is True


@pytest.mark.asyncio
async def test_referral_transaction_maps_transient_failure(monkeypatch) -> None:
    monkeypatch.setattr(transactions, "SessionLocal", SimpleNamespace(begin=_SessionContext))

    with pytest.raises(ReferralStoreUnavailableError):
        async with transactions.referral_transaction():
            raise _dbapi_error("40P01")


@pytest.mark.asyncio
async def test_referral_transaction_propagates_non_transient_failure(monkeypatch) -> None:
    monkeypatch.setattr(transactions, "SessionLocal", SimpleNamespace(begin=_SessionContext))

    with pytest.raises(DBAPIError):
        async with transactions.referral_transaction():
            raise _dbapi_error("23505")
