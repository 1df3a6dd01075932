import pytest
from fastapi.testclient import TestClient

from referral_ledger.api.routes import health as health_routes
from referral_ledger.main import app
from referral_ledger.referrals.tiers import DEFAULT_TIERS


def _returns(result: dict[str, object]):
    async def _check() -> dict[str, object]:
        return result

    return _check


def _patch_checks(monkeypatch, *, database=None, redis=None, celery=None) -> None:
    monkeypatch.setattr(
        health_routes,
        "_check_referral_store",
        _returns(database or {"status": "ok", "tiers": 4}),
    )
    monkeypatch.setattr(health_routes, "_check_redis", _returns(redis or {"status": "ok"}))
    monkeypatch.setattr(
        health_routes,
        "_check_celery_workers",
        _returns(celery or {"status": "ok", "workers": 2}),
    )


class _StubSession:
    async def __aenter__(self) -> object:
        return object()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


def test_live_needs_no_dependencies() -> None:
    response = TestClient(app).get("/live")

    assert (response.status_code, response.json()) == (200, {"status": "live"})


def test_ready_reports_tier_table_size_and_skips_workers(monkeypatch) -> None:
    _patch_checks(monkeypatch, celery={"status": "failed", "error": "no_celery_workers"})

    response = TestClient(app).get("/ready")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {"database": {"status": "ok", "tiers": 4}, "redis": {"status": "ok"}},
    }


def test_ready_fails_on_broken_tier_table(monkeypatch) -> None:
    _patch_checks(monkeypatch, database={"status": "failed", "error": "referral_tiers_invalid"})

    response = TestClient(app).get("/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "not_ready"
    assert response.json()["checks"]["database"]["error"] == "referral_tiers_invalid"


@pytest.mark.parametrize(
    ("failing", "error"),
    [("database", "database_unavailable"), ("redis", "redis_unavailable"), ("celery", "no_celery_workers")],
)
def test_health_degrades_when_any_dependency_fails(monkeypatch, failing: str, error: str) -> None:
    _patch_checks(monkeypatch, **{failing: {"status": "failed", "error": error}})

    response = TestClient(app).get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"][failing] == {"status": "failed", "error": error}
    assert set(payload["checks"]) == {"database", "redis", "celery"}


@pytest.mark.asyncio
async def test_referral_store_check_counts_loaded_tiers(monkeypatch) -> None:
    async def fake_load(session) -> tuple:
        del session
        return DEFAULT_TIERS

    monkeypatch.setattr(health_routes, "SessionLocal", _StubSession)
    monkeypatch.setattr(health_routes.ReferralService, "load_tier_table", fake_load)

    assert await health_routes._check_referral_store() == {"status": "ok", "tiers": len(DEFAULT_TIERS)}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc", "error"),
    [
        (ValueError("tier 2 requires 1 referrals"), "referral_tiers_invalid"),
        (RuntimeError("password=secret"), "database_unavailable"),
    ],
)
async def test_referral_store_check_hides_exception_text(monkeypatch, exc: Exception, error: str) -> None:
    async def fake_load(session) -> tuple:
        del session
        raise exc

    monkeypatch.setattr(health_routes, "SessionLocal", _StubSession)
    monkeypatch.setattr(health_routes.ReferralService, "load_tier_table", fake_load)

    assert await health_routes._check_referral_store() == {"status": "failed", "error": error}


def test_celery_ping_hides_broker_errors(monkeypatch) -> None:
    class _BrokenControl:
        def inspect(self, timeout: float):
            raise RuntimeError("broker-url=redis://secret")

    monkeypatch.setattr(health_routes.celery_app, "control", _BrokenControl())

    assert health_routes._ping_celery_workers() == {"status": "failed", "error": "celery_unavailable"}
