import uvicorn
from fastapi import FastAPI

from referral_ledger.api.routes.billing_webhook import router as billing_webhook_router
from referral_ledger.api.routes.health import router as health_router
from referral_ledger.api.routes.internal_referrals import router as internal_referrals_router
from referral_ledger.api.routes.referrals import router as referrals_router
from referral_ledger.core.config import get_settings
from referral_ledger.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    docs_enabled = bool(settings.enable_openapi_docs)
    app = FastAPI(
        title="Referral Ledger API",
        version="0.1.0",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.include_router(health_router)
    app.include_router(referrals_router)
    app.include_router(internal_referrals_router)
    app.include_router(billing_webhook_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "referral_ledger.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
