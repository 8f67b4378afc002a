from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from dealpass_api.core.settings import settings
from dealpass_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .workers import RedemptionReconciliationWorker


APP_VERSION = "0.1.0"


def _session_factory():
    return async_session()


@asynccontextmanager
async def lifespan(app: FastAPI):
    reconciliation_worker = RedemptionReconciliationWorker(
        session_factory=_session_factory,
        interval_seconds=settings.redemption_reconciliation_interval_seconds,
        limit=settings.redemption_reconciliation_limit,
        repair=settings.redemption_reconciliation_repair,
        trigger_label=settings.redemption_reconciliation_trigger_label,
    )
    app.state.redemption_reconciliation_worker = reconciliation_worker

    reconciliation_enabled = settings.redemption_reconciliation_worker_enabled
    if reconciliation_enabled:
        reconciliation_worker.start()
        logger.info(
            "Redemption reconciliation worker enabled",
            interval_seconds=reconciliation_worker.interval_seconds,
            limit=settings.redemption_reconciliation_limit,
            repair=settings.redemption_reconciliation_repair,
        )
    else:
        logger.info(
            "Redemption reconciliation worker disabled",
            reason="redemption_reconciliation_worker_enabled is false",
        )

    try:
        yield
    finally:
        if reconciliation_enabled and reconciliation_worker.is_running:
            await reconciliation_worker.stop()


def create_app() -> FastAPI:
    """Application factory for the DealPass redemption API."""
    configure_logging(
        service_name=settings.service_name,
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="DealPass API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    if settings.tracing_enabled:
        configure_tracing(
            app,
            service_name=settings.service_name,
            service_version=APP_VERSION,
            environment=settings.environment,
        )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
