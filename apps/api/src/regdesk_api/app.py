from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from regdesk_api.core.settings import settings
from .api.routes import api_router
from .core.kv import RedisKeyValueStore, create_redis_client
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.orders import OrderAdminPatchService, OrderCache, OrderRepository
from .services.reports import build_email_backend, build_scheduled_report_service
from .workers import ReportSchedulerWorker


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = RedisKeyValueStore(create_redis_client(settings.redis_url))
    order_cache = OrderCache()
    order_repository = OrderRepository(store, cache=order_cache)
    report_service = build_scheduled_report_service(
        store,
        email_backend=build_email_backend(settings),
        order_cache=order_cache,
    )
    report_worker = ReportSchedulerWorker(
        report_service,
        interval_seconds=settings.report_scheduler_interval_seconds,
    )

    app.state.kv_store = store
    app.state.order_cache = order_cache
    app.state.order_repository = order_repository
    app.state.order_patch_service = OrderAdminPatchService(
        store,
        order_repository,
        audit_limit=settings.order_patch_audit_limit,
    )
    app.state.report_service = report_service
    app.state.report_scheduler_worker = report_worker

    worker_enabled = settings.report_scheduler_enabled
    if worker_enabled:
        report_worker.start()
        logger.info(
            "Report scheduler worker enabled",
            interval_seconds=report_worker.interval_seconds,
        )
    else:
        logger.info(
            "Report scheduler worker disabled",
            reason="report_scheduler_enabled is false",
        )

    try:
        yield
    finally:
        if worker_enabled and report_worker.is_running:
            await report_worker.stop()
        await store.close()


def create_app() -> FastAPI:
    """Application factory for the registration desk API."""
    configure_logging(
        service_name="regdesk-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="Registration Desk API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="regdesk-api",
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
