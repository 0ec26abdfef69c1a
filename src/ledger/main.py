"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
lifespan events for database initialization and service wiring, the optional
background sync scheduler, and the v1 API router.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from functools import partial

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.ledger.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.ledger.api.v1.router import router as v1_router
from src.ledger.config import Settings, get_settings
from src.ledger.core.database import close_db, get_session, init_db
from src.ledger.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.ledger.sales.crm.credentials import CredentialRepository
from src.ledger.sales.crm.oauth import IntegrationConnector, PipedriveOAuthClient
from src.ledger.sales.crm.pipedrive import PipedriveAdapter
from src.ledger.sales.crm.service import SyncService
from src.ledger.sales.crm.sync import DealSyncEngine
from src.ledger.sales.crm.throttle import SyncThrottle
from src.ledger.sales.crm.tokens import TokenLifecycleManager
from src.ledger.sales.recalculation import NetValueRecalculator
from src.ledger.sales.receivables import ReceivableScheduleGenerator
from src.ledger.sales.repository import ReceivableRepository, SalesRepository
from src.ledger.sales.scheduler import (
    setup_sync_scheduler,
    start_sync_scheduler_background,
)


def wire_services(app: FastAPI, settings: Settings) -> None:
    """Build repositories and services and attach them to app.state."""
    sales_repository = SalesRepository(session_factory=get_session)
    receivable_repository = ReceivableRepository(session_factory=get_session)
    credential_repository = CredentialRepository(session_factory=get_session)

    receivable_generator = ReceivableScheduleGenerator(receivable_repository)

    adapter_factory = partial(
        PipedriveAdapter,
        timeout=settings.CRM_HTTP_TIMEOUT_SECONDS,
        page_limit=settings.CRM_PAGE_LIMIT,
    )
    oauth_client = PipedriveOAuthClient(
        client_id=settings.PIPEDRIVE_CLIENT_ID,
        client_secret=settings.PIPEDRIVE_CLIENT_SECRET,
        redirect_uri=settings.pipedrive_redirect_uri,
        base_url=settings.PIPEDRIVE_OAUTH_BASE_URL,
        timeout=settings.CRM_HTTP_TIMEOUT_SECONDS,
    )
    token_manager = TokenLifecycleManager(
        credentials=credential_repository,
        oauth=oauth_client,
        adapter_factory=adapter_factory,
        refresh_margin_seconds=settings.TOKEN_REFRESH_MARGIN_SECONDS,
    )
    engine = DealSyncEngine(
        sales=sales_repository,
        credentials=credential_repository,
        tokens=token_manager,
        throttle=SyncThrottle(interval_seconds=settings.SYNC_THROTTLE_SECONDS),
        receivables=receivable_generator,
    )

    app.state.sales_repository = sales_repository
    app.state.credential_repository = credential_repository
    app.state.receivable_generator = receivable_generator
    app.state.net_value_recalculator = NetValueRecalculator(sales_repository)
    app.state.sync_service = SyncService(engine=engine, tokens=token_manager)
    app.state.integration_connector = IntegrationConnector(
        oauth=oauth_client,
        credentials=credential_repository,
        adapter_factory=adapter_factory,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and services on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    wire_services(app, settings)
    if not (settings.PIPEDRIVE_CLIENT_ID and settings.PIPEDRIVE_CLIENT_SECRET):
        log.warning("pipedrive.app_not_configured")

    if settings.SYNC_SCHEDULER_ENABLED:
        try:
            tasks = setup_sync_scheduler(
                sync_service=app.state.sync_service,
                organization_source=app.state.credential_repository.list_organization_ids,
                retry_attempts=settings.SYNC_RETRY_ATTEMPTS,
            )
            await start_sync_scheduler_background(
                tasks, app.state, interval_seconds=settings.SYNC_SCHEDULE_INTERVAL_SECONDS
            )
        except Exception:
            log.warning("scheduler.start_failed", exc_info=True)
            app.state.sync_scheduler_tasks = None

    log.info("ledger.started", environment=settings.ENVIRONMENT.value)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    scheduler_tasks = getattr(app.state, "sync_scheduler_tasks", None)
    if scheduler_tasks:
        for task_ref in scheduler_tasks:
            task_ref.cancel()
        await asyncio.gather(*scheduler_tasks, return_exceptions=True)

    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Commission Ledger API",
        version="0.1.0",
        description="CRM reconciliation and commission accrual for sales organizations",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
