"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- sync_runs_total / sync_deals_total / token_refreshes_total: CRM sync metrics
- init_sentry(): Initialize Sentry with organization-aware before_send callback
- get_metrics_response(): Prometheus exposition for /metrics
"""

from __future__ import annotations

import time

import sentry_sdk
import structlog
from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── CRM Sync Metrics ─────────────────────────────────────────────────────────

sync_runs_total = Counter(
    "crm_sync_runs_total",
    "CRM deal sync runs by outcome",
    ["outcome"],
)

sync_run_duration_seconds = Histogram(
    "crm_sync_run_duration_seconds",
    "Duration of non-throttled CRM deal sync runs",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

sync_deals_total = Counter(
    "crm_sync_deals_total",
    "Remote deals processed by disposition",
    ["disposition"],
)

token_refreshes_total = Counter(
    "crm_token_refreshes_total",
    "CRM OAuth token refreshes by status",
    ["status"],
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Uses the matched route pattern as the endpoint label so organization ids
    in paths do not explode label cardinality. Skips /metrics itself.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or request.url.path

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK with organization-aware event tagging.

    Args:
        dsn: Sentry DSN string.
        environment: Deployment environment (development, staging, production).
    """
    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Tag events with the organization bound to the current log context."""
        organization_id = structlog.contextvars.get_contextvars().get("organization_id")
        if organization_id:
            event.setdefault("tags", {})["organization_id"] = organization_id
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
