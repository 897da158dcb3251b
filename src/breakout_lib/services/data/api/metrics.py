"""
Prometheus Metrics Endpoint
===========================
Exposes ``GET /metrics/prometheus`` returning Prometheus text-format metrics.

Tracked metrics:
  - ``http_requests_total``           - Counter: total HTTP requests by method, path, status
  - ``http_request_duration_seconds`` - Histogram: request latency by method and path
  - ``upstream_requests_total``       - Counter: Gate.io GETs by kind and outcome
  - ``scan_symbols_total``            - Counter: symbols reaching each scan stage
  - ``breakout_detections_total``     - Counter: symbols flagged as pre-breakout
  - ``scan_duration_seconds``         - Histogram: full scan duration by endpoint

All metrics are collected in-process via ``prometheus_client`` and the ASGI
middleware automatically instruments request count + latency.

Usage:
    from src.breakout_lib.services.data.api.metrics import router as metrics_router, PrometheusMiddleware
    app.include_router(metrics_router)
    app.add_middleware(PrometheusMiddleware)
"""

import logging
import time

from fastapi import APIRouter, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response as StarletteResponse

from src.breakout_lib.services.data.api.rate_limit import PUBLIC_LIMIT, get_limiter

logger = logging.getLogger("api.metrics")

# Custom registry so tests can inspect values without the global default
_registry = CollectorRegistry()

# ---------------------------------------------------------------------------
# Metric definitions
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests received",
    labelnames=["method", "path", "status"],
    registry=_registry,
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    labelnames=["method", "path"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
    registry=_registry,
)

UPSTREAM_REQUESTS_TOTAL = Counter(
    "upstream_requests_total",
    "Upstream Gate.io requests by kind and outcome",
    labelnames=["kind", "outcome"],  # ok, http_error, decode_error, transport_error, deadline
    registry=_registry,
)

SCAN_SYMBOLS_TOTAL = Counter(
    "scan_symbols_total",
    "Symbols reaching each scan stage",
    labelnames=["stage"],  # requested, stats_ok, candles_ok, synchronized
    registry=_registry,
)

BREAKOUT_DETECTIONS_TOTAL = Counter(
    "breakout_detections_total",
    "Symbols flagged with the pre-breakout pattern",
    registry=_registry,
)

SCAN_DURATION = Histogram(
    "scan_duration_seconds",
    "Duration of a full scan invocation",
    labelnames=["endpoint"],
    buckets=(0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0, 60.0),
    registry=_registry,
)


# ---------------------------------------------------------------------------
# Helpers for recording metrics from other modules
# ---------------------------------------------------------------------------


def record_upstream_request(kind: str, outcome: str) -> None:
    """Record one upstream GET by request kind and outcome."""
    UPSTREAM_REQUESTS_TOTAL.labels(kind=kind, outcome=outcome).inc()


def record_scan_stage(stage: str, count: int) -> None:
    """Add *count* symbols to the given scan stage counter."""
    if count > 0:
        SCAN_SYMBOLS_TOTAL.labels(stage=stage).inc(count)


def record_detections(count: int) -> None:
    if count > 0:
        BREAKOUT_DETECTIONS_TOTAL.inc(count)


def record_scan_duration(endpoint: str, duration_seconds: float) -> None:
    SCAN_DURATION.labels(endpoint=endpoint).observe(duration_seconds)


# ---------------------------------------------------------------------------
# ASGI Middleware for automatic HTTP metrics
# ---------------------------------------------------------------------------


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that records HTTP request count and latency."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> StarletteResponse:
        method = request.method
        path = request.url.path or "/"

        start = time.perf_counter()
        status_code = "500"

        try:
            response = await call_next(request)
            status_code = str(response.status_code)
        finally:
            duration = time.perf_counter() - start
            HTTP_REQUESTS_TOTAL.labels(
                method=method, path=path, status=status_code
            ).inc()
            HTTP_REQUEST_DURATION.labels(method=method, path=path).observe(duration)

        return response


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

router = APIRouter(tags=["Metrics"])

_limiter = get_limiter()


@router.get(
    "/metrics/prometheus",
    response_class=Response,
    summary="Prometheus metrics",
    description="Returns all application metrics in Prometheus text exposition format.",
)
@_limiter.limit(PUBLIC_LIMIT)
def prometheus_metrics(request: Request):
    """Serve metrics in Prometheus text exposition format."""
    return Response(
        content=generate_latest(_registry),
        media_type=CONTENT_TYPE_LATEST,
    )


def get_registry() -> CollectorRegistry:
    """Return the application's Prometheus CollectorRegistry."""
    return _registry
