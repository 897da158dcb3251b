"""
Breakout Scanner Service - FastAPI
==================================
Stateless HTTP front for the Gate.io pre-breakout scanner:
  - POST /api/fetch-gate-data     - statistics + candles scan, one row per symbol
  - POST /api/fetch-funding-rate  - funding-rate change column
  - GET  /health, /metrics/prometheus, /

Each scan is a single pass: nothing is cached or persisted between
invocations, so any number of workers can serve the same spreadsheet.

Usage (from project root):
    uvicorn src.breakout_lib.services.data.main:app --host 0.0.0.0 --port 8000

or:
    python -m src.breakout_lib.services.data.main
"""

import json
import math
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.breakout_lib import __version__
from src.breakout_lib.core.config import ScanSettings


# ---------------------------------------------------------------------------
# JSON response that writes inf / NaN as null.  Diagnostic ratios can be
# non-finite (e.g. a zero close in the range window), which the stdlib
# encoder rejects with allow_nan=False.
# ---------------------------------------------------------------------------
def _sanitize(obj: Any) -> Any:
    """Recursively replace non-finite floats with None."""
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj
    if isinstance(obj, dict):
        return {k: _sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize(v) for v in obj]
    return obj


class SafeJSONResponse(JSONResponse):
    """JSONResponse subclass that handles inf/NaN floats gracefully."""

    def render(self, content: Any) -> bytes:
        return json.dumps(
            _sanitize(content),
            ensure_ascii=False,
            allow_nan=False,
        ).encode("utf-8")


# ---------------------------------------------------------------------------
# Logging - structured via structlog
# ---------------------------------------------------------------------------
from src.breakout_lib.core.logging_config import (  # noqa: E402
    get_logger,
    setup_logging,
)

setup_logging(service="data-service")
logger = get_logger("data_service")

from src.breakout_lib.services.data.api.health import router as health_router  # noqa: E402
from src.breakout_lib.services.data.api.metrics import (  # noqa: E402
    PrometheusMiddleware,
)
from src.breakout_lib.services.data.api.metrics import (  # noqa: E402
    router as metrics_router,
)
from src.breakout_lib.services.data.api.rate_limit import (  # noqa: E402
    DEFAULT_LIMIT,
    setup_rate_limiting,
)
from src.breakout_lib.services.data.api.scan import router as scan_router  # noqa: E402


# ---------------------------------------------------------------------------
# Lifespan: nothing to start, log the effective configuration
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        settings = ScanSettings.from_env()
        logger.info(
            "data_service_starting",
            version=__version__,
            concurrency_limit=settings.concurrency_limit,
            batch_delay_s=settings.delay_seconds,
            stats_limit=settings.stats_limit,
            candle_required=settings.candle_required_completed,
            scan_timeout_s=settings.scan_timeout,
        )
    except ValueError as exc:
        logger.error("invalid_scan_configuration", error=str(exc))

    yield

    logger.info("data_service_stopped")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Breakout Scanner Service",
    description=(
        "Scans Gate.io USDT perpetual futures for the pre-breakout pattern "
        "(calm market followed by a taker-buy and open-interest spike) and "
        "returns spreadsheet-ready rows."
    ),
    version=__version__,
    lifespan=lifespan,
    default_response_class=SafeJSONResponse,
)

# The spreadsheet script calls from a different origin
_cors_origins = [
    o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(PrometheusMiddleware)

limiter = setup_rate_limiting(app)

# ---------------------------------------------------------------------------
# Register routers
# ---------------------------------------------------------------------------
# Scan: /api/fetch-gate-data, /api/fetch-funding-rate
app.include_router(scan_router, tags=["Scan"])

# Health: /health
app.include_router(health_router, tags=["Health"])

# Prometheus metrics: /metrics/prometheus
app.include_router(metrics_router, tags=["Metrics"])


@app.get("/")
@limiter.limit(DEFAULT_LIMIT)
def api_info(request: Request):
    """Service info and links to docs."""
    return {
        "service": "breakout-scanner",
        "version": __version__,
        "status": "running",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "scan": "/api/fetch-gate-data",
            "funding_rate": "/api/fetch-funding-rate",
            "health": "/health",
            "metrics": "/metrics/prometheus",
        },
    }


# ---------------------------------------------------------------------------
# Run directly: python -m src.breakout_lib.services.data.main
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn

    host = os.getenv("DATA_SERVICE_HOST", "0.0.0.0")
    port = int(os.getenv("DATA_SERVICE_PORT", "8000"))

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
    )
