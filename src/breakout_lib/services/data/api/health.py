"""
Health check API router.

Provides:
    GET /health - liveness plus the effective scan configuration
"""

import logging
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.breakout_lib import __version__
from src.breakout_lib.core.config import DEFAULT_THRESHOLDS, ScanSettings
from src.breakout_lib.services.data.api.rate_limit import (
    PUBLIC_LIMIT,
    SCAN_LIMIT,
    get_limiter,
    is_rate_limiting_enabled,
)

logger = logging.getLogger("api.health")

router = APIRouter(tags=["health"])

_limiter = get_limiter()


@router.get("/health")
@_limiter.limit(PUBLIC_LIMIT)
def health(request: Request):
    """Service health check.

    The scanner is stateless, so liveness is all there is to report; the
    settings block shows what the next scan will use (the environment is
    re-read on every scan).
    """
    try:
        settings = asdict(ScanSettings.from_env())
        status = "ok"
    except ValueError as exc:
        logger.error("Invalid scan configuration: %s", exc)
        settings = {"error": str(exc)}
        status = "degraded"

    return {
        "status": status,
        "service": "breakout-scanner",
        "version": __version__,
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        "settings": settings,
        "thresholds": asdict(DEFAULT_THRESHOLDS),
        "rate_limiting": {
            "enabled": is_rate_limiting_enabled(),
            "scan_limit": SCAN_LIMIT,
            "public_limit": PUBLIC_LIMIT,
        },
    }
