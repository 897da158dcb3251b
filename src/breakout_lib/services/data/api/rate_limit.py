"""
Rate Limiting
=============
Per-client inbound rate limiting using ``slowapi``.

Limits:
  - Scan endpoints (``/api/fetch-gate-data``, ``/api/fetch-funding-rate``):
    6 req/min per client.  One scan fans out into hundreds of upstream
    requests, so this is the limit that protects the Gate.io quota.
  - Public endpoints (``/health``, ``/metrics/prometheus``): 60 req/min
  - Service info (``/``): the default, 30 req/min per client

Configuration via environment variables:
  - ``RATE_LIMIT_ENABLED``   - "1" to enable, "0" to disable (default: "1")
  - ``RATE_LIMIT_DEFAULT``   - Default limit string (default: "30/minute")
  - ``RATE_LIMIT_SCAN``      - Scan endpoint limit (default: "6/minute")
  - ``RATE_LIMIT_PUBLIC``    - Public endpoint limit (default: "60/minute")
  - ``RATE_LIMIT_STORAGE``   - limits storage URI (default: "memory://")

Usage in ``main.py``::

    from src.breakout_lib.services.data.api.rate_limit import setup_rate_limiting

    setup_rate_limiting(app)

Every route is decorated with ``@get_limiter().limit(...)`` and one of
``SCAN_LIMIT``, ``PUBLIC_LIMIT`` or ``DEFAULT_LIMIT``.

Note: When ``RATE_LIMIT_ENABLED=0`` (or in test environments), the limiter
is installed but uses extremely permissive limits so it never blocks.
"""

import logging
import os
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger("api.rate_limit")

# ---------------------------------------------------------------------------
# Configuration from environment
# ---------------------------------------------------------------------------

_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "1").strip() in ("1", "true", "yes")
_DEFAULT_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "30/minute")
_SCAN_LIMIT = os.getenv("RATE_LIMIT_SCAN", "6/minute")
_PUBLIC_LIMIT = os.getenv("RATE_LIMIT_PUBLIC", "60/minute")
_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE", "memory://") or "memory://"

# Limiter stays installed when disabled but never blocks
_DISABLED_LIMIT = "999999/second"


def _get_effective_limit(configured: str) -> str:
    """Return the effective limit, or a no-op limit when rate limiting is off."""
    if not _ENABLED:
        return _DISABLED_LIMIT
    return configured


# ---------------------------------------------------------------------------
# Key function - identifies the client for rate-limit bucketing
# ---------------------------------------------------------------------------


def _client_key_func(request: Request) -> str:
    """Derive a rate-limit key from the request.

    Uses the first ``X-Forwarded-For`` hop when the service sits behind a
    proxy (the usual serverless deployment), otherwise the remote address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
        return f"ip:{client_ip}"

    return f"ip:{get_remote_address(request)}"


# ---------------------------------------------------------------------------
# Limiter singleton
# ---------------------------------------------------------------------------

_limiter: Optional[Limiter] = None


def get_limiter() -> Limiter:
    """Return the singleton ``Limiter`` instance, creating it on first call."""
    global _limiter
    if _limiter is None:
        default_limit = _get_effective_limit(_DEFAULT_LIMIT)
        _limiter = Limiter(
            key_func=_client_key_func,
            default_limits=[default_limit],
            storage_uri=_STORAGE_URI,
            strategy="fixed-window",
        )
        logger.info(
            "Rate limiter initialised: enabled=%s default=%s storage=%s",
            _ENABLED,
            default_limit,
            _STORAGE_URI,
        )

    return _limiter


def reset_limiter() -> None:
    """Reset the limiter singleton (useful in tests)."""
    global _limiter
    _limiter = None


# ---------------------------------------------------------------------------
# Custom rate-limit exceeded handler
# ---------------------------------------------------------------------------


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return a structured JSON 429 response when rate limit is exceeded."""
    retry_after = exc.detail or "unknown"

    logger.warning(
        "Rate limit exceeded: %s %s from %s (limit: %s)",
        request.method,
        request.url.path,
        _client_key_func(request),
        retry_after,
    )

    return JSONResponse(
        status_code=429,
        content={
            "error": "rate_limit_exceeded",
            "detail": f"Rate limit exceeded: {retry_after}",
            "retry_after": str(retry_after),
        },
        headers={"Retry-After": str(retry_after)},
    )


# ---------------------------------------------------------------------------
# Limit strings
# ---------------------------------------------------------------------------

SCAN_LIMIT = _get_effective_limit(_SCAN_LIMIT)
PUBLIC_LIMIT = _get_effective_limit(_PUBLIC_LIMIT)
DEFAULT_LIMIT = _get_effective_limit(_DEFAULT_LIMIT)


# ---------------------------------------------------------------------------
# Setup - call from main.py
# ---------------------------------------------------------------------------


def setup_rate_limiting(app: FastAPI) -> Limiter:
    """Install rate limiting on a FastAPI application.

    Sets ``app.state.limiter`` and registers the JSON 429 handler.  Returns
    the limiter so callers can decorate routes with ``@limiter.limit(...)``.
    """
    limiter = get_limiter()
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)  # type: ignore[arg-type]

    logger.info(
        "Rate limiting configured: enabled=%s, default=%s, scan=%s, public=%s",
        _ENABLED,
        DEFAULT_LIMIT,
        SCAN_LIMIT,
        PUBLIC_LIMIT,
    )

    return limiter


def is_rate_limiting_enabled() -> bool:
    """Return True if rate limiting is actively enforcing limits."""
    return _ENABLED
