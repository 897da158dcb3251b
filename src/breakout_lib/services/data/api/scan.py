"""
Scan API router - the two spreadsheet-facing POST endpoints.

Provides:
    POST /api/fetch-gate-data     - pre-breakout scan, one row per symbol
    POST /api/fetch-funding-rate  - funding-rate change column, one row per symbol

Both take ``{"symbols": [...], "config": {...}}`` and answer with
``{"status": "Success", "message": ..., "data": rows}``, rows in the order
the symbols were sent.  Config keys are accepted in camelCase or in the
upper-case form older sheet scripts send (``FUTURE_STATS_BASE_URL`` …).

Input problems are answered in plain text before any upstream request is
made: ``400`` for an unreadable body, a bad symbol list or a bad config,
``405`` for any method other than POST.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictStr,
    ValidationError,
    field_validator,
)

from src.breakout_lib.analysis.scan import run_breakout_scan, run_funding_scan
from src.breakout_lib.core.config import (
    DEFAULT_INTERVAL_LABEL,
    DEFAULT_INTERVAL_SECONDS,
    ScanSettings,
)
from src.breakout_lib.integrations.gate_loader import GateEndpoints
from src.breakout_lib.services.data.api.rate_limit import SCAN_LIMIT, get_limiter

logger = logging.getLogger("api.scan")

router = APIRouter(tags=["scan"])

_limiter = get_limiter()

METHOD_NOT_ALLOWED_MESSAGE = "Only POST requests with a JSON body are accepted."
INVALID_BODY_MESSAGE = "Request body must be valid JSON."
INVALID_SYMBOLS_MESSAGE = "Symbol list is invalid or empty."

_OTHER_METHODS = ["GET", "PUT", "PATCH", "DELETE"]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class GateScanConfig(BaseModel):
    """Upstream endpoints for the pre-breakout scan."""

    model_config = ConfigDict(populate_by_name=True)

    stats_base_url: StrictStr = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("statsBaseUrl", "FUTURE_STATS_BASE_URL", "stats_base_url"),
    )
    candle_base_url: StrictStr = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices(
            "candleBaseUrl", "FUTURE_CANDLE_BASE_URL", "candle_base_url"
        ),
    )
    interval_label: StrictStr = Field(
        DEFAULT_INTERVAL_LABEL,
        min_length=1,
        validation_alias=AliasChoices("intervalLabel", "CANDLESTICK_INTERVAL", "interval_label"),
    )
    interval_seconds: int = Field(
        DEFAULT_INTERVAL_SECONDS,
        gt=0,
        validation_alias=AliasChoices("intervalSeconds", "INTERVAL_SECONDS", "interval_seconds"),
    )
    custom_headers: Optional[dict[str, str]] = Field(
        None,
        validation_alias=AliasChoices("customHeaders", "CUSTOM_HEADERS", "custom_headers"),
    )

    def endpoints(self) -> GateEndpoints:
        return GateEndpoints(
            stats_base_url=self.stats_base_url,
            candle_base_url=self.candle_base_url,
            interval_label=self.interval_label,
            interval_seconds=self.interval_seconds,
            headers=dict(self.custom_headers or {}),
        )


class FundingScanConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fr_history_base_url: StrictStr = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices(
            "frHistoryBaseUrl", "FUTURE_FR_HISTORY_BASE_URL", "fr_history_base_url"
        ),
    )
    custom_headers: Optional[dict[str, str]] = Field(
        None,
        validation_alias=AliasChoices("customHeaders", "CUSTOM_HEADERS", "custom_headers"),
    )


class _SymbolsRequest(BaseModel):
    symbols: list[StrictStr] = Field(..., min_length=1)

    @field_validator("symbols")
    @classmethod
    def _no_blank_symbols(cls, value: list[str]) -> list[str]:
        if any(not s.strip() for s in value):
            raise ValueError("symbols must be non-empty strings")
        return value


class GateScanRequest(_SymbolsRequest):
    config: GateScanConfig


class FundingScanRequest(_SymbolsRequest):
    config: FundingScanConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _describe_validation_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if any(err["loc"] and err["loc"][0] == "symbols" for err in errors):
        return INVALID_SYMBOLS_MESSAGE
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in errors
    )
    return f"Invalid request: {details}"


async def _parse_body(
    request: Request, model: type[BaseModel]
) -> Union[BaseModel, PlainTextResponse]:
    """Decode and validate the JSON body, or build the 400 response."""
    try:
        payload = await request.json()
    except ValueError:
        return PlainTextResponse(INVALID_BODY_MESSAGE, status_code=400)

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        message = _describe_validation_error(exc)
        logger.info("Rejected %s request: %s", request.url.path, message)
        return PlainTextResponse(message, status_code=400)


def _method_not_allowed() -> PlainTextResponse:
    return PlainTextResponse(
        METHOD_NOT_ALLOWED_MESSAGE, status_code=405, headers={"Allow": "POST"}
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/api/fetch-gate-data")
@_limiter.limit(SCAN_LIMIT)
async def fetch_gate_data(request: Request):
    """Run the pre-breakout scan over the requested symbols."""
    parsed = await _parse_body(request, GateScanRequest)
    if isinstance(parsed, PlainTextResponse):
        return parsed

    try:
        outcome = await run_breakout_scan(
            parsed.symbols,
            parsed.config.endpoints(),
            settings=ScanSettings.from_env(),
        )
    except Exception as exc:
        logger.exception("Breakout scan failed: %s", exc)
        raise HTTPException(status_code=500, detail=f"Scan failed: {exc}") from exc

    return outcome.envelope()


@router.post("/api/fetch-funding-rate")
@_limiter.limit(SCAN_LIMIT)
async def fetch_funding_rate(request: Request):
    """Fetch recent funding history and report the change column."""
    parsed = await _parse_body(request, FundingScanRequest)
    if isinstance(parsed, PlainTextResponse):
        return parsed

    try:
        return await run_funding_scan(
            parsed.symbols,
            parsed.config.fr_history_base_url,
            headers=dict(parsed.config.custom_headers or {}),
            settings=ScanSettings.from_env(),
        )
    except Exception as exc:
        logger.exception("Funding scan failed: %s", exc)
        raise HTTPException(status_code=500, detail=f"Funding scan failed: {exc}") from exc


@router.api_route("/api/fetch-gate-data", methods=_OTHER_METHODS, include_in_schema=False)
async def fetch_gate_data_wrong_method():
    return _method_not_allowed()


@router.api_route("/api/fetch-funding-rate", methods=_OTHER_METHODS, include_in_schema=False)
async def fetch_funding_rate_wrong_method():
    return _method_not_allowed()
