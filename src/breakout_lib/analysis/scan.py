"""
Scan orchestration - one stateless pass per invocation.

``run_breakout_scan`` threads per-symbol state through the stages::

    symbols ─▶ statistics (phase 1) ─▶ candles (phase 2) ─▶ join + trim
            ─▶ indicators ─▶ signal ─▶ rows (input order)

Every stage maps ``symbol -> state`` and only symbols that produced a
state advance; the rest fall through to default rows.  A single deadline
covers both fetch phases.

``run_funding_scan`` is the lighter single-phase funding-rate variant.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from src.breakout_lib.analysis.funding import evaluate_funding_history
from src.breakout_lib.analysis.indicators import compute_indicators
from src.breakout_lib.analysis.report import (
    FUNDING_MESSAGE,
    SCAN_MESSAGE,
    assemble_rows,
    build_envelope,
    build_result,
)
from src.breakout_lib.analysis.signal import BreakoutEvaluation, evaluate_breakout
from src.breakout_lib.analysis.sync import synchronize, trim_series
from src.breakout_lib.core.config import DEFAULT_THRESHOLDS, DetectionThresholds, ScanSettings
from src.breakout_lib.core.logging_config import get_logger, scan_context
from src.breakout_lib.core.models import (
    KIND_FUNDING,
    FetchRequest,
    FundingResult,
    PerSymbolSeries,
    SignalResult,
    SymbolSeries,
)
from src.breakout_lib.integrations.batch_fetcher import BatchFetcher
from src.breakout_lib.integrations.gate_loader import (
    GateEndpoints,
    GateSeriesLoader,
    with_query,
)
from src.breakout_lib.services.data.api.metrics import (
    record_detections,
    record_scan_duration,
    record_scan_stage,
)

logger = get_logger("scan")


@dataclass
class ScanOutcome:
    """Everything a scan produced, keyed by symbol, plus the ordered rows."""

    rows: list[list[Any]]
    results: dict[str, SignalResult]
    evaluations: dict[str, BreakoutEvaluation]

    def envelope(self) -> dict[str, Any]:
        return build_envelope(self.rows, SCAN_MESSAGE)


def _deadline(settings: ScanSettings) -> Optional[float]:
    if settings.scan_timeout is None:
        return None
    return asyncio.get_running_loop().time() + settings.scan_timeout


def prepare_series(
    loaded: dict[str, SymbolSeries], settings: ScanSettings
) -> dict[str, PerSymbolSeries]:
    """Join and trim each loaded symbol, dropping those with short coverage."""
    prepared: dict[str, PerSymbolSeries] = {}
    for symbol, raw in loaded.items():
        records = synchronize(raw.candles, raw.stats)
        trimmed = trim_series(
            symbol,
            records,
            candle_required=settings.candle_required_completed,
            stats_required=settings.stats_required_completed,
        )
        if trimmed is not None:
            prepared[symbol] = trimmed
    return prepared


def score_series(
    prepared: dict[str, PerSymbolSeries],
    settings: ScanSettings,
    thresholds: DetectionThresholds = DEFAULT_THRESHOLDS,
) -> tuple[dict[str, SignalResult], dict[str, BreakoutEvaluation]]:
    results: dict[str, SignalResult] = {}
    evaluations: dict[str, BreakoutEvaluation] = {}
    for symbol, series in prepared.items():
        evaluation = evaluate_breakout(
            series,
            compute_indicators(series),
            thresholds=thresholds,
            candle_required=settings.candle_required_completed,
            stats_required=settings.stats_required_completed,
        )
        evaluations[symbol] = evaluation
        results[symbol] = build_result(symbol, series.latest, evaluation.detected)
    return results, evaluations


async def run_breakout_scan(
    symbols: Sequence[str],
    endpoints: GateEndpoints,
    settings: Optional[ScanSettings] = None,
    thresholds: DetectionThresholds = DEFAULT_THRESHOLDS,
    loader: Optional[GateSeriesLoader] = None,
) -> ScanOutcome:
    """Fetch, synchronize and score *symbols*; rows come back in input order."""
    settings = settings or ScanSettings()
    loader = loader or GateSeriesLoader(settings)
    with scan_context("fetch-gate-data"):
        started = time.perf_counter()

        record_scan_stage("requested", len(symbols))
        loaded = await loader.load(symbols, endpoints, deadline=_deadline(settings))

        prepared = prepare_series(loaded, settings)
        record_scan_stage("synchronized", len(prepared))

        results, evaluations = score_series(prepared, settings, thresholds)
        detected = [s for s, r in results.items() if r.detected]
        record_detections(len(detected))

        rows = assemble_rows(symbols, results)
        duration = time.perf_counter() - started
        record_scan_duration("fetch-gate-data", duration)
        logger.info(
            "breakout_scan_complete",
            symbols=len(symbols),
            loaded=len(loaded),
            scored=len(results),
            detected=detected,
            duration_s=round(duration, 3),
        )
        return ScanOutcome(rows=rows, results=results, evaluations=evaluations)


async def run_funding_scan(
    symbols: Sequence[str],
    history_base_url: str,
    headers: Optional[dict[str, str]] = None,
    settings: Optional[ScanSettings] = None,
    fetcher: Optional[BatchFetcher] = None,
) -> dict[str, Any]:
    """Fetch recent funding history per symbol and build the funding envelope."""
    settings = settings or ScanSettings()
    fetcher = fetcher or BatchFetcher(
        concurrency_limit=settings.concurrency_limit,
        delay_seconds=settings.funding_delay_seconds,
        timeout=settings.request_timeout,
    )
    with scan_context("fetch-funding-rate"):
        started = time.perf_counter()

        requests = [
            FetchRequest(
                url=with_query(
                    history_base_url,
                    {"contract": sym, "limit": settings.funding_history_limit},
                ),
                symbol=sym,
                kind=KIND_FUNDING,
            )
            for sym in dict.fromkeys(symbols)
        ]
        fetched = await fetcher.fetch_all(
            requests, headers or {}, deadline=_deadline(settings)
        )

        values: dict[str, FundingResult] = {}
        for result in fetched:
            if not result.ok:
                logger.warning(
                    "funding_unavailable", symbol=result.symbol, error=result.error
                )
                continue
            values[result.symbol] = FundingResult(
                symbol=result.symbol, value=evaluate_funding_history(result.data)
            )

        rows = [values.get(sym, FundingResult(symbol=sym)).to_row() for sym in symbols]
        record_scan_duration("fetch-funding-rate", time.perf_counter() - started)
        logger.info("funding_scan_complete", symbols=len(symbols), fetched=len(values))
        return build_envelope(rows, FUNDING_MESSAGE)
