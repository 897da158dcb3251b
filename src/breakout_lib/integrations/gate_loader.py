"""
Phased series loader for Gate.io contract statistics and candles.

Two dependent fetch phases per symbol:

  1. **Statistics** - ``{stats_base_url}?contract=SYM&limit=N`` where
     ``N = STATS_REQUIRED_COMPLETED + STATS_SAFETY_MARGIN`` so sparse
     intervals still leave enough history.  The newest record is the live
     (incomplete) interval and is always dropped; symbols left with fewer
     than ``STATS_REQUIRED_COMPLETED`` records stop here.
  2. **Candles** - for each survivor only, a time-bounded request
     ``from = to - CANDLE_REQUIRED_COMPLETED * interval_seconds`` where
     ``to`` is the newest *completed* statistics timestamp.  The window is
     explicit because the candle endpoint can return irregular records,
     so a count ``limit`` would not line up with the statistics.

Each phase returns a fresh ``symbol -> state`` mapping holding only the
symbols that advanced; nothing is mutated across phases.

Usage::

    loader = GateSeriesLoader(settings)
    series = await loader.load(symbols, endpoints)
    # series = {"BTC_USDT": SymbolSeries(...), ...}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence
from urllib.parse import urlencode

from src.breakout_lib.core.config import (
    DEFAULT_INTERVAL_LABEL,
    DEFAULT_INTERVAL_SECONDS,
    ScanSettings,
)
from src.breakout_lib.core.logging_config import get_logger
from src.breakout_lib.core.models import (
    KIND_CANDLE,
    KIND_STATS,
    CandleRecord,
    FetchRequest,
    FetchResult,
    StatisticsRecord,
    SymbolSeries,
    SymbolStats,
)
from src.breakout_lib.integrations.batch_fetcher import BatchFetcher
from src.breakout_lib.services.data.api.metrics import record_scan_stage

logger = get_logger("gate_loader")


@dataclass(frozen=True)
class GateEndpoints:
    """Upstream endpoints and candle interval supplied by the caller."""

    stats_base_url: str
    candle_base_url: str
    interval_label: str = DEFAULT_INTERVAL_LABEL
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    headers: dict[str, str] = field(default_factory=dict)


def with_query(base_url: str, params: dict) -> str:
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}{urlencode(params)}"


def parse_completed_stats(
    symbol: str, result: FetchResult, required: int
) -> Optional[SymbolStats]:
    """Drop the live record and keep the symbol only if enough history remains."""
    if not result.ok:
        logger.warning("stats_unavailable", symbol=symbol, error=result.error)
        return None

    try:
        records = tuple(StatisticsRecord.from_payload(raw) for raw in result.data[:-1])
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("stats_malformed", symbol=symbol, error=str(exc))
        return None

    if len(records) < required:
        logger.debug(
            "stats_insufficient", symbol=symbol, completed=len(records), required=required
        )
        return None
    return SymbolStats(symbol=symbol, records=records)


def parse_candles(result: FetchResult) -> Optional[tuple[CandleRecord, ...]]:
    if not result.ok:
        logger.warning("candles_unavailable", symbol=result.symbol, error=result.error)
        return None
    try:
        candles = tuple(CandleRecord.from_payload(raw) for raw in result.data)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("candles_malformed", symbol=result.symbol, error=str(exc))
        return None
    return candles or None


class GateSeriesLoader:
    """Drives the statistics → candles fetch phases through a ``BatchFetcher``."""

    def __init__(
        self,
        settings: Optional[ScanSettings] = None,
        fetcher: Optional[BatchFetcher] = None,
    ):
        self.settings = settings or ScanSettings()
        self.fetcher = fetcher or BatchFetcher(
            concurrency_limit=self.settings.concurrency_limit,
            delay_seconds=self.settings.delay_seconds,
            timeout=self.settings.request_timeout,
        )

    # ----- request builders -----

    def stats_request(self, symbol: str, endpoints: GateEndpoints) -> FetchRequest:
        url = with_query(
            endpoints.stats_base_url,
            {"contract": symbol, "limit": self.settings.stats_limit},
        )
        return FetchRequest(url=url, symbol=symbol, kind=KIND_STATS)

    def candle_request(self, stats: SymbolStats, endpoints: GateEndpoints) -> FetchRequest:
        to_ts = stats.latest_time
        from_ts = to_ts - self.settings.candle_required_completed * endpoints.interval_seconds
        url = with_query(
            endpoints.candle_base_url,
            {
                "contract": stats.symbol,
                "interval": endpoints.interval_label,
                "from": from_ts,
                "to": to_ts,
            },
        )
        return FetchRequest(
            url=url,
            symbol=stats.symbol,
            kind=KIND_CANDLE,
            extra={"latest_stats_timestamp": to_ts},
        )

    # ----- phases -----

    async def load_statistics(
        self,
        symbols: Sequence[str],
        endpoints: GateEndpoints,
        deadline: Optional[float] = None,
    ) -> dict[str, SymbolStats]:
        """Phase 1: completed statistics for every symbol that has enough."""
        unique = list(dict.fromkeys(symbols))
        requests = [self.stats_request(sym, endpoints) for sym in unique]
        results = await self.fetcher.fetch_all(requests, endpoints.headers, deadline)

        passed: dict[str, SymbolStats] = {}
        for result in results:
            stats = parse_completed_stats(
                result.symbol, result, self.settings.stats_required_completed
            )
            if stats is not None:
                passed[result.symbol] = stats

        record_scan_stage("stats_ok", len(passed))
        logger.info("stats_phase_complete", requested=len(unique), passed=len(passed))
        return passed

    async def load_candles(
        self,
        stats_by_symbol: dict[str, SymbolStats],
        endpoints: GateEndpoints,
        deadline: Optional[float] = None,
    ) -> dict[str, SymbolSeries]:
        """Phase 2: candle windows anchored on each symbol's latest completed stats."""
        requests = [self.candle_request(s, endpoints) for s in stats_by_symbol.values()]
        results = await self.fetcher.fetch_all(requests, endpoints.headers, deadline)

        loaded: dict[str, SymbolSeries] = {}
        for result in results:
            stats = stats_by_symbol.get(result.symbol)
            candles = parse_candles(result)
            if stats is None or candles is None:
                continue
            loaded[result.symbol] = SymbolSeries(
                symbol=result.symbol, stats=stats.records, candles=candles
            )

        record_scan_stage("candles_ok", len(loaded))
        logger.info("candle_phase_complete", requested=len(requests), loaded=len(loaded))
        return loaded

    async def load(
        self,
        symbols: Sequence[str],
        endpoints: GateEndpoints,
        deadline: Optional[float] = None,
    ) -> dict[str, SymbolSeries]:
        """Run both phases; the candle phase only sees Phase 1 survivors."""
        stats = await self.load_statistics(symbols, endpoints, deadline)
        if not stats:
            return {}
        return await self.load_candles(stats, endpoints, deadline)
