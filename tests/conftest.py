"""
Shared pytest fixtures for the breakout scanner test suite.

Provides a synthetic pre-breakout series (calm market, then a taker-buy
and open-interest spike on the newest bar) plus an in-process Gate.io stub
built on ``httpx.MockTransport`` so the fetcher, loader, pipeline and API
can be exercised without hitting the network.
"""

import os

# ---------------------------------------------------------------------------
# Tests never wait on batch pauses and never hit the inbound rate limit.
# Must be set before any breakout_lib module reads the environment.
# ---------------------------------------------------------------------------
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")
os.environ.setdefault("BATCH_DELAY_MS", "0")
os.environ.setdefault("FUNDING_BATCH_DELAY_MS", "0")

import asyncio  # noqa: E402
from typing import Any, Optional  # noqa: E402

import httpx  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from src.breakout_lib.core.config import ScanSettings  # noqa: E402
from src.breakout_lib.core.models import PerSymbolSeries, SynchronizedRecord  # noqa: E402
from src.breakout_lib.integrations.batch_fetcher import BatchFetcher  # noqa: E402
from src.breakout_lib.integrations.gate_loader import GateEndpoints  # noqa: E402

# 2025-10-01 07:50 UTC, aligned to the 5-minute grid
BASE_TIME = 1_759_305_000
INTERVAL = 300

STATS_URL = "https://gate.test/futures/usdt/contract_stats"
CANDLE_URL = "https://gate.test/futures/usdt/candlesticks"
FUNDING_URL = "https://gate.test/futures/usdt/funding_rate"


# ---------------------------------------------------------------------------
# Synthetic data generators
# ---------------------------------------------------------------------------


def _breakout_frame(
    n: int = 50,
    last_close: float = 1.02,
    last_lsr: float = 2.0,
    last_volume: float = 36_000.0,
    last_oi: float = 1_200_000.0,
    start_time: int = BASE_TIME,
) -> pd.DataFrame:
    """Build a synchronized series that matches the pre-breakout pattern.

    Every bar but the last is flat: close 1.0, high/low ±0.005, volume
    10k with a neutral taker ratio (buy volume 5k), open interest 1M.  The
    last bar opens at 1.0 and carries the spike: with the defaults the
    buy volume is 24k (volup 4.8, volSpike 4.8, buy-average ratio 1.19)
    and open interest is up 20%.
    """
    times = start_time + INTERVAL * np.arange(n)
    opens = np.full(n, 1.0)
    highs = np.full(n, 1.005)
    lows = np.full(n, 0.995)
    closes = np.full(n, 1.0)
    volumes = np.full(n, 10_000.0)
    lsr = np.full(n, 1.0)
    oi = np.full(n, 1_000_000.0)

    closes[-1] = last_close
    highs[-1] = max(1.005, last_close + 0.005)
    lows[-1] = min(0.995, last_close - 0.005)
    volumes[-1] = last_volume
    lsr[-1] = last_lsr
    oi[-1] = last_oi

    return pd.DataFrame(
        {
            "time": times.astype(np.int64),
            "open": opens,
            "high": highs,
            "low": lows,
            "close": closes,
            "volume": volumes,
            "lsr_taker": lsr,
            "open_interest": oi,
        }
    )


def _series_from_frame(symbol: str, df: pd.DataFrame) -> PerSymbolSeries:
    last = df.iloc[-1]
    latest = SynchronizedRecord(
        time=int(last["time"]),
        open=float(last["open"]),
        high=float(last["high"]),
        low=float(last["low"]),
        close=float(last["close"]),
        volume=float(last["volume"]),
        lsr_taker=float(last["lsr_taker"]),
        open_interest=float(last["open_interest"]),
    )
    return PerSymbolSeries(
        symbol=symbol,
        times=df["time"].to_numpy(dtype=np.int64),
        opens=df["open"].to_numpy(dtype=float),
        highs=df["high"].to_numpy(dtype=float),
        lows=df["low"].to_numpy(dtype=float),
        closes=df["close"].to_numpy(dtype=float),
        volumes=df["volume"].to_numpy(dtype=float),
        open_interests=df["open_interest"].to_numpy(dtype=float),
        lsr_takers=df["lsr_taker"].to_numpy(dtype=float),
        latest=latest,
    )


def _stats_payload(df: pd.DataFrame, live: bool = True) -> list[dict[str, Any]]:
    """Contract-stats payload (ascending), plus the live interval at the end."""
    records = [
        {
            "time": int(row.time),
            "lsr_taker": float(row.lsr_taker),
            "open_interest_usd": float(row.open_interest),
            "long_liq_size": 0,
        }
        for row in df.itertuples(index=False)
    ]
    if live:
        records.append(
            {
                "time": int(df["time"].iloc[-1]) + INTERVAL,
                "lsr_taker": 0.5,
                "open_interest_usd": 1.0,
            }
        )
    return records


def _candle_payload(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Candlestick payload with Gate.io's string-typed OHLC fields."""
    return [
        {
            "t": int(row.time),
            "o": str(row.open),
            "h": str(row.high),
            "l": str(row.low),
            "c": str(row.close),
            "v": 1000,
            "sum": str(row.volume),
        }
        for row in df.itertuples(index=False)
    ]


# ---------------------------------------------------------------------------
# Gate.io stub
# ---------------------------------------------------------------------------


class GateStub:
    """Serves canned payloads keyed by endpoint and ``contract`` parameter.

    A table entry may be a JSON-able payload (served with 200) or a ready
    ``httpx.Response``.  ``delays`` holds per-contract sleeps used to
    reorder completions.  Every request is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.stats: dict[str, Any] = {}
        self.candles: dict[str, Any] = {}
        self.funding: dict[str, Any] = {}
        self.delays: dict[str, float] = {}
        self.requests: list[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def add_symbol(self, symbol: str, df: pd.DataFrame) -> None:
        self.stats[symbol] = _stats_payload(df)
        self.candles[symbol] = _candle_payload(df)

    def requests_for(self, url: str) -> list[httpx.Request]:
        path = httpx.URL(url).path
        return [r for r in self.requests if r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            contract = request.url.params.get("contract", "")
            delay = self.delays.get(contract, 0.0)
            if delay:
                await asyncio.sleep(delay)

            table = {
                httpx.URL(STATS_URL).path: self.stats,
                httpx.URL(CANDLE_URL).path: self.candles,
                httpx.URL(FUNDING_URL).path: self.funding,
            }.get(request.url.path, {})
            entry = table.get(contract)
            if entry is None:
                return httpx.Response(404, json={"label": "CONTRACT_NOT_FOUND"})
            if isinstance(entry, httpx.Response):
                return entry
            return httpx.Response(200, json=entry)
        finally:
            self.in_flight -= 1

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def breakout_df() -> pd.DataFrame:
    """50 synchronized bars ending in a textbook pre-breakout spike."""
    return _breakout_frame()


@pytest.fixture()
def breakout_series(breakout_df) -> PerSymbolSeries:
    return _series_from_frame("BTC_USDT", breakout_df)


@pytest.fixture()
def make_frame():
    """Factory for variants of the breakout frame."""
    return _breakout_frame


@pytest.fixture()
def make_series():
    return _series_from_frame


@pytest.fixture()
def payloads():
    """``(stats_payload, candle_payload)`` builders for a frame."""
    return _stats_payload, _candle_payload


@pytest.fixture()
def gate_stub() -> GateStub:
    return GateStub()


@pytest.fixture()
def endpoints() -> GateEndpoints:
    return GateEndpoints(
        stats_base_url=STATS_URL,
        candle_base_url=CANDLE_URL,
        headers={"X-Test": "1"},
    )


@pytest.fixture()
def fast_settings() -> ScanSettings:
    """Default thresholds, no pauses between batches."""
    return ScanSettings(delay_seconds=0.0, funding_delay_seconds=0.0)


@pytest.fixture()
def make_fetcher():
    """Build a ``BatchFetcher`` wired to a stub's transport."""

    def _make(
        stub: GateStub,
        concurrency_limit: int = 10,
        delay_seconds: float = 0.0,
        timeout: Optional[float] = 5.0,
    ) -> BatchFetcher:
        return BatchFetcher(
            concurrency_limit=concurrency_limit,
            delay_seconds=delay_seconds,
            timeout=timeout,
            transport=stub.transport(),
        )

    return _make
