"""
Domain data classes shared by the loader, the analysis modules and the API.

Every object here lives for a single scan; nothing is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

# Status glyphs written into the last column of each output row
FLAG_DETECTED = "✅"
FLAG_NOT_DETECTED = "❌"

KIND_STATS = "stats"
KIND_CANDLE = "candle"
KIND_FUNDING = "funding"


def _to_float(value: Any, default: Optional[float] = None) -> float:
    """Convert an upstream numeric field (often a string) to float."""
    if value is None or value == "":
        if default is None:
            raise ValueError("missing numeric field")
        return default
    return float(value)


# ---------------------------------------------------------------------------
# Fetch layer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FetchRequest:
    """One upstream GET, tagged with the symbol and kind it belongs to."""

    url: str
    symbol: str
    kind: str
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class FetchResult:
    """Outcome of a single ``FetchRequest`` - decoded payload or an error."""

    symbol: str
    kind: str
    data: Optional[list[Any]] = None
    error: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None and self.data is not None


# ---------------------------------------------------------------------------
# Upstream records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StatisticsRecord:
    """One contract-statistics interval (taker ratio + open interest)."""

    time: int
    lsr_taker: float
    open_interest_usd: float

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> "StatisticsRecord":
        return cls(
            time=int(raw["time"]),
            lsr_taker=_to_float(raw.get("lsr_taker")),
            open_interest_usd=_to_float(raw.get("open_interest_usd"), default=0.0),
        )


@dataclass(frozen=True)
class CandleRecord:
    """One OHLCV candle; ``volume`` is the quote-currency ``sum`` field."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_payload(cls, raw: dict[str, Any]) -> "CandleRecord":
        return cls(
            time=int(raw["t"]),
            open=_to_float(raw.get("o")),
            high=_to_float(raw.get("h")),
            low=_to_float(raw.get("l")),
            close=_to_float(raw.get("c")),
            volume=_to_float(raw.get("sum"), default=0.0),
        )


@dataclass(frozen=True)
class SynchronizedRecord:
    """A candle joined with the statistics record of the same timestamp."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    lsr_taker: float
    open_interest: float

    @property
    def price(self) -> float:
        return self.close


# ---------------------------------------------------------------------------
# Per-symbol intermediate state, threaded through the scan phases
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SymbolStats:
    """Phase 1 output: completed statistics for one symbol."""

    symbol: str
    records: tuple[StatisticsRecord, ...]

    @property
    def latest_time(self) -> int:
        return self.records[-1].time


@dataclass(frozen=True)
class SymbolSeries:
    """Phase 2 output: completed statistics plus the anchored candle window."""

    symbol: str
    stats: tuple[StatisticsRecord, ...]
    candles: tuple[CandleRecord, ...]


@dataclass
class PerSymbolSeries:
    """Synchronized series trimmed to the windows used for scoring.

    ``lsr_takers`` holds the most recent ``STATS_REQUIRED_COMPLETED`` ratios;
    every other array holds the most recent ``CANDLE_REQUIRED_COMPLETED``
    values.  Both end at ``latest``.
    """

    symbol: str
    times: np.ndarray
    opens: np.ndarray
    highs: np.ndarray
    lows: np.ndarray
    closes: np.ndarray
    volumes: np.ndarray
    open_interests: np.ndarray
    lsr_takers: np.ndarray
    latest: SynchronizedRecord

    def __len__(self) -> int:
        return len(self.closes)


@dataclass
class IndicatorSeries:
    """Derived arrays, index-aligned with the source ``PerSymbolSeries``."""

    true_range: np.ndarray
    atr: np.ndarray
    buy_volume: np.ndarray


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


@dataclass
class SignalResult:
    """Final per-symbol row before serialization."""

    symbol: str
    detected: bool = False
    timestamp_utc: str = ""
    price: float = 0.0
    ratio: float = 0.0
    volume: float = 0.0

    @property
    def flag(self) -> str:
        return FLAG_DETECTED if self.detected else FLAG_NOT_DETECTED

    def to_row(self) -> list[Any]:
        """``[timestampUTC, price, ratio, volume, flag]``"""
        return [self.timestamp_utc, self.price, self.ratio, self.volume, self.flag]


@dataclass
class FundingResult:
    """Funding-rate column value for one symbol."""

    symbol: str
    value: float = 0.0

    def to_row(self) -> list[Any]:
        return [self.value]
