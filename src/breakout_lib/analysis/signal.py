"""
Pre-Breakout Signal Evaluator
=============================
Single-shot evaluation on the newest bar of a synchronized series.  A
symbol is flagged when three things hold at once:

  - **Bullish gate** - the newest candle closed above its open.
  - **Spike** - taker-buy volume and open interest jump both bar-over-bar
    and against their mean over a lookback window that ends
    ``offset_to_start`` bars before the newest one, with the taker ratio
    leaning long.
  - **Calm** - before the spike the market was quiet: low ATR at the
    shifted index, a tight close range over the shifted window, and
    buy-volume momentum picking up (ratio of the latest ``lookback``-bar
    buy-volume mean to the mean of the same window shifted back one bar).

Window layout with ``cur`` = newest index::

    end   = cur - offset_to_start + 1
    start = end - lookback_depth
    spike means, close range   -> [start, end)
    atr_n                      -> atr[cur - offset_to_start]
    buy_avg_ratio              -> mean(buy[cur-L+1 : cur+1]) / mean(buy[cur-L+1 : cur])

If any window falls before the first bar the symbol is not detected.

Public API:
    evaluation = evaluate_breakout(series)
    evaluation.detected    # bool
    evaluation.to_dict()   # every intermediate quantity, JSON-friendly
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from src.breakout_lib.analysis.indicators import compute_indicators
from src.breakout_lib.core.config import (
    CANDLE_REQUIRED_COMPLETED,
    DEFAULT_THRESHOLDS,
    STATS_REQUIRED_COMPLETED,
    DetectionThresholds,
)
from src.breakout_lib.core.models import IndicatorSeries, PerSymbolSeries

logger = logging.getLogger("analysis.signal")


@dataclass
class BreakoutEvaluation:
    """Outcome of one pre-breakout evaluation plus its inputs."""

    symbol: str = ""
    detected: bool = False
    reason: str = ""  # why evaluation stopped early, empty when fully evaluated

    is_bullish: bool = False
    spike_valid: bool = False
    calm_valid: bool = False

    volup: float = 0.0
    oiup: float = 0.0
    buy_volume: float = 0.0
    vol_spike: float = 0.0
    oi_spike: float = 0.0
    lsr_taker: float = 0.0
    buy_avg_ratio: float = 0.0
    price_range_ratio: float = 0.0
    atr: float = 0.0

    # Reported only; neither gates the flag
    atrp: float = 0.0
    atr_stability: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        def _r(x: float) -> Optional[float]:
            return round(x, 6) if math.isfinite(x) else None

        return {
            "symbol": self.symbol,
            "detected": self.detected,
            "reason": self.reason,
            "is_bullish": self.is_bullish,
            "spike_valid": self.spike_valid,
            "calm_valid": self.calm_valid,
            "volup": _r(self.volup),
            "oiup": _r(self.oiup),
            "buy_volume": _r(self.buy_volume),
            "vol_spike": _r(self.vol_spike),
            "oi_spike": _r(self.oi_spike),
            "lsr_taker": _r(self.lsr_taker),
            "buy_avg_ratio": _r(self.buy_avg_ratio),
            "price_range_ratio": _r(self.price_range_ratio),
            "atr": _r(self.atr),
            "atrp": _r(self.atrp),
            "atr_stability": _r(self.atr_stability),
        }


def _ratio(numerator: float, denominator: float, fallback_divisor: float = 1.0) -> float:
    """``numerator / denominator``, dividing by *fallback_divisor* when it is not positive."""
    if denominator > 0:
        return numerator / denominator
    return numerator / fallback_divisor


def is_spike(ev: BreakoutEvaluation, t: DetectionThresholds) -> bool:
    return (
        ev.volup > t.min_volup
        and ev.oiup > t.min_oiup
        and ev.buy_volume > t.min_buy_volume
        and ev.vol_spike > t.min_vol_spike
        and ev.lsr_taker > t.min_lsr_taker
        and ev.oi_spike > t.min_oi_spike
    )


def is_calm(ev: BreakoutEvaluation, t: DetectionThresholds) -> bool:
    return (
        ev.atr <= t.max_atr
        and ev.buy_avg_ratio > t.min_buy_avg_ratio
        and ev.price_range_ratio <= t.max_price_range_ratio
    )


def evaluate_breakout(
    series: PerSymbolSeries,
    indicators: Optional[IndicatorSeries] = None,
    thresholds: DetectionThresholds = DEFAULT_THRESHOLDS,
    candle_required: int = CANDLE_REQUIRED_COMPLETED,
    stats_required: int = STATS_REQUIRED_COMPLETED,
) -> BreakoutEvaluation:
    """Evaluate the pre-breakout heuristic at the newest bar of *series*."""
    ev = BreakoutEvaluation(symbol=series.symbol)
    t = thresholds

    if (
        len(series.lsr_takers) < stats_required
        or len(series.volumes) < candle_required
        or len(series.opens) < candle_required
    ):
        ev.reason = "insufficient_data"
        return ev

    if indicators is None:
        indicators = compute_indicators(series)

    buy = indicators.buy_volume
    n = len(buy)
    # Align every array on the newest bar
    closes = series.closes[-n:]
    opens = series.opens[-n:]
    ois = series.open_interests[-n:]
    lsr = series.lsr_takers[-n:]
    atr = indicators.atr[-n:]

    cur = n - 1
    target = cur - t.offset_to_start
    end = target + 1
    start = end - t.lookback_depth
    stability_start = end - t.stability_lookback

    if cur - (t.stability_lookback - 1) < 0 or target < 0 or start < 0 or stability_start < 0:
        ev.reason = "insufficient_lookback"
        return ev

    # --- Bullish gate ---
    last_open = float(opens[cur])
    ev.is_bullish = last_open > 0 and float(closes[cur]) / last_open > 1

    # --- Spike quantities ---
    ev.buy_volume = float(buy[cur])
    ev.lsr_taker = float(lsr[cur])
    ev.volup = _ratio(ev.buy_volume, float(buy[cur - 1]))
    oi_n = float(ois[cur])
    ev.oiup = _ratio(oi_n, float(ois[cur - 1]))

    vol_denominator = float(np.mean(buy[start:end]))
    ev.vol_spike = _ratio(ev.buy_volume, vol_denominator)
    oi_denominator = float(np.mean(ois[start:end]))
    ev.oi_spike = oi_n / oi_denominator if oi_denominator > 0 else 0.0

    # --- Calm quantities ---
    window_start = cur - t.lookback_depth + 1
    prior_avg = float(np.sum(buy[window_start:cur])) / (t.lookback_depth - 1)
    latest_avg = float(np.sum(buy[window_start : cur + 1])) / t.lookback_depth
    ev.buy_avg_ratio = latest_avg / prior_avg if prior_avg > 0 else 0.0

    close_window = closes[start:end]
    min_close = float(np.min(close_window))
    ev.price_range_ratio = (
        float(np.max(close_window)) / min_close if min_close > 0 else math.inf
    )

    ev.atr = float(atr[target])
    close_n = float(closes[target])
    if close_n > 0 and ev.atr > 0:
        ev.atrp = ev.atr / close_n * 100

    atr_window = atr[stability_start:end]
    min_atr = float(np.min(atr_window))
    if min_atr > 0:
        ev.atr_stability = (float(np.max(atr_window)) - min_atr) / min_atr

    # --- Final verdict ---
    ev.spike_valid = is_spike(ev, t)
    ev.calm_valid = is_calm(ev, t)
    ev.detected = ev.is_bullish and ev.spike_valid and ev.calm_valid

    if ev.detected:
        logger.info(
            "Pre-breakout detected for %s: volup=%.2f volSpike=%.2f oiSpike=%.3f atr=%.5f",
            series.symbol,
            ev.volup,
            ev.vol_spike,
            ev.oi_spike,
            ev.atr,
        )
    return ev
