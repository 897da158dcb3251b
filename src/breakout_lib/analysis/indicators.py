"""
Indicator engine for the pre-breakout scanner.

Computes, over a synchronized series:

  - **True Range** with a lagged prior close.  For bar ``k >= TR_LAG``::

        TR[k] = max(H[k] - L[k], |H[k] - C[k - TR_LAG]|, |L[k] - C[k - TR_LAG]|)

    and plain ``H[k] - L[k]`` for the first ``TR_LAG`` bars.  ``TR_LAG`` is
    4, not the textbook 1: the calm filter was tuned against this variant
    and the detection thresholds assume it.
  - **ATR** via Wilder's smoothing (RMA).  Seeded at ``ATR_PERIOD - 1`` with
    the simple mean of the first ``ATR_PERIOD`` true ranges, then::

        ATR[k] = (ATR[k-1] * (ATR_PERIOD - 1) + TR[k]) / ATR_PERIOD

    Entries before the seed index are 0.
  - **Estimated buy volume** - total volume apportioned with the taker
    long/short ratio: ``volume / (1 + 1/ratio)``, or 0 when ``ratio <= 0``.
"""

import numpy as np

from src.breakout_lib.core.config import ATR_PERIOD, TR_LAG
from src.breakout_lib.core.models import IndicatorSeries, PerSymbolSeries


def true_range(
    highs: np.ndarray,
    lows: np.ndarray,
    closes: np.ndarray,
    lag: int = TR_LAG,
) -> np.ndarray:
    """True Range against the close *lag* bars back."""
    highs = np.asarray(highs, dtype=float)
    lows = np.asarray(lows, dtype=float)
    closes = np.asarray(closes, dtype=float)

    tr = highs - lows
    if len(tr) > lag:
        prev_close = closes[:-lag]
        tr[lag:] = np.maximum.reduce(
            [
                highs[lag:] - lows[lag:],
                np.abs(highs[lag:] - prev_close),
                np.abs(lows[lag:] - prev_close),
            ]
        )
    return tr


def wilder_atr(tr: np.ndarray, period: int = ATR_PERIOD) -> np.ndarray:
    """Wilder-smoothed ATR, zero during warm-up.

    Returns an all-zero array when there are fewer than *period* values.
    """
    tr = np.asarray(tr, dtype=float)
    n = len(tr)
    atr = np.zeros(n)
    if n < period:
        return atr

    atr[period - 1] = tr[:period].sum() / period
    for k in range(period, n):
        atr[k] = (atr[k - 1] * (period - 1) + tr[k]) / period
    return atr


def estimate_buy_volume(volumes: np.ndarray, lsr_takers: np.ndarray) -> np.ndarray:
    """Split volume into its taker-buy share using the long/short ratio.

    The two arrays are aligned on their most recent entries; the result has
    the length of the shorter one.
    """
    volumes = np.asarray(volumes, dtype=float)
    ratios = np.asarray(lsr_takers, dtype=float)
    n = min(len(volumes), len(ratios))
    if n == 0:
        return np.zeros(0)

    vol = volumes[len(volumes) - n :]
    lsr = ratios[len(ratios) - n :]

    buy = np.zeros(n)
    positive = lsr > 0
    buy[positive] = vol[positive] / (1.0 + 1.0 / lsr[positive])
    return buy


def compute_indicators(
    series: PerSymbolSeries,
    atr_period: int = ATR_PERIOD,
    lag: int = TR_LAG,
) -> IndicatorSeries:
    """Run the full indicator pass over a trimmed per-symbol series."""
    tr = true_range(series.highs, series.lows, series.closes, lag=lag)
    return IndicatorSeries(
        true_range=tr,
        atr=wilder_atr(tr, period=atr_period),
        buy_volume=estimate_buy_volume(series.volumes, series.lsr_takers),
    )
