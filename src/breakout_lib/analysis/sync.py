"""
Timestamp synchronization of candles and contract statistics.

Inner-joins the candle series with the completed statistics series on
exact ``time`` equality.  Candles without a matching statistics record are
dropped silently - partial coverage is normal for Gate.io, whose
statistics endpoint skips intervals now and then.  Candle order (ascending
time) is preserved.

``trim_series`` then keeps only the most recent windows used for scoring
and returns ``None`` when the join did not produce enough records.
"""

import logging
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from src.breakout_lib.core.models import (
    CandleRecord,
    PerSymbolSeries,
    StatisticsRecord,
    SynchronizedRecord,
)

logger = logging.getLogger("analysis.sync")

_CANDLE_COLUMNS = ["time", "open", "high", "low", "close", "volume"]
_STATS_COLUMNS = ["time", "lsr_taker", "open_interest"]


def _candles_frame(candles: Sequence[CandleRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        [(c.time, c.open, c.high, c.low, c.close, c.volume) for c in candles],
        columns=pd.Index(_CANDLE_COLUMNS),
    )


def _stats_frame(stats: Sequence[StatisticsRecord]) -> pd.DataFrame:
    df = pd.DataFrame(
        [(s.time, s.lsr_taker, s.open_interest_usd) for s in stats],
        columns=pd.Index(_STATS_COLUMNS),
    )
    # First record wins when the exchange repeats a timestamp
    return df.drop_duplicates(subset="time", keep="first")


def synchronize_frame(
    candles: Sequence[CandleRecord], stats: Sequence[StatisticsRecord]
) -> pd.DataFrame:
    """Return the joined DataFrame (one row per matching timestamp)."""
    if not candles or not stats:
        return pd.DataFrame(columns=pd.Index(_CANDLE_COLUMNS + _STATS_COLUMNS[1:]))

    merged = pd.merge(
        _candles_frame(candles),
        _stats_frame(stats),
        on="time",
        how="inner",
        sort=False,
    )
    return merged.reset_index(drop=True)


def synchronize(
    candles: Sequence[CandleRecord], stats: Sequence[StatisticsRecord]
) -> list[SynchronizedRecord]:
    """Inner join of *candles* and *stats* by timestamp, in candle order."""
    merged = synchronize_frame(candles, stats)
    return [
        SynchronizedRecord(
            time=int(row.time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
            lsr_taker=float(row.lsr_taker),
            open_interest=float(row.open_interest),
        )
        for row in merged.itertuples(index=False)
    ]


def trim_series(
    symbol: str,
    records: Sequence[SynchronizedRecord],
    candle_required: int,
    stats_required: int,
) -> Optional[PerSymbolSeries]:
    """Keep the most recent scoring windows, or ``None`` if coverage is short.

    Candle-derived arrays keep the last *candle_required* records and the
    taker-ratio array keeps up to the last *stats_required*; both end on the
    newest synchronized record.  A ratio history shorter than
    *stats_required* is kept as is: the row still shows the latest values
    and the evaluator reports the symbol as not detected.
    """
    if len(records) < candle_required:
        logger.debug(
            "Join coverage too low for %s: %d synchronized (need %d)",
            symbol,
            len(records),
            candle_required,
        )
        return None

    window = records[-candle_required:]
    ratio_window = records[-stats_required:]

    return PerSymbolSeries(
        symbol=symbol,
        times=np.array([r.time for r in window], dtype=np.int64),
        opens=np.array([r.open for r in window], dtype=float),
        highs=np.array([r.high for r in window], dtype=float),
        lows=np.array([r.low for r in window], dtype=float),
        closes=np.array([r.close for r in window], dtype=float),
        volumes=np.array([r.volume for r in window], dtype=float),
        open_interests=np.array([r.open_interest for r in window], dtype=float),
        lsr_takers=np.array([r.lsr_taker for r in ratio_window], dtype=float),
        latest=records[-1],
    )
