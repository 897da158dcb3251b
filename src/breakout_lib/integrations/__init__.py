"""
breakout_lib.integrations - Upstream Gate.io API access.

Re-exports the public API from each sub-module so callers can do:

    from src.breakout_lib.integrations import BatchFetcher, GateSeriesLoader
"""

from src.breakout_lib.integrations.batch_fetcher import DEADLINE_ERROR, BatchFetcher
from src.breakout_lib.integrations.gate_loader import (
    GateEndpoints,
    GateSeriesLoader,
    parse_candles,
    parse_completed_stats,
    with_query,
)

__all__ = [
    # batch_fetcher
    "DEADLINE_ERROR",
    "BatchFetcher",
    # gate_loader
    "GateEndpoints",
    "GateSeriesLoader",
    "parse_candles",
    "parse_completed_stats",
    "with_query",
]
