"""
breakout_lib.core - Core infrastructure modules.

Re-exports the public API from each sub-module so callers can do:

    from src.breakout_lib.core import ScanSettings, get_logger, FetchRequest
"""

from src.breakout_lib.core.config import (
    ATR_PERIOD,
    DEFAULT_THRESHOLDS,
    TR_LAG,
    DetectionThresholds,
    ScanSettings,
)
from src.breakout_lib.core.logging_config import get_logger, scan_context, setup_logging
from src.breakout_lib.core.models import (
    FLAG_DETECTED,
    FLAG_NOT_DETECTED,
    CandleRecord,
    FetchRequest,
    FetchResult,
    FundingResult,
    IndicatorSeries,
    PerSymbolSeries,
    SignalResult,
    StatisticsRecord,
    SymbolSeries,
    SymbolStats,
    SynchronizedRecord,
)

__all__ = [
    # config
    "ATR_PERIOD",
    "DEFAULT_THRESHOLDS",
    "TR_LAG",
    "DetectionThresholds",
    "ScanSettings",
    # logging
    "get_logger",
    "scan_context",
    "setup_logging",
    # models
    "FLAG_DETECTED",
    "FLAG_NOT_DETECTED",
    "CandleRecord",
    "FetchRequest",
    "FetchResult",
    "FundingResult",
    "IndicatorSeries",
    "PerSymbolSeries",
    "SignalResult",
    "StatisticsRecord",
    "SymbolSeries",
    "SymbolStats",
    "SynchronizedRecord",
]
