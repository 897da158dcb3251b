"""
Scanner configuration
=====================
Process-wide fetch settings and the fixed detection thresholds.

Fetch settings come from environment variables (read once at import time,
snapshotted into ``ScanSettings`` per scan):

  - ``CONCURRENCY_LIMIT``          - max in-flight upstream requests (default: 10)
  - ``BATCH_DELAY_MS``             - pause between full batches (default: 350)
  - ``FUNDING_BATCH_DELAY_MS``     - pause between funding batches (default: 500)
  - ``STATS_REQUIRED_COMPLETED``   - completed statistics records needed (default: 50)
  - ``STATS_SAFETY_MARGIN``        - extra statistics records requested (default: 145)
  - ``CANDLE_REQUIRED_COMPLETED``  - synchronized candles needed (default: 50)
  - ``UPSTREAM_TIMEOUT_SECONDS``   - per-request timeout (default: 10)
  - ``SCAN_TIMEOUT_SECONDS``       - deadline for a whole scan (default: 55)
  - ``FUNDING_HISTORY_LIMIT``      - funding records requested (default: 3)

The detection thresholds are tuning constants, not environment-driven.
Only the active set is encoded in ``DetectionThresholds``; the looser
alternates that were tried earlier are not part of the contract.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Configuration from environment
# ---------------------------------------------------------------------------

CONCURRENCY_LIMIT = int(os.getenv("CONCURRENCY_LIMIT", "10"))
BATCH_DELAY_MS = int(os.getenv("BATCH_DELAY_MS", "350"))
FUNDING_BATCH_DELAY_MS = int(os.getenv("FUNDING_BATCH_DELAY_MS", "500"))

STATS_REQUIRED_COMPLETED = int(os.getenv("STATS_REQUIRED_COMPLETED", "50"))
STATS_SAFETY_MARGIN = int(os.getenv("STATS_SAFETY_MARGIN", "145"))
CANDLE_REQUIRED_COMPLETED = int(os.getenv("CANDLE_REQUIRED_COMPLETED", "50"))

UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))
SCAN_TIMEOUT_SECONDS = float(os.getenv("SCAN_TIMEOUT_SECONDS", "55"))

FUNDING_HISTORY_LIMIT = int(os.getenv("FUNDING_HISTORY_LIMIT", "3"))

# Gate.io candle interval assumed when the caller does not send one
DEFAULT_INTERVAL_LABEL = "5m"
DEFAULT_INTERVAL_SECONDS = 300

# Indicator engine parameters
ATR_PERIOD = 14
TR_LAG = 4  # True Range compares against the close 4 bars back, not 1


@dataclass(frozen=True)
class ScanSettings:
    """Snapshot of the fetch/rate-limit settings used for one scan."""

    concurrency_limit: int = CONCURRENCY_LIMIT
    delay_seconds: float = BATCH_DELAY_MS / 1000.0
    funding_delay_seconds: float = FUNDING_BATCH_DELAY_MS / 1000.0
    stats_required_completed: int = STATS_REQUIRED_COMPLETED
    stats_safety_margin: int = STATS_SAFETY_MARGIN
    candle_required_completed: int = CANDLE_REQUIRED_COMPLETED
    request_timeout: float = UPSTREAM_TIMEOUT_SECONDS
    scan_timeout: float | None = SCAN_TIMEOUT_SECONDS
    funding_history_limit: int = FUNDING_HISTORY_LIMIT

    def __post_init__(self) -> None:
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        if self.stats_required_completed < 1 or self.candle_required_completed < 1:
            raise ValueError("required completed counts must be >= 1")
        if self.delay_seconds < 0 or self.funding_delay_seconds < 0:
            raise ValueError("batch delays must be >= 0")

    @property
    def stats_limit(self) -> int:
        """Number of statistics records requested per symbol."""
        return self.stats_required_completed + self.stats_safety_margin

    @classmethod
    def from_env(cls) -> "ScanSettings":
        """Re-read the environment (module constants are import-time only)."""
        timeout = float(os.getenv("SCAN_TIMEOUT_SECONDS", str(SCAN_TIMEOUT_SECONDS)))
        return cls(
            concurrency_limit=int(os.getenv("CONCURRENCY_LIMIT", str(CONCURRENCY_LIMIT))),
            delay_seconds=int(os.getenv("BATCH_DELAY_MS", str(BATCH_DELAY_MS))) / 1000.0,
            funding_delay_seconds=int(
                os.getenv("FUNDING_BATCH_DELAY_MS", str(FUNDING_BATCH_DELAY_MS))
            )
            / 1000.0,
            stats_required_completed=int(
                os.getenv("STATS_REQUIRED_COMPLETED", str(STATS_REQUIRED_COMPLETED))
            ),
            stats_safety_margin=int(
                os.getenv("STATS_SAFETY_MARGIN", str(STATS_SAFETY_MARGIN))
            ),
            candle_required_completed=int(
                os.getenv("CANDLE_REQUIRED_COMPLETED", str(CANDLE_REQUIRED_COMPLETED))
            ),
            request_timeout=float(
                os.getenv("UPSTREAM_TIMEOUT_SECONDS", str(UPSTREAM_TIMEOUT_SECONDS))
            ),
            scan_timeout=timeout if timeout > 0 else None,
            funding_history_limit=int(
                os.getenv("FUNDING_HISTORY_LIMIT", str(FUNDING_HISTORY_LIMIT))
            ),
        )


@dataclass(frozen=True)
class DetectionThresholds:
    """Fixed parameters of the pre-breakout heuristic.

    Window geometry (``offset_to_start``, ``lookback_depth``,
    ``stability_lookback``) and every spike/calm threshold live here so
    they can be tuned or tested independently of the evaluator.
    """

    # Window geometry
    offset_to_start: int = 4
    lookback_depth: int = 20
    stability_lookback: int = 20

    # Spike condition
    min_volup: float = 1.5
    min_oiup: float = 1.05
    min_buy_volume: float = 7500.0
    min_vol_spike: float = 2.5
    min_lsr_taker: float = 1.25
    min_oi_spike: float = 1.05

    # Calm condition
    max_atr: float = 0.05
    min_buy_avg_ratio: float = 1.15
    max_price_range_ratio: float = 1.03

    @property
    def min_history(self) -> int:
        """Bars needed before every window fits inside the series."""
        return self.offset_to_start + max(self.lookback_depth, self.stability_lookback)


DEFAULT_THRESHOLDS = DetectionThresholds()
