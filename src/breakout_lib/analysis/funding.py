"""
Funding-rate change column.

Gate.io's funding-rate history endpoint returns ``[{t, r}, ...]`` newest
first.  For each symbol the column value is the latest funding rate,
unless the rate jumped by 150% or more over the previous interval, in which
case the column is pinned to ``1`` so the jump stands out in the sheet.
"""

import logging
import math
from typing import Any, Optional, Sequence

logger = logging.getLogger("analysis.funding")

# Relative change at or above which the column is replaced by the marker
FUNDING_CHANGE_LIMIT = 1.5
FUNDING_JUMP_MARKER = 1.0


def _parse_rate(record: Any) -> float:
    try:
        return float(record["r"])
    except (KeyError, TypeError, ValueError):
        return math.nan


def funding_change_ratio(latest: float, previous: float) -> float:
    """Relative change ``(latest - previous) / previous``; 0 when undefined."""
    if not (math.isfinite(latest) and math.isfinite(previous)) or previous == 0:
        return 0.0
    return (latest - previous) / previous


def evaluate_funding_history(history: Optional[Sequence[Any]]) -> float:
    """Return the funding column value for one symbol's history payload."""
    if not history or len(history) < 2:
        return 0.0

    latest = _parse_rate(history[0])
    previous = _parse_rate(history[1])
    change = funding_change_ratio(latest, previous)

    if change >= FUNDING_CHANGE_LIMIT:
        logger.info("Funding jump: latest=%s previous=%s change=%.2f", latest, previous, change)
        return FUNDING_JUMP_MARKER
    if not math.isfinite(latest):
        return 0.0
    return latest
