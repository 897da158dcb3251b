"""
Result assembly - one output row per requested symbol, in request order.

Row layout (the sheet columns the caller writes into)::

    [timestampUTC, price, lsr_taker, volume, flag]

Symbols that dropped out anywhere upstream get ``["", 0, 0, 0, "❌"]``.
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from src.breakout_lib.core.models import SignalResult, SynchronizedRecord

SCAN_MESSAGE = "Data fetched and processed with timestamp synchronization."
FUNDING_MESSAGE = "Funding rate data fetched and processed."


def format_utc(epoch_seconds: Any) -> str:
    """Epoch seconds → ``"Mon, 19 Oct 2026 12:00:00 GMT"``; ``""`` if invalid."""
    if isinstance(epoch_seconds, bool) or not isinstance(epoch_seconds, (int, float)):
        return ""
    if epoch_seconds <= 0:
        return ""
    dt = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return dt.strftime("%a, %d %b %Y %H:%M:%S GMT")


def build_result(
    symbol: str,
    latest: Optional[SynchronizedRecord],
    detected: bool,
) -> SignalResult:
    """Populate display fields from the newest synchronized record, if any."""
    if latest is None:
        return SignalResult(symbol=symbol)
    return SignalResult(
        symbol=symbol,
        detected=detected,
        timestamp_utc=format_utc(latest.time),
        price=latest.price,
        ratio=latest.lsr_taker,
        volume=latest.volume,
    )


def assemble_rows(
    symbols: Sequence[str], results: Mapping[str, SignalResult]
) -> list[list[Any]]:
    """Rows in *symbols* order regardless of how results were produced."""
    return [results.get(sym, SignalResult(symbol=sym)).to_row() for sym in symbols]


def build_envelope(rows: list[list[Any]], message: str = SCAN_MESSAGE) -> dict[str, Any]:
    return {"status": "Success", "message": message, "data": rows}
