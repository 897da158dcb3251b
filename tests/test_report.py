"""
Tests for result rows, timestamp formatting and the response envelope.
"""

from src.breakout_lib.analysis.report import (
    FUNDING_MESSAGE,
    SCAN_MESSAGE,
    assemble_rows,
    build_envelope,
    build_result,
    format_utc,
)
from src.breakout_lib.core.models import (
    FLAG_DETECTED,
    FLAG_NOT_DETECTED,
    FundingResult,
    SignalResult,
    SynchronizedRecord,
)

DEFAULT_ROW = ["", 0, 0, 0, FLAG_NOT_DETECTED]


def _latest(t=1_760_875_200):
    return SynchronizedRecord(
        time=t,
        open=1.0,
        high=1.1,
        low=0.9,
        close=1.05,
        volume=12_345.0,
        lsr_taker=1.4,
        open_interest=9e5,
    )


class TestFormatUtc:
    def test_rfc1123_gmt(self):
        assert format_utc(1_760_875_200) == "Sun, 19 Oct 2025 12:00:00 GMT"

    def test_float_seconds(self):
        assert format_utc(1_760_875_200.0) == "Sun, 19 Oct 2025 12:00:00 GMT"

    def test_invalid_values_give_empty_string(self):
        assert format_utc(0) == ""
        assert format_utc(-5) == ""
        assert format_utc(None) == ""
        assert format_utc("1760875200") == ""
        assert format_utc(True) == ""


class TestBuildResult:
    def test_fields_from_latest_record(self):
        result = build_result("BTC_USDT", _latest(), detected=True)

        assert result.to_row() == [
            "Sun, 19 Oct 2025 12:00:00 GMT",
            1.05,
            1.4,
            12_345.0,
            FLAG_DETECTED,
        ]

    def test_not_detected_flag(self):
        assert build_result("A", _latest(), detected=False).flag == FLAG_NOT_DETECTED

    def test_missing_latest_gives_defaults(self):
        assert build_result("A", None, detected=True).to_row() == DEFAULT_ROW


class TestAssembleRows:
    def test_input_order_with_defaults(self):
        results = {
            "B": SignalResult(symbol="B", detected=True, timestamp_utc="x", price=2.0),
            "A": SignalResult(symbol="A", price=1.0),
        }

        rows = assemble_rows(["A", "MISSING", "B"], results)

        assert [r[1] for r in rows] == [1.0, 0, 2.0]
        assert rows[1] == DEFAULT_ROW
        assert rows[2][4] == FLAG_DETECTED

    def test_duplicate_symbols_repeat_rows(self):
        results = {"A": SignalResult(symbol="A", price=3.0)}
        rows = assemble_rows(["A", "A"], results)
        assert rows[0] == rows[1]

    def test_empty(self):
        assert assemble_rows([], {}) == []


class TestEnvelope:
    def test_scan_envelope(self):
        env = build_envelope([DEFAULT_ROW])
        assert env == {"status": "Success", "message": SCAN_MESSAGE, "data": [DEFAULT_ROW]}

    def test_funding_envelope(self):
        env = build_envelope([FundingResult(symbol="A", value=0.0001).to_row()], FUNDING_MESSAGE)
        assert env["message"] == FUNDING_MESSAGE
        assert env["data"] == [[0.0001]]
