"""
Tests for the pre-breakout signal evaluator.

The ``breakout_series`` fixture is engineered to pass every gate; each test
below breaks exactly one input and checks that the verdict (and only the
relevant sub-condition) flips.
"""

import math
from dataclasses import replace

import pytest

from src.breakout_lib.analysis.signal import (
    BreakoutEvaluation,
    evaluate_breakout,
    is_calm,
    is_spike,
)
from src.breakout_lib.core.config import DEFAULT_THRESHOLDS, DetectionThresholds


class TestDetection:
    def test_engineered_series_detected(self, breakout_series):
        ev = evaluate_breakout(breakout_series)

        assert ev.detected
        assert ev.reason == ""
        assert ev.is_bullish and ev.spike_valid and ev.calm_valid

    def test_intermediate_quantities(self, breakout_series):
        ev = evaluate_breakout(breakout_series)

        assert ev.buy_volume == pytest.approx(24_000.0)
        assert ev.volup == pytest.approx(4.8)
        assert ev.vol_spike == pytest.approx(4.8)
        assert ev.oiup == pytest.approx(1.2)
        assert ev.oi_spike == pytest.approx(1.2)
        assert ev.lsr_taker == pytest.approx(2.0)
        assert ev.buy_avg_ratio == pytest.approx(1.19)
        assert ev.price_range_ratio == pytest.approx(1.0)
        assert ev.atr == pytest.approx(0.01)

    def test_diagnostics_reported(self, breakout_series):
        ev = evaluate_breakout(breakout_series)

        assert ev.atrp == pytest.approx(1.0)
        assert ev.atr_stability == pytest.approx(0.0, abs=1e-9)

    def test_bearish_last_bar_not_detected(self, make_frame, make_series):
        series = make_series("X", make_frame(last_close=0.98))

        ev = evaluate_breakout(series)

        assert not ev.detected
        assert not ev.is_bullish
        assert ev.spike_valid and ev.calm_valid

    def test_doji_last_bar_not_bullish(self, make_frame, make_series):
        ev = evaluate_breakout(make_series("X", make_frame(last_close=1.0)))
        assert not ev.is_bullish
        assert not ev.detected


class TestSpikeCondition:
    def test_neutral_taker_ratio_fails(self, make_frame, make_series):
        ev = evaluate_breakout(make_series("X", make_frame(last_lsr=1.0)))

        assert ev.lsr_taker == pytest.approx(1.0)
        assert not ev.spike_valid
        assert not ev.detected

    def test_small_volume_fails(self, make_frame, make_series):
        # buy volume 7200 < 7500
        ev = evaluate_breakout(make_series("X", make_frame(last_volume=10_800.0)))

        assert ev.buy_volume == pytest.approx(7_200.0)
        assert not ev.spike_valid

    def test_flat_open_interest_fails(self, make_frame, make_series):
        ev = evaluate_breakout(make_series("X", make_frame(last_oi=1_000_000.0)))

        assert ev.oiup == pytest.approx(1.0)
        assert not ev.spike_valid

    def test_zero_open_interest_history(self, make_frame, make_series):
        df = make_frame()
        df.loc[: len(df) - 2, "open_interest"] = 0.0

        ev = evaluate_breakout(make_series("X", df))

        # Zero mean -> oiSpike 0; zero previous -> oiup divides by 1
        assert ev.oi_spike == 0.0
        assert ev.oiup == pytest.approx(1_200_000.0)
        assert not ev.spike_valid


class TestCalmCondition:
    def test_wide_price_range_fails(self, make_frame, make_series):
        df = make_frame()
        df.loc[30, "close"] = 1.1

        ev = evaluate_breakout(make_series("X", df))

        assert ev.price_range_ratio == pytest.approx(1.1)
        assert not ev.calm_valid
        assert not ev.detected

    def test_zero_close_in_window_fails(self, make_frame, make_series):
        df = make_frame()
        df.loc[30, "close"] = 0.0

        ev = evaluate_breakout(make_series("X", df))

        assert math.isinf(ev.price_range_ratio)
        assert not ev.calm_valid
        assert ev.to_dict()["price_range_ratio"] is None

    def test_volatile_market_fails_atr(self, make_frame, make_series):
        df = make_frame()
        df["high"] = 1.2
        df["low"] = 0.8

        ev = evaluate_breakout(make_series("X", df))

        assert ev.atr > 0.05
        assert not ev.calm_valid

    def test_no_prior_buy_volume(self, make_frame, make_series):
        df = make_frame()
        df.loc[: len(df) - 2, "lsr_taker"] = 0.0

        ev = evaluate_breakout(make_series("X", df))

        assert ev.buy_avg_ratio == 0.0
        assert not ev.calm_valid


class TestInsufficientData:
    def test_short_ratio_history(self, breakout_series):
        ev = evaluate_breakout(breakout_series, stats_required=60)

        assert not ev.detected
        assert ev.reason == "insufficient_data"

    def test_lookback_exceeds_series(self, breakout_series):
        deep = replace(DEFAULT_THRESHOLDS, lookback_depth=60)

        ev = evaluate_breakout(breakout_series, thresholds=deep)

        assert not ev.detected
        assert ev.reason == "insufficient_lookback"

    def test_min_history(self):
        assert DEFAULT_THRESHOLDS.min_history == 24
        assert DetectionThresholds(lookback_depth=10, stability_lookback=30).min_history == 34


class TestPredicates:
    def test_spike_thresholds_are_strict(self):
        t = DEFAULT_THRESHOLDS
        ev = BreakoutEvaluation(
            volup=t.min_volup,
            oiup=2.0,
            buy_volume=1e6,
            vol_spike=10.0,
            lsr_taker=3.0,
            oi_spike=2.0,
        )
        assert not is_spike(ev, t)
        ev.volup = t.min_volup + 1e-9
        assert is_spike(ev, t)

    def test_calm_atr_bound_inclusive(self):
        t = DEFAULT_THRESHOLDS
        ev = BreakoutEvaluation(atr=t.max_atr, buy_avg_ratio=1.5, price_range_ratio=1.0)
        assert is_calm(ev, t)
        ev.price_range_ratio = t.max_price_range_ratio + 0.01
        assert not is_calm(ev, t)

    def test_to_dict_rounds(self, breakout_series):
        data = evaluate_breakout(breakout_series).to_dict()

        assert data["symbol"] == "BTC_USDT"
        assert data["detected"] is True
        assert data["volup"] == 4.8
