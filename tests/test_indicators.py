"""
Tests for the indicator engine: lagged True Range, Wilder ATR, buy volume.
"""

import numpy as np
import pytest

from src.breakout_lib.analysis.indicators import (
    compute_indicators,
    estimate_buy_volume,
    true_range,
    wilder_atr,
)


class TestTrueRange:
    def test_first_bars_use_high_minus_low(self):
        highs = np.array([2.0, 3.0, 4.0, 5.0, 6.0])
        lows = np.array([1.0, 2.5, 3.0, 4.5, 5.8])
        closes = np.array([1.5, 2.8, 3.5, 4.8, 6.0])

        tr = true_range(highs, lows, closes, lag=4)

        np.testing.assert_allclose(tr[:4], [1.0, 0.5, 1.0, 0.5])

    def test_lagged_close_compared_four_bars_back(self):
        highs = np.array([10.0, 10.0, 10.0, 10.0, 12.0])
        lows = np.array([9.0, 9.0, 9.0, 9.0, 11.5])
        closes = np.array([5.0, 9.5, 9.5, 9.5, 12.0])

        tr = true_range(highs, lows, closes)

        # |H[4] - C[0]| = 7 beats H-L = 0.5 and |L[4] - C[0]| = 6.5
        assert tr[4] == pytest.approx(7.0)

    def test_lag_one_is_textbook_true_range(self):
        highs = np.array([10.0, 10.5])
        lows = np.array([9.5, 10.2])
        closes = np.array([9.6, 10.4])

        tr = true_range(highs, lows, closes, lag=1)

        assert tr[1] == pytest.approx(0.9)  # |10.5 - 9.6|

    def test_short_series(self):
        tr = true_range(np.array([2.0, 3.0]), np.array([1.0, 1.0]), np.array([1.5, 2.0]))
        np.testing.assert_allclose(tr, [1.0, 2.0])


class TestWilderAtr:
    def test_zero_before_seed(self):
        atr = wilder_atr(np.full(20, 2.0), period=14)

        assert np.all(atr[:13] == 0)
        np.testing.assert_allclose(atr[13:], 2.0)

    def test_seed_is_simple_mean_then_smoothed(self):
        tr = np.arange(1, 17, dtype=float)

        atr = wilder_atr(tr, period=14)

        assert atr[13] == pytest.approx(7.5)
        assert atr[14] == pytest.approx((7.5 * 13 + 15) / 14)
        assert atr[15] == pytest.approx((atr[14] * 13 + 16) / 14)

    def test_fewer_values_than_period(self):
        atr = wilder_atr(np.ones(13), period=14)
        assert len(atr) == 13
        assert not atr.any()

    def test_known_synthetic_series(self, breakout_series):
        ind = compute_indicators(breakout_series)

        # Flat bars with a 0.01 range: ATR settles on 0.01
        assert ind.atr[45] == pytest.approx(0.01)
        assert ind.true_range[10] == pytest.approx(0.01)


class TestBuyVolume:
    def test_ratio_two_takes_two_thirds(self):
        buy = estimate_buy_volume(np.array([30.0]), np.array([2.0]))
        assert buy[0] == pytest.approx(20.0)

    def test_neutral_ratio_splits_in_half(self):
        buy = estimate_buy_volume(np.array([100.0]), np.array([1.0]))
        assert buy[0] == pytest.approx(50.0)

    def test_non_positive_ratio_gives_zero(self):
        buy = estimate_buy_volume(np.array([30.0, 30.0]), np.array([0.0, -1.0]))
        np.testing.assert_array_equal(buy, [0.0, 0.0])

    def test_aligned_on_most_recent_entries(self):
        volumes = np.array([1.0, 2.0, 30.0, 100.0])
        ratios = np.array([2.0, 1.0])

        buy = estimate_buy_volume(volumes, ratios)

        np.testing.assert_allclose(buy, [20.0, 50.0])

    def test_empty(self):
        assert len(estimate_buy_volume(np.array([]), np.array([1.0]))) == 0

    def test_indicator_arrays_aligned(self, breakout_series):
        ind = compute_indicators(breakout_series)

        assert len(ind.true_range) == len(ind.atr) == len(ind.buy_volume) == 50
        assert ind.buy_volume[-1] == pytest.approx(24_000.0)
        assert ind.buy_volume[0] == pytest.approx(5_000.0)
