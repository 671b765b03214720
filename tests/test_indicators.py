"""Tests for tickscore.strategy.indicators — Bollinger, EMA, RSI, MACD."""

import math

import pytest

from tickscore.strategy.indicators import (
    average_volume,
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
)


class TestBollinger:
    def test_insufficient_data_returns_zero_bands(self):
        bands = calculate_bollinger([1.0, 2.0, 3.0], period=20)
        assert (bands.upper, bands.middle, bands.lower, bands.width) == (0, 0, 0, 0)
        assert not bands.available

    def test_population_std(self):
        bands = calculate_bollinger([4.0, 3.0, 2.0, 1.0], period=4, std_dev=2.0)
        sigma = math.sqrt(1.25)
        assert bands.middle == pytest.approx(2.5)
        assert bands.upper == pytest.approx(2.5 + 2 * sigma)
        assert bands.lower == pytest.approx(2.5 - 2 * sigma)
        assert bands.width == pytest.approx(4 * sigma / 2.5)

    def test_uses_most_recent_period_only(self):
        prices = [10.0] * 20 + [1000.0] * 5
        bands = calculate_bollinger(prices, period=20)
        assert bands.middle == pytest.approx(10.0)
        assert bands.width == 0.0

    def test_zero_middle_guards_width(self):
        bands = calculate_bollinger([1.0, -1.0], period=2)
        assert bands.middle == 0.0
        assert bands.width == 0.0


class TestEma:
    def test_seeded_with_sma(self):
        assert calculate_ema([1.0, 2.0, 3.0], 3) == pytest.approx(2.0)

    def test_recurrence(self):
        # k = 0.5, seed 2.0 → (4 − 2) × 0.5 + 2
        assert calculate_ema([1.0, 2.0, 3.0, 4.0], 3) == pytest.approx(3.0)

    def test_short_input_returns_last_price(self):
        assert calculate_ema([5.0, 7.0], 10) == 7.0

    def test_empty_returns_zero(self):
        assert calculate_ema([], 5) == 0.0


class TestRsi:
    def test_monotonic_increase_is_100(self):
        prices = [float(p) for p in range(115, 100, -1)]  # 15 points, newest first
        assert len(prices) == 15
        assert calculate_rsi(prices, 14) == 100.0

    def test_insufficient_data_is_neutral(self):
        assert calculate_rsi([1.0] * 14, 14) == 50.0

    def test_monotonic_decrease_is_0(self):
        prices = [float(p) for p in range(101, 116)]  # newest first, falling
        assert calculate_rsi(prices, 14) == pytest.approx(0.0)

    def test_mixed_changes(self):
        # Oldest-first: 7 drops of 2 interleaved with 7 rises of 1 → RS = 0.5
        oldest_first = [104.0]
        for _ in range(7):
            oldest_first.append(oldest_first[-1] - 2)
            oldest_first.append(oldest_first[-1] + 1)
        assert calculate_rsi(oldest_first[::-1], 14) == pytest.approx(100 - 100 / 1.5)


class TestMacd:
    def test_unavailable_when_short(self):
        assert calculate_macd([1.0] * 33) is None

    def test_available_at_long_plus_signal_minus_one(self):
        assert calculate_macd([1.0] * 34) is not None

    def test_flat_prices_are_zero(self):
        result = calculate_macd([100.0] * 60)
        assert result.macd_line == pytest.approx(0.0)
        assert result.signal_line == pytest.approx(0.0)
        assert result.histogram == pytest.approx(0.0)

    def test_uptrend_is_positive(self):
        prices = [100.0 + i for i in range(60)][::-1]
        result = calculate_macd(prices)
        assert result.macd_line > 0
        assert result.histogram == pytest.approx(result.macd_line - result.signal_line)


class TestAverageVolume:
    def test_excludes_latest_bar(self):
        assert average_volume([100.0, 1.0, 3.0], 20) == pytest.approx(2.0)

    def test_limited_to_period(self):
        assert average_volume([0.0, 1.0, 1.0, 50.0], 2) == pytest.approx(1.0)

    def test_no_prior_volume(self):
        assert average_volume([5.0], 20) == 0.0
