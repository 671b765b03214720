"""Tests for tickscore.strategy.scoring — buy and sell-pressure scores."""

import pytest

from tickscore.data.synthetic import generate_candles
from tickscore.strategy.config import DEFAULT_STRATEGY_CONFIG, resolve_strategy_config
from tickscore.strategy.models import BollingerBands, IndicatorSnapshot, MacdResult
from tickscore.strategy.scoring import build_snapshot, buy_score, sell_pressure_score


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_snapshot(**overrides):
    fields = dict(
        price=100.0,
        bands=BollingerBands(upper=105.0, middle=100.0, lower=95.0, width=0.1),
        ema_short=100.0,
        ema_mid=100.0,
        ema_long=100.0,
        rsi=50.0,
        current_volume=1.0,
        avg_volume=1.0,
        macd=None,
    )
    fields.update(overrides)
    return IndicatorSnapshot(**fields)


def _windows(seed, count=300, size=60):
    series = generate_candles(count=count, seed=seed)
    for end in range(size, count, 17):
        window = series.window(end, size)
        yield [c.close for c in window], [c.volume for c in window]


# ── Tests ────────────────────────────────────────────────────────────────


class TestScoreBounds:
    @pytest.mark.parametrize("seed", [1, 2, 3, 4])
    def test_scores_within_0_100(self, seed):
        for closes, volumes in _windows(seed):
            snap = build_snapshot(closes, volumes, DEFAULT_STRATEGY_CONFIG)
            assert 0 <= buy_score(snap, DEFAULT_STRATEGY_CONFIG).score <= 100
            assert 0 <= sell_pressure_score(snap, DEFAULT_STRATEGY_CONFIG, 10.0).score <= 100

    def test_heavy_weights_clamp_to_100(self):
        cfg = resolve_strategy_config(
            {"weights": {k: 1000 for k in ("buy_trend", "buy_breakout", "buy_volume")}}
        )
        snap = _make_snapshot(
            price=110.0, ema_short=108.0, ema_mid=105.0, ema_long=100.0,
            current_volume=10.0,
        )
        assert buy_score(snap, cfg).score == 100

    def test_negative_weights_clamp_to_0(self):
        cfg = resolve_strategy_config({"weights": {"sell_rsi": -1000}})
        snap = _make_snapshot(rsi=90.0)
        assert sell_pressure_score(snap, cfg).score == 0


class TestBuyScore:
    def test_neutral_snapshot_scores_rsi_only(self):
        out = buy_score(_make_snapshot(), DEFAULT_STRATEGY_CONFIG)
        # RSI 50 < overbought − 10 → sub-score 50 × weight 15
        assert out.score == round(50 * 15 / 100)
        assert any("RSI neutral" in r for r in out.reasons)

    def test_full_confirmation_has_synergy(self):
        snap = _make_snapshot(
            price=110.0, ema_short=108.0, ema_mid=105.0, ema_long=100.0,
            current_volume=10.0,
            macd=MacdResult(macd_line=2.0, signal_line=1.0, histogram=1.0),
        )
        out = buy_score(snap, DEFAULT_STRATEGY_CONFIG)
        assert out.components["synergy"] == 100.0
        assert out.score >= DEFAULT_STRATEGY_CONFIG.buy_score_threshold

    def test_missing_macd_skips_component(self):
        out = buy_score(_make_snapshot(), DEFAULT_STRATEGY_CONFIG)
        assert "macd" not in out.components

    def test_reason_order_follows_evaluation(self):
        snap = _make_snapshot(
            price=110.0, ema_short=108.0, ema_mid=105.0, ema_long=100.0,
            current_volume=10.0, rsi=20.0,
        )
        reasons = buy_score(snap, DEFAULT_STRATEGY_CONFIG).reasons
        assert reasons[0].startswith("EMA bullish")
        assert reasons[1].startswith("Bollinger upper breakout")
        assert reasons[2].startswith("Volume surge")
        assert reasons[3].startswith("RSI oversold")
        assert len(reasons) == len(set(reasons))


class TestSellPressureScore:
    def test_volume_ignored_above_middle(self):
        snap = _make_snapshot(price=101.0, current_volume=10.0)
        out = sell_pressure_score(snap, DEFAULT_STRATEGY_CONFIG)
        assert out.components["volume"] == 0.0

    def test_volume_counts_below_middle(self):
        snap = _make_snapshot(price=99.0, current_volume=10.0)
        out = sell_pressure_score(snap, DEFAULT_STRATEGY_CONFIG)
        assert out.components["volume"] == 100.0
        assert out.components["breakout"] == 40.0

    def test_overbought_dead_cross_synergy(self):
        snap = _make_snapshot(rsi=80.0, ema_short=99.0, ema_mid=100.0, ema_long=98.0)
        out = sell_pressure_score(snap, DEFAULT_STRATEGY_CONFIG)
        assert out.components["synergy"] == 100.0

    def test_profit_bonus_needs_strong_raw_score(self):
        weak = _make_snapshot(rsi=80.0)
        base = sell_pressure_score(weak, DEFAULT_STRATEGY_CONFIG)
        bonus = sell_pressure_score(weak, DEFAULT_STRATEGY_CONFIG, profit_rate=10.0)
        assert bonus.score == base.score

        strong = _make_snapshot(
            price=94.0, rsi=80.0, ema_short=95.0, ema_mid=97.0, ema_long=99.0,
            macd=MacdResult(macd_line=-2.0, signal_line=-1.0, histogram=-1.0),
        )
        base = sell_pressure_score(strong, DEFAULT_STRATEGY_CONFIG)
        bonus = sell_pressure_score(strong, DEFAULT_STRATEGY_CONFIG, profit_rate=10.0)
        assert bonus.score == min(100, base.score + 5)
