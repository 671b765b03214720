"""Tests for tickscore.strategy.signals — decision priority state machine."""

import pytest

from tickscore.strategy.config import resolve_strategy_config
from tickscore.strategy.models import BuyDecision, HoldDecision, Position, SellDecision
from tickscore.strategy.signals import decide


MARKET = "KRW-BTC"


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_position(entry=100.0, volume=1.0, pyramiding_count=0):
    return Position(
        market=MARKET, volume=volume, entry_price=entry,
        pyramiding_count=pyramiding_count,
    )


def _flat_history(latest, n=30, level=100.0):
    """Most-recent-first closes: *latest*, then *n − 1* bars at *level*."""
    return [latest] + [level] * (n - 1), [1.0] * n


def _breakout_history():
    """30 flat bars then 10 rising bars, volume spike on the latest (newest first)."""
    oldest_first = [100.0] * 30 + [101.0 + i for i in range(10)]
    volumes = [1.0] * 39 + [10.0]
    return oldest_first[::-1], volumes[::-1]


def _pullback_history():
    """26 flat bars at 104, then 7 × (−2, +1) ending at 97 (newest first).

    The last 14 changes give RSI = 100 − 100 / 1.5 ≈ 33.3.
    """
    oldest_first = [104.0] * 26
    for _ in range(7):
        oldest_first.append(oldest_first[-1] - 2)
        oldest_first.append(oldest_first[-1] + 1)
    return oldest_first[::-1], [1.0] * len(oldest_first)


def _shallow_pullback_history():
    """26 flat bars at 100.4, then 7 × (−0.4, +0.2) ending at 99.0 (newest first).

    A 1 % drop from an entry at 100 stays above the default 1.5 % stop-loss.
    RSI ≈ 33.3 as in the deeper pullback.
    """
    oldest_first = [100.4] * 26
    for _ in range(7):
        oldest_first.append(round(oldest_first[-1] - 0.4, 2))
        oldest_first.append(round(oldest_first[-1] + 0.2, 2))
    return oldest_first[::-1], [1.0] * len(oldest_first)


# Deeper pullback: stop-loss far away, indicator exits disabled, wider drop steps
_PYRAMID_CFG = {
    "stop_loss_pct": 10.0,
    "sell_score_threshold": 101,
    "pyramiding_drop_pct": 2.0,
    "pyramiding_drop_step_pct": 1.0,
}


# ── Tests ────────────────────────────────────────────────────────────────


class TestWarmupGating:
    def test_short_history_holds_with_zero_score(self):
        closes, volumes = _flat_history(100.0, n=19)
        d = decide(closes, volumes, None)
        assert isinstance(d, HoldDecision)
        assert d.score == 0
        assert d.reason == "insufficient data"

    def test_short_history_beats_stop_loss(self):
        closes, volumes = _flat_history(50.0, n=10)
        d = decide(closes, volumes, _make_position())
        assert d.action == "hold"
        assert d.score == 0

    def test_threshold_follows_config(self):
        closes, volumes = _flat_history(100.0, n=25)
        d = decide(closes, volumes, None, {"bollinger_period": 30})
        assert d.reason == "insufficient data"

    def test_mismatched_lengths_raise(self):
        with pytest.raises(ValueError, match="align"):
            decide([1.0] * 30, [1.0] * 29, None)


class TestProtectiveExits:
    def test_stop_loss_at_98_5(self):
        closes, volumes = _flat_history(98.5)
        d = decide(closes, volumes, _make_position(volume=2.5))
        assert isinstance(d, SellDecision)
        assert d.kind == "stop_loss"
        assert d.volume == 2.5
        assert d.score == 100
        assert "stop-loss" in d.reason

    def test_take_profit_at_103(self):
        closes, volumes = _flat_history(103.0)
        d = decide(closes, volumes, _make_position(volume=2.5))
        assert isinstance(d, SellDecision)
        assert d.kind == "take_profit"
        assert d.volume == 2.5
        assert d.score == 90

    def test_stop_loss_wins_when_both_cross(self):
        # stop_loss_pct = −5 puts the stop above the take-profit target
        closes, volumes = _flat_history(103.0)
        d = decide(closes, volumes, _make_position(), {"stop_loss_pct": -5.0})
        assert d.kind == "stop_loss"

    def test_no_exit_without_position(self):
        closes, volumes = _flat_history(90.0)
        d = decide(closes, volumes, None)
        assert d.action != "sell"

    def test_market_defaults_to_position(self):
        closes, volumes = _flat_history(98.0)
        d = decide(closes, volumes, _make_position())
        assert d.market == MARKET


class TestNewEntry:
    def test_breakout_opens_position(self):
        closes, volumes = _breakout_history()
        d = decide(closes, volumes, None, market=MARKET)
        assert isinstance(d, BuyDecision)
        assert d.kind == "new"
        assert d.price == closes[0]
        assert d.score >= 65
        assert d.reason.startswith("[new entry]")

    def test_quiet_market_holds_with_buy_score(self):
        closes, volumes = _flat_history(100.0)
        d = decide(closes, volumes, None, market=MARKET)
        assert isinstance(d, HoldDecision)
        assert d.reason.startswith("awaiting buy signal")

    def test_zero_volume_position_counts_as_flat(self):
        closes, volumes = _breakout_history()
        d = decide(closes, volumes, _make_position(volume=0.0))
        assert d.action == "buy"

    def test_held_position_never_new_entry(self):
        closes, volumes = _breakout_history()
        d = decide(closes, volumes, _make_position(entry=108.0), {"profit_target_pct": 50})
        assert d.action != "buy"


class TestPyramiding:
    def test_default_config_adds_above_stop_loss(self):
        closes, volumes = _shallow_pullback_history()
        d = decide(closes, volumes, _make_position())
        assert isinstance(d, BuyDecision)
        assert d.kind == "pyramiding"
        assert "pyramiding #1" in d.reason

    def test_default_config_respects_cap(self):
        closes, volumes = _shallow_pullback_history()
        d = decide(closes, volumes, _make_position(pyramiding_count=3))
        assert isinstance(d, HoldDecision)

    def test_default_drops_stay_inside_stop_loss(self):
        cfg = resolve_strategy_config(None)
        deepest = cfg.pyramiding_drop_pct + cfg.pyramiding_drop_step_pct * (
            cfg.max_pyramiding_count - 1
        )
        assert deepest < cfg.stop_loss_pct

    def test_drop_with_oversold_rsi_adds(self):
        closes, volumes = _pullback_history()
        d = decide(closes, volumes, _make_position(), _PYRAMID_CFG)
        assert isinstance(d, BuyDecision)
        assert d.kind == "pyramiding"
        assert d.score >= 65 * 0.6
        assert "pyramiding #1" in d.reason

    def test_cap_reached_holds(self):
        closes, volumes = _pullback_history()
        d = decide(closes, volumes, _make_position(pyramiding_count=3), _PYRAMID_CFG)
        assert isinstance(d, HoldDecision)
        assert d.reason.startswith("holding position")

    def test_required_drop_widens_per_increment(self):
        # 2nd increment needs 2 % + 1 % × 2 = 4 %; price is only 3 % down
        closes, volumes = _pullback_history()
        d = decide(closes, volumes, _make_position(pyramiding_count=2), _PYRAMID_CFG)
        assert d.action == "hold"

    def test_disabled(self):
        closes, volumes = _pullback_history()
        cfg = dict(_PYRAMID_CFG, pyramiding_enabled=False)
        assert decide(closes, volumes, _make_position(), cfg).action == "hold"

    def test_rsi_outside_band_holds(self):
        closes, volumes = _pullback_history()
        cfg = dict(_PYRAMID_CFG, pyramiding_rsi_condition={"max": 30})
        assert decide(closes, volumes, _make_position(), cfg).action == "hold"

    def test_indicator_sell_beats_pyramiding(self):
        closes, volumes = _pullback_history()
        cfg = {"stop_loss_pct": 10.0, "sell_score_threshold": 1}
        d = decide(closes, volumes, _make_position(), cfg)
        assert isinstance(d, SellDecision)
        assert d.kind == "indicator"
        assert d.volume is None


class TestHold:
    def test_holding_reports_profit_and_pressure(self):
        closes, volumes = _flat_history(100.5)
        d = decide(closes, volumes, _make_position())
        assert isinstance(d, HoldDecision)
        assert "profit 0.5%" in d.reason

    def test_config_mapping_matches_resolved_config(self):
        closes, volumes = _breakout_history()
        cfg = resolve_strategy_config({"buy_score_threshold": 70})
        assert decide(closes, volumes, None, cfg) == decide(
            closes, volumes, None, {"buy_score_threshold": 70},
        )
