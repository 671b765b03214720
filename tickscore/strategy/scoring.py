"""Buy and sell-pressure scoring — pure functions, no I/O.

Each score is a weighted sum of independent 0–100 sub-scores:

    trend → breakout → volume → rsi → macd → synergy

A sub-score contributes ``sub × weight / 100``.  Synergy is a discrete
bonus keyed to specific combinations of high-confidence sub-scores, not
a sum.  The total is rounded and clamped to [0, 100].  Reasons are
appended in the evaluation order above, once per distinct text.
"""

from typing import Optional, Sequence

from tickscore.strategy.config import StrategyConfig
from tickscore.strategy.indicators import (
    average_volume,
    calculate_bollinger,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
)
from tickscore.strategy.models import IndicatorSnapshot, ScoreOutput


def build_snapshot(
    closes: Sequence[float],
    volumes: Sequence[float],
    config: StrategyConfig,
) -> IndicatorSnapshot:
    """Compute every indicator for the latest bar of a most-recent-first window."""
    oldest_first = list(reversed(closes))
    return IndicatorSnapshot(
        price=closes[0],
        bands=calculate_bollinger(
            closes, config.bollinger_period, config.bollinger_std_dev,
        ),
        ema_short=calculate_ema(oldest_first, config.ema_short_period),
        ema_mid=calculate_ema(oldest_first, config.ema_mid_period),
        ema_long=calculate_ema(oldest_first, config.ema_long_period),
        rsi=calculate_rsi(closes, config.rsi_period),
        current_volume=volumes[0] if volumes else 0.0,
        avg_volume=average_volume(volumes, config.bollinger_period),
        macd=calculate_macd(
            closes,
            config.macd_short_period,
            config.macd_long_period,
            config.macd_signal_period,
        ),
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _add_reason(reasons: list[str], text: str) -> None:
    if text not in reasons:
        reasons.append(text)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _finalise(
    components: dict[str, float],
    weights: dict[str, float],
    reasons: list[str],
    extra: float = 0.0,
) -> ScoreOutput:
    total = sum(components[name] * weights[name] / 100.0 for name in components)
    score = int(_clamp(round(total + extra)))
    return ScoreOutput(score=score, reasons=tuple(reasons), components=components)


def _breakout_tier(distance_pct: float) -> float:
    """Tiered score for how far price sits beyond a band (in %)."""
    if distance_pct >= 1.0:
        return 100.0
    if distance_pct >= 0.5:
        return 80.0
    return 60.0


def _volume_ratio(snapshot: IndicatorSnapshot) -> float:
    if snapshot.avg_volume <= 0:
        return 0.0
    return snapshot.current_volume / snapshot.avg_volume


def _volume_tier(ratio: float, spike_multiplier: float) -> float:
    if ratio >= spike_multiplier * 1.5:
        return 100.0
    if ratio >= spike_multiplier:
        return 80.0
    if ratio >= 1.3:
        return 40.0
    return 0.0


# ── Buy score ────────────────────────────────────────────────────────────


def buy_score(snapshot: IndicatorSnapshot, config: StrategyConfig) -> ScoreOutput:
    """Score how strongly the latest bar argues for opening a position."""
    reasons: list[str] = []
    s = snapshot
    w = config.weights

    # Trend: short > mid > long, with a bonus for the spread
    trend = 0.0
    if s.ema_short > s.ema_mid > s.ema_long and s.ema_long > 0:
        spread_pct = (s.ema_short - s.ema_long) / s.ema_long * 100.0
        trend = _clamp(60.0 + spread_pct * 20.0)
        _add_reason(
            reasons,
            f"EMA bullish alignment (S:{s.ema_short:.2f} > M:{s.ema_mid:.2f} "
            f"> L:{s.ema_long:.2f})",
        )
    elif s.ema_short > s.ema_mid:
        trend = 30.0
        _add_reason(reasons, f"EMA short above mid (S:{s.ema_short:.2f} > M:{s.ema_mid:.2f})")

    # Breakout above the upper band
    breakout = 0.0
    if s.bands.available and s.bands.upper > 0:
        if s.price > s.bands.upper:
            distance = (s.price - s.bands.upper) / s.bands.upper * 100.0
            breakout = _breakout_tier(distance)
            _add_reason(
                reasons,
                f"Bollinger upper breakout ({s.price:.2f} > {s.bands.upper:.2f})",
            )
        elif s.price > s.bands.middle:
            breakout = 30.0
            _add_reason(reasons, "Price above Bollinger middle")

    # Volume anomaly
    ratio = _volume_ratio(s)
    volume = _volume_tier(ratio, config.volume_spike_multiplier)
    if volume > 0:
        _add_reason(reasons, f"Volume surge ({ratio:.1f}x average)")

    # RSI state
    if s.rsi < config.rsi_oversold:
        rsi = 100.0
        _add_reason(reasons, f"RSI oversold ({s.rsi:.1f} < {config.rsi_oversold:g})")
    elif s.rsi < config.rsi_overbought - 10:
        rsi = 50.0
        _add_reason(reasons, f"RSI neutral ({s.rsi:.1f})")
    elif s.rsi < config.rsi_overbought:
        rsi = 20.0
    else:
        rsi = 0.0

    # MACD state (skipped when unavailable)
    components = {
        "trend": trend,
        "breakout": breakout,
        "volume": volume,
        "rsi": rsi,
    }
    weights = {
        "trend": w.buy_trend,
        "breakout": w.buy_breakout,
        "volume": w.buy_volume,
        "rsi": w.buy_rsi,
        "macd": w.buy_macd,
        "synergy": w.buy_synergy,
    }
    if s.macd is not None:
        macd = 0.0
        if s.macd.macd_line > s.macd.signal_line:
            macd = 70.0
            _add_reason(
                reasons,
                f"MACD golden cross (L:{s.macd.macd_line:.2f} > S:{s.macd.signal_line:.2f})",
            )
            if s.macd.macd_line > 0:
                macd = 100.0
                _add_reason(
                    reasons, f"MACD histogram positive ({s.macd.histogram:.2f})",
                )
        components["macd"] = macd

    # Synergy
    hi = config.synergy_threshold
    synergy = 0.0
    if trend >= hi and breakout >= hi and volume >= hi:
        synergy = 100.0
        _add_reason(reasons, "Trend, breakout and volume confirm together (synergy)")
    elif trend >= hi and components.get("macd", 0.0) >= hi:
        synergy = 50.0
        _add_reason(reasons, "Trend and MACD confirm together (synergy)")
    components["synergy"] = synergy

    return _finalise(components, weights, reasons)


# ── Sell pressure score ──────────────────────────────────────────────────


def sell_pressure_score(
    snapshot: IndicatorSnapshot,
    config: StrategyConfig,
    profit_rate: Optional[float] = None,
) -> ScoreOutput:
    """Score how strongly indicators argue for exiting a held position.

    Stop-loss and take-profit are handled by the decision engine; this
    covers discretionary exits only.  *profit_rate* is the unrealised
    profit in percent and adds a small bonus when a strong exit signal
    appears above the profit target.
    """
    reasons: list[str] = []
    s = snapshot
    w = config.weights

    # Trend: dead cross (short < mid), stronger when fully inverted
    trend = 0.0
    if s.ema_short < s.ema_mid < s.ema_long and s.ema_long > 0:
        spread_pct = (s.ema_long - s.ema_short) / s.ema_long * 100.0
        trend = _clamp(60.0 + spread_pct * 20.0)
        _add_reason(
            reasons,
            f"EMA bearish alignment (S:{s.ema_short:.2f} < M:{s.ema_mid:.2f} "
            f"< L:{s.ema_long:.2f})",
        )
    elif s.ema_short < s.ema_mid:
        trend = 50.0
        _add_reason(reasons, f"EMA dead cross (S:{s.ema_short:.2f} < M:{s.ema_mid:.2f})")

    # Breakdown below the lower band, or weakness below the middle
    breakout = 0.0
    below_middle = False
    if s.bands.available and s.bands.lower > 0:
        below_middle = s.price < s.bands.middle
        if s.price < s.bands.lower:
            distance = (s.bands.lower - s.price) / s.bands.lower * 100.0
            breakout = _breakout_tier(distance)
            _add_reason(
                reasons,
                f"Bollinger lower breakdown ({s.price:.2f} < {s.bands.lower:.2f})",
            )
        elif below_middle:
            breakout = 40.0
            _add_reason(
                reasons,
                f"Price below Bollinger middle ({s.price:.2f} < {s.bands.middle:.2f})",
            )

    # Volume only counts as sell pressure on weakness
    volume = 0.0
    if below_middle:
        ratio = _volume_ratio(s)
        volume = _volume_tier(ratio, config.volume_spike_multiplier)
        if volume > 0:
            _add_reason(reasons, f"Volume surge on weakness ({ratio:.1f}x average)")

    # RSI state
    overbought = s.rsi > config.rsi_overbought
    if overbought:
        rsi = 100.0
        _add_reason(reasons, f"RSI overbought ({s.rsi:.1f} > {config.rsi_overbought:g})")
    elif s.rsi > config.rsi_overbought - 10:
        rsi = 50.0
        _add_reason(reasons, f"RSI elevated ({s.rsi:.1f})")
    else:
        rsi = 0.0

    components = {
        "trend": trend,
        "breakout": breakout,
        "volume": volume,
        "rsi": rsi,
    }
    weights = {
        "trend": w.sell_trend,
        "breakout": w.sell_breakout,
        "volume": w.sell_volume,
        "rsi": w.sell_rsi,
        "macd": w.sell_macd,
        "synergy": w.sell_synergy,
    }
    macd_dead = False
    if s.macd is not None:
        macd = 0.0
        if s.macd.macd_line < s.macd.signal_line:
            macd_dead = True
            macd = 70.0
            _add_reason(
                reasons,
                f"MACD dead cross (L:{s.macd.macd_line:.2f} < S:{s.macd.signal_line:.2f})",
            )
            if s.macd.macd_line < 0:
                macd = 100.0
                _add_reason(
                    reasons, f"MACD histogram negative ({s.macd.histogram:.2f})",
                )
        components["macd"] = macd

    # Synergy
    hi = config.synergy_threshold
    dead_cross = s.ema_short < s.ema_mid
    synergy = 0.0
    if overbought and dead_cross:
        synergy = 100.0
        _add_reason(reasons, "RSI overbought + EMA dead cross (synergy)")
    elif dead_cross and below_middle and trend >= hi:
        synergy = 80.0
        _add_reason(reasons, "EMA dead cross + below Bollinger middle (synergy)")
    elif overbought and macd_dead:
        synergy = 70.0
        _add_reason(reasons, "RSI overbought + MACD dead cross (synergy)")
    components["synergy"] = synergy

    extra = 0.0
    raw = sum(components[name] * weights[name] / 100.0 for name in components)
    if (
        profit_rate is not None
        and profit_rate > config.profit_target_pct
        and raw > 70
    ):
        extra = 5.0
        _add_reason(reasons, f"High unrealised profit ({profit_rate:.1f}%) supports exit")

    return _finalise(components, weights, reasons, extra)
