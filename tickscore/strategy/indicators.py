"""Technical indicators — Bollinger Bands, EMA, RSI, MACD. Pure functions, no I/O.

Unless stated otherwise, price sequences are **most-recent-first**
(index 0 is the latest close), which is how the decision engine receives
its window.  Short inputs never raise: each indicator returns its
documented "insufficient data" value instead.
"""

import math
from typing import Optional, Sequence

from tickscore.strategy.models import BollingerBands, MacdResult


_EMPTY_BANDS = BollingerBands(upper=0.0, middle=0.0, lower=0.0, width=0.0)


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    prices: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> BollingerBands:
    """Calculate Bollinger Bands over the *period* most recent closes.

    Middle = SMA(close, *period*)
    Upper  = middle + *std_dev* × σ   (population σ)
    Lower  = middle − *std_dev* × σ
    Width  = (upper − lower) / middle, or 0 when middle is 0.

    Returns an all-zero ``BollingerBands`` when fewer than *period*
    prices are available.
    """
    if period <= 0 or len(prices) < period:
        return _EMPTY_BANDS

    window = prices[:period]
    sma = sum(window) / period
    variance = sum((x - sma) ** 2 for x in window) / period
    sigma = math.sqrt(variance)

    upper = sma + std_dev * sigma
    lower = sma - std_dev * sigma
    width = 0.0 if sma == 0 else (upper - lower) / sma
    return BollingerBands(upper=upper, middle=sma, lower=lower, width=width)


# ── EMA ──────────────────────────────────────────────────────────────────


def calculate_ema(prices: Sequence[float], period: int) -> float:
    """Calculate the latest Exponential Moving Average value.

    *prices* here are **oldest-first**.  The EMA is seeded with the SMA of
    the first *period* prices, then:
        ``ema = (price − ema) × k + ema``  with ``k = 2 / (period + 1)``.

    With fewer than *period* prices the most recent price is returned
    (``0.0`` for an empty sequence).
    """
    if len(prices) < period or period <= 0:
        return float(prices[-1]) if len(prices) > 0 else 0.0

    k = 2.0 / (period + 1)
    ema = sum(prices[:period]) / period
    for price in prices[period:]:
        ema = (price - ema) * k + ema
    return ema


def _ema_series(prices: Sequence[float], period: int) -> list[Optional[float]]:
    """Running EMA for every prefix of an oldest-first series.

    Entries before the seed are ``None``.  Each value equals
    ``calculate_ema(prices[: i + 1], period)`` for prefixes long enough to
    be seeded.
    """
    out: list[Optional[float]] = [None] * len(prices)
    if period <= 0 or len(prices) < period:
        return out
    k = 2.0 / (period + 1)
    ema = sum(prices[:period]) / period
    out[period - 1] = ema
    for i in range(period, len(prices)):
        ema = (prices[i] - ema) * k + ema
        out[i] = ema
    return out


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(prices: Sequence[float], period: int = 14) -> float:
    """Calculate a simple-average Relative Strength Index.

    Uses the *period* most recent close-to-close changes:
        1. Split the changes into gains and absolute losses.
        2. avg_gain / avg_loss = plain mean over *period*.
        3. RSI = 100 − 100 / (1 + avg_gain / avg_loss).

    Returns 50 (neutral) with fewer than ``period + 1`` prices, and 100
    when there are no losses at all.
    """
    if period <= 0 or len(prices) < period + 1:
        return 50.0

    gains = 0.0
    losses = 0.0
    for i in range(period):
        change = prices[i] - prices[i + 1]
        if change > 0:
            gains += change
        else:
            losses += -change

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    prices: Sequence[float],
    short_period: int = 12,
    long_period: int = 26,
    signal_period: int = 9,
) -> Optional[MacdResult]:
    """Calculate MACD line, signal line, and histogram.

    Requires at least ``long_period + signal_period − 1`` prices; returns
    ``None`` otherwise so callers can skip the indicator.

    The short and long EMAs are run incrementally over the oldest-first
    series.  A MACD-line value is recorded only once *long_period* prices
    have accumulated; the signal line is the EMA of that MACD series over
    *signal_period*.
    """
    if len(prices) < long_period + signal_period - 1:
        return None

    oldest_first = list(reversed(prices))
    short = _ema_series(oldest_first, short_period)
    long = _ema_series(oldest_first, long_period)

    macd_line: list[float] = []
    for i in range(long_period - 1, len(oldest_first)):
        # An unseeded short EMA falls back to the latest price.
        s = short[i] if short[i] is not None else oldest_first[i]
        macd_line.append(s - long[i])

    if len(macd_line) < signal_period:
        return None

    signal = calculate_ema(macd_line, signal_period)
    last = macd_line[-1]
    return MacdResult(macd_line=last, signal_line=signal, histogram=last - signal)


# ── Volume ───────────────────────────────────────────────────────────────


def average_volume(volumes: Sequence[float], period: int) -> float:
    """Mean of the *period* volumes **before** the latest bar.

    *volumes* are most-recent-first, so index 0 (the bar being judged) is
    excluded.  Returns 0.0 when there is no prior volume.
    """
    prior = volumes[1 : period + 1]
    if not prior:
        return 0.0
    return sum(prior) / len(prior)
