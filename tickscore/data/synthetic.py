"""Deterministic synthetic candles for demos and tests.

A geometric random walk with mild regime switching so the strategy sees
trends, pullbacks and volume spikes.  Identical arguments always produce
identical series.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import numpy as np

from tickscore.data.candles import CandleSeries
from tickscore.strategy.models import Candle

_DEFAULT_START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def generate_candles(
    market: str = "KRW-BTC",
    unit: int = 1,
    count: int = 500,
    start_price: float = 50_000_000.0,
    seed: int = 42,
    volatility: float = 0.003,
    drift: float = 0.0,
    base_volume: float = 2.0,
    start_time: Optional[datetime] = None,
) -> CandleSeries:
    """Generate *count* ascending candles for *market*.

    Args:
        market: Market code stamped on every candle.
        unit: Bar size in minutes.
        count: Number of candles.
        start_price: Opening price of the first bar.
        seed: Seed for ``numpy.random.default_rng``.
        volatility: Per-bar standard deviation of log returns.
        drift: Per-bar mean log return.
        base_volume: Typical traded volume per bar.
        start_time: UTC open time of the first bar.

    Raises:
        ValueError: If *count* is negative or *start_price* is not positive.
    """
    if count < 0:
        raise ValueError(f"count must be non-negative, got {count}")
    if start_price <= 0:
        raise ValueError(f"start_price must be positive, got {start_price}")

    rng = np.random.default_rng(seed)
    start = start_time or _DEFAULT_START

    # Regime: slow sine wave on the drift so trends alternate
    phase = np.linspace(0.0, 6.0 * np.pi, count) if count else np.array([])
    regime = np.sin(phase) * volatility * 0.5
    returns = rng.normal(drift, volatility, count) + regime
    closes = start_price * np.exp(np.cumsum(returns))
    opens = np.concatenate(([start_price], closes[:-1])) if count else np.array([])

    wick = np.abs(rng.normal(0.0, volatility * 0.5, count))
    highs = np.maximum(opens, closes) * (1.0 + wick)
    lows = np.minimum(opens, closes) * (1.0 - wick)

    # Occasional volume spikes around large moves
    volumes = base_volume * rng.lognormal(0.0, 0.4, count)
    spikes = rng.random(count) < 0.05
    volumes = np.where(spikes, volumes * rng.uniform(2.0, 5.0, count), volumes)

    candles = []
    for i in range(count):
        close_time = start + timedelta(minutes=unit * (i + 1))
        candles.append(
            Candle(
                market=market,
                time=close_time.strftime("%Y-%m-%dT%H:%M:%S"),
                open=round(float(opens[i]), 2),
                high=round(float(highs[i]), 2),
                low=round(float(lows[i]), 2),
                close=round(float(closes[i]), 2),
                timestamp=int(close_time.timestamp() * 1000),
                volume=round(float(volumes[i]), 8),
                value=round(float(closes[i] * volumes[i]), 2),
                unit=unit,
            )
        )
    return CandleSeries(market, unit, candles)
