"""Candle series storage and CSV loading.

Candles are stored oldest-first.  The decision engine consumes the
most-recent-first view returned by ``CandleSeries.window``.

CSV layout (one row per bar, header required)::

    market, candle_date_time_utc, candle_date_time_kst, opening_price,
    high_price, low_price, trade_price, timestamp,
    candle_acc_trade_price, candle_acc_trade_volume, unit
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Iterator, Optional, Sequence, Union

import pandas as pd

from tickscore.strategy.models import Candle

logger = logging.getLogger("tickscore.data")

CSV_COLUMNS = [
    "market",
    "candle_date_time_utc",
    "candle_date_time_kst",
    "opening_price",
    "high_price",
    "low_price",
    "trade_price",
    "timestamp",
    "candle_acc_trade_price",
    "candle_acc_trade_volume",
    "unit",
]

_REQUIRED_COLUMNS = [
    "candle_date_time_utc",
    "opening_price",
    "high_price",
    "low_price",
    "trade_price",
    "timestamp",
    "candle_acc_trade_volume",
]

_NUMERIC_COLUMNS = [
    "opening_price",
    "high_price",
    "low_price",
    "trade_price",
    "candle_acc_trade_price",
    "candle_acc_trade_volume",
]

_KST_OFFSET = pd.Timedelta(hours=9)
_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


class CandleDataError(ValueError):
    """Raised for malformed, unordered, or missing candle data."""


class CandleSeries:
    """An ordered, validated candle series for one market and bar unit.

    Args:
        market: Market code, e.g. ``"KRW-BTC"``.
        unit: Bar size in minutes.
        candles: Candles in strictly ascending timestamp order.

    Raises:
        CandleDataError: If any candle belongs to another market, has a
            non-positive or non-finite close, or is out of order.
    """

    def __init__(self, market: str, unit: int, candles: Sequence[Candle]) -> None:
        self.market = market
        self.unit = unit
        self._candles: list[Candle] = list(candles)
        self._validate()

    def _validate(self) -> None:
        prev_ts: Optional[int] = None
        for i, c in enumerate(self._candles):
            if c.market != self.market:
                raise CandleDataError(
                    f"Candle {i} belongs to {c.market}, expected {self.market}"
                )
            for name in ("open", "high", "low", "close", "volume"):
                value = getattr(c, name)
                if not math.isfinite(value):
                    raise CandleDataError(f"Candle {i} has non-finite {name}: {value}")
            if c.close <= 0:
                raise CandleDataError(f"Candle {i} has non-positive close: {c.close}")
            if c.volume < 0:
                raise CandleDataError(f"Candle {i} has negative volume: {c.volume}")
            if prev_ts is not None and c.timestamp <= prev_ts:
                raise CandleDataError(
                    f"Candles must be in ascending timestamp order "
                    f"(index {i}: {c.timestamp} <= {prev_ts})"
                )
            prev_ts = c.timestamp

    # ── Access ───────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._candles)

    def __iter__(self) -> Iterator[Candle]:
        return iter(self._candles)

    def __getitem__(self, index: int) -> Candle:
        return self._candles[index]

    @property
    def candles(self) -> list[Candle]:
        return list(self._candles)

    def up_to(self, end_index: int) -> list[Candle]:
        """All candles up to and including *end_index*, oldest first."""
        if end_index < 0:
            return []
        return self._candles[: end_index + 1]

    def window(self, end_index: int, count: int) -> list[Candle]:
        """At most *count* candles ending at *end_index*, most-recent-first."""
        if end_index < 0 or count <= 0 or not self._candles:
            return []
        end = min(end_index, len(self._candles) - 1)
        start = max(0, end - count + 1)
        return self._candles[start : end + 1][::-1]


# ── CSV I/O ──────────────────────────────────────────────────────────────


def load_candles_csv(
    path: Union[str, Path],
    market: Optional[str] = None,
    unit: Optional[int] = None,
) -> CandleSeries:
    """Load a candle CSV, sort it by timestamp, and validate it.

    Args:
        path: CSV file in the exchange candle layout.
        market: Market to keep.  Defaults to the file's only market.
        unit: Bar unit used when the file has no ``unit`` column.

    Raises:
        FileNotFoundError: If *path* does not exist.
        CandleDataError: On missing columns, unparseable values, an empty
            series, or several markets with no *market* selected.
    """
    path = Path(path)
    df = pd.read_csv(path)

    missing = [c for c in _REQUIRED_COLUMNS if c not in df.columns]
    if "market" not in df.columns and market is None:
        missing.append("market")
    if missing:
        logger.error("Candle CSV %s is missing columns: %s", path, missing)
        raise CandleDataError(f"{path}: missing columns {missing}")

    if "market" not in df.columns:
        df["market"] = market
    if "candle_acc_trade_price" not in df.columns:
        df["candle_acc_trade_price"] = 0.0

    if market is None:
        markets = df["market"].dropna().unique()
        if len(markets) != 1:
            raise CandleDataError(
                f"{path}: expected one market, found {sorted(markets)}"
            )
        market = str(markets[0])
    df = df[df["market"] == market].copy()
    if df.empty:
        logger.error("Candle CSV %s has no rows for %s", path, market)
        raise CandleDataError(f"{path}: no candles for {market}")

    try:
        for column in _NUMERIC_COLUMNS:
            df[column] = pd.to_numeric(df[column], errors="raise")
        df["timestamp"] = pd.to_numeric(df["timestamp"], errors="raise").astype("int64")
    except (ValueError, TypeError) as exc:
        logger.error("Candle CSV %s has unparseable values: %s", path, exc)
        raise CandleDataError(f"{path}: {exc}") from exc

    if df[_NUMERIC_COLUMNS].isna().any().any():
        logger.error("Candle CSV %s has empty numeric cells", path)
        raise CandleDataError(f"{path}: empty numeric cells")

    if unit is None:
        unit = int(df["unit"].iloc[0]) if "unit" in df.columns else 1

    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)
    candles = [
        Candle(
            market=market,
            time=str(row.candle_date_time_utc),
            open=float(row.opening_price),
            high=float(row.high_price),
            low=float(row.low_price),
            close=float(row.trade_price),
            timestamp=int(row.timestamp),
            volume=float(row.candle_acc_trade_volume),
            value=float(row.candle_acc_trade_price),
            unit=unit,
        )
        for row in df.itertuples(index=False)
    ]
    series = CandleSeries(market, unit, candles)
    logger.info("Loaded %d candles for %s (%dm) from %s", len(series), market, unit, path)
    return series


def save_candles_csv(series: CandleSeries, path: Union[str, Path]) -> Path:
    """Write *series* in the exchange candle layout and return the path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    utc = pd.to_datetime([c.time for c in series])
    kst = (utc + _KST_OFFSET).strftime(_TIME_FORMAT)
    df = pd.DataFrame(
        {
            "market": [c.market for c in series],
            "candle_date_time_utc": [c.time for c in series],
            "candle_date_time_kst": list(kst),
            "opening_price": [c.open for c in series],
            "high_price": [c.high for c in series],
            "low_price": [c.low for c in series],
            "trade_price": [c.close for c in series],
            "timestamp": [c.timestamp for c in series],
            "candle_acc_trade_price": [c.value for c in series],
            "candle_acc_trade_volume": [c.volume for c in series],
            "unit": [c.unit for c in series],
        },
        columns=CSV_COLUMNS,
    )
    df.to_csv(path, index=False)
    logger.info("Saved %d candles for %s to %s", len(series), series.market, path)
    return path
