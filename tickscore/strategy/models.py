"""Strategy data models — candles, positions, scores and decisions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Literal, Optional, Union


@dataclass(frozen=True)
class Candle:
    """A single closed candlestick bar for one market."""

    market: str
    time: str  # candle close time, UTC ISO-8601
    open: float
    high: float
    low: float
    close: float
    timestamp: int  # epoch milliseconds
    volume: float  # accumulated traded volume
    value: float = 0.0  # accumulated traded value (quote currency)
    unit: int = 1  # bar size in minutes


@dataclass(frozen=True)
class Position:
    """An open long position in one market.

    A position with zero volume is never stored; callers treat ``None``
    and an empty position the same way.
    """

    market: str
    volume: float
    entry_price: float  # weighted-average entry price
    updated_at: Optional[str] = None
    pyramiding_count: int = 0


@dataclass(frozen=True)
class BollingerBands:
    """Band indicator output.  All zeros means "insufficient data"."""

    upper: float
    middle: float
    lower: float
    width: float

    @property
    def available(self) -> bool:
        return self.middle != 0.0


@dataclass(frozen=True)
class MacdResult:
    """Convergence/divergence oscillator output."""

    macd_line: float
    signal_line: float
    histogram: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values for the latest bar of one evaluation window."""

    price: float
    bands: BollingerBands
    ema_short: float
    ema_mid: float
    ema_long: float
    rsi: float
    current_volume: float
    avg_volume: float
    macd: Optional[MacdResult] = None


@dataclass(frozen=True)
class ScoreOutput:
    """A 0–100 score with the reasons that produced it."""

    score: int
    reasons: tuple[str, ...] = ()
    components: dict[str, float] = field(default_factory=dict)


# ── Decisions ────────────────────────────────────────────────────────────

BuyKind = Literal["new", "pyramiding"]
SellKind = Literal["stop_loss", "take_profit", "indicator"]


@dataclass(frozen=True)
class HoldDecision:
    """Do nothing this tick."""

    market: str
    score: int
    reason: str
    action: Literal["hold"] = field(default="hold", init=False)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BuyDecision:
    """Open a new position or add to the current one.

    ``amount`` is an optional explicit quote-currency spend; when absent
    the position sizer decides.
    """

    market: str
    price: float
    score: int
    reason: str
    kind: BuyKind = "new"
    amount: Optional[float] = None
    action: Literal["buy"] = field(default="buy", init=False)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SellDecision:
    """Reduce or close the current position.

    Stop-loss and take-profit exits carry the full position ``volume``.
    Indicator-driven exits leave ``volume`` unset so the position sizer
    picks the fraction.
    """

    market: str
    price: float
    score: int
    reason: str
    kind: SellKind = "indicator"
    volume: Optional[float] = None
    action: Literal["sell"] = field(default="sell", init=False)

    def to_dict(self) -> dict:
        return asdict(self)


Decision = Union[HoldDecision, BuyDecision, SellDecision]
