"""Strategy configuration — defaults plus an explicit merge step.

Partial overrides (from JSON, the API, or test code) are resolved against
the full defaults once, before any scoring call.  ``weights`` and
``pyramiding_rsi_condition`` merge per key rather than being replaced
wholesale.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

logger = logging.getLogger("tickscore")


@dataclass(frozen=True)
class StrategyWeights:
    """Per-sub-score weights for the buy and sell pressure scores."""

    buy_trend: float = 30.0
    buy_breakout: float = 25.0
    buy_volume: float = 20.0
    buy_rsi: float = 15.0
    buy_macd: float = 10.0
    buy_synergy: float = 15.0

    sell_trend: float = 30.0
    sell_breakout: float = 20.0
    sell_volume: float = 10.0
    sell_rsi: float = 25.0
    sell_macd: float = 15.0
    sell_synergy: float = 20.0


@dataclass(frozen=True)
class RsiBand:
    """Inclusive RSI range that allows a pyramiding buy."""

    min: float = 20.0
    max: float = 45.0


@dataclass(frozen=True)
class StrategyConfig:
    """Every tunable parameter of the scoring and sizing pipeline."""

    # Indicator periods
    bollinger_period: int = 20
    bollinger_std_dev: float = 2.0
    ema_short_period: int = 5
    ema_mid_period: int = 10
    ema_long_period: int = 20
    rsi_period: int = 14
    macd_short_period: int = 12
    macd_long_period: int = 26
    macd_signal_period: int = 9
    candle_count: int = 200

    # Thresholds
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    volume_spike_multiplier: float = 2.0
    buy_score_threshold: float = 65.0
    sell_score_threshold: float = 65.0
    synergy_threshold: float = 60.0

    # Exits (percent)
    stop_loss_pct: float = 1.5
    profit_target_pct: float = 3.0

    # Pyramiding
    pyramiding_enabled: bool = True
    max_pyramiding_count: int = 3
    pyramiding_drop_pct: float = 0.5
    pyramiding_drop_step_pct: float = 0.25
    pyramiding_order_size_ratio: float = 0.5
    pyramiding_context_bonus: float = 10.0
    pyramiding_rsi_condition: RsiBand = field(default_factory=RsiBand)

    # Trade sizing and account
    min_trade_value: float = 5000.0
    min_trade_volume: float = 0.0001
    max_trade_ratio: float = 0.25
    fee_rate: float = 0.0005
    initial_balance: float = 1_000_000.0

    weights: StrategyWeights = field(default_factory=StrategyWeights)

    @property
    def min_history(self) -> int:
        """Closes required before ``decide`` evaluates anything."""
        return max(self.bollinger_period, self.ema_long_period, self.rsi_period + 1)

    @property
    def warmup_period(self) -> int:
        """Longest lookback of any indicator, MACD included."""
        return max(
            self.min_history,
            self.ema_short_period,
            self.ema_mid_period,
            self.macd_long_period + self.macd_signal_period - 1,
        )

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


DEFAULT_STRATEGY_CONFIG = StrategyConfig()

_NESTED = {
    "weights": StrategyWeights,
    "pyramiding_rsi_condition": RsiBand,
}


def _merge_nested(current: Any, cls: type, overrides: Any) -> Any:
    """Merge a nested override mapping into *current* key by key."""
    if isinstance(overrides, cls):
        return overrides
    if not isinstance(overrides, Mapping):
        logger.warning(
            "Ignoring non-mapping override for %s: %r", cls.__name__, overrides,
        )
        return current
    known = {f.name for f in dataclasses.fields(cls)}
    changes = {}
    for key, value in overrides.items():
        if value is None:
            continue
        if key not in known:
            logger.warning("Ignoring unknown %s key: %s", cls.__name__, key)
            continue
        changes[key] = value
    return dataclasses.replace(current, **changes)


def resolve_strategy_config(
    overrides: Union[StrategyConfig, Mapping[str, Any], None] = None,
    base: StrategyConfig = DEFAULT_STRATEGY_CONFIG,
) -> StrategyConfig:
    """Return a complete, immutable ``StrategyConfig``.

    *overrides* may be ``None`` (defaults), an existing ``StrategyConfig``
    (returned unchanged), or a mapping of field names.  ``None`` values
    count as unset and fall back to *base*.  Unknown keys are logged and
    skipped; partial configuration is never an error.
    """
    if overrides is None:
        return base
    if isinstance(overrides, StrategyConfig):
        return overrides

    known = {f.name for f in dataclasses.fields(StrategyConfig)}
    changes: dict[str, Any] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        if key not in known:
            logger.warning("Ignoring unknown strategy config key: %s", key)
            continue
        if key in _NESTED:
            changes[key] = _merge_nested(getattr(base, key), _NESTED[key], value)
        else:
            changes[key] = value
    return dataclasses.replace(base, **changes)


def load_strategy_config(path: Union[str, Path, None]) -> StrategyConfig:
    """Load strategy overrides from a JSON file and resolve them.

    ``None`` returns the defaults.
    """
    if path is None:
        return DEFAULT_STRATEGY_CONFIG
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Strategy config in {path} must be a JSON object")
    return resolve_strategy_config(data)
