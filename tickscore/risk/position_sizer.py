"""Position sizing — pure math, no I/O.

Maps a decision's score and the account state to an order size:

* New buys spend between ``min_trade_value`` and
  ``max(min_trade_value, cash × max_trade_ratio)``, linear in score.
* Pyramiding buys spend a fraction of the current position's cost basis,
  scaled by ``score / 200 + 0.5`` and capped by the same ceiling.
* Stop-loss / take-profit sells liquidate everything.
* Indicator sells liquidate everything at score ≥ 80, otherwise a fraction
  growing from 60 % at the sell threshold to 100 % at score 100.

Orders below the minimum tradable value are rejected (``None``), never
rounded up.  Stop-loss and take-profit exits are exempt: they always
close the whole position, however small.
"""

from typing import Optional

from tickscore.strategy.config import StrategyConfig
from tickscore.strategy.models import BuyDecision, Position, SellDecision


FULL_EXIT_SCORE = 80


def max_trade_value(available_cash: float, config: StrategyConfig) -> float:
    """Largest single-order spend allowed for *available_cash*."""
    return max(config.min_trade_value, available_cash * config.max_trade_ratio)


def new_buy_amount(
    score: float,
    available_cash: float,
    config: StrategyConfig,
) -> float:
    """Quote-currency amount for a new position.

    Score ≤ 0 → minimum, score ≥ 100 → maximum, linear in between.
    """
    low = config.min_trade_value
    high = max_trade_value(available_cash, config)
    if score <= 0:
        return low
    if score >= 100:
        return high
    return low + (high - low) * (score / 100.0)


def pyramid_buy_amount(
    score: float,
    position: Position,
    available_cash: float,
    config: StrategyConfig,
) -> float:
    """Quote-currency amount for an incremental buy.

    Formula::

        base   = entry_price × volume × pyramiding_order_size_ratio
        amount = base × (score / 200 + 0.5)

    bounded by ``max_trade_value``.
    """
    score_ratio = max(0.5, min(1.0, score / 200.0 + 0.5))
    base = position.entry_price * position.volume * config.pyramiding_order_size_ratio
    return min(base * score_ratio, max_trade_value(available_cash, config))


def size_buy(
    decision: BuyDecision,
    price: float,
    available_cash: float,
    position: Optional[Position],
    config: StrategyConfig,
) -> Optional[float]:
    """Return the volume to buy, or ``None`` if no valid order exists.

    An explicit ``decision.amount`` is honoured; otherwise the amount comes
    from the score.  The spend never exceeds what *available_cash* can pay
    including fees.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")

    if decision.amount is not None:
        amount = decision.amount
    elif decision.kind == "pyramiding" and position is not None and position.volume > 0:
        amount = pyramid_buy_amount(decision.score, position, available_cash, config)
    else:
        amount = new_buy_amount(decision.score, available_cash, config)

    spendable = available_cash / (1 + config.fee_rate)
    amount = min(amount, spendable)
    if amount < config.min_trade_value:
        return None

    volume = amount / price
    if volume < config.min_trade_volume:
        return None
    return volume


def sell_fraction(score: float, config: StrategyConfig) -> float:
    """Fraction of the position an indicator-driven sell should close."""
    if score >= FULL_EXIT_SCORE:
        return 1.0
    threshold = config.sell_score_threshold
    if threshold >= 100:
        return 1.0
    fraction = 0.6 + 0.4 * (score - threshold) / (100.0 - threshold)
    return max(0.6, min(1.0, fraction))


def size_sell(
    decision: SellDecision,
    price: float,
    position: Optional[Position],
    config: StrategyConfig,
) -> Optional[float]:
    """Return the volume to sell, or ``None`` if no valid order exists."""
    if position is None or position.volume <= 0:
        return None

    held = position.volume
    if decision.kind in ("stop_loss", "take_profit"):
        return held

    if decision.volume is not None:
        volume = min(decision.volume, held)
    else:
        volume = held * sell_fraction(decision.score, config)
        residual = held - volume
        if (
            residual < config.min_trade_volume
            or residual * price < config.min_trade_value
        ):
            volume = held
        elif (
            volume < config.min_trade_volume
            or volume * price < config.min_trade_value
        ):
            volume = held

    if volume <= 0 or volume < config.min_trade_volume:
        return None
    if volume * price < config.min_trade_value:
        return None
    return volume
