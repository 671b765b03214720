"""Decision engine — turns a price window and a position into one decision.

Pure and stateless: all state (history, position, config) comes in as
arguments, so the live loop and the replay simulator share it unchanged.

Branches are evaluated strictly in this order, first match wins:

    1. insufficient history  → hold (score 0)
    2. stop-loss             → sell full position
    3. take-profit           → sell full position
    4. indicator sell        → sell (fraction chosen by the sizer)
    5. pyramiding            → buy more
    6. new entry             → buy
    7. hold                  → best score seen so far
"""

from typing import Any, Mapping, Optional, Sequence, Union

from tickscore.strategy.config import StrategyConfig, resolve_strategy_config
from tickscore.strategy.models import (
    BuyDecision,
    Decision,
    HoldDecision,
    IndicatorSnapshot,
    Position,
    SellDecision,
)
from tickscore.strategy.scoring import build_snapshot, buy_score, sell_pressure_score


STOP_LOSS_SCORE = 100
TAKE_PROFIT_SCORE = 90


def decide(
    closes: Sequence[float],
    volumes: Sequence[float],
    position: Optional[Position],
    config: Union[StrategyConfig, Mapping[str, Any], None] = None,
    market: str = "",
) -> Decision:
    """Evaluate the latest bar and return a hold, buy, or sell decision.

    Args:
        closes: Close prices, most-recent-first.
        volumes: Traded volumes aligned with *closes*.
        position: Current position, or ``None`` when flat.
        config: Strategy parameters; partial mappings are merged with
            the defaults before anything is computed.
        market: Market code; defaults to the position's market.

    Raises:
        ValueError: If *closes* and *volumes* differ in length.
    """
    if len(closes) != len(volumes):
        raise ValueError(
            f"closes and volumes must align, got {len(closes)} and {len(volumes)}"
        )

    cfg = resolve_strategy_config(config)
    if not market and position is not None:
        market = position.market

    if len(closes) < cfg.min_history:
        return HoldDecision(market=market, score=0, reason="insufficient data")

    price = closes[0]
    held = position is not None and position.volume > 0

    if held:
        entry = position.entry_price

        stop_price = entry * (1 - cfg.stop_loss_pct / 100)
        if price <= stop_price:
            return SellDecision(
                market=market,
                price=price,
                score=STOP_LOSS_SCORE,
                reason=(
                    f"[stop-loss] {cfg.stop_loss_pct:g}% drop "
                    f"(price {price:.2f} <= stop {stop_price:.2f})"
                ),
                kind="stop_loss",
                volume=position.volume,
            )

        target_price = entry * (1 + cfg.profit_target_pct / 100)
        if price >= target_price:
            return SellDecision(
                market=market,
                price=price,
                score=TAKE_PROFIT_SCORE,
                reason=(
                    f"[take-profit] {cfg.profit_target_pct:g}% gain "
                    f"(price {price:.2f} >= target {target_price:.2f})"
                ),
                kind="take_profit",
                volume=position.volume,
            )

    snapshot = build_snapshot(closes, volumes, cfg)

    if held:
        profit_rate = (price / entry - 1) * 100 if entry > 0 else None
        sell = sell_pressure_score(snapshot, cfg, profit_rate)
        if sell.score >= cfg.sell_score_threshold:
            return SellDecision(
                market=market,
                price=price,
                score=sell.score,
                reason=f"[indicator sell] {', '.join(sell.reasons)}",
                kind="indicator",
            )

        best_score = sell.score
        pyramid = _pyramiding_decision(snapshot, position, cfg, market)
        if isinstance(pyramid, BuyDecision):
            return pyramid
        if pyramid is not None:
            best_score = max(best_score, pyramid)

        profit = f"{profit_rate:.1f}%" if profit_rate is not None else "n/a"
        return HoldDecision(
            market=market,
            score=best_score,
            reason=f"holding position (profit {profit}), sell pressure {sell.score}",
        )

    buy = buy_score(snapshot, cfg)
    if buy.score >= cfg.buy_score_threshold:
        return BuyDecision(
            market=market,
            price=price,
            score=buy.score,
            reason=f"[new entry] {', '.join(buy.reasons)}",
            kind="new",
        )

    if buy.reasons:
        reason = f"awaiting buy signal: score {buy.score} ({', '.join(buy.reasons)})"
    else:
        reason = f"awaiting buy signal: score {buy.score}"
    return HoldDecision(market=market, score=buy.score, reason=reason)


def _pyramiding_decision(
    snapshot: IndicatorSnapshot,
    position: Position,
    cfg: StrategyConfig,
    market: str,
) -> Union[BuyDecision, int, None]:
    """Evaluate an incremental buy into a losing position.

    Returns a ``BuyDecision`` when the composite score clears
    ``buy_score_threshold × 0.6``, the composite score itself when the
    gates passed but the score fell short, or ``None`` when pyramiding
    was not applicable.
    """
    if not cfg.pyramiding_enabled:
        return None
    if position.pyramiding_count >= cfg.max_pyramiding_count:
        return None

    entry = position.entry_price
    if entry <= 0:
        return None
    drop_pct = (entry - snapshot.price) / entry * 100

    # Each increment already taken widens the required drop.
    required = cfg.pyramiding_drop_pct + cfg.pyramiding_drop_step_pct * position.pyramiding_count
    if required <= 0 or drop_pct < required:
        return None

    band = cfg.pyramiding_rsi_condition
    if not band.min <= snapshot.rsi <= band.max:
        return None

    drop_score = min(40.0, 20.0 * drop_pct / required)
    span = band.max - band.min
    rsi_score = 30.0 if span <= 0 else max(0.0, min(30.0, (band.max - snapshot.rsi) / span * 30.0))
    macd_score = 0.0
    if snapshot.macd is not None and snapshot.macd.histogram > 0:
        macd_score = 20.0
    score = int(max(0, min(100, round(drop_score + rsi_score + macd_score + cfg.pyramiding_context_bonus))))

    if score < cfg.buy_score_threshold * 0.6:
        return score

    return BuyDecision(
        market=market,
        price=snapshot.price,
        score=score,
        reason=(
            f"[pyramiding #{position.pyramiding_count + 1}] "
            f"{drop_pct:.1f}% below entry {entry:.2f}, RSI {snapshot.rsi:.1f}"
        ),
        kind="pyramiding",
    )
