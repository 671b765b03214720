"""Replay simulator — steps candles through decide → size → ledger.

Iterates a candle series chronologically, evaluating the decision engine
on a most-recent-first window ending at each bar and simulating fills at
the bar's close.  No real orders are placed.

The loop is a pure function of (candles, strategy config, initial
balance): identical inputs always produce identical ``RunResult`` values,
trade ids included.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from tickscore.backtest.ledger import Order, PortfolioLedger, Trade
from tickscore.backtest.stats import calculate_stats, total_return
from tickscore.data.candles import CandleDataError, CandleSeries
from tickscore.risk.drawdown import DrawdownTracker
from tickscore.risk.position_sizer import size_buy, size_sell
from tickscore.strategy.config import StrategyConfig, resolve_strategy_config
from tickscore.strategy.models import BuyDecision, Candle, SellDecision
from tickscore.strategy.signals import decide

logger = logging.getLogger("tickscore.backtest")

ConfigLike = Union[StrategyConfig, Mapping[str, Any], None]


@dataclass(frozen=True)
class RunResult:
    """Outcome of one replay over one market / bar unit."""

    market: str
    unit: int
    initial_balance: float
    final_balance: float
    total_profit: float
    total_return: float  # fraction, 0.05 = +5 %
    trades: tuple[Trade, ...]
    win_count: int
    loss_count: int
    win_rate: float
    max_drawdown: float  # fraction of peak
    buy_signals: int
    sell_signals: int
    hold_signals: int
    total_candles: int
    simulated_candles: int
    equity_curve: tuple[float, ...] = ()
    aborted: bool = False
    config: StrategyConfig = field(default_factory=StrategyConfig)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)


class BacktestEngine:
    """Simulates trading one market on historical candles.

    Args:
        config: Default strategy parameters for every run.
        ledger: Ledger to reuse.  It is reset at the start of each run.
    """

    def __init__(
        self,
        config: ConfigLike = None,
        ledger: Optional[PortfolioLedger] = None,
    ) -> None:
        self._config = resolve_strategy_config(config)
        self._ledger = ledger
        self._shared_ledger = ledger is not None

    @property
    def ledger(self) -> Optional[PortfolioLedger]:
        """Ledger of the most recent run."""
        return self._ledger

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        market: str,
        unit: int,
        candles: Union[CandleSeries, Sequence[Candle]],
        config: ConfigLike = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> RunResult:
        """Execute a full replay.

        Args:
            market: Market code being simulated.
            unit: Bar size in minutes.
            candles: Ascending candles for *market*.
            config: Overrides merged on top of the engine's config.
            should_stop: Checked after each completed step; returning
                ``True`` ends the run early with ``aborted`` set.

        Raises:
            CandleDataError: If *candles* is empty, unordered, or belongs
                to another market.
        """
        series = self._as_series(market, unit, candles)
        cfg = resolve_strategy_config(config, base=self._config)

        if not self._shared_ledger:
            self._ledger = PortfolioLedger(cfg.initial_balance, fee_rate=cfg.fee_rate)
        ledger = self._ledger
        ledger.reset()

        warmup = cfg.warmup_period
        window_size = max(cfg.candle_count, warmup)
        logger.info(
            "Backtest %s (%dm): %d candles, warm-up %d, window %d",
            market, unit, len(series), warmup, window_size,
        )

        tracker = DrawdownTracker(ledger.total_asset_value())
        equity_curve = [ledger.total_asset_value()]
        buy_signals = sell_signals = hold_signals = 0
        simulated = 0
        aborted = False

        for i, candle in enumerate(series):
            ledger.update_market_price(market, candle.close)

            # 1 — Warm-up: every evaluated window must be fully populated
            if i < warmup - 1:
                continue
            simulated += 1

            # 2 — Decide on the window ending at this bar
            window = series.window(i, window_size)
            closes = [c.close for c in window]
            volumes = [c.volume for c in window]
            position = ledger.get_position(market)
            decision = decide(closes, volumes, position, cfg, market=market)

            # 3 — Size and apply
            trade: Optional[Trade] = None
            if isinstance(decision, BuyDecision):
                volume = size_buy(decision, candle.close, ledger.cash, position, cfg)
                if volume is None:
                    logger.debug(
                        "[%s] %s buy skipped: below minimum order (cash %.2f)",
                        candle.time, decision.kind, ledger.cash,
                    )
                else:
                    trade = ledger.apply_order(
                        Order(
                            market=market,
                            side="buy",
                            volume=volume,
                            pyramiding=decision.kind == "pyramiding",
                        ),
                        candle.timestamp,
                        market_price=candle.close,
                        time=candle.time,
                    )
            elif isinstance(decision, SellDecision):
                volume = size_sell(decision, candle.close, position, cfg)
                if volume is None:
                    logger.debug(
                        "[%s] %s sell skipped: no position or below minimum order",
                        candle.time, decision.kind,
                    )
                else:
                    trade = ledger.apply_order(
                        Order(market=market, side="sell", volume=volume),
                        candle.timestamp,
                        market_price=candle.close,
                        time=candle.time,
                    )

            if trade is None:
                hold_signals += 1
            elif trade.side == "buy":
                buy_signals += 1
            else:
                sell_signals += 1

            # 4 — Drawdown on post-trade mark-to-market value
            value = ledger.total_asset_value()
            tracker.update(value)
            equity_curve.append(value)

            if should_stop is not None and should_stop():
                logger.info("[%s] Backtest stopped after %d steps", market, simulated)
                aborted = True
                break

        result = self._build_result(
            market, unit, series, cfg, ledger, tracker, equity_curve,
            buy_signals, sell_signals, hold_signals, simulated, aborted,
        )
        logger.info(
            "Backtest %s done: %d trades, return %.2f%%, MDD %.2f%%, win rate %.1f%%",
            market, len(result.trades), result.total_return * 100,
            result.max_drawdown * 100, result.win_rate * 100,
        )
        return result

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _as_series(
        market: str,
        unit: int,
        candles: Union[CandleSeries, Sequence[Candle]],
    ) -> CandleSeries:
        if isinstance(candles, CandleSeries):
            if candles.market != market:
                logger.error(
                    "Series for %s passed to a %s backtest", candles.market, market,
                )
                raise CandleDataError(
                    f"Series market {candles.market} does not match {market}"
                )
            series = candles
        else:
            try:
                series = CandleSeries(market, unit, candles)
            except CandleDataError as exc:
                logger.error("Malformed candles for %s: %s", market, exc)
                raise
        if len(series) == 0:
            logger.error("No candles to replay for %s", market)
            raise CandleDataError(f"No candles to replay for {market}")
        return series

    @staticmethod
    def _build_result(
        market: str,
        unit: int,
        series: CandleSeries,
        cfg: StrategyConfig,
        ledger: PortfolioLedger,
        tracker: DrawdownTracker,
        equity_curve: list[float],
        buy_signals: int,
        sell_signals: int,
        hold_signals: int,
        simulated: int,
        aborted: bool,
    ) -> RunResult:
        trades = tuple(ledger.trades)
        initial = ledger.initial_balance
        final = ledger.total_asset_value()
        stats = calculate_stats(trades)

        return RunResult(
            market=market,
            unit=unit,
            initial_balance=initial,
            final_balance=final,
            total_profit=final - initial,
            total_return=total_return(initial, final),
            trades=trades,
            win_count=stats["winning_trades"],
            loss_count=stats["losing_trades"],
            win_rate=stats["win_rate"],
            max_drawdown=tracker.max_drawdown,
            buy_signals=buy_signals,
            sell_signals=sell_signals,
            hold_signals=hold_signals,
            total_candles=len(series),
            simulated_candles=simulated,
            equity_curve=tuple(equity_curve),
            aborted=aborted,
            config=cfg,
        )


def run(
    market: str,
    unit: int,
    candles: Union[CandleSeries, Sequence[Candle]],
    config: ConfigLike = None,
) -> RunResult:
    """Replay *candles* on a fresh ledger with *config*."""
    return BacktestEngine(config).run(market, unit, candles)
