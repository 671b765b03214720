"""Portfolio ledger — cash, positions, fees, and the trade log.

The ledger is the only place balances change.  ``apply_order`` either
fills an order completely and appends one ``Trade``, or rejects it and
returns ``None``; there are no partial fills.

Live callers that share a ledger should wrap "read balance → size order
→ apply" in ``with ledger.transaction():`` so the balance snapshot used
for sizing cannot change underneath them.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Literal, Optional

from tickscore.strategy.models import Position

logger = logging.getLogger("tickscore.ledger")

# Volumes at or below this are floating-point residue, not a position.
VOLUME_EPSILON = 1e-8


@dataclass(frozen=True)
class Order:
    """A simulated order submitted to the ledger."""

    market: str
    side: Literal["buy", "sell"]
    volume: float
    price: Optional[float] = None  # None → fill at the bar's close
    order_type: Literal["limit", "market"] = "market"
    pyramiding: bool = False


@dataclass(frozen=True)
class Trade:
    """One executed fill.  ``profit`` is set on sells only."""

    id: str
    market: str
    side: Literal["buy", "sell"]
    order_type: str
    price: float
    volume: float
    amount: float
    fee: float
    timestamp: int
    profit: Optional[float] = None


class PortfolioLedger:
    """Simulated account: one quote-currency balance plus long positions.

    Args:
        initial_balance: Starting cash.
        fee_rate: Fee charged on every fill as a fraction of its amount.
        quote_currency: Label for the cash balance.
    """

    def __init__(
        self,
        initial_balance: float,
        fee_rate: float = 0.0005,
        quote_currency: str = "KRW",
    ) -> None:
        if initial_balance < 0:
            raise ValueError(
                f"initial_balance must be non-negative, got {initial_balance}"
            )
        if fee_rate < 0:
            raise ValueError(f"fee_rate must be non-negative, got {fee_rate}")
        self._initial_balance = initial_balance
        self._fee_rate = fee_rate
        self._quote_currency = quote_currency
        self._lock = threading.RLock()
        self._cash = initial_balance
        self._positions: dict[str, Position] = {}
        self._trades: list[Trade] = []
        self._market_prices: dict[str, float] = {}

    # ── Lifecycle ────────────────────────────────────────────────────────

    def reset(self) -> None:
        """Restore the initial balance and drop every position and trade."""
        with self._lock:
            self._cash = self._initial_balance
            self._positions.clear()
            self._trades.clear()
            self._market_prices.clear()
        logger.debug(
            "Ledger reset: balance %.2f %s", self._initial_balance, self._quote_currency,
        )

    @classmethod
    def from_snapshot(
        cls,
        cash: float,
        positions: list[Position],
        fee_rate: float = 0.0005,
        quote_currency: str = "KRW",
    ) -> "PortfolioLedger":
        """Bootstrap a ledger from a live account's balance and holdings."""
        ledger = cls(cash, fee_rate=fee_rate, quote_currency=quote_currency)
        for pos in positions:
            if pos.volume > VOLUME_EPSILON:
                ledger._positions[pos.market] = pos
        return ledger

    @contextmanager
    def transaction(self) -> Iterator["PortfolioLedger"]:
        """Hold the ledger lock across several reads and one ``apply_order``."""
        with self._lock:
            yield self

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def initial_balance(self) -> float:
        return self._initial_balance

    @property
    def cash(self) -> float:
        return self._cash

    @property
    def fee_rate(self) -> float:
        return self._fee_rate

    @property
    def trades(self) -> list[Trade]:
        """Copy of the append-only trade log."""
        with self._lock:
            return list(self._trades)

    @property
    def positions(self) -> dict[str, Position]:
        with self._lock:
            return dict(self._positions)

    def get_position(self, market: str) -> Optional[Position]:
        with self._lock:
            return self._positions.get(market)

    def last_price(self, market: str) -> Optional[float]:
        return self._market_prices.get(market)

    def update_market_price(self, market: str, price: float) -> None:
        """Record the latest observed price for mark-to-market valuation."""
        with self._lock:
            self._market_prices[market] = price

    def total_asset_value(self) -> float:
        """Cash plus every position marked at its last seen price.

        Positions with no observed price are valued at their entry price.
        """
        with self._lock:
            total = self._cash
            for pos in self._positions.values():
                price = self._market_prices.get(pos.market, pos.entry_price)
                total += pos.volume * price
            return total

    # ── Mutation ─────────────────────────────────────────────────────────

    def apply_order(
        self,
        order: Order,
        timestamp: int,
        market_price: Optional[float] = None,
        time: Optional[str] = None,
    ) -> Optional[Trade]:
        """Fill *order* or reject it.

        Market orders fill at *market_price* (falling back to the last
        seen price); limit orders fill at ``order.price``.

        Returns the new ``Trade``, or ``None`` when the order is invalid,
        cash is insufficient (buy), or held volume is insufficient (sell).
        """
        with self._lock:
            if order.order_type == "limit" and order.price is not None:
                price = order.price
            else:
                price = market_price if market_price is not None else self._market_prices.get(order.market)

            if price is None or price <= 0 or order.volume <= 0:
                logger.debug(
                    "[%s] Rejected %s: invalid price %s or volume %s",
                    order.market, order.side, price, order.volume,
                )
                return None

            amount = price * order.volume
            fee = amount * self._fee_rate
            profit: Optional[float] = None

            if order.side == "buy":
                if self._cash < amount + fee:
                    logger.debug(
                        "[%s] Rejected buy: need %.2f, have %.2f",
                        order.market, amount + fee, self._cash,
                    )
                    return None
                self._cash -= amount + fee
                current = self._positions.get(order.market)
                if current is None:
                    self._positions[order.market] = Position(
                        market=order.market,
                        volume=order.volume,
                        entry_price=price,
                        updated_at=time,
                        pyramiding_count=0,
                    )
                else:
                    new_volume = current.volume + order.volume
                    avg = (current.entry_price * current.volume + amount) / new_volume
                    self._positions[order.market] = dataclasses.replace(
                        current,
                        volume=new_volume,
                        entry_price=avg,
                        updated_at=time,
                        pyramiding_count=current.pyramiding_count + (1 if order.pyramiding else 0),
                    )
            elif order.side == "sell":
                current = self._positions.get(order.market)
                held = current.volume if current is not None else 0.0
                if current is None or held < order.volume:
                    logger.debug(
                        "[%s] Rejected sell: need %.8f, hold %.8f",
                        order.market, order.volume, held,
                    )
                    return None
                profit = (price - current.entry_price) * order.volume - fee
                self._cash += amount - fee
                remaining = held - order.volume
                if remaining <= VOLUME_EPSILON:
                    del self._positions[order.market]
                else:
                    self._positions[order.market] = dataclasses.replace(
                        current, volume=remaining, updated_at=time,
                    )
            else:
                raise ValueError(f"side must be 'buy' or 'sell', got '{order.side}'")

            trade = Trade(
                id=f"{order.market}-{len(self._trades) + 1:06d}",
                market=order.market,
                side=order.side,
                order_type=order.order_type,
                price=price,
                volume=order.volume,
                amount=amount,
                fee=fee,
                timestamp=timestamp,
                profit=profit,
            )
            self._trades.append(trade)
            logger.debug(
                "[%s] %s %.8f @ %.2f fee %.4f cash %.2f",
                order.market, order.side.upper(), order.volume, price, fee, self._cash,
            )
            return trade
