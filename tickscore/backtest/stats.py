"""Backtest statistics — pure functions for trade-log analysis."""

import math
from typing import Optional, Sequence

from tickscore.backtest.ledger import Trade


def calculate_stats(trades: Sequence[Trade]) -> dict:
    """Compute summary statistics from a ledger trade log.

    Only sells carry realised profit; buys contribute their fees to
    ``total_fees`` and nothing else.  Break-even sells count as neither
    wins nor losses.

    Returns:
        Dict with ``total_trades``, ``sell_trades``, ``winning_trades``,
        ``losing_trades``, ``win_rate``, ``profit_factor``,
        ``sharpe_ratio``, ``net_pnl``, ``total_fees``.
    """
    total_fees = sum(t.fee for t in trades)
    pnls = [t.profit for t in trades if t.side == "sell" and t.profit is not None]

    if not pnls:
        return {
            "total_trades": len(trades),
            "sell_trades": 0,
            "winning_trades": 0,
            "losing_trades": 0,
            "win_rate": 0.0,
            "profit_factor": None,
            "sharpe_ratio": 0.0,
            "net_pnl": 0.0,
            "total_fees": round(total_fees, 4),
        }

    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p < 0]

    winning = len(winners)
    losing = len(losers)
    decided = winning + losing
    win_rate = winning / decided if decided else 0.0

    gross_profit = sum(winners)
    gross_loss = abs(sum(losers))
    profit_factor: Optional[float] = (
        gross_profit / gross_loss if gross_loss > 0 else None
    )

    return {
        "total_trades": len(trades),
        "sell_trades": len(pnls),
        "winning_trades": winning,
        "losing_trades": losing,
        "win_rate": round(win_rate, 4),
        "profit_factor": round(profit_factor, 4) if profit_factor is not None else None,
        "sharpe_ratio": round(_sharpe(pnls), 4),
        "net_pnl": round(sum(pnls), 2),
        "total_fees": round(total_fees, 4),
    }


def total_return(initial_balance: float, final_balance: float) -> float:
    """Fractional return; 0.0 when there was no starting balance."""
    if initial_balance <= 0:
        return 0.0
    return (final_balance - initial_balance) / initial_balance


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(pnls: list[float]) -> float:
    """Per-trade Sharpe ratio, annualised assuming ~252 periods.

    Uses sample standard deviation (n − 1).  Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    n = len(pnls)
    if n < 2:
        return 0.0
    mean = sum(pnls) / n
    variance = sum((p - mean) ** 2 for p in pnls) / (n - 1)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return (mean / std) * math.sqrt(252)
