"""Backtest run repository — persists replay summaries to SQLite."""

import json
from typing import Optional

from tickscore.backtest.engine import RunResult
from tickscore.backtest.stats import calculate_stats
from tickscore.repos.db import get_connection


class BacktestRepo:
    """Data access layer for the ``backtest_runs`` table.

    Stores one summary row per run; individual trades are not persisted.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_run(self, result: RunResult) -> int:
        """Persist a replay summary.  Returns the row id."""
        stats = calculate_stats(result.trades)
        start_time: Optional[str] = None
        end_time: Optional[str] = None
        if result.trades:
            start_time = str(result.trades[0].timestamp)
            end_time = str(result.trades[-1].timestamp)

        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO backtest_runs
                    (market, unit, start_time, end_time, initial_balance,
                     final_balance, total_return, total_trades, win_count,
                     loss_count, win_rate, max_drawdown, profit_factor,
                     sharpe_ratio, total_fees, simulated_candles, aborted,
                     config_json)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.market,
                    result.unit,
                    start_time,
                    end_time,
                    result.initial_balance,
                    result.final_balance,
                    result.total_return,
                    len(result.trades),
                    result.win_count,
                    result.loss_count,
                    result.win_rate,
                    result.max_drawdown,
                    stats.get("profit_factor"),
                    stats["sharpe_ratio"],
                    stats["total_fees"],
                    result.simulated_candles,
                    int(result.aborted),
                    json.dumps(result.config.to_dict(), sort_keys=True),
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def get_runs(self, limit: int = 10) -> list[dict]:
        """Return recent run summaries, newest first."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM backtest_runs ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
            runs = []
            for r in rows:
                run = dict(r)
                if run.get("config_json"):
                    run["config"] = json.loads(run.pop("config_json"))
                run["aborted"] = bool(run["aborted"])
                runs.append(run)
            return runs
        finally:
            conn.close()
