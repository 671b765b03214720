"""Database initialization and connection management.

Creates the schema on first boot, provides connection factory.
"""

import pathlib
import sqlite3


_SCHEMA = """
CREATE TABLE IF NOT EXISTS backtest_runs (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    market           TEXT    NOT NULL,
    unit             INTEGER NOT NULL,
    start_time       TEXT,
    end_time         TEXT,
    initial_balance  REAL    NOT NULL,
    final_balance    REAL    NOT NULL,
    total_return     REAL    NOT NULL,
    total_trades     INTEGER NOT NULL,
    win_count        INTEGER NOT NULL,
    loss_count       INTEGER NOT NULL,
    win_rate         REAL    NOT NULL,
    max_drawdown     REAL    NOT NULL,
    profit_factor    REAL,
    sharpe_ratio     REAL,
    total_fees       REAL,
    simulated_candles INTEGER NOT NULL,
    aborted          INTEGER NOT NULL DEFAULT 0,
    config_json      TEXT,
    created_at       TEXT    NOT NULL DEFAULT (datetime('now'))
);
"""


def init_db(db_path: str) -> None:
    """Create the ``backtest_runs`` table if it does not exist yet.

    Args:
        db_path: Path to the SQLite database file.  Parent directories
            are created as needed.
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(_SCHEMA)
    finally:
        conn.close()


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with row-factory enabled.

    Callers are responsible for closing the connection.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn
