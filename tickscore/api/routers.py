"""Reporting API routers — /decide, /signals, /backtest endpoints.

No scoring logic here.  Delegates to the decision engine, the replay
simulator, and the run repository; keeps a small in-memory signal log.
"""

import logging
import pathlib
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query

from tickscore.backtest.engine import BacktestEngine
from tickscore.backtest.stats import calculate_stats
from tickscore.data.candles import load_candles_csv
from tickscore.data.synthetic import generate_candles
from tickscore.strategy.config import StrategyConfig, resolve_strategy_config
from tickscore.strategy.models import Decision, Position
from tickscore.strategy.signals import decide

logger = logging.getLogger("tickscore.api")
router = APIRouter()

SIGNAL_LOG_LIMIT = 50

# ── Shared state (set during app startup) ────────────────────────────────

_backtest_repo = None  # Set via configure_routers()
_strategy_config: Optional[StrategyConfig] = None  # Set via configure_routers()
_data_dir: Optional[pathlib.Path] = None  # Set via configure_routers()
_signal_logs: dict[str, list[dict]] = {}  # market → entries, oldest first


def configure_routers(
    backtest_repo=None,
    strategy_config: Optional[StrategyConfig] = None,
    data_dir: Optional[pathlib.Path] = None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        backtest_repo: A ``BacktestRepo`` instance (or duck-type for tests).
        strategy_config: Base strategy parameters for every request.
        data_dir: Directory that relative CSV paths resolve against.
    """
    global _backtest_repo, _strategy_config, _data_dir  # noqa: PLW0603
    _backtest_repo = backtest_repo
    _strategy_config = strategy_config
    _data_dir = pathlib.Path(data_dir) if data_dir is not None else None


def reset_signal_log() -> None:
    """Drop every recorded signal."""
    _signal_logs.clear()


def record_signal(decision: Decision, evaluated_at: Optional[str] = None) -> dict:
    """Append a decision to its market's signal log (max 50 per market)."""
    entry = {
        "market": decision.market,
        "action": decision.action,
        "score": decision.score,
        "reason": decision.reason,
        "price": getattr(decision, "price", None),
        "evaluated_at": evaluated_at or datetime.now(timezone.utc).isoformat(),
    }
    log = _signal_logs.setdefault(decision.market, [])
    log.append(entry)
    if len(log) > SIGNAL_LOG_LIMIT:
        del log[0]
    return entry


def _base_config() -> StrategyConfig:
    return _strategy_config or resolve_strategy_config(None)


def _parse_position(raw, market: str) -> Optional[Position]:
    if not raw:
        return None
    volume = float(raw.get("volume", 0.0))
    if volume <= 0:
        return None
    return Position(
        market=raw.get("market", market),
        volume=volume,
        entry_price=float(raw["entry_price"]),
        updated_at=raw.get("updated_at"),
        pyramiding_count=int(raw.get("pyramiding_count", 0)),
    )


# ── Endpoints ────────────────────────────────────────────────────────────


@router.post("/decide")
async def post_decide(body: dict):
    """Evaluate one tick and record the decision in the signal log.

    Body: ``market``, ``closes`` and ``volumes`` (most-recent-first),
    optional ``position`` and ``strategy`` overrides.
    """
    errors = []
    market = body.get("market")
    closes = body.get("closes")
    volumes = body.get("volumes")
    if not market:
        errors.append("market is required")
    if not isinstance(closes, list) or not isinstance(volumes, list):
        errors.append("closes and volumes must be lists")
    if errors:
        return {"status": "error", "errors": errors}

    try:
        position = _parse_position(body.get("position"), market)
        cfg = resolve_strategy_config(body.get("strategy"), base=_base_config())
        decision = decide(
            [float(c) for c in closes],
            [float(v) for v in volumes],
            position,
            cfg,
            market=market,
        )
    except (KeyError, TypeError, ValueError) as exc:
        return {"status": "error", "errors": [str(exc)]}

    entry = record_signal(decision)
    return {"status": "ok", "decision": decision.to_dict(), "evaluated_at": entry["evaluated_at"]}


@router.get("/signals/latest")
async def get_latest_signals():
    """Return the most recent decision per market."""
    return {
        "signals": {
            market: (log[-1] if log else None)
            for market, log in _signal_logs.items()
        }
    }


@router.get("/signals/{market}/history")
async def get_signal_history(
    market: str,
    limit: int = Query(default=SIGNAL_LOG_LIMIT, ge=1, le=SIGNAL_LOG_LIMIT),
):
    """Return a market's recent decisions, newest first."""
    recent = list(_signal_logs.get(market, [])[-limit:])
    recent.reverse()
    return {"market": market, "signals": recent}


@router.post("/backtest/run")
def post_backtest_run(body: dict):
    """Replay a CSV file or a synthetic series and return the ``RunResult``.

    Body: ``market``, ``unit``, and either ``csv_path`` (relative paths
    resolve against the data directory) or ``synthetic`` (``count``,
    ``start_price``, ``seed``), plus optional ``strategy`` overrides.
    """
    market = body.get("market")
    unit = body.get("unit")
    csv_path = body.get("csv_path")
    synthetic = body.get("synthetic")
    if not market or unit is None or (not csv_path and synthetic is None):
        return {
            "status": "error",
            "errors": ["market, unit and one of csv_path or synthetic are required"],
        }

    try:
        unit = int(unit)
        if csv_path:
            path = pathlib.Path(csv_path)
            if not path.is_absolute() and _data_dir is not None:
                path = _data_dir / path
            candles = load_candles_csv(path, market=market, unit=unit)
        else:
            candles = generate_candles(
                market=market,
                unit=unit,
                count=int(synthetic.get("count", 500)),
                start_price=float(synthetic.get("start_price", 50_000_000.0)),
                seed=int(synthetic.get("seed", 42)),
            )
        cfg = resolve_strategy_config(body.get("strategy"), base=_base_config())
        result = BacktestEngine(cfg).run(market, unit, candles)
    except FileNotFoundError as exc:
        logger.error("Backtest CSV not found: %s", exc)
        return {"status": "error", "errors": [f"CSV not found: {csv_path}"]}
    except (ValueError, TypeError, AttributeError) as exc:
        logger.error("Backtest failed for %s: %s", market, exc)
        return {"status": "error", "errors": [str(exc)]}

    run_id = None
    if _backtest_repo is not None:
        run_id = _backtest_repo.insert_run(result)

    return {
        "status": "ok",
        "run_id": run_id,
        "result": result.to_dict(),
        "stats": calculate_stats(result.trades),
    }


@router.get("/backtest/runs")
async def get_backtest_runs(
    limit: int = Query(default=10, ge=1, le=100),
):
    """Return recent persisted run summaries."""
    if _backtest_repo is None:
        return {"runs": []}
    return {"runs": _backtest_repo.get_runs(limit=limit)}
