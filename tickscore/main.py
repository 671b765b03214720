"""TickScore — application entry point.

Boots the FastAPI reporting server and provides the CLI entry point for
serve, backtest, and generate modes.
"""

import logging

from fastapi import FastAPI

from tickscore.api.routers import router

app = FastAPI(title="TickScore Reporting API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("tickscore")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli(argv=None) -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from tickscore.config import load_config
    from tickscore.repos.db import init_db
    from tickscore.strategy.config import load_strategy_config

    parser = argparse.ArgumentParser(description="TickScore strategy replay")
    parser.add_argument(
        "--mode",
        choices=["serve", "backtest", "generate"],
        default="backtest",
        help="Run mode (default: backtest)",
    )
    parser.add_argument("--csv", help="Candle CSV to replay")
    parser.add_argument("--market", default="KRW-BTC", help="Market code")
    parser.add_argument("--unit", type=int, default=1, help="Bar size in minutes")
    parser.add_argument("--strategy", help="JSON file with strategy overrides")
    parser.add_argument(
        "--synthetic",
        type=int,
        metavar="COUNT",
        help="Replay COUNT synthetic candles instead of a CSV",
    )
    parser.add_argument("--seed", type=int, default=42, help="Synthetic data seed")
    parser.add_argument("--out", help="Output CSV path (generate mode)")
    args = parser.parse_args(argv)

    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    strategy = load_strategy_config(args.strategy or config.strategy_config_path)

    if args.mode == "generate":
        _run_generate(args, config)
        return

    init_db(config.db_path)

    if args.mode == "serve":
        _run_server(config, strategy)
        return

    _run_backtest(args, config, strategy)


def _run_server(config, strategy) -> None:
    """Serve the reporting API with uvicorn."""
    import pathlib

    import uvicorn

    from tickscore.api.routers import configure_routers
    from tickscore.repos.backtest_repo import BacktestRepo

    configure_routers(
        backtest_repo=BacktestRepo(config.db_path),
        strategy_config=strategy,
        data_dir=pathlib.Path(config.data_dir),
    )
    logger.info("TickScore API listening on port %d", config.api_port)
    uvicorn.run(app, host="0.0.0.0", port=config.api_port, log_level=config.log_level.lower())


def _run_generate(args, config) -> None:
    """Write a synthetic candle CSV."""
    import pathlib

    from tickscore.data.candles import save_candles_csv
    from tickscore.data.synthetic import generate_candles

    count = args.synthetic or 500
    out = pathlib.Path(
        args.out or pathlib.Path(config.data_dir) / f"{args.market}_{args.unit}min_candles.csv"
    )
    series = generate_candles(args.market, args.unit, count=count, seed=args.seed)
    save_candles_csv(series, out)


def _run_backtest(args, config, strategy) -> None:
    """Replay a CSV or synthetic series and persist the run summary."""
    from tickscore.backtest.engine import BacktestEngine
    from tickscore.backtest.stats import calculate_stats
    from tickscore.data.candles import load_candles_csv
    from tickscore.data.synthetic import generate_candles
    from tickscore.repos.backtest_repo import BacktestRepo

    if args.csv:
        candles = load_candles_csv(args.csv, market=args.market, unit=args.unit)
    else:
        candles = generate_candles(
            args.market, args.unit, count=args.synthetic or 500, seed=args.seed,
        )

    result = BacktestEngine(strategy).run(args.market, args.unit, candles)
    stats = calculate_stats(result.trades)
    run_id = BacktestRepo(config.db_path).insert_run(result)
    logger.info(
        "Backtest #%d complete: %d trades, final balance %.2f (%.2f%%), "
        "MDD %.2f%%, win rate %.1f%%, fees %.2f",
        run_id,
        stats["total_trades"],
        result.final_balance,
        result.total_return * 100,
        result.max_drawdown * 100,
        result.win_rate * 100,
        stats["total_fees"],
    )


if __name__ == "__main__":
    _run_cli()
