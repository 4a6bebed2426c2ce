"""
Entry point for the PnL band agent.

Usage (all positional values are optional and override the environment)::

    python agent.py [history_length] [celebrate_at] [interval_seconds]
                    [target_collateral_pct] [min_collateral_pct] [spread_factor]

The agent polls the account through the indexer every ``interval_seconds``
and runs the decision loop.  Instructions go to a dry-run order sink that
prices them against the oracle and logs them; wiring a signing order layer
is done by passing another :class:`order_sizing.OrderSink`.
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from typing import Any, Dict, Optional, Sequence

from config import (
    ConfigError,
    RULE_SET_NAMES,
    PNL_BASIS_NAMES,
    initial_portfolio_path,
    load_indexer_settings,
    load_loop_config,
)
from decision_loop import DecisionLoop
from indexer_client import IndexerAccountSource
from log_utils import setup_logger
from order_sizing import DryRunOrderSink, OrderSink
from portfolio import load_portfolio, step_sizes

logger = setup_logger(__name__)


def handle_exception(exc_type, exc_value, exc_traceback):
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    logger.error("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the PnL band decision loop.")
    parser.add_argument("history_length", nargs="?", type=int)
    parser.add_argument("celebrate_at", nargs="?", type=float)
    parser.add_argument("interval_seconds", nargs="?", type=int)
    parser.add_argument("target_collateral_pct", nargs="?", type=float)
    parser.add_argument("min_collateral_pct", nargs="?", type=float)
    parser.add_argument("spread_factor", nargs="?", type=float)
    parser.add_argument("--min-history", type=int, help="Samples needed before advice is followed")
    parser.add_argument("--rule-set", choices=list(RULE_SET_NAMES))
    parser.add_argument("--pnl-basis", choices=list(PNL_BASIS_NAMES))
    parser.add_argument("--ensure-open", action="store_true", default=None)
    parser.add_argument("--max-ticks", type=int, help="Stop after this many ticks")
    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "history_length": args.history_length,
        "celebrate_at": args.celebrate_at,
        "interval_seconds": args.interval_seconds,
        "target_collateral_pct": args.target_collateral_pct,
        "min_collateral_pct": args.min_collateral_pct,
        "spread_factor": args.spread_factor,
        "min_history": args.min_history,
        "rule_set": args.rule_set,
        "pnl_basis": args.pnl_basis,
        "ensure_open": args.ensure_open,
    }


def build_loop(config, *, order_sink: Optional[OrderSink] = None) -> DecisionLoop:
    """Wire the indexer source, portfolio and order sink into a loop."""

    portfolio = load_portfolio(initial_portfolio_path() or None)
    source = IndexerAccountSource(
        load_indexer_settings(),
        pnl_basis=config.pnl_basis,
        step_sizes=step_sizes(portfolio),
    )
    sink = order_sink or DryRunOrderSink(source.oracle_price, slippage=config.slippage)
    return DecisionLoop(
        config,
        source,
        sink,
        step_size_resolver=source.min_step_size,
        portfolio=portfolio,
    )


def main(argv: Sequence[str] | None = None) -> int:
    sys.excepthook = handle_exception
    args = build_parser().parse_args(argv)
    try:
        config = load_loop_config(_overrides(args))
        loop = build_loop(config)
    except (ConfigError, ValueError, OSError) as exc:
        logger.error("Refusing to start: %s", exc)
        return 2

    stop = threading.Event()

    def _request_stop(signum, _frame) -> None:
        logger.info("Received signal %s; stopping after the current tick", signum)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _request_stop)
        except ValueError:
            # Not in the main thread.
            pass

    logger.info("Starting PnL band agent loop (every %ss)...", config.interval_seconds)
    loop.run_forever(stop, max_ticks=args.max_ticks)
    logger.info("Agent stopped after %d rounds", loop.round_number)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
