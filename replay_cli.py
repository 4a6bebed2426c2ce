from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, Sequence

from config import ConfigError, LoopConfig, RULE_SET_NAMES, load_loop_config
from replay import load_samples, replay_frame, summarise_actions


def _print_summary(config: LoopConfig, source: Path, ticks: int) -> None:
    print("Starting replay:")
    print(f"  input: {source}")
    print(f"  ticks: {ticks}")
    print(f"  history_length: {config.history_length}")
    print(f"  ready_after: {config.ready_after}")
    print(f"  spread_factor: {config.spread_factor}")
    print(f"  celebrate_at: {config.celebrate_at}")
    print(f"  collateral target/floor: {config.target_collateral_pct}/{config.min_collateral_pct}")
    print(f"  rule_set: {config.rule_set}")


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "history_length": args.history_length,
        "spread_factor": args.spread_factor,
        "celebrate_at": args.celebrate_at,
        "target_collateral_pct": args.target_collateral_pct,
        "min_collateral_pct": args.min_collateral_pct,
        "min_history": args.min_history,
        "rule_set": args.rule_set,
        "order_size_multiplier": args.order_size_multiplier,
    }


def main(cli_args: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Replay recorded PnL samples through the band decision loop."
    )
    parser.add_argument("samples", help="CSV with tick, market, pnl_pct columns")
    parser.add_argument("--output", help="Write every decision to this CSV path")
    parser.add_argument("--history-length", type=int)
    parser.add_argument("--spread-factor", type=float)
    parser.add_argument("--celebrate-at", type=float)
    parser.add_argument("--target-collateral-pct", type=float)
    parser.add_argument("--min-collateral-pct", type=float)
    parser.add_argument("--min-history", type=int, help="Samples needed before advice is followed")
    parser.add_argument("--rule-set", choices=list(RULE_SET_NAMES))
    parser.add_argument("--order-size-multiplier", type=float)

    args = parser.parse_args(cli_args)

    try:
        config = load_loop_config(_overrides(args))
    except ConfigError as exc:
        parser.error(str(exc))

    source = Path(args.samples)
    try:
        samples = load_samples(source)
    except (OSError, ValueError) as exc:
        print(f"Replay failed: {exc}")
        return 1

    _print_summary(config, source, samples["tick"].nunique())
    decisions = replay_frame(samples, config)
    summary = summarise_actions(decisions)
    if summary.empty:
        print("No advice produced (windows never reached two samples).")
    else:
        print(summary.to_string(index=False))

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        decisions.to_csv(output, index=False)
        print(f"Decisions written to {output}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
