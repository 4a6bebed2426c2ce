"""Offline replay of recorded PnL samples through the decision loop.

The input is a table with one row per (tick, market):

``tick``, ``market``, ``pnl_pct`` (required) and optionally
``position_size``, ``min_step_size``, ``side`` and ``free_collateral_pct``.
Missing optional columns fall back to :data:`DEFAULT_COLUMNS`.  Each tick is
fed to a real :class:`~decision_loop.DecisionLoop` with a dry-run order sink,
so the output shows exactly what the live loop would have advised.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Optional, Union

import numpy as np
import pandas as pd

from config import LoopConfig
from decision_loop import DecisionLoop, TickReport
from log_utils import setup_logger
from order_sizing import DryRunOrderSink
from positions import AccountSnapshot, PositionSide, PositionSnapshot

logger = setup_logger(__name__)

REQUIRED_COLUMNS = ("tick", "market", "pnl_pct")
DEFAULT_COLUMNS = {
    "position_size": 2.0,
    "min_step_size": 1.0,
    "side": "LONG",
    "free_collateral_pct": 50.0,
}
RESULT_COLUMNS = [
    "tick",
    "round",
    "market",
    "pnl_pct",
    "samples",
    "centerline",
    "lower",
    "upper",
    "action",
    "rule",
    "ready",
    "acted",
    "order_side",
    "order_size",
    "error",
]


def prepare_samples(frame: pd.DataFrame) -> pd.DataFrame:
    """Validate ``frame`` and fill optional columns with their defaults."""

    missing = [col for col in REQUIRED_COLUMNS if col not in frame.columns]
    if missing:
        raise ValueError(f"replay input is missing columns: {', '.join(missing)}")
    df = frame.copy()
    for column, default in DEFAULT_COLUMNS.items():
        if column not in df.columns:
            df[column] = default
        else:
            df[column] = df[column].fillna(default)
    numeric_cols = ["pnl_pct", "position_size", "min_step_size", "free_collateral_pct"]
    df[numeric_cols] = df[numeric_cols].apply(pd.to_numeric, errors="coerce")
    df["market"] = df["market"].astype(str).str.strip()
    df = df.sort_values("tick", kind="stable").reset_index(drop=True)
    return df


def load_samples(path: Union[str, Path]) -> pd.DataFrame:
    return prepare_samples(pd.read_csv(path))


class FrameAccountSource:
    """Serve one :class:`AccountSnapshot` per tick of a prepared frame."""

    def __init__(self, frame: pd.DataFrame) -> None:
        self._groups = [(tick, group) for tick, group in frame.groupby("tick", sort=True)]
        self._cursor = 0
        self.current_tick = None

    def __len__(self) -> int:
        return len(self._groups)

    def fetch_snapshot(self) -> AccountSnapshot:
        if self._cursor >= len(self._groups):
            raise RuntimeError("replay exhausted")
        tick, group = self._groups[self._cursor]
        self._cursor += 1
        self.current_tick = tick
        positions = tuple(
            PositionSnapshot(
                market=row.market,
                pnl_pct=float(row.pnl_pct),
                size=float(row.position_size),
                side=PositionSide.parse(row.side),
                min_step_size=float(row.min_step_size),
            )
            for row in group.itertuples(index=False)
        )
        return AccountSnapshot(
            free_collateral_pct=float(group["free_collateral_pct"].iloc[-1]),
            positions=positions,
        )


def _report_rows(tick, report: TickReport) -> Iterator[dict]:
    for decision in report.decisions:
        band = decision.band
        instruction = decision.instruction
        yield {
            "tick": tick,
            "round": report.round_number,
            "market": decision.market,
            "pnl_pct": decision.sample,
            "samples": decision.samples_seen,
            "centerline": band.centerline if band else np.nan,
            "lower": band.lower if band else np.nan,
            "upper": band.upper if band else np.nan,
            "action": decision.action.value if decision.action else None,
            "rule": decision.outcome.rule if decision.outcome else None,
            "ready": decision.ready,
            "acted": decision.acted,
            "order_side": instruction.side.value if instruction else None,
            "order_size": instruction.size if instruction else np.nan,
            "error": decision.error,
        }


def replay_frame(
    frame: pd.DataFrame,
    config: LoopConfig,
    *,
    sink: Optional[DryRunOrderSink] = None,
) -> pd.DataFrame:
    """Replay ``frame`` tick by tick and return one row per market decision."""

    prepared = prepare_samples(frame)
    source = FrameAccountSource(prepared)
    loop = DecisionLoop(config, source, sink or DryRunOrderSink())
    rows: List[dict] = []
    for _ in range(len(source)):
        report = loop.run_tick()
        if report is None:
            continue
        rows.extend(_report_rows(source.current_tick, report))
    logger.info("Replayed %d ticks, %d decisions", len(source), len(rows))
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def summarise_actions(decisions: pd.DataFrame) -> pd.DataFrame:
    """Count actions per market (acted decisions only in ``acted``)."""

    if decisions.empty:
        return pd.DataFrame(columns=["market", "action", "count", "acted"])
    valid = decisions.dropna(subset=["action"])
    summary = (
        valid.groupby(["market", "action"])
        .agg(count=("action", "size"), acted=("acted", "sum"))
        .reset_index()
    )
    summary["acted"] = summary["acted"].astype(int)
    return summary


__all__ = [
    "FrameAccountSource",
    "load_samples",
    "prepare_samples",
    "replay_frame",
    "summarise_actions",
]
