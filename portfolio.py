"""Initial portfolio: which markets should always hold a position.

Each allocation names a market and its opening amount.  The sign of the
amount gives the direction (positive = long) and its magnitude doubles as
the market's minimum step: every INCREASE/DECREASE moves the position by
that amount and CELEBRATE trims back to it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from order_sizing import OrderInstruction, OrderSide


@dataclass(frozen=True)
class InitialAllocation:
    market: str
    initial_amount: float

    @property
    def step_size(self) -> float:
        return abs(self.initial_amount)

    @property
    def opening_side(self) -> OrderSide:
        return OrderSide.BUY if self.initial_amount > 0 else OrderSide.SELL


def _allocations(rows: Iterable[Tuple[str, float]]) -> Tuple[InitialAllocation, ...]:
    return tuple(InitialAllocation(market, amount) for market, amount in rows)


DEFAULT_PORTFOLIO: Tuple[InitialAllocation, ...] = _allocations(
    (
        ("ETH-USD", 0.001),
        ("BTC-USD", -0.0001),
        ("ETC-USD", 0.1),
        ("XLM-USD", -10),
        ("PEPE-USD", -10000000),
        ("APT-USD", -1),
        ("TRX-USD", 100),
        ("DOGE-USD", -100),
        ("NEAR-USD", 1),
        ("LTC-USD", 0.1),
        ("SUI-USD", 10),
        ("DOT-USD", 1),
        ("BNB-USD", -0.01),
        ("XRP-USD", -10),
        ("BCH-USD", 0.01),
        ("AVAX-USD", -0.1),
        ("SHIB-USD", 1000000),
        ("TON-USD", 1),
        ("ARB-USD", -1),
        ("OP-USD", 1),
        ("UNI-USD", 1),
        ("LINK-USD", 1),
        ("SOL-USD", 0.1),
        ("ADA-USD", 10),
        ("FIL-USD", 1),
    )
)


def parse_portfolio(payload: Any) -> Tuple[InitialAllocation, ...]:
    """Parse a list of ``{"market": ..., "initialAmount": ...}`` entries."""

    if not isinstance(payload, list):
        raise ValueError("portfolio must be a list of allocations")
    allocations: List[InitialAllocation] = []
    seen = set()
    for entry in payload:
        if not isinstance(entry, dict):
            raise ValueError(f"invalid allocation entry: {entry!r}")
        market = str(entry.get("market") or "").strip()
        raw_amount = entry.get("initialAmount", entry.get("initial_amount"))
        if not market:
            raise ValueError(f"allocation without market: {entry!r}")
        try:
            amount = float(raw_amount)
        except (TypeError, ValueError):
            raise ValueError(f"allocation {market} has invalid amount {raw_amount!r}") from None
        if amount == 0:
            raise ValueError(f"allocation {market} has a zero amount")
        if market in seen:
            raise ValueError(f"duplicate allocation for {market}")
        seen.add(market)
        allocations.append(InitialAllocation(market, amount))
    return tuple(allocations)


def load_portfolio(path: Optional[str] = None) -> Tuple[InitialAllocation, ...]:
    """Load allocations from ``path`` or fall back to :data:`DEFAULT_PORTFOLIO`."""

    if not path:
        return DEFAULT_PORTFOLIO
    with Path(path).open("r", encoding="utf-8") as handle:
        return parse_portfolio(json.load(handle))


def step_sizes(portfolio: Sequence[InitialAllocation]) -> Dict[str, float]:
    return {allocation.market: allocation.step_size for allocation in portfolio}


def opening_instructions(
    portfolio: Sequence[InitialAllocation],
    open_markets: Iterable[str],
    *,
    round_number: int,
) -> List[OrderInstruction]:
    """Return instructions opening every allocation without a live position."""

    live = set(open_markets)
    return [
        OrderInstruction(
            market=allocation.market,
            side=allocation.opening_side,
            size=allocation.step_size,
            client_id=f"{round_number}-{allocation.market}-ensureAllOpen",
        )
        for allocation in portfolio
        if allocation.market not in live
    ]


__all__ = [
    "DEFAULT_PORTFOLIO",
    "InitialAllocation",
    "load_portfolio",
    "opening_instructions",
    "parse_portfolio",
    "step_sizes",
]
