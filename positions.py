"""Plain-data snapshots handed to the decision loop every tick."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol, Tuple


class PositionSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @classmethod
    def parse(cls, value: Any) -> "PositionSide":
        text = str(value or "").strip().upper()
        if text in {"LONG", "BUY"}:
            return cls.LONG
        if text in {"SHORT", "SELL"}:
            return cls.SHORT
        raise ValueError(f"Unknown position side: {value!r}")


class PnlBasis(str, Enum):
    """Denominator used to express unrealised PnL as a percentage.

    ``NOTIONAL`` divides by ``|size| * entry_price`` (return on the capital
    committed to the position), ``SIZE`` divides by ``|size|`` only, and
    ``EQUITY`` divides by account equity.
    """

    NOTIONAL = "notional"
    SIZE = "size"
    EQUITY = "equity"


def normalise_pnl_percent(
    unrealized_pnl: float,
    size: float,
    entry_price: float | None = None,
    *,
    basis: PnlBasis | str = PnlBasis.NOTIONAL,
    equity: float | None = None,
) -> float:
    """Express ``unrealized_pnl`` as a percentage of the configured basis.

    A zero (or missing) denominator yields ``nan``; the classifier treats
    non-finite samples as "relax".
    """

    basis = PnlBasis(basis)
    pnl = float(unrealized_pnl)
    if basis is PnlBasis.NOTIONAL:
        denominator = abs(float(size)) * float(entry_price if entry_price is not None else math.nan)
    elif basis is PnlBasis.SIZE:
        denominator = abs(float(size))
    else:
        denominator = float(equity if equity is not None else math.nan)
    if denominator == 0 or math.isnan(denominator):
        return math.nan
    return (pnl * 100.0) / denominator


def free_collateral_percent(free_collateral: float, equity: float) -> float:
    """Return free collateral as a share of equity, rounded to 2 decimals."""

    equity_value = float(equity)
    if equity_value <= 0:
        raise ValueError(f"equity must be positive, got {equity_value}")
    return round(float(free_collateral) * 100.0 / equity_value, 2)


@dataclass(frozen=True)
class PositionSnapshot:
    """One open position as seen at the start of a tick."""

    market: str
    pnl_pct: float
    size: float
    side: PositionSide
    # ``None`` lets the loop resolve the step through its resolver.
    min_step_size: Optional[float] = None

    @property
    def size_abs(self) -> float:
        return abs(self.size)


@dataclass(frozen=True)
class AccountSnapshot:
    free_collateral_pct: float
    positions: Tuple[PositionSnapshot, ...] = field(default_factory=tuple)
    equity: Optional[float] = None

    @property
    def open_markets(self) -> Tuple[str, ...]:
        return tuple(position.market for position in self.positions)


class AccountSource(Protocol):
    """Anything able to produce the account snapshot for a tick."""

    def fetch_snapshot(self) -> AccountSnapshot:
        ...


__all__ = [
    "AccountSnapshot",
    "AccountSource",
    "PnlBasis",
    "PositionSide",
    "PositionSnapshot",
    "free_collateral_percent",
    "normalise_pnl_percent",
]
