"""Translate advice into order instructions for the execution layer.

The decision loop only decides *whether* to act; this module turns an
action into a concrete side and size.  Signing and broadcasting orders is
left to whatever implements :class:`OrderSink`.  The bundled
:class:`DryRunOrderSink` logs and keeps the instructions, which is what the
replay tool and the default agent run use.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol

from advice import Action
from log_utils import setup_logger
from observability import log_event
from positions import PositionSide, PositionSnapshot

logger = setup_logger(__name__)

GOOD_TIL_SECONDS = 3
"""Time-in-force attached to every instruction (good-til-time, seconds)."""


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class OrderInstruction:
    market: str
    side: OrderSide
    size: float
    client_id: str
    action: Optional[Action] = None
    price: Optional[float] = None
    good_til_seconds: int = GOOD_TIL_SECONDS

    def with_price(self, price: float) -> "OrderInstruction":
        return OrderInstruction(
            market=self.market,
            side=self.side,
            size=self.size,
            client_id=self.client_id,
            action=self.action,
            price=float(price),
            good_til_seconds=self.good_til_seconds,
        )


def _adding_side(side: PositionSide) -> OrderSide:
    return OrderSide.BUY if side is PositionSide.LONG else OrderSide.SELL


def _reducing_side(side: PositionSide) -> OrderSide:
    return OrderSide.SELL if side is PositionSide.LONG else OrderSide.BUY


def build_order_instruction(
    action: Action,
    position: PositionSnapshot,
    min_step_size: float,
    *,
    round_number: int,
    multiplier: float = 1.0,
) -> Optional[OrderInstruction]:
    """Return the instruction following ``action`` or ``None`` for RELAX.

    INCREASE and PREPARE add ``min_step_size * multiplier`` on the side of
    the position, DECREASE removes the same amount, and CELEBRATE trims the
    position back down to one minimum step.
    """

    step = abs(float(min_step_size))
    client_id = f"{round_number}-{position.market}"
    if action is Action.RELAX:
        return None
    if action in (Action.INCREASE, Action.PREPARE):
        side = _adding_side(position.side)
        size = step * multiplier
    elif action is Action.DECREASE:
        side = _reducing_side(position.side)
        size = step * multiplier
    elif action is Action.CELEBRATE:
        side = _reducing_side(position.side)
        size = position.size_abs - step
    else:
        raise ValueError(f"Unsupported action: {action!r}")
    if not size > 0:
        return None
    return OrderInstruction(
        market=position.market,
        side=side,
        size=size,
        client_id=client_id,
        action=action,
    )


def limit_price(side: OrderSide, oracle_price: float, slippage: float = 0.001) -> float:
    """Marketable limit price: a little above oracle to buy, below to sell."""

    oracle = float(oracle_price)
    if side is OrderSide.BUY:
        return oracle * (1.0 + slippage)
    return oracle * (1.0 - slippage)


class OrderSink(Protocol):
    def submit(self, instruction: OrderInstruction) -> None:
        ...


class DryRunOrderSink:
    """Log instructions instead of sending them.

    When ``oracle_price`` is supplied every instruction is priced before it
    is recorded, mirroring what a live sink would submit.
    """

    def __init__(
        self,
        oracle_price: Optional[Callable[[str], float]] = None,
        *,
        slippage: float = 0.001,
    ) -> None:
        self._oracle_price = oracle_price
        self._slippage = slippage
        self._lock = threading.Lock()
        self.submitted: List[OrderInstruction] = []

    def submit(self, instruction: OrderInstruction) -> None:
        if self._oracle_price is not None and instruction.price is None:
            price = limit_price(instruction.side, self._oracle_price(instruction.market), self._slippage)
            instruction = instruction.with_price(price)
        with self._lock:
            self.submitted.append(instruction)
        log_event(
            logger,
            "order_instruction",
            dry_run=True,
            market=instruction.market,
            side=instruction.side.value,
            size=instruction.size,
            price=instruction.price,
            client_id=instruction.client_id,
            action=instruction.action.value if instruction.action else None,
        )


__all__ = [
    "DryRunOrderSink",
    "GOOD_TIL_SECONDS",
    "OrderInstruction",
    "OrderSide",
    "OrderSink",
    "build_order_instruction",
    "limit_price",
]
