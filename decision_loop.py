"""
Periodic decision loop over open positions.

Every tick the loop pulls one account snapshot, and for each open position:

1. pushes the position's PnL percentage into its market window,
2. recomputes the leave-one-out band over the window,
3. classifies the newest sample against the band,
4. hands a sizing instruction to the order sink when the window is ready
   (``LoopConfig.ready_after`` samples) or the advice is CELEBRATE/PREPARE,
   which do not depend on the band.

A failure while handling one market is logged and reported in the tick's
:class:`TickReport`; the other markets of the tick still run.  A failure of
the whole tick (for instance the account snapshot itself) is logged by
:meth:`DecisionLoop.run_forever`, which then waits for the next tick.

Ticks never overlap: :meth:`DecisionLoop.run_tick` returns ``None`` right
away when another tick still holds the loop.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from advice import Action, ActionClassifier, AdviceOutcome, describe_rules
from bands import BandPoint, compute_bands
from config import LoopConfig
from log_utils import setup_logger
from observability import log_event, record_metric
from order_sizing import OrderInstruction, OrderSink, build_order_instruction
from pnl_history import PnlHistory
from portfolio import InitialAllocation, opening_instructions
from positions import AccountSnapshot, AccountSource, PositionSnapshot

logger = setup_logger(__name__)

# Advice that is followed even before the window is ready.
UNGATED_ACTIONS = frozenset({Action.CELEBRATE, Action.PREPARE})


class MissingStepSizeError(LookupError):
    """Raised when no minimum step is known for a market."""


class LoopState(str, Enum):
    IDLE = "IDLE"
    TICKING = "TICKING"


@dataclass(frozen=True)
class MarketDecision:
    market: str
    sample: Optional[float] = None
    samples_seen: int = 0
    band: Optional[BandPoint] = None
    outcome: Optional[AdviceOutcome] = None
    ready: bool = False
    instruction: Optional[OrderInstruction] = None
    error: Optional[str] = None

    @property
    def action(self) -> Optional[Action]:
        return self.outcome.action if self.outcome is not None else None

    @property
    def acted(self) -> bool:
        return self.instruction is not None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class TickReport:
    round_number: int
    free_collateral_pct: float
    decisions: Tuple[MarketDecision, ...] = field(default_factory=tuple)
    openings: Tuple[OrderInstruction, ...] = field(default_factory=tuple)

    @property
    def failures(self) -> Tuple[MarketDecision, ...]:
        return tuple(d for d in self.decisions if d.failed)

    def decision_for(self, market: str) -> Optional[MarketDecision]:
        for decision in self.decisions:
            if decision.market == market:
                return decision
        return None


class DecisionLoop:
    """Own the PnL windows and drive one tick at a time."""

    def __init__(
        self,
        config: LoopConfig,
        account_source: AccountSource,
        order_sink: OrderSink,
        *,
        classifier: Optional[ActionClassifier] = None,
        history: Optional[PnlHistory] = None,
        step_size_resolver: Optional[Callable[[str], float]] = None,
        portfolio: Sequence[InitialAllocation] = (),
    ) -> None:
        self.config = config
        self.account_source = account_source
        self.order_sink = order_sink
        self.classifier = classifier or ActionClassifier.from_config(config)
        self.history = history or PnlHistory(config.history_length)
        self.step_size_resolver = step_size_resolver
        self.portfolio: Tuple[InitialAllocation, ...] = tuple(portfolio)
        self.round_number = 0
        self.state = LoopState.IDLE
        self._tick_lock = threading.Lock()
        logger.info(
            "Decision loop configured: window=%d ready_after=%d spread=%.4g rules=%s",
            config.history_length,
            config.ready_after,
            config.spread_factor,
            describe_rules(self.classifier.rules),
        )

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------
    def run_tick(self) -> Optional[TickReport]:
        """Run a single tick, or skip it when another tick is in flight."""

        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Tick already running; skipping concurrent call")
            log_event(logger, "tick_skipped", round=self.round_number)
            return None
        self.state = LoopState.TICKING
        try:
            return self._tick_body()
        finally:
            self.state = LoopState.IDLE
            self._tick_lock.release()

    def _tick_body(self) -> TickReport:
        started = time.monotonic()
        self.round_number += 1
        snapshot = self.account_source.fetch_snapshot()
        logger.info(
            "equity: %s round %d free: %.2f%% positions: %d",
            f"{snapshot.equity:.2f}" if snapshot.equity is not None else "n/a",
            self.round_number,
            snapshot.free_collateral_pct,
            len(snapshot.positions),
        )
        record_metric("free_collateral_pct", snapshot.free_collateral_pct)

        openings: List[OrderInstruction] = []
        if self.config.ensure_open and self.portfolio:
            openings = self._ensure_all_open(snapshot)

        decisions: List[MarketDecision] = []
        for position in snapshot.positions:
            try:
                decisions.append(self._consider_position(position, snapshot))
            except Exception as exc:
                logger.warning("Skipping %s this round: %s", position.market, exc)
                log_event(
                    logger,
                    "market_failed",
                    market=position.market,
                    round=self.round_number,
                    error=str(exc),
                )
                decisions.append(
                    MarketDecision(
                        market=position.market,
                        sample=position.pnl_pct,
                        samples_seen=len(self.history.snapshot(position.market)),
                        error=f"{type(exc).__name__}: {exc}",
                    )
                )

        duration = time.monotonic() - started
        record_metric("tick_duration_seconds", duration)
        log_event(
            logger,
            "tick_complete",
            round=self.round_number,
            markets=len(decisions),
            failures=sum(1 for d in decisions if d.failed),
            acted=sum(1 for d in decisions if d.acted),
            duration=round(duration, 6),
        )
        return TickReport(
            round_number=self.round_number,
            free_collateral_pct=snapshot.free_collateral_pct,
            decisions=tuple(decisions),
            openings=tuple(openings),
        )

    def _ensure_all_open(self, snapshot: AccountSnapshot) -> List[OrderInstruction]:
        submitted: List[OrderInstruction] = []
        for instruction in opening_instructions(
            self.portfolio, snapshot.open_markets, round_number=self.round_number
        ):
            try:
                logger.info("opening %s position", instruction.market)
                self.order_sink.submit(instruction)
                submitted.append(instruction)
            except Exception as exc:
                logger.warning("Could not open %s: %s", instruction.market, exc)
        return submitted

    def _resolve_step_size(self, position: PositionSnapshot) -> float:
        if position.min_step_size is not None:
            return abs(float(position.min_step_size))
        if self.step_size_resolver is None:
            raise MissingStepSizeError(f"no minimum step size known for {position.market}")
        return abs(float(self.step_size_resolver(position.market)))

    def _consider_position(
        self, position: PositionSnapshot, snapshot: AccountSnapshot
    ) -> MarketDecision:
        market = position.market
        window = self.history.push(market, position.pnl_pct)
        samples = tuple(window)
        record_metric("pnl_pct", position.pnl_pct, labels={"market": market})
        log_event(
            logger,
            "pnl_sample",
            market=market,
            pnl_pct=position.pnl_pct,
            samples=len(samples),
        )
        if len(samples) < 2:
            return MarketDecision(market=market, sample=position.pnl_pct, samples_seen=len(samples))

        step = self._resolve_step_size(position)
        bands = compute_bands(samples, self.config.spread_factor)
        outcome = self.classifier.classify(
            samples,
            bands,
            free_collateral_pct=snapshot.free_collateral_pct,
            position_size=position.size_abs,
            min_step_size=step,
        )
        ready = len(samples) >= self.config.ready_after
        point = bands.latest

        instruction: Optional[OrderInstruction] = None
        if outcome.action is not Action.RELAX and (ready or outcome.action in UNGATED_ACTIONS):
            instruction = build_order_instruction(
                outcome.action,
                position,
                step,
                round_number=self.round_number,
                multiplier=self.config.order_size_multiplier,
            )
            if instruction is not None:
                logger.info("%s %s", outcome.action.value, market)
                self.order_sink.submit(instruction)

        log_event(
            logger,
            "advice",
            market=market,
            action=outcome.action.value,
            rule=outcome.rule,
            current=samples[-1],
            lower=point.lower,
            upper=point.upper,
            ready=ready,
            acted=instruction is not None,
        )
        return MarketDecision(
            market=market,
            sample=position.pnl_pct,
            samples_seen=len(samples),
            band=point,
            outcome=outcome,
            ready=ready,
            instruction=instruction,
        )

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def run_forever(
        self,
        stop_event: Optional[threading.Event] = None,
        *,
        max_ticks: Optional[int] = None,
    ) -> int:
        """Tick every ``interval_seconds`` until ``stop_event`` is set.

        Returns the number of ticks attempted.
        """

        stop = stop_event or threading.Event()
        interval = float(self.config.interval_seconds)
        ticks = 0
        while not stop.is_set():
            started = time.monotonic()
            try:
                self.run_tick()
            except Exception:
                logger.exception("Round %d failed; continuing with next tick", self.round_number)
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            remaining = interval - (time.monotonic() - started)
            stop.wait(max(0.0, remaining))
        return ticks


__all__ = [
    "DecisionLoop",
    "LoopState",
    "MarketDecision",
    "MissingStepSizeError",
    "TickReport",
    "UNGATED_ACTIONS",
]
