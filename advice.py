"""Map the latest PnL sample and its band to a sizing action.

Rules are plain data: an ordered tuple of :class:`AdviceRule` objects, each
pairing a predicate with the action it yields.  The first predicate that
holds wins and ``Action.RELAX`` is returned when none does.  Two rule sets
are shipped:

``canonical``
    1. CELEBRATE - sample >= celebrate threshold and the position is larger
       than its minimum step.
    2. INCREASE - sample <= lower bound and free collateral above target.
    3. DECREASE - (sample >= upper bound or free collateral below the floor)
       and the position is larger than its minimum step.
    4. PREPARE - sample >= celebrate threshold while the position sits at
       exactly its minimum step.
    5. RELAX.

``collector``
    The ordering used by the first live collector: INCREASE (strict
    ``<``), CELEBRATE (no size check), DECREASE (strict ``>``), RELAX.

Non-finite samples or bounds always relax.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from bands import BandResult


class Action(str, Enum):
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    CELEBRATE = "CELEBRATE"
    PREPARE = "PREPARE"
    RELAX = "RELAX"


class InsufficientHistoryError(ValueError):
    """Raised when advice is requested for fewer than two samples."""


@dataclass(frozen=True)
class Thresholds:
    celebrate_at: float
    target_collateral_pct: float
    min_collateral_pct: float


@dataclass(frozen=True)
class AdviceContext:
    """Everything a rule may look at for one market."""

    current: float
    lower: float
    upper: float
    free_collateral_pct: float
    position_size: float
    min_step_size: float

    @property
    def above_min_step(self) -> bool:
        size = abs(self.position_size)
        step = abs(self.min_step_size)
        return size > step and not math.isclose(size, step, rel_tol=1e-9, abs_tol=0.0)

    @property
    def at_min_step(self) -> bool:
        return math.isclose(abs(self.position_size), abs(self.min_step_size), rel_tol=1e-9, abs_tol=0.0)


Predicate = Callable[[AdviceContext, Thresholds], bool]


@dataclass(frozen=True)
class AdviceRule:
    name: str
    action: Action
    predicate: Predicate

    def matches(self, context: AdviceContext, thresholds: Thresholds) -> bool:
        return bool(self.predicate(context, thresholds))


@dataclass(frozen=True)
class AdviceOutcome:
    action: Action
    # Name of the matching rule, ``None`` when the default applied.
    rule: Optional[str] = None


# Canonical predicates --------------------------------------------------------


def _celebrate(ctx: AdviceContext, th: Thresholds) -> bool:
    return ctx.current >= th.celebrate_at and ctx.above_min_step


def _increase(ctx: AdviceContext, th: Thresholds) -> bool:
    return ctx.current <= ctx.lower and ctx.free_collateral_pct > th.target_collateral_pct


def _decrease(ctx: AdviceContext, th: Thresholds) -> bool:
    stretched = ctx.current >= ctx.upper or ctx.free_collateral_pct < th.min_collateral_pct
    return stretched and ctx.above_min_step


def _prepare(ctx: AdviceContext, th: Thresholds) -> bool:
    return ctx.current >= th.celebrate_at and ctx.at_min_step


# Collector predicates --------------------------------------------------------


def _collector_increase(ctx: AdviceContext, th: Thresholds) -> bool:
    return ctx.current < ctx.lower and ctx.free_collateral_pct > th.target_collateral_pct


def _collector_celebrate(ctx: AdviceContext, th: Thresholds) -> bool:
    return ctx.current >= th.celebrate_at


def _collector_decrease(ctx: AdviceContext, th: Thresholds) -> bool:
    stretched = ctx.current > ctx.upper or ctx.free_collateral_pct < th.min_collateral_pct
    return stretched and abs(ctx.position_size) > abs(ctx.min_step_size)


CANONICAL_RULES: Tuple[AdviceRule, ...] = (
    AdviceRule("celebrate", Action.CELEBRATE, _celebrate),
    AdviceRule("increase", Action.INCREASE, _increase),
    AdviceRule("decrease", Action.DECREASE, _decrease),
    AdviceRule("prepare", Action.PREPARE, _prepare),
)

COLLECTOR_RULES: Tuple[AdviceRule, ...] = (
    AdviceRule("increase", Action.INCREASE, _collector_increase),
    AdviceRule("celebrate", Action.CELEBRATE, _collector_celebrate),
    AdviceRule("decrease", Action.DECREASE, _collector_decrease),
)

RULE_SETS: Dict[str, Tuple[AdviceRule, ...]] = {
    "canonical": CANONICAL_RULES,
    "collector": COLLECTOR_RULES,
}


def rules_for(name: str) -> Tuple[AdviceRule, ...]:
    try:
        return RULE_SETS[name]
    except KeyError:
        raise ValueError(f"Unknown rule set: {name!r}") from None


class ActionClassifier:
    """Evaluate an ordered rule list against the latest sample of a window."""

    def __init__(
        self,
        thresholds: Thresholds,
        rules: Sequence[AdviceRule] = CANONICAL_RULES,
        default: Action = Action.RELAX,
    ) -> None:
        self.thresholds = thresholds
        self.rules: Tuple[AdviceRule, ...] = tuple(rules)
        self.default = default

    @classmethod
    def from_config(cls, config) -> "ActionClassifier":
        thresholds = Thresholds(
            celebrate_at=float(config.celebrate_at),
            target_collateral_pct=float(config.target_collateral_pct),
            min_collateral_pct=float(config.min_collateral_pct),
        )
        return cls(thresholds, rules_for(config.rule_set))

    def evaluate(self, context: AdviceContext) -> AdviceOutcome:
        if not all(math.isfinite(v) for v in (context.current, context.lower, context.upper)):
            return AdviceOutcome(self.default, "non_finite")
        for rule in self.rules:
            if rule.matches(context, self.thresholds):
                return AdviceOutcome(rule.action, rule.name)
        return AdviceOutcome(self.default)

    def classify(
        self,
        samples: Sequence[float],
        bands: BandResult,
        *,
        free_collateral_pct: float,
        position_size: float,
        min_step_size: float,
    ) -> AdviceOutcome:
        """Classify the newest sample of ``samples`` against ``bands``."""

        count = len(samples)
        if count < 2:
            raise InsufficientHistoryError(f"advice needs at least 2 samples, got {count}")
        if len(bands) != count:
            raise InsufficientHistoryError(
                f"band length {len(bands)} does not match {count} samples"
            )
        point = bands.latest
        context = AdviceContext(
            current=float(samples[-1]),
            lower=point.lower,
            upper=point.upper,
            free_collateral_pct=float(free_collateral_pct),
            position_size=float(position_size),
            min_step_size=float(min_step_size),
        )
        return self.evaluate(context)


def describe_rules(rules: Sequence[AdviceRule]) -> Mapping[int, str]:
    """Return ``{priority: "name->ACTION"}`` for logging the active rule set."""

    return {index + 1: f"{rule.name}->{rule.action.value}" for index, rule in enumerate(rules)}


__all__ = [
    "Action",
    "ActionClassifier",
    "AdviceContext",
    "AdviceOutcome",
    "AdviceRule",
    "CANONICAL_RULES",
    "COLLECTOR_RULES",
    "InsufficientHistoryError",
    "RULE_SETS",
    "Thresholds",
    "describe_rules",
    "rules_for",
]
