"""Central configuration loader for environment variables."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

# Load environment variables once when this module is imported.
load_dotenv()

import os

MIN_INTERVAL_SECONDS = 9
"""Shortest supported pause between two ticks of the decision loop."""

RULE_SET_NAMES = ("canonical", "collector")
PNL_BASIS_NAMES = ("notional", "size", "equity")

DEFAULT_INDEXER_URL = "https://indexer.dydx.trade"


class ConfigError(ValueError):
    """Raised when the decision loop configuration is invalid."""


def _truthy(x: str | None) -> bool:
    return str(x or "").strip().lower() in {"1", "true", "yes", "on"}


def _env_number(name: str, cast: type, default: Any) -> Any:
    """Return ``name`` parsed with ``cast`` or ``default`` when unset.

    Unlike the soft helpers used for optional tuning knobs, loop settings
    must parse cleanly: a typo in ``.env`` stops the process before the
    first tick instead of silently trading with a default.
    """

    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    text = raw.split("#", 1)[0].strip()
    try:
        if cast is int:
            return int(float(text))
        return cast(text)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name}={raw!r} is not a valid {cast.__name__}") from exc


def _env_choice(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower()


def _require_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class LoopConfig:
    """Immutable settings for one decision loop instance."""

    history_length: int = 60
    spread_factor: float = 9.0
    celebrate_at: float = 1.0
    interval_seconds: int = MIN_INTERVAL_SECONDS
    target_collateral_pct: float = 30.0
    min_collateral_pct: float = 20.0
    # ``None`` gates on the full window.
    min_history: Optional[int] = None
    rule_set: str = "canonical"
    pnl_basis: str = "notional"
    order_size_multiplier: float = 1.0
    ensure_open: bool = False
    slippage: float = 0.001

    def __post_init__(self) -> None:
        _require_int("history_length", self.history_length)
        _require_int("interval_seconds", self.interval_seconds)
        if self.min_history is not None:
            _require_int("min_history", self.min_history)
        if self.history_length < 2:
            raise ConfigError(f"history_length must be at least 2, got {self.history_length}")
        if not self.spread_factor > 0:
            raise ConfigError(f"spread_factor must be positive, got {self.spread_factor}")
        if self.interval_seconds < MIN_INTERVAL_SECONDS:
            raise ConfigError(
                f"interval length shall be at least {MIN_INTERVAL_SECONDS} seconds, "
                f"got {self.interval_seconds}"
            )
        if self.min_history is not None:
            if self.min_history < 2:
                raise ConfigError(f"min_history must be at least 2, got {self.min_history}")
            if self.min_history > self.history_length:
                raise ConfigError(
                    f"min_history ({self.min_history}) cannot exceed history_length "
                    f"({self.history_length})"
                )
        if self.rule_set not in RULE_SET_NAMES:
            raise ConfigError(
                f"rule_set must be one of {', '.join(RULE_SET_NAMES)}, got {self.rule_set!r}"
            )
        if self.pnl_basis not in PNL_BASIS_NAMES:
            raise ConfigError(
                f"pnl_basis must be one of {', '.join(PNL_BASIS_NAMES)}, got {self.pnl_basis!r}"
            )
        if not self.order_size_multiplier > 0:
            raise ConfigError("order_size_multiplier must be positive")
        if not 0 <= self.slippage < 1:
            raise ConfigError(f"slippage must be within [0, 1), got {self.slippage}")

    @property
    def ready_after(self) -> int:
        """Number of samples a market needs before its advice is followed."""

        return self.history_length if self.min_history is None else self.min_history


def load_loop_config(overrides: Optional[Mapping[str, Any]] = None) -> LoopConfig:
    """Build a :class:`LoopConfig` from the environment.

    ``overrides`` (typically parsed CLI arguments) take precedence over the
    environment; keys whose value is ``None`` are ignored.
    """

    values: dict[str, Any] = {
        "history_length": _env_number("PNL_HISTORY_LENGTH", int, LoopConfig.history_length),
        "spread_factor": _env_number("PNL_SPREAD_FACTOR", float, LoopConfig.spread_factor),
        "celebrate_at": _env_number("PNL_CELEBRATE_AT", float, LoopConfig.celebrate_at),
        "interval_seconds": _env_number("PNL_INTERVAL_SECONDS", int, LoopConfig.interval_seconds),
        "target_collateral_pct": _env_number(
            "PNL_TARGET_COLLATERAL_PCT", float, LoopConfig.target_collateral_pct
        ),
        "min_collateral_pct": _env_number(
            "PNL_MIN_COLLATERAL_PCT", float, LoopConfig.min_collateral_pct
        ),
        "min_history": _env_number("PNL_MIN_HISTORY", int, None),
        "rule_set": _env_choice("PNL_RULE_SET", LoopConfig.rule_set),
        "pnl_basis": _env_choice("PNL_BASIS", LoopConfig.pnl_basis),
        "order_size_multiplier": _env_number(
            "PNL_ORDER_SIZE_MULTIPLIER", float, LoopConfig.order_size_multiplier
        ),
        "ensure_open": _truthy(os.getenv("PNL_ENSURE_OPEN")),
        "slippage": _env_number("PNL_ORDER_SLIPPAGE", float, LoopConfig.slippage),
    }
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key not in values:
            raise ConfigError(f"Unknown loop setting: {key}")
        values[key] = value
    return LoopConfig(**values)


@dataclass(frozen=True)
class IndexerSettings:
    """Connection settings for the read-only account indexer."""

    base_url: str = DEFAULT_INDEXER_URL
    address: str = ""
    subaccount_number: int = 0
    timeout: float = 8.0


def load_indexer_settings() -> IndexerSettings:
    base_url = (os.getenv("DYDX_INDEXER_URL") or "").strip() or DEFAULT_INDEXER_URL
    return IndexerSettings(
        base_url=base_url.rstrip("/"),
        address=(os.getenv("DYDX_ADDRESS") or "").strip(),
        subaccount_number=_env_number("DYDX_SUBACCOUNT_NUMBER", int, 0),
        timeout=_env_number("INDEXER_HTTP_TIMEOUT", float, 8.0),
    )


def initial_portfolio_path() -> str:
    """Return the configured initial portfolio JSON path (may be empty)."""

    return (os.getenv("INITIAL_PORTFOLIO_PATH") or "").split("#", 1)[0].strip()
