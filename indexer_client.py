"""Read-only account source backed by the dYdX v4 indexer REST API.

Only queries live here: equity and free collateral of the subaccount,
its open perpetual positions and per-market metadata (oracle price and
step size).  Wallets, signing and order broadcast are not handled.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional

import requests

from config import IndexerSettings
from log_utils import setup_logger
from positions import (
    AccountSnapshot,
    PnlBasis,
    PositionSide,
    PositionSnapshot,
    free_collateral_percent,
    normalise_pnl_percent,
)

logger = setup_logger(__name__)


class IndexerError(RuntimeError):
    """Raised for transport failures and malformed indexer payloads."""


class AccountDataError(IndexerError):
    """Raised when the account cannot be turned into a usable snapshot."""


def _to_float(value: Any, field: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise IndexerError(f"indexer field {field!r} is not numeric: {value!r}") from None
    return number


class IndexerAccountSource:
    """Build :class:`AccountSnapshot` objects from indexer queries."""

    def __init__(
        self,
        settings: IndexerSettings,
        *,
        pnl_basis: PnlBasis | str = PnlBasis.NOTIONAL,
        step_sizes: Optional[Mapping[str, float]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not settings.address:
            raise ValueError("an account address is required (set DYDX_ADDRESS)")
        self.settings = settings
        self.pnl_basis = PnlBasis(pnl_basis)
        self._step_sizes: Dict[str, float] = {k: abs(float(v)) for k, v in (step_sizes or {}).items()}
        self._session = session or requests.Session()
        self.last_equity: Optional[float] = None

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------
    def _get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.settings.base_url}{path}"
        try:
            response = self._session.get(url, params=params, timeout=self.settings.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise IndexerError(f"indexer request {path} failed: {exc}") from exc
        except ValueError as exc:
            raise IndexerError(f"indexer request {path} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise IndexerError(f"indexer request {path} returned {type(payload).__name__}")
        return payload

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def fetch_subaccount(self) -> Dict[str, Any]:
        payload = self._get(f"/v4/addresses/{self.settings.address}")
        subaccounts = payload.get("subaccounts")
        if not isinstance(subaccounts, list) or not subaccounts:
            raise AccountDataError("indexer returned no subaccounts")
        for subaccount in subaccounts:
            if not isinstance(subaccount, dict):
                continue
            number = subaccount.get("subaccountNumber", 0)
            if int(number) == self.settings.subaccount_number:
                return subaccount
        raise AccountDataError(
            f"subaccount {self.settings.subaccount_number} not found for {self.settings.address}"
        )

    def fetch_open_positions(self) -> List[Dict[str, Any]]:
        payload = self._get(
            "/v4/perpetualPositions",
            params={
                "address": self.settings.address,
                "subaccountNumber": self.settings.subaccount_number,
            },
        )
        positions = payload.get("positions")
        if not isinstance(positions, list):
            raise IndexerError("indexer positions payload missing 'positions'")
        return [p for p in positions if isinstance(p, dict) and p.get("closedAt") is None]

    def fetch_market(self, market: str) -> Dict[str, Any]:
        payload = self._get("/v4/perpetualMarkets", params={"ticker": market})
        markets = payload.get("markets")
        if not isinstance(markets, dict) or market not in markets:
            raise IndexerError(f"no market data for {market}")
        return markets[market]

    def oracle_price(self, market: str) -> float:
        return _to_float(self.fetch_market(market).get("oraclePrice"), "oraclePrice")

    def min_step_size(self, market: str) -> float:
        """Configured step for ``market`` or the exchange step size."""

        if market in self._step_sizes:
            return self._step_sizes[market]
        step = abs(_to_float(self.fetch_market(market).get("stepSize"), "stepSize"))
        if step == 0:
            raise IndexerError(f"market {market} reports a zero step size")
        return step

    # ------------------------------------------------------------------
    # AccountSource
    # ------------------------------------------------------------------
    def _position_snapshot(self, raw: Mapping[str, Any], equity: float) -> PositionSnapshot:
        market = str(raw.get("market") or "")
        size = _to_float(raw.get("size"), "size")
        entry_price = raw.get("entryPrice")
        pnl_pct = normalise_pnl_percent(
            _to_float(raw.get("unrealizedPnl", 0.0), "unrealizedPnl"),
            size,
            _to_float(entry_price, "entryPrice") if entry_price is not None else None,
            basis=self.pnl_basis,
            equity=equity,
        )
        side_raw = raw.get("side") or ("LONG" if size >= 0 else "SHORT")
        return PositionSnapshot(
            market=market,
            pnl_pct=pnl_pct,
            size=size,
            side=PositionSide.parse(side_raw),
            min_step_size=self._step_sizes.get(market),
        )

    def fetch_snapshot(self) -> AccountSnapshot:
        subaccount = self.fetch_subaccount()
        equity = _to_float(subaccount.get("equity"), "equity")
        free_collateral = _to_float(subaccount.get("freeCollateral"), "freeCollateral")
        if not math.isfinite(equity) or equity <= 0:
            raise AccountDataError(f"account equity must be positive, got {equity}")
        self.last_equity = equity
        positions = tuple(
            self._position_snapshot(raw, equity) for raw in self.fetch_open_positions()
        )
        return AccountSnapshot(
            free_collateral_pct=free_collateral_percent(free_collateral, equity),
            positions=positions,
            equity=equity,
        )


__all__ = ["AccountDataError", "IndexerAccountSource", "IndexerError"]
