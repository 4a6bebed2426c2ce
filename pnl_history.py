"""Per-market rolling windows of PnL samples."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Dict, Iterator, Tuple

from config import ConfigError


class PnlHistory:
    """Fixed-capacity FIFO window of PnL samples for every market.

    Windows are created on the first sample of a market and live for the
    lifetime of the instance.  Once a window holds ``capacity`` samples each
    push drops the oldest one, so the length stays constant from then on.
    Samples are stored as given; NaN and infinities are the caller's concern.
    """

    def __init__(self, capacity: int) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 2:
            raise ConfigError(f"history capacity must be an integer >= 2, got {capacity!r}")
        self._capacity = capacity
        self._windows: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, market: str, sample: float) -> Deque[float]:
        """Append ``sample`` to the window of ``market`` and return the window.

        The returned deque is the live window, later pushes are visible
        through it.
        """

        with self._lock:
            window = self._windows.get(market)
            if window is None:
                window = deque(maxlen=self._capacity)
                self._windows[market] = window
            window.append(float(sample))
            return window

    def snapshot(self, market: str) -> Tuple[float, ...]:
        """Return an immutable copy of the window (empty for unseen markets)."""

        with self._lock:
            window = self._windows.get(market)
            return tuple(window) if window is not None else ()

    def markets(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._windows)

    def __contains__(self, market: object) -> bool:
        return market in self._windows

    def __len__(self) -> int:
        return len(self._windows)

    def __iter__(self) -> Iterator[str]:
        return iter(self.markets())


__all__ = ["PnlHistory"]
