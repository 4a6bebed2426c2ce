"""
Volatility bands for PnL windows.

The band used by the decision loop looks like a Bollinger band but is built
differently, and the differences matter for the advice it produces:

* The centerline is the *expanding* mean: index ``i`` holds the average of
  samples ``0..i``.  The averaging width grows with ``i``; this is not a
  fixed-width moving average.
* The dispersion at index ``i`` is the population standard deviation of the
  **centerline** with element ``i`` left out.  Because the whole window
  (not only the causal prefix) enters every index, bounds widen when the
  running mean drifts away from its own history.
* ``lower = centerline - spread_factor * std`` and
  ``upper = centerline + spread_factor * std``.

For a single sample the leave-one-out helper is empty and its standard
deviation is defined as ``0`` so the bounds collapse onto the centerline.

The work is ``O(n^2)`` per window by construction; windows are small
(tens of samples) so the loop stays cheap.

Functions
---------

* ``compute_centerline(sequence)`` – expanding mean.
* ``population_std(values)`` – standard deviation without Bessel correction,
  ``0.0`` for empty input.
* ``compute_bands(sequence, spread_factor)`` – centerline plus bounds as a
  :class:`BandResult`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, NamedTuple, Sequence, Tuple

import numpy as np


class BandPoint(NamedTuple):
    centerline: float
    lower: float
    upper: float


@dataclass(frozen=True)
class BandResult:
    """Centerline and bounds aligned index-for-index with the input."""

    centerline: Tuple[float, ...]
    lower: Tuple[float, ...]
    upper: Tuple[float, ...]

    def __len__(self) -> int:
        return len(self.centerline)

    def at(self, index: int) -> BandPoint:
        return BandPoint(self.centerline[index], self.lower[index], self.upper[index])

    @property
    def latest(self) -> BandPoint:
        if not self.centerline:
            raise IndexError("band is empty")
        return self.at(len(self.centerline) - 1)


def _as_array(sequence: Iterable[float]) -> np.ndarray:
    return np.asarray(list(sequence), dtype=float)


def compute_centerline(sequence: Iterable[float]) -> Tuple[float, ...]:
    """Return the expanding mean of ``sequence``."""

    values = _as_array(sequence)
    if values.size == 0:
        return ()
    # cumsum accumulates left to right, matching a running ``sum / count``.
    with np.errstate(invalid="ignore", over="ignore"):
        running = np.cumsum(values) / np.arange(1, values.size + 1, dtype=float)
    return tuple(running.tolist())


def population_std(values: Sequence[float] | np.ndarray) -> float:
    """Return the population standard deviation of ``values``.

    An empty input has no defined deviation; ``0.0`` is returned instead.
    """

    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return 0.0
    # Both means must add left to right; ``arr.mean()`` sums pairwise.
    with np.errstate(invalid="ignore", over="ignore"):
        mean = _sequential_mean(arr)
        return float(np.sqrt(_sequential_mean((arr - mean) ** 2)))


def _sequential_mean(arr: np.ndarray) -> float:
    return np.cumsum(arr)[-1] / arr.size


def compute_bands(sequence: Iterable[float], spread_factor: float = 2.0) -> BandResult:
    """Compute the leave-one-out band over ``sequence``.

    Parameters
    ----------
    sequence : iterable of float
        Samples in chronological order.
    spread_factor : float, optional
        Multiplier applied to the leave-one-out standard deviation.

    Returns
    -------
    BandResult
        Three tuples of the same length as ``sequence``.
    """

    centerline = np.asarray(compute_centerline(sequence), dtype=float)
    factor = float(spread_factor)
    lower = []
    upper = []
    for index, entry in enumerate(centerline):
        helper = np.delete(centerline, index)
        deviation = population_std(helper)
        with np.errstate(invalid="ignore", over="ignore"):
            lower.append(float(entry - deviation * factor))
            upper.append(float(entry + deviation * factor))
    return BandResult(
        centerline=tuple(centerline.tolist()),
        lower=tuple(lower),
        upper=tuple(upper),
    )


__all__ = [
    "BandPoint",
    "BandResult",
    "compute_bands",
    "compute_centerline",
    "population_std",
]
