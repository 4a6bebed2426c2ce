import math

import pytest

from config import ConfigError
from pnl_history import PnlHistory


def test_push_creates_window_on_first_sample():
    history = PnlHistory(3)

    window = history.push("ETH-USD", 1.5)

    assert list(window) == [1.5]
    assert "ETH-USD" in history
    assert len(history) == 1


def test_returned_window_reflects_later_pushes():
    history = PnlHistory(3)
    window = history.push("ETH-USD", 1.0)

    history.push("ETH-USD", 2.0)

    assert list(window) == [1.0, 2.0]
    assert history.snapshot("ETH-USD") == (1.0, 2.0)
    assert history.push("ETH-USD", 3.0) is window


def test_window_never_exceeds_capacity_and_evicts_oldest():
    capacity = 5
    history = PnlHistory(capacity)

    for marker in range(capacity + 7):
        window = history.push("BTC-USD", float(marker))
        assert len(window) <= capacity

    assert list(window) == [float(m) for m in range(7, capacity + 7)]


def test_markets_are_independent():
    history = PnlHistory(2)
    history.push("A", 1.0)
    history.push("B", 10.0)
    history.push("A", 2.0)
    history.push("A", 3.0)

    assert history.snapshot("A") == (2.0, 3.0)
    assert history.snapshot("B") == (10.0,)
    assert history.snapshot("C") == ()
    assert set(history.markets()) == {"A", "B"}


def test_non_finite_samples_are_kept():
    history = PnlHistory(3)
    history.push("X", float("nan"))
    history.push("X", float("inf"))

    first, second = history.snapshot("X")
    assert math.isnan(first)
    assert math.isinf(second)


@pytest.mark.parametrize("capacity", [0, 1, -3, 2.5, True])
def test_invalid_capacity_rejected(capacity):
    with pytest.raises(ConfigError):
        PnlHistory(capacity)
