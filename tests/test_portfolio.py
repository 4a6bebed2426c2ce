import json

import pytest

from order_sizing import OrderSide
from portfolio import (
    DEFAULT_PORTFOLIO,
    InitialAllocation,
    load_portfolio,
    opening_instructions,
    parse_portfolio,
    step_sizes,
)


def test_default_portfolio_steps_are_absolute_amounts():
    steps = step_sizes(DEFAULT_PORTFOLIO)

    assert len(DEFAULT_PORTFOLIO) == 25
    assert steps["BTC-USD"] == 0.0001
    assert steps["PEPE-USD"] == 10000000


def test_parse_portfolio_accepts_camel_and_snake_case():
    allocations = parse_portfolio(
        [{"market": "ETH-USD", "initialAmount": "0.01"}, {"market": "ADA-USD", "initial_amount": -5}]
    )

    assert allocations == (InitialAllocation("ETH-USD", 0.01), InitialAllocation("ADA-USD", -5.0))
    assert allocations[1].opening_side is OrderSide.SELL


@pytest.mark.parametrize(
    "payload",
    [
        {"market": "ETH-USD"},
        [{"initialAmount": 1}],
        [{"market": "ETH-USD", "initialAmount": 0}],
        [{"market": "ETH-USD", "initialAmount": "lots"}],
        [{"market": "ETH-USD", "initialAmount": 1}, {"market": "ETH-USD", "initialAmount": 2}],
    ],
)
def test_parse_portfolio_rejects_bad_payloads(payload):
    with pytest.raises(ValueError):
        parse_portfolio(payload)


def test_load_portfolio_from_file(tmp_path):
    path = tmp_path / "portfolio.json"
    path.write_text(json.dumps([{"market": "DOT-USD", "initialAmount": 2}]), encoding="utf-8")

    assert load_portfolio(str(path)) == (InitialAllocation("DOT-USD", 2.0),)
    assert load_portfolio(None) is DEFAULT_PORTFOLIO


def test_opening_instructions_only_for_missing_markets():
    portfolio = (InitialAllocation("ETH-USD", 0.5), InitialAllocation("BTC-USD", -0.1))

    instructions = opening_instructions(portfolio, ["ETH-USD"], round_number=3)

    assert len(instructions) == 1
    opening = instructions[0]
    assert opening.market == "BTC-USD"
    assert opening.side is OrderSide.SELL
    assert opening.size == 0.1
    assert opening.client_id == "3-BTC-USD-ensureAllOpen"
    assert opening.action is None
