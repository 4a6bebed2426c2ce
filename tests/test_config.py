import pytest

import config
from config import ConfigError, LoopConfig, load_loop_config

_LOOP_ENV = (
    "PNL_HISTORY_LENGTH",
    "PNL_SPREAD_FACTOR",
    "PNL_CELEBRATE_AT",
    "PNL_INTERVAL_SECONDS",
    "PNL_TARGET_COLLATERAL_PCT",
    "PNL_MIN_COLLATERAL_PCT",
    "PNL_MIN_HISTORY",
    "PNL_RULE_SET",
    "PNL_BASIS",
    "PNL_ORDER_SIZE_MULTIPLIER",
    "PNL_ENSURE_OPEN",
    "PNL_ORDER_SLIPPAGE",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _LOOP_ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults_gate_on_full_window():
    cfg = LoopConfig()

    assert cfg.history_length == 60
    assert cfg.interval_seconds == 9
    assert cfg.ready_after == 60


def test_relaxed_gate():
    cfg = LoopConfig(history_length=10, min_history=4)

    assert cfg.ready_after == 4


@pytest.mark.parametrize(
    "kwargs",
    [
        {"history_length": 1},
        {"history_length": 0},
        {"spread_factor": 0.0},
        {"spread_factor": -1.0},
        {"interval_seconds": 8},
        {"min_history": 1},
        {"history_length": 5, "min_history": 6},
        {"rule_set": "boost"},
        {"pnl_basis": "margin"},
        {"order_size_multiplier": 0.0},
        {"slippage": 1.0},
    ],
)
def test_invalid_settings_fail_fast(kwargs):
    with pytest.raises(ConfigError):
        LoopConfig(**kwargs)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"history_length": 5.0},
        {"history_length": True},
        {"interval_seconds": 9.5},
        {"interval_seconds": None},
        {"min_history": 2.5},
    ],
)
def test_counts_must_be_integers(kwargs):
    with pytest.raises(ConfigError, match="must be an integer"):
        LoopConfig(**kwargs)


def test_config_error_is_value_error():
    assert issubclass(ConfigError, ValueError)


def test_load_loop_config_reads_environment(monkeypatch):
    monkeypatch.setenv("PNL_HISTORY_LENGTH", "5")
    monkeypatch.setenv("PNL_SPREAD_FACTOR", "2")
    monkeypatch.setenv("PNL_INTERVAL_SECONDS", "12  # seconds")
    monkeypatch.setenv("PNL_RULE_SET", " Collector ")
    monkeypatch.setenv("PNL_ENSURE_OPEN", "yes")

    cfg = load_loop_config()

    assert cfg.history_length == 5
    assert cfg.spread_factor == 2.0
    assert cfg.interval_seconds == 12
    assert cfg.rule_set == "collector"
    assert cfg.ensure_open is True


def test_overrides_take_precedence_and_none_is_ignored(monkeypatch):
    monkeypatch.setenv("PNL_HISTORY_LENGTH", "5")

    cfg = load_loop_config({"history_length": 8, "spread_factor": None})

    assert cfg.history_length == 8
    assert cfg.spread_factor == LoopConfig.spread_factor


def test_unparsable_environment_value_is_config_error(monkeypatch):
    monkeypatch.setenv("PNL_SPREAD_FACTOR", "wide")

    with pytest.raises(ConfigError):
        load_loop_config()


def test_unknown_override_rejected():
    with pytest.raises(ConfigError):
        load_loop_config({"window": 10})


def test_indexer_settings_from_environment(monkeypatch):
    monkeypatch.setenv("DYDX_INDEXER_URL", "https://indexer.example/")
    monkeypatch.setenv("DYDX_ADDRESS", " dydx1abc ")
    monkeypatch.setenv("DYDX_SUBACCOUNT_NUMBER", "2")

    settings = config.load_indexer_settings()

    assert settings.base_url == "https://indexer.example"
    assert settings.address == "dydx1abc"
    assert settings.subaccount_number == 2


def test_initial_portfolio_path_strips_comments(monkeypatch):
    monkeypatch.setenv("INITIAL_PORTFOLIO_PATH", "portfolio.json # local copy")

    assert config.initial_portfolio_path() == "portfolio.json"
