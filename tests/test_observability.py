import csv
import json
import logging

import observability
from observability import _CsvMetricsSink, log_event, record_metric


def test_log_event_emits_valid_json_for_non_finite_fields(caplog):
    logger = logging.getLogger("test_observability_events")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_event(logger, "advice", market="ETH-USD", lower=float("nan"), upper=float("inf"))

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["event"] == "advice"
    assert payload["market"] == "ETH-USD"
    assert payload["lower"] == "nan"
    assert payload["upper"] == "inf"


def test_log_event_falls_back_to_repr(caplog):
    logger = logging.getLogger("test_observability_repr")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_event(logger, "odd", value={1, 2})

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["value"] == repr({1, 2})


def test_csv_sink_writes_header_once(tmp_path):
    path = tmp_path / "metrics" / "out.csv"
    sink = _CsvMetricsSink(str(path))

    sink.record("pnl_pct", 1.5, labels={"market": "BTC-USD"})
    sink.record("free_collateral_pct", 42.0)

    with path.open() as handle:
        rows = list(csv.DictReader(handle))
    assert [row["metric"] for row in rows] == ["pnl_pct", "free_collateral_pct"]
    assert json.loads(rows[0]["labels"]) == {"market": "BTC-USD"}
    assert float(rows[1]["value"]) == 42.0


def test_csv_sink_disabled_by_empty_path(tmp_path):
    sink = _CsvMetricsSink("")

    sink.record("pnl_pct", 1.0)

    assert sink.path is None


def test_record_metric_swallows_sink_errors(monkeypatch):
    class BrokenSink:
        def record(self, *args, **kwargs):
            raise OSError("disk full")

    monkeypatch.setattr(observability, "_metrics_sink", BrokenSink())

    record_metric("pnl_pct", 1.0)
