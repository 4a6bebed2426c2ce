"""Lightweight observability helpers for structured logs and metrics.

The decision loop emits two kinds of telemetry:

* ``log_event`` writes JSON encoded log lines (``advice``, ``pnl_sample``,
  ``tick_complete`` ...) through the caller's logger so every handler
  configured by :func:`log_utils.setup_logger` receives them.
* ``record_metric`` appends gauge style values (PnL percentage per market,
  free collateral, tick duration) to a CSV file that small dashboards can
  tail.  Point ``METRICS_PATH`` at an empty string to disable it.
"""
from __future__ import annotations

import csv
import json
import logging
import math
import os
import threading
import time
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

_OBSERVABILITY_LOGGER = logging.getLogger("observability")


def log_event(logger: Optional[logging.Logger], event: str, **fields: Any) -> None:
    """Emit a structured JSON log entry.

    Parameters
    ----------
    logger:
        Logger instance to use.  When ``None`` the module level observability
        logger is used.
    event:
        Short event identifier.  Stored under the ``event`` key in the emitted
        payload.
    **fields:
        Additional key/value pairs to include in the log entry.  Non-finite
        floats are rendered as strings so the line stays valid JSON.
    """

    payload: MutableMapping[str, Any] = {"event": event, "ts": time.time()}
    payload.update({k: _finite_or_text(v) for k, v in fields.items()})
    target = logger or _OBSERVABILITY_LOGGER
    try:
        target.info(json.dumps(payload, sort_keys=True, allow_nan=False))
    except (TypeError, ValueError):
        serialisable = {k: _safe_json_value(v) for k, v in payload.items()}
        target.info(json.dumps(serialisable, sort_keys=True))


def _finite_or_text(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return repr(value)
    return value


def _safe_json_value(value: Any) -> Any:
    try:
        json.dumps(value, allow_nan=False)
        return value
    except (TypeError, ValueError):
        return repr(value)


class _CsvMetricsSink:
    """Thread-safe CSV metrics recorder."""

    def __init__(self, path: Optional[str] = None) -> None:
        raw = path if path is not None else os.getenv("METRICS_PATH", "metrics.csv")
        self._path: Optional[Path] = Path(raw) if raw else None
        self._lock = threading.Lock()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def record(self, metric: str, value: float, *, labels: Optional[Mapping[str, Any]] = None) -> None:
        if self._path is None:
            return
        row = {
            "ts": f"{time.time():.6f}",
            "metric": metric,
            "value": f"{float(value):.6f}",
            "labels": json.dumps(labels or {}, sort_keys=True),
        }
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            need_header = not self._path.exists() or self._path.stat().st_size == 0
            with self._path.open("a", newline="") as handle:
                writer = csv.DictWriter(handle, fieldnames=("ts", "metric", "value", "labels"))
                if need_header:
                    writer.writeheader()
                writer.writerow(row)


_metrics_sink = _CsvMetricsSink()


def record_metric(metric: str, value: float, *, labels: Optional[Mapping[str, Any]] = None) -> None:
    """Record a numeric metric to the CSV sink."""

    try:
        _metrics_sink.record(metric, value, labels=labels)
    except Exception:
        _OBSERVABILITY_LOGGER.debug("Failed to record metric %s", metric, exc_info=True)


__all__ = ["log_event", "record_metric"]
