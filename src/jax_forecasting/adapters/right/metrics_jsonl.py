from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

import numpy as np
import pandas as pd

from jax_forecasting.core.ports.metrics_sink import MetricsSinkPort


def _to_jsonable(value: Any) -> Any:
    """Best-effort conversion of metric values to strict JSON.

    Non-finite floats (undefined metrics such as MAPE on all-zero targets)
    become null.
    """

    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None

    if isinstance(value, np.generic):
        return _to_jsonable(value.item())

    if isinstance(value, (pd.Period, pd.Timestamp)):
        return str(value)

    # arrays (numpy / jax) -> scalar or list
    if hasattr(value, "shape") and hasattr(value, "dtype"):
        arr = np.asarray(value)
        if arr.shape == ():
            return _to_jsonable(arr.item())
        return [_to_jsonable(v) for v in arr.tolist()]

    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]

    return str(value)


class JsonlFileMetricsSink(MetricsSinkPort):
    """Append-only JSONL metrics sink.

    Each call writes one JSON object on a single line:
      {"ts": "...", "step": 123, "metrics": {...}}
    plus `"run": <run_id>` when a run id is given, so several runs can share a file.
    """

    def __init__(self, *, path: str | Path, run_id: str | None = None) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._run_id = run_id
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        record: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "step": int(step),
            "metrics": _to_jsonable(metrics),
        }
        if self._run_id is not None:
            record["run"] = self._run_id
        line = json.dumps(record, ensure_ascii=False, allow_nan=False)

        with self._lock:
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
                f.write("\n")


def read_metrics_records(path: str | Path, *, event: str | None = None) -> list[dict[str, Any]]:
    """Read records written by `JsonlFileMetricsSink`.

    Blank and malformed lines are skipped. With `event`, only records whose
    metrics carry that `event` name are returned.
    """

    records: list[dict[str, Any]] = []
    with Path(path).open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                rec = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(rec, dict) or not isinstance(rec.get("metrics"), dict):
                continue
            if event is not None and rec["metrics"].get("event") != event:
                continue
            records.append(rec)
    return records


class CompositeMetricsSink(MetricsSinkPort):
    """Tee metrics to multiple sinks."""

    def __init__(self, *sinks: MetricsSinkPort | None) -> None:
        self._sinks = [s for s in sinks if s is not None]

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        for s in self._sinks:
            s.log(step=step, metrics=metrics)
