from __future__ import annotations

import json

import numpy as np

from jax_forecasting.adapters.right.metrics_jsonl import (
    CompositeMetricsSink,
    JsonlFileMetricsSink,
    read_metrics_records,
)


def test_jsonl_metrics_sink_writes_valid_lines(tmp_path) -> None:
    p = tmp_path / "metrics.jsonl"
    sink = JsonlFileMetricsSink(path=p)

    sink.log(step=0, metrics={"event": "run_start", "lr": 1e-3})
    sink.log(step=10, metrics={"train/loss": np.float32(0.5), "valid/loss": None})

    text = p.read_text(encoding="utf-8").strip()
    lines = [ln for ln in text.splitlines() if ln.strip()]
    assert len(lines) == 2

    rec0 = json.loads(lines[0])
    assert rec0["step"] == 0
    assert rec0["metrics"]["event"] == "run_start"

    rec1 = json.loads(lines[1])
    assert rec1["step"] == 10
    assert rec1["metrics"]["train/loss"] == 0.5
    assert rec1["metrics"]["valid/loss"] is None


def test_non_finite_metrics_become_null(tmp_path) -> None:
    p = tmp_path / "metrics.jsonl"
    JsonlFileMetricsSink(path=p, run_id="r1").log(
        step=3, metrics={"event": "backtest", "MAPE": float("nan"), "q": np.array([1.0, np.inf])}
    )

    (rec,) = read_metrics_records(p, event="backtest")
    assert rec["run"] == "r1"
    assert rec["metrics"]["MAPE"] is None
    assert rec["metrics"]["q"] == [1.0, None]


def test_read_skips_malformed_lines_and_filters_events(tmp_path) -> None:
    p = tmp_path / "metrics.jsonl"
    sink = CompositeMetricsSink(JsonlFileMetricsSink(path=p), None)
    sink.log(step=0, metrics={"event": "run_start"})
    with p.open("a", encoding="utf-8") as f:
        f.write("not json\n\n")
    sink.log(step=5, metrics={"event": "backtest", "MSE": 1.0})

    assert len(read_metrics_records(p)) == 2
    (rec,) = read_metrics_records(p, event="backtest")
    assert rec["metrics"]["MSE"] == 1.0
