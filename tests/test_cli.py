from __future__ import annotations

import json
import os
from pathlib import Path

os.environ.setdefault("JAX_PLATFORMS", "cpu")

from typer.testing import CliRunner

from jax_forecasting.adapters.left.cli import app
from jax_forecasting.adapters.right.metrics_jsonl import read_metrics_records

runner = CliRunner()


def _make_dataset(tmp_path: Path) -> Path:
    out = tmp_path / "data"
    result = runner.invoke(
        app,
        [
            "make-synthetic",
            "--out-dir", str(out),
            "--freq", "H",
            "--prediction-length", "6",
            "--num-series", "3",
            "--length", "60",
        ],
    )
    assert result.exit_code == 0, result.output
    return out


def test_seasonal_naive_command(tmp_path: Path) -> None:
    data = _make_dataset(tmp_path)
    log_path = tmp_path / "logs" / "naive.jsonl"

    result = runner.invoke(
        app,
        ["seasonal-naive", "--dataset-path", str(data), "--log-path", str(log_path), "--run-id", "naive-1"],
    )
    assert result.exit_code == 0, result.output
    assert "MASE" in result.output

    (rec,) = read_metrics_records(log_path, event="backtest")
    assert rec["metrics"]["model_kind"] == "seasonal-naive"
    assert rec["run"] == "naive-1"


def test_train_then_forecast(tmp_path: Path) -> None:
    data = _make_dataset(tmp_path)
    ckpt_dir = tmp_path / "ckpt"
    log_path = tmp_path / "logs" / "train.jsonl"

    result = runner.invoke(
        app,
        [
            "train",
            "--dataset-path", str(data),
            "--model-kind", "feedforward",
            "--context-length", "12",
            "--hidden", "8",
            "--epochs", "1",
            "--num-batches-per-epoch", "2",
            "--batch-size", "4",
            "--num-samples", "5",
            "--ckpt-dir", str(ckpt_dir),
            "--log-path", str(log_path),
        ],
    )
    assert result.exit_code == 0, result.output
    assert "Training complete" in result.output
    assert "Backtest on" in result.output
    assert list(ckpt_dir.glob("params_step_*.safetensors"))
    assert read_metrics_records(log_path, event="backtest")
    assert len({rec["run"] for rec in read_metrics_records(log_path)}) == 1

    out_path = tmp_path / "forecasts.jsonl"
    result = runner.invoke(
        app,
        [
            "forecast",
            "--dataset-path", str(data),
            "--ckpt-dir", str(ckpt_dir),
            "--out-path", str(out_path),
            "--num-samples", "5",
        ],
    )
    assert result.exit_code == 0, result.output

    lines = out_path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 3
    first = json.loads(lines[0])
    assert len(first["mean"]) == 6
    assert set(first["quantiles"]) == {"0.1", "0.5", "0.9"}


def test_forecast_uses_best_checkpoint_after_early_stopping(tmp_path: Path) -> None:
    data = _make_dataset(tmp_path)
    ckpt_dir = tmp_path / "ckpt"

    result = runner.invoke(
        app,
        [
            "train",
            "--dataset-path", str(data),
            "--context-length", "12",
            "--hidden", "8",
            "--epochs", "5",
            "--num-batches-per-epoch", "2",
            "--batch-size", "4",
            "--lr", "0",
            "--early-stopping-patience", "1",
            "--num-samples", "5",
            "--ckpt-dir", str(ckpt_dir),
        ],
    )
    assert result.exit_code == 0, result.output
    # epoch 1 is best (step 2); epoch 2 does not improve and stops training (step 4)
    assert sorted(p.name for p in ckpt_dir.glob("params_step_*.safetensors")) == [
        "params_step_2.safetensors",
        "params_step_4.safetensors",
    ]

    log_path = tmp_path / "forecast.jsonl"
    result = runner.invoke(
        app,
        [
            "forecast",
            "--dataset-path", str(data),
            "--ckpt-dir", str(ckpt_dir),
            "--out-path", str(tmp_path / "forecasts.jsonl"),
            "--num-samples", "5",
            "--log-path", str(log_path),
        ],
    )
    assert result.exit_code == 0, result.output
    (rec,) = read_metrics_records(log_path, event="forecasts_written")
    assert rec["step"] == 2


def test_bad_options_exit_with_usage_error(tmp_path: Path) -> None:
    data = _make_dataset(tmp_path)

    result = runner.invoke(app, ["seasonal-naive"])
    assert result.exit_code != 0

    result = runner.invoke(app, ["train", "--dataset-path", str(data), "--model-kind", "transformer"])
    assert result.exit_code != 0

    result = runner.invoke(app, ["forecast", "--dataset-path", str(data), "--ckpt-dir", str(tmp_path / "none")])
    assert result.exit_code != 0
