from __future__ import annotations

from dataclasses import asdict
import os
import uuid
import warnings
from pathlib import Path
from typing import Any

import inject
import typer
import jax

# Default to CPU unless explicitly overridden by the user.
# This avoids noisy CUDA plugin initialization errors on machines without CUDA libraries.
os.environ.setdefault("JAX_PLATFORMS", "cpu")

# numpy warns when quantiles/means are taken over all-NaN windows; metrics report NaN instead.
warnings.filterwarnings("ignore", message=r"Mean of empty slice", category=RuntimeWarning)

from jax_forecasting.adapters.left.inject_config import configure_injections
from jax_forecasting.adapters.right.checkpoints_filesystem import FilesystemCheckpointStore, restore_params
from jax_forecasting.adapters.right.data_loaders.jsonl_dataset import JsonLinesDatasetProvider, write_dataset_dir
from jax_forecasting.adapters.right.data_loaders.synthetic import SyntheticDatasetProvider
from jax_forecasting.adapters.right.forecasts_jsonl import JsonlForecastWriter
from jax_forecasting.adapters.right.metrics_jsonl import CompositeMetricsSink, JsonlFileMetricsSink
from jax_forecasting.adapters.right.metrics_stdout import StdoutMetricsSink
from jax_forecasting.core.domain.commands.train import TrainCommand
from jax_forecasting.core.domain.entities.distribution import distribution_output
from jax_forecasting.core.domain.entities.model import (
    DeepArForecasterFns,
    FeedForwardForecasterFns,
    ForecasterFns,
    model_fns_from_config,
)
from jax_forecasting.core.domain.errors.base import ConfigurationError, ForecastingError
from jax_forecasting.core.ports.metrics_sink import MetricsSinkPort
from jax_forecasting.core.use_cases.backtest import Evaluator, backtest_metrics
from jax_forecasting.core.use_cases.predictors import NetworkPredictor, SeasonalNaivePredictor
from jax_forecasting.core.use_cases.train_forecaster import TrainForecasterUseCase

app = typer.Typer(add_completion=False, no_args_is_help=True)

_SUMMARY_METRICS = ("MSE", "MASE", "sMAPE", "MSIS", "ND", "NRMSE", "mean_wQuantileLoss")


def _metrics_sink(log_path: str, run_id: str = "") -> MetricsSinkPort:
    stdout_metrics = StdoutMetricsSink()
    if not log_path:
        return stdout_metrics
    jsonl_metrics = JsonlFileMetricsSink(path=log_path, run_id=run_id or uuid.uuid4().hex[:12])
    return CompositeMetricsSink(stdout_metrics, jsonl_metrics)


def _load_dataset(dataset_path: str) -> JsonLinesDatasetProvider:
    if not dataset_path:
        raise typer.BadParameter("--dataset-path is required")
    try:
        return JsonLinesDatasetProvider(path=dataset_path)
    except ForecastingError as e:
        raise typer.BadParameter(str(e)) from e


def _fail(e: ForecastingError) -> typer.Exit:
    typer.echo(f"Error: {e}", err=True)
    return typer.Exit(code=1)


def _echo_metrics(title: str, agg: dict[str, Any]) -> None:
    typer.echo(title)
    for name in _SUMMARY_METRICS:
        typer.echo(f"  {name:<20} {agg.get(name, float('nan')):.6g}")


def _build_model(
    *,
    model_kind: str,
    distribution: str,
    freq: str,
    prediction_length: int,
    context_length: int,
    hidden: list[int],
    num_layers: int,
    hidden_size: int,
) -> ForecasterFns:
    try:
        distr = distribution_output(distribution)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e)) from e

    context_length = context_length or prediction_length
    model_kind = model_kind.lower().strip()
    if model_kind in {"feedforward", "feed-forward", "mlp"}:
        return FeedForwardForecasterFns(
            prediction_length=prediction_length,
            context_length=context_length,
            hidden_sizes=tuple(hidden),
            distr_output=distr,
        )
    if model_kind == "deepar":
        return DeepArForecasterFns(
            prediction_length=prediction_length,
            context_length=context_length,
            freq=freq,
            num_layers=num_layers,
            hidden_size=hidden_size,
            distr_output=distr,
        )
    raise typer.BadParameter("model_kind must be one of: feedforward, deepar")


@app.command(name="make-synthetic")
def make_synthetic(
    out_dir: str = typer.Option(..., help="Directory to write metadata.json, train/ and test/ into"),
    freq: str = typer.Option("H", help="Pandas-style frequency, e.g. H, D, W, M"),
    prediction_length: int = typer.Option(24, min=1),
    num_series: int = typer.Option(10, min=1),
    length: int = typer.Option(24 * 14, min=1, help="Training length of every series"),
    seed: int = typer.Option(0),
) -> None:
    """Write a synthetic seasonal dataset in the benchmark directory layout."""

    try:
        provider = SyntheticDatasetProvider(
            freq=freq,
            prediction_length=prediction_length,
            num_series=num_series,
            length=length,
            seed=seed,
        )
    except ForecastingError as e:
        raise typer.BadParameter(str(e)) from e

    root = write_dataset_dir(provider, out_dir)
    typer.echo(f"Wrote {num_series} series to: {root}")


@app.command(name="seasonal-naive")
def seasonal_naive(
    dataset_path: str = typer.Option("", help="Dataset directory (metadata.json, train/, test/)"),
    season_length: int = typer.Option(0, min=0, help="Season length; 0 uses the frequency's default"),
    log_path: str = typer.Option("", help="If set, append metrics/events as JSONL to this path"),
    run_id: str = typer.Option("", help="Run id stamped on JSONL records; generated when empty"),
) -> None:
    """Backtest the seasonal naive baseline on the test split."""

    dataset = _load_dataset(dataset_path)
    info = dataset.info
    metrics = _metrics_sink(log_path, run_id)
    metrics.log(step=0, metrics={"event": "run_start", "command": "seasonal-naive", "dataset": info.name})

    predictor = SeasonalNaivePredictor(
        freq=info.freq,
        prediction_length=info.prediction_length,
        season_length=season_length or None,
    )
    try:
        agg, _ = backtest_metrics(dataset.iter_entries(split="test"), predictor, Evaluator())
    except ForecastingError as e:
        raise _fail(e) from e

    metrics.log(step=0, metrics={"event": "backtest", "model_kind": "seasonal-naive", **agg})
    _echo_metrics(f"Seasonal naive (season_length={predictor.season_length}) on {info.name}:", agg)


@app.command()
def train(
    dataset_path: str = typer.Option("", help="Dataset directory (metadata.json, train/, test/)"),
    model_kind: str = typer.Option("feedforward", help="Model to use: feedforward | deepar"),
    distribution: str = typer.Option("student-t", help="Output distribution: student-t | gaussian"),
    context_length: int = typer.Option(0, min=0, help="Context window; 0 uses prediction_length"),
    hidden: list[int] = typer.Option([40, 40], help="Feed-forward hidden sizes: --hidden 40 --hidden 40"),
    num_layers: int = typer.Option(2, min=1, help="DeepAR LSTM layers"),
    hidden_size: int = typer.Option(40, min=1, help="DeepAR LSTM hidden size"),
    epochs: int = typer.Option(10, min=1),
    num_batches_per_epoch: int = typer.Option(50, min=1),
    batch_size: int = typer.Option(32, min=1),
    lr: float = typer.Option(1e-3),
    weight_decay: float = typer.Option(1e-8),
    early_stopping_patience: int = typer.Option(0, min=0),
    num_samples: int = typer.Option(100, min=1, help="Sample paths per forecast in the backtest"),
    seed: int = typer.Option(0),
    ckpt_dir: str = typer.Option("", help="If set, save checkpoints to this folder"),
    log_path: str = typer.Option(
        "",
        help="If set, append metrics/events as JSONL to this path (e.g. logs/train.jsonl)",
    ),
    run_id: str = typer.Option("", help="Run id stamped on JSONL records; generated when empty"),
    cpu: bool = typer.Option(True, "--cpu/--no-cpu", help="Force CPU (recommended on machines without CUDA libs)"),
) -> None:
    """Train a probabilistic forecaster, then backtest it on the test split."""

    if cpu and os.environ.get("JAX_PLATFORMS") != "cpu":
        typer.echo("Note: set JAX_PLATFORMS=cpu before running to force CPU.")

    dataset = _load_dataset(dataset_path)
    info = dataset.info

    model = _build_model(
        model_kind=model_kind,
        distribution=distribution,
        freq=info.freq,
        prediction_length=info.prediction_length,
        context_length=context_length,
        hidden=hidden,
        num_layers=num_layers,
        hidden_size=hidden_size,
    )

    ckpt = FilesystemCheckpointStore(dir_path=ckpt_dir) if ckpt_dir else None
    metrics = _metrics_sink(log_path, run_id)

    configure_injections(dataset_provider=dataset, checkpoint_store=ckpt, metrics_sink=metrics, model_fns=model)

    cmd = TrainCommand(
        epochs=epochs,
        num_batches_per_epoch=num_batches_per_epoch,
        batch_size=batch_size,
        seed=seed,
        learning_rate=lr,
        weight_decay=weight_decay,
        early_stopping_patience=early_stopping_patience,
    )

    use_case = inject.instance(TrainForecasterUseCase)

    metrics.log(
        step=0,
        metrics={
            "event": "run_start",
            "command": "train",
            "dataset": info.name,
            "model": model.config(),
            "epochs": epochs,
            "batch_size": batch_size,
            "lr": lr,
            "seed": seed,
            "backend": jax.default_backend(),
        },
    )

    try:
        result = use_case.run(cmd)
        predictor = use_case.predictor(result, num_samples=num_samples, seed=seed)
        agg, _ = backtest_metrics(dataset.iter_entries(split="test"), predictor, Evaluator())
    except ForecastingError as e:
        raise _fail(e) from e

    global_step = int(result.history[-1].get("global_step", 0)) if result.history else 0
    metrics.log(step=global_step, metrics={"event": "backtest", "model_kind": model.config()["kind"], **agg})

    typer.echo("Training complete")
    typer.echo(f"Final epoch summary: {result.history[-1] if result.history else {}}")
    typer.echo(f"Train command: {asdict(cmd)}")
    _echo_metrics(f"Backtest on {info.name}:", agg)


@app.command()
def forecast(
    dataset_path: str = typer.Option("", help="Dataset directory (metadata.json, train/, test/)"),
    ckpt_dir: str = typer.Option(..., help="Checkpoint folder written by `train --ckpt-dir` (best validation step is used)"),
    out_path: str = typer.Option("forecasts.jsonl", help="Where to write forecasts (JSONL)"),
    num_samples: int = typer.Option(100, min=1),
    quantiles: list[float] = typer.Option([0.1, 0.5, 0.9], help="Repeatable: --quantiles 0.1 --quantiles 0.9"),
    seed: int = typer.Option(0),
    log_path: str = typer.Option("", help="If set, append metrics/events as JSONL to this path"),
    run_id: str = typer.Option("", help="Run id stamped on JSONL records; generated when empty"),
) -> None:
    """Forecast past the end of every test series with the latest checkpoint."""

    dataset = _load_dataset(dataset_path)
    info = dataset.info
    metrics = _metrics_sink(log_path, run_id)

    # same params `train` backtests
    loaded = FilesystemCheckpointStore(dir_path=ckpt_dir).load_best()
    if loaded is None:
        raise typer.BadParameter(f"No checkpoint found in {ckpt_dir}")
    step, state = loaded

    try:
        model = model_fns_from_config(state["metadata"].get("model", {}))
        template = model.init(key=jax.random.PRNGKey(0))
        params = restore_params(template, state["params"])
    except (ForecastingError, KeyError, ValueError) as e:
        raise typer.BadParameter(f"Checkpoint in {ckpt_dir} does not match a known model: {e}") from e

    predictor = NetworkPredictor(model_fns=model, params=params, freq=info.freq, num_samples=num_samples, seed=seed)
    writer = JsonlForecastWriter(path=out_path, quantiles=quantiles)
    try:
        n = writer.write(predictor.predict(dataset.iter_entries(split="test")))
    except ForecastingError as e:
        raise _fail(e) from e

    metrics.log(step=step, metrics={"event": "forecasts_written", "out_path": str(Path(out_path)), "n": n})
    typer.echo(f"Wrote {n} forecasts to: {writer.path}")
