from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import jax
import jax.numpy as jnp
import optax

from jax_forecasting.core.domain.commands.train import TrainCommand
from jax_forecasting.core.domain.entities.base import Batch, StepMetrics
from jax_forecasting.core.domain.entities.model import ForecasterFns, Params
from jax_forecasting.core.domain.errors.training import TrainingError
from jax_forecasting.core.domain.transforms.loader import InferenceBatchLoader, TrainingBatchLoader
from jax_forecasting.core.domain.transforms.sampler import ExpectedNumInstanceSampler, ValidationSplitSampler
from jax_forecasting.core.domain.transforms.splitter import InstanceSplitter
from jax_forecasting.core.domain.utils.frequency import parse_frequency
from jax_forecasting.core.domain.utils.time_features import time_features_for
from jax_forecasting.core.ports.checkpoint_store import CheckpointStorePort
from jax_forecasting.core.ports.dataset_provider import DatasetProviderPort
from jax_forecasting.core.ports.metrics_sink import MetricsSinkPort
from jax_forecasting.core.use_cases.predictors import NetworkPredictor


@dataclass(frozen=True)
class TrainResult:
    params: Params
    history: list[dict[str, Any]]


def _to_jax(batch: Batch) -> dict[str, jax.Array]:
    return {k: jnp.asarray(v) for k, v in batch.as_arrays().items()}


class TrainForecasterUseCase:
    def __init__(
        self,
        *,
        dataset_provider: DatasetProviderPort,
        model_fns: ForecasterFns,
        checkpoint_store: CheckpointStorePort | None = None,
        metrics_sink: MetricsSinkPort | None = None,
    ) -> None:
        self._dataset = dataset_provider
        self._model = model_fns
        self._ckpt = checkpoint_store
        self._metrics = metrics_sink

    @property
    def model_fns(self) -> ForecasterFns:
        return self._model

    def _validate(self, command: TrainCommand) -> None:
        if command.epochs < 1:
            raise TrainingError(f"epochs must be >= 1, got {command.epochs}")
        if command.batch_size < 1:
            raise TrainingError(f"batch_size must be >= 1, got {command.batch_size}")
        if command.num_batches_per_epoch < 1:
            raise TrainingError(f"num_batches_per_epoch must be >= 1, got {command.num_batches_per_epoch}")
        if command.num_instances_per_series <= 0:
            raise TrainingError(f"num_instances_per_series must be > 0, got {command.num_instances_per_series}")
        if command.log_every_steps < 1:
            raise TrainingError(f"log_every_steps must be >= 1, got {command.log_every_steps}")

        info = self._dataset.info
        if self._model.prediction_length != info.prediction_length:
            raise TrainingError(
                f"model prediction_length={self._model.prediction_length} does not match "
                f"dataset prediction_length={info.prediction_length}"
            )
        model_freq = getattr(self._model, "freq", None)
        if model_freq is not None and parse_frequency(model_freq) != parse_frequency(info.freq):
            raise TrainingError(f"model freq={model_freq!r} does not match dataset freq={info.freq!r}")

    def run(self, command: TrainCommand) -> TrainResult:
        self._validate(command)
        info = self._dataset.info
        horizon = self._model.prediction_length

        entries = list(self._dataset.iter_entries(split="train"))
        if not entries:
            raise TrainingError("The training split is empty")

        splitter = InstanceSplitter(
            past_length=self._model.past_length,
            future_length=horizon,
            time_features=time_features_for(info.freq),
        )
        train_batches = iter(
            TrainingBatchLoader(
                entries,
                splitter=splitter,
                sampler=ExpectedNumInstanceSampler(
                    num_instances=command.num_instances_per_series, min_future=horizon
                ),
                batch_size=command.batch_size,
                seed=command.seed,
            )
        )
        # Last window of each training series; skipped when series are too short.
        valid_batches = [
            _to_jax(batch)
            for _, batch in InferenceBatchLoader(
                [e for e in entries if len(e) > horizon],
                splitter=splitter,
                sampler=ValidationSplitSampler(min_future=horizon),
                batch_size=command.batch_size,
            )
        ]

        key = jax.random.PRNGKey(command.seed)
        params = self._model.init(key=key)

        optimizer = optax.chain(
            optax.clip_by_global_norm(command.clip_gradient),
            optax.adamw(
                learning_rate=command.learning_rate,
                b1=command.adamw_b1,
                b2=command.adamw_b2,
                eps=command.adamw_eps,
                weight_decay=command.weight_decay,
            ),
        )
        opt_state = optimizer.init(params)

        @jax.jit
        def train_step(p: Params, s: optax.OptState, batch: dict[str, jax.Array]):
            loss, grads = jax.value_and_grad(self._model.loss)(p, batch)
            updates, s2 = optimizer.update(grads, s, p)
            p2 = optax.apply_updates(p, updates)
            return p2, s2, loss

        @jax.jit
        def eval_step(p: Params, batch: dict[str, jax.Array]) -> jax.Array:
            return self._model.loss(p, batch)

        def validation_loss(p: Params) -> StepMetrics | None:
            if not valid_batches:
                return None
            losses = [float(eval_step(p, b)) for b in valid_batches]
            return StepMetrics(loss=sum(losses) / len(losses), extra={"num_batches": len(losses)})

        history: list[dict[str, Any]] = []
        global_step = 0

        best_loss: float | None = None
        best_epoch: int | None = None
        best_step: int | None = None
        best_params: Params | None = None
        epochs_since_improvement = 0
        loss_improvement_epsilon = 1e-6

        for epoch in range(1, command.epochs + 1):
            # Train
            epoch_losses: list[float] = []
            for _ in range(command.num_batches_per_epoch):
                batch = next(train_batches)
                params, opt_state, loss = train_step(params, opt_state, _to_jax(batch))
                global_step += 1

                loss_value = float(loss)
                if not math.isfinite(loss_value):
                    raise TrainingError(f"Training loss is not finite at step {global_step} (epoch {epoch})")
                epoch_losses.append(loss_value)

                if self._metrics and (global_step % command.log_every_steps == 0):
                    self._metrics.log(step=global_step, metrics={"train/loss": loss_value})

            # Eval (optional)
            valid = validation_loss(params)
            if valid is not None:
                if best_loss is None or valid.loss < (best_loss - loss_improvement_epsilon):
                    best_loss = float(valid.loss)
                    best_epoch = int(epoch)
                    best_step = global_step
                    best_params = params
                    epochs_since_improvement = 0
                else:
                    epochs_since_improvement += 1

            epoch_summary = {
                "epoch": epoch,
                "train/loss": float(sum(epoch_losses) / len(epoch_losses)),
                "valid/loss": valid.loss if valid is not None else None,
                "best/loss": best_loss,
                "best/epoch": best_epoch,
                "best/step": best_step,
                "global_step": global_step,
            }
            history.append(epoch_summary)
            if self._metrics:
                self._metrics.log(step=global_step, metrics=epoch_summary)

            if self._ckpt:
                self._ckpt.save(
                    step=global_step,
                    state={"params": params, "opt_state": opt_state},
                    metadata={**epoch_summary, "model": self._model.config(), "freq": info.freq},
                )

            if command.early_stopping_patience and best_loss is not None:
                if epochs_since_improvement >= command.early_stopping_patience:
                    if self._metrics:
                        self._metrics.log(
                            step=global_step,
                            metrics={
                                "event": "early_stop",
                                "epoch": epoch,
                                "best/loss": best_loss,
                                "best/epoch": best_epoch,
                                "patience": int(command.early_stopping_patience),
                            },
                        )
                    break

        # Prefer the best params by validation loss if available.
        final_params = best_params if best_params is not None else params
        return TrainResult(params=final_params, history=history)

    def predictor(
        self,
        result: TrainResult,
        *,
        num_samples: int = 100,
        batch_size: int = 32,
        seed: int = 0,
    ) -> NetworkPredictor:
        return NetworkPredictor(
            model_fns=self._model,
            params=result.params,
            freq=self._dataset.info.freq,
            num_samples=num_samples,
            batch_size=batch_size,
            seed=seed,
        )
