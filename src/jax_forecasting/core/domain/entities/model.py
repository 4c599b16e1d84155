from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import jax
import jax.numpy as jnp
import numpy as np

from jax_forecasting.core.domain.entities.distribution import (
    DistributionArgs,
    DistributionOutput,
    StudentTOutput,
    distribution_output,
)
from jax_forecasting.core.domain.errors.base import ConfigurationError
from jax_forecasting.core.domain.utils.frequency import get_lags_for_frequency
from jax_forecasting.core.domain.utils.scaling import mean_abs_scale
from jax_forecasting.core.domain.utils.time_features import time_features_for

__all__ = [
    "DeepArForecasterFns",
    "FeedForwardForecasterFns",
    "ForecasterFns",
    "Params",
    "model_fns_from_config",
]

Params = Any  # JAX pytree
Arrays = Mapping[str, jax.Array]


class ForecasterFns(Protocol):
    """Pure model functions the core training loop and predictors use.

    Implementations must be JAX-compatible (jit friendly). `batch` is the
    dict produced by `Batch.as_arrays()`.
    """

    prediction_length: int

    @property
    def past_length(self) -> int: ...

    def init(self, *, key: jax.Array) -> Params: ...

    def loss(self, params: Params, batch: Arrays) -> jax.Array: ...

    def sample(self, params: Params, batch: Arrays, key: jax.Array, *, num_samples: int) -> jax.Array: ...

    def config(self) -> dict[str, Any]: ...


def _dense_init(key: jax.Array, m: int, n: int) -> dict[str, jax.Array]:
    w = jax.random.normal(key, (m, n)) * jnp.sqrt(1.0 / m)
    b = jnp.zeros((n,))
    return {"w": w, "b": b}


def _weighted_mean(x: jax.Array, weights: jax.Array) -> jax.Array:
    return jnp.sum(x * weights) / jnp.maximum(jnp.sum(weights), 1.0)


@dataclass(frozen=True)
class FeedForwardForecasterFns:
    """Feed-forward probabilistic network.

    Maps the scaled context window through an MLP to one hidden vector per
    future step, then projects each to distribution parameters.
    """

    prediction_length: int
    context_length: int
    hidden_sizes: tuple[int, ...] = (40, 40)
    distr_output: DistributionOutput = field(default_factory=StudentTOutput)

    @property
    def past_length(self) -> int:
        return self.context_length

    def init(self, *, key: jax.Array) -> Params:
        if not self.hidden_sizes:
            raise ConfigurationError("hidden_sizes must contain at least one layer")
        sizes = (
            self.context_length,
            *self.hidden_sizes[:-1],
            self.prediction_length * self.hidden_sizes[-1],
        )
        keys = jax.random.split(key, len(sizes))
        mlp = [_dense_init(k, m, n) for (m, n), k in zip(zip(sizes[:-1], sizes[1:]), keys[:-1])]
        proj = _dense_init(keys[-1], self.hidden_sizes[-1], self.distr_output.args_dim)
        return {"mlp": mlp, "proj": proj}

    def _distribution_args(self, params: Params, batch: Arrays) -> tuple[DistributionArgs, jax.Array]:
        context = batch["past_target"][:, -self.context_length :]
        observed = batch["past_observed"][:, -self.context_length :]
        scale = mean_abs_scale(context, observed)

        h = context / scale[:, None]
        for layer in params["mlp"][:-1]:
            h = jax.nn.relu(jnp.dot(h, layer["w"]) + layer["b"])
        last = params["mlp"][-1]
        h = jnp.dot(h, last["w"]) + last["b"]
        h = jnp.reshape(h, (h.shape[0], self.prediction_length, self.hidden_sizes[-1]))

        raw = jnp.dot(h, params["proj"]["w"]) + params["proj"]["b"]
        return self.distr_output.domain_map(raw), scale

    def loss(self, params: Params, batch: Arrays) -> jax.Array:
        args, scale = self._distribution_args(params, batch)
        nll = -self.distr_output.log_prob(args, batch["future_target"], scale[:, None])
        return _weighted_mean(nll, batch["future_observed"])

    def sample(self, params: Params, batch: Arrays, key: jax.Array, *, num_samples: int) -> jax.Array:
        args, scale = self._distribution_args(params, batch)
        samples = self.distr_output.sample(key, args, scale[:, None], sample_shape=(num_samples,))
        # (S, B, P) -> (B, S, P)
        return jnp.swapaxes(samples, 0, 1)

    def config(self) -> dict[str, Any]:
        return {
            "kind": "feedforward",
            "prediction_length": self.prediction_length,
            "context_length": self.context_length,
            "hidden_sizes": list(self.hidden_sizes),
            "distribution": self.distr_output.name,
        }


def _lstm_layer_init(key: jax.Array, input_dim: int, hidden_size: int) -> dict[str, jax.Array]:
    k_ih, k_hh = jax.random.split(key)
    w_ih = jax.random.normal(k_ih, (input_dim, 4 * hidden_size)) * jnp.sqrt(1.0 / input_dim)
    w_hh = jax.random.normal(k_hh, (hidden_size, 4 * hidden_size)) * jnp.sqrt(1.0 / hidden_size)
    # forget-gate bias starts at 1
    b = jnp.zeros((4 * hidden_size,)).at[hidden_size : 2 * hidden_size].set(1.0)
    return {"w_ih": w_ih, "w_hh": w_hh, "b": b}


def _lstm_stack_step(layers: list[dict[str, jax.Array]], carry, x: jax.Array):
    """Advance a stack of LSTM cells by one time step.

    carry: tuple of (h, c) per layer, each (batch, hidden)
    """

    new_carry = []
    h_in = x
    for layer, (h, c) in zip(layers, carry):
        gates = jnp.dot(h_in, layer["w_ih"]) + jnp.dot(h, layer["w_hh"]) + layer["b"]
        i, f, g, o = jnp.split(gates, 4, axis=-1)
        c = jax.nn.sigmoid(f) * c + jax.nn.sigmoid(i) * jnp.tanh(g)
        h = jax.nn.sigmoid(o) * jnp.tanh(c)
        new_carry.append((h, c))
        h_in = h
    return tuple(new_carry), h_in


@dataclass(frozen=True)
class DeepArForecasterFns:
    """Autoregressive recurrent probabilistic model (DeepAR-style).

    Inputs per step are the scaled lagged targets, calendar features and the
    log of the series scale. Training uses teacher forcing over
    `context_length + prediction_length` steps; prediction unrolls the
    context and then samples future values one step at a time, feeding each
    sample back as a lag.
    """

    prediction_length: int
    context_length: int
    freq: str
    num_layers: int = 2
    hidden_size: int = 40
    lags_seq: tuple[int, ...] | None = None
    distr_output: DistributionOutput = field(default_factory=StudentTOutput)

    @property
    def lags(self) -> tuple[int, ...]:
        if self.lags_seq is not None:
            return tuple(self.lags_seq)
        return tuple(get_lags_for_frequency(self.freq))

    @property
    def past_length(self) -> int:
        return self.context_length + max(self.lags)

    @property
    def num_time_features(self) -> int:
        return len(time_features_for(self.freq))

    @property
    def input_dim(self) -> int:
        return len(self.lags) + self.num_time_features + 1

    def init(self, *, key: jax.Array) -> Params:
        if self.num_layers < 1 or self.hidden_size < 1:
            raise ConfigurationError("num_layers and hidden_size must be >= 1")
        if not self.lags or min(self.lags) < 1:
            raise ConfigurationError(f"lags must be positive, got {self.lags}")
        keys = jax.random.split(key, self.num_layers + 1)
        dims = (self.input_dim, *([self.hidden_size] * (self.num_layers - 1)))
        lstm = [_lstm_layer_init(k, d, self.hidden_size) for d, k in zip(dims, keys[:-1])]
        proj = _dense_init(keys[-1], self.hidden_size, self.distr_output.args_dim)
        return {"lstm": lstm, "proj": proj}

    def _initial_carry(self, batch_size: int):
        zeros = jnp.zeros((batch_size, self.hidden_size))
        return tuple((zeros, zeros) for _ in range(self.num_layers))

    def _project(self, params: Params, h: jax.Array) -> DistributionArgs:
        raw = jnp.dot(h, params["proj"]["w"]) + params["proj"]["b"]
        return self.distr_output.domain_map(raw)

    def _scale(self, batch: Arrays) -> jax.Array:
        context = batch["past_target"][:, -self.context_length :]
        observed = batch["past_observed"][:, -self.context_length :]
        return mean_abs_scale(context, observed)

    def _unroll(self, params: Params, inputs: jax.Array):
        """Run the LSTM over inputs of shape (batch, time, input_dim)."""

        def step(carry, x_t):
            carry, h = _lstm_stack_step(params["lstm"], carry, x_t)
            return carry, h

        carry, hs = jax.lax.scan(step, self._initial_carry(inputs.shape[0]), jnp.swapaxes(inputs, 0, 1))
        return carry, jnp.swapaxes(hs, 0, 1)

    def _inputs(self, seq: jax.Array, positions: np.ndarray, time_feat: jax.Array, log_scale: jax.Array) -> jax.Array:
        lag_idx = positions[:, None] - np.asarray(self.lags)[None, :]
        lagged = seq[:, lag_idx]  # (batch, time, num_lags)
        static = jnp.broadcast_to(log_scale[:, None, None], lagged.shape[:2] + (1,))
        return jnp.concatenate([lagged, time_feat, static], axis=-1)

    def loss(self, params: Params, batch: Arrays) -> jax.Array:
        scale = self._scale(batch)
        target = jnp.concatenate([batch["past_target"], batch["future_target"]], axis=1)
        observed = jnp.concatenate([batch["past_observed"], batch["future_observed"]], axis=1)
        time_feat = jnp.concatenate(
            [batch["past_time_feat"][:, -self.context_length :], batch["future_time_feat"]], axis=1
        )

        positions = np.arange(self.past_length - self.context_length, self.past_length + self.prediction_length)
        inputs = self._inputs(target / scale[:, None], positions, time_feat, jnp.log(scale))
        _, hs = self._unroll(params, inputs)
        args = self._project(params, hs)

        nll = -self.distr_output.log_prob(args, target[:, positions], scale[:, None])
        return _weighted_mean(nll, observed[:, positions])

    def sample(self, params: Params, batch: Arrays, key: jax.Array, *, num_samples: int) -> jax.Array:
        scale = self._scale(batch)
        log_scale = jnp.log(scale)
        past_seq = batch["past_target"] / scale[:, None]

        positions = np.arange(self.past_length - self.context_length, self.past_length)
        inputs = self._inputs(past_seq, positions, batch["past_time_feat"][:, -self.context_length :], log_scale)
        carry, _ = self._unroll(params, inputs)

        # One row per (series, sample path).
        carry = jax.tree_util.tree_map(lambda a: jnp.repeat(a, num_samples, axis=0), carry)
        rep_scale = jnp.repeat(scale, num_samples, axis=0)
        rep_log_scale = jnp.log(rep_scale)
        batch_size = past_seq.shape[0] * num_samples
        buffer = jnp.concatenate(
            [jnp.repeat(past_seq, num_samples, axis=0), jnp.zeros((batch_size, self.prediction_length))],
            axis=1,
        )
        future_feat = jnp.repeat(batch["future_time_feat"], num_samples, axis=0)
        lags = jnp.asarray(self.lags)

        def step(state, xs):
            carry, buffer = state
            t, key_t, feat_t = xs
            lagged = jnp.take(buffer, t - lags, axis=1)
            x = jnp.concatenate([lagged, feat_t, rep_log_scale[:, None]], axis=-1)
            carry, h = _lstm_stack_step(params["lstm"], carry, x)
            y = self.distr_output.sample(key_t, self._project(params, h), 1.0)
            buffer = buffer.at[:, t].set(y)
            return (carry, buffer), y

        steps = self.past_length + jnp.arange(self.prediction_length)
        keys = jax.random.split(key, self.prediction_length)
        _, ys = jax.lax.scan(step, (carry, buffer), (steps, keys, jnp.swapaxes(future_feat, 0, 1)))

        samples = jnp.swapaxes(ys, 0, 1) * rep_scale[:, None]
        return jnp.reshape(samples, (-1, num_samples, self.prediction_length))

    def config(self) -> dict[str, Any]:
        return {
            "kind": "deepar",
            "prediction_length": self.prediction_length,
            "context_length": self.context_length,
            "freq": self.freq,
            "num_layers": self.num_layers,
            "hidden_size": self.hidden_size,
            "lags_seq": list(self.lags),
            "distribution": self.distr_output.name,
        }


def model_fns_from_config(config: Mapping[str, Any]) -> ForecasterFns:
    """Rebuild model functions from `ForecasterFns.config()` output."""

    kind = str(config.get("kind", "")).lower().strip()
    distr = distribution_output(str(config.get("distribution", "student-t")))
    try:
        if kind in {"feedforward", "feed-forward", "mlp"}:
            return FeedForwardForecasterFns(
                prediction_length=int(config["prediction_length"]),
                context_length=int(config["context_length"]),
                hidden_sizes=tuple(int(h) for h in config.get("hidden_sizes", (40, 40))),
                distr_output=distr,
            )
        if kind == "deepar":
            lags = config.get("lags_seq")
            return DeepArForecasterFns(
                prediction_length=int(config["prediction_length"]),
                context_length=int(config["context_length"]),
                freq=str(config["freq"]),
                num_layers=int(config.get("num_layers", 2)),
                hidden_size=int(config.get("hidden_size", 40)),
                lags_seq=tuple(int(lag) for lag in lags) if lags else None,
                distr_output=distr,
            )
    except KeyError as e:
        raise ConfigurationError(f"model config is missing {e.args[0]!r}") from e
    raise ConfigurationError(f"model kind must be one of: feedforward, deepar (got {kind!r})")
