from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Protocol

import jax
import jax.numpy as jnp
from jax.scipy.special import gammaln

from jax_forecasting.core.domain.errors.base import ConfigurationError

__all__ = [
    "DistributionArgs",
    "DistributionOutput",
    "GaussianOutput",
    "StudentTOutput",
    "distribution_output",
]

DistributionArgs = dict[str, jax.Array]


class DistributionOutput(Protocol):
    """Maps raw network outputs to a parametric distribution.

    `scale` is the per-series target scale: the distribution of `y` is the
    base distribution rescaled by `scale`, so the network only ever sees
    values of order one.
    """

    name: str
    args_dim: int

    def domain_map(self, raw: jax.Array) -> DistributionArgs: ...

    def log_prob(self, args: DistributionArgs, y: jax.Array, scale: jax.Array) -> jax.Array: ...

    def sample(
        self,
        key: jax.Array,
        args: DistributionArgs,
        scale: jax.Array,
        sample_shape: tuple[int, ...] = (),
    ) -> jax.Array: ...

    def mean(self, args: DistributionArgs, scale: jax.Array) -> jax.Array: ...


@dataclass(frozen=True)
class GaussianOutput:
    name: str = "gaussian"
    args_dim: int = 2
    min_scale: float = 1e-6

    def domain_map(self, raw: jax.Array) -> DistributionArgs:
        loc = raw[..., 0]
        scale = jax.nn.softplus(raw[..., 1]) + self.min_scale
        return {"loc": loc, "scale": scale}

    def log_prob(self, args: DistributionArgs, y: jax.Array, scale: jax.Array) -> jax.Array:
        z = (y / scale - args["loc"]) / args["scale"]
        base = -0.5 * math.log(2.0 * math.pi) - jnp.log(args["scale"]) - 0.5 * jnp.square(z)
        return base - jnp.log(scale)

    def sample(
        self,
        key: jax.Array,
        args: DistributionArgs,
        scale: jax.Array,
        sample_shape: tuple[int, ...] = (),
    ) -> jax.Array:
        shape = tuple(sample_shape) + args["loc"].shape
        eps = jax.random.normal(key, shape)
        return (args["loc"] + args["scale"] * eps) * scale

    def mean(self, args: DistributionArgs, scale: jax.Array) -> jax.Array:
        return args["loc"] * scale


@dataclass(frozen=True)
class StudentTOutput:
    name: str = "student-t"
    args_dim: int = 3
    min_scale: float = 1e-6

    def domain_map(self, raw: jax.Array) -> DistributionArgs:
        # df > 2 keeps the variance finite.
        df = 2.0 + jax.nn.softplus(raw[..., 0])
        loc = raw[..., 1]
        scale = jax.nn.softplus(raw[..., 2]) + self.min_scale
        return {"df": df, "loc": loc, "scale": scale}

    def log_prob(self, args: DistributionArgs, y: jax.Array, scale: jax.Array) -> jax.Array:
        df, loc, s = args["df"], args["loc"], args["scale"]
        z = (y / scale - loc) / s
        base = (
            gammaln((df + 1.0) / 2.0)
            - gammaln(df / 2.0)
            - 0.5 * jnp.log(df * math.pi)
            - jnp.log(s)
            - 0.5 * (df + 1.0) * jnp.log1p(jnp.square(z) / df)
        )
        return base - jnp.log(scale)

    def sample(
        self,
        key: jax.Array,
        args: DistributionArgs,
        scale: jax.Array,
        sample_shape: tuple[int, ...] = (),
    ) -> jax.Array:
        shape = tuple(sample_shape) + args["loc"].shape
        eps = jax.random.t(key, args["df"], shape)
        return (args["loc"] + args["scale"] * eps) * scale

    def mean(self, args: DistributionArgs, scale: jax.Array) -> jax.Array:
        return args["loc"] * scale


def distribution_output(name: str) -> DistributionOutput:
    key = name.lower().strip().replace("_", "-")
    if key in {"gaussian", "normal"}:
        return GaussianOutput()
    if key in {"student-t", "studentt", "student"}:
        return StudentTOutput()
    raise ConfigurationError(f"distribution must be one of: gaussian, student-t (got {name!r})")
