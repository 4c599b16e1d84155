from __future__ import annotations

import jax
import jax.numpy as jnp


def mean_abs_scale(target: jax.Array, observed: jax.Array, *, minimum_scale: float = 1e-10) -> jax.Array:
    """Per-series scale: mean absolute observed value over the time axis.

    Series without any observed non-zero value fall back to the mean scale of
    the other series in the batch.

    Args:
        target: shape (batch, time)
        observed: shape (batch, time), 1.0 where the value is known

    Returns:
        shape (batch,)
    """

    num_observed = observed.sum(axis=1)
    abs_sum = jnp.abs(target * observed).sum(axis=1)
    scale = abs_sum / jnp.maximum(num_observed, 1.0)

    has_scale = scale > 0
    default = jnp.sum(jnp.where(has_scale, scale, 0.0)) / jnp.maximum(jnp.sum(has_scale), 1.0)
    scale = jnp.where(has_scale, scale, default)
    return jnp.maximum(scale, minimum_scale)
