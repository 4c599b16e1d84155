from __future__ import annotations

import os

os.environ.setdefault("JAX_PLATFORMS", "cpu")

import jax.numpy as jnp
import numpy as np

from jax_forecasting.core.domain.utils.scaling import mean_abs_scale


def test_mean_abs_scale_uses_observed_values_only() -> None:
    target = jnp.asarray([[1.0, -3.0, 100.0]])
    observed = jnp.asarray([[1.0, 1.0, 0.0]])

    np.testing.assert_allclose(np.asarray(mean_abs_scale(target, observed)), [2.0])


def test_all_zero_series_takes_batch_mean_scale() -> None:
    target = jnp.asarray([[2.0, 2.0], [0.0, 0.0], [4.0, 4.0]])
    observed = jnp.ones_like(target)

    np.testing.assert_allclose(np.asarray(mean_abs_scale(target, observed)), [2.0, 3.0, 4.0])


def test_all_zero_batch_hits_minimum_scale() -> None:
    target = jnp.zeros((2, 3))
    observed = jnp.ones_like(target)

    scale = np.asarray(mean_abs_scale(target, observed, minimum_scale=1e-10))
    np.testing.assert_allclose(scale, [1e-10, 1e-10], rtol=1e-5)
    assert np.all(scale > 0)
