from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

from jax_forecasting.core.domain.entities.base import Batch
from jax_forecasting.core.domain.entities.dataset import TimeSeriesEntry
from jax_forecasting.core.domain.utils.time_features import TimeFeature, compute_time_features


def _window(target: np.ndarray, start: int, stop: int) -> tuple[np.ndarray, np.ndarray]:
    """Slice `target[start:stop]`, zero-padding outside the series.

    Returns (values, observed); NaNs and padding have observed == 0.
    """

    length = stop - start
    values = np.zeros((length,), dtype=np.float32)
    observed = np.zeros((length,), dtype=np.float32)

    lo, hi = max(start, 0), min(stop, len(target))
    if hi > lo:
        chunk = target[lo:hi].astype(np.float32)
        mask = ~np.isnan(chunk)
        values[lo - start : hi - start] = np.where(mask, chunk, 0.0)
        observed[lo - start : hi - start] = mask.astype(np.float32)
    return values, observed


@dataclass(frozen=True)
class InstanceSplitter:
    """Cuts a series into a fixed-length past window and future window."""

    past_length: int
    future_length: int
    time_features: tuple[TimeFeature, ...] = ()

    def split(self, entry: TimeSeriesEntry, cut: int) -> Batch:
        """Build a single-row `Batch` for the cut point `cut`."""

        past, past_obs = _window(entry.target, cut - self.past_length, cut)
        future, future_obs = _window(entry.target, cut, cut + self.future_length)

        index = pd.period_range(
            start=entry.start + (cut - self.past_length),
            periods=self.past_length + self.future_length,
            freq=entry.start.freq,
        )
        feats = compute_time_features(self.time_features, index)

        return Batch(
            past_target=past[None, :],
            past_observed=past_obs[None, :],
            past_time_feat=feats[None, : self.past_length],
            future_target=future[None, :],
            future_observed=future_obs[None, :],
            future_time_feat=feats[None, self.past_length :],
        )
