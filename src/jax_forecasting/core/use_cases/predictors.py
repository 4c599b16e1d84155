from __future__ import annotations

from collections.abc import Iterable, Iterator
from functools import partial
from typing import Protocol

import jax
import jax.numpy as jnp
import numpy as np

from jax_forecasting.core.domain.entities.dataset import TimeSeriesEntry
from jax_forecasting.core.domain.entities.forecast import SampleForecast
from jax_forecasting.core.domain.entities.model import ForecasterFns, Params
from jax_forecasting.core.domain.errors.training import PredictionError
from jax_forecasting.core.domain.transforms.loader import InferenceBatchLoader
from jax_forecasting.core.domain.transforms.sampler import TestSplitSampler
from jax_forecasting.core.domain.transforms.splitter import InstanceSplitter
from jax_forecasting.core.domain.utils.frequency import get_seasonality
from jax_forecasting.core.domain.utils.time_features import time_features_for


class Predictor(Protocol):
    """Forecasts `prediction_length` steps past the end of each series."""

    prediction_length: int
    freq: str

    def predict(self, entries: Iterable[TimeSeriesEntry]) -> Iterator[SampleForecast]: ...


def _check_entry(entry: TimeSeriesEntry) -> None:
    if len(entry) == 0:
        raise PredictionError(f"Cannot forecast an empty series (item_id={entry.item_id!r})")


def _forecast_start(entry: TimeSeriesEntry):
    return entry.start + len(entry)


class SeasonalNaivePredictor:
    """Repeats the last observed season.

    Missing values in the last season, and series shorter than one season,
    are forecast with the NaN-aware series mean. Every forecast carries a
    single sample path.
    """

    def __init__(self, *, freq: str, prediction_length: int, season_length: int | None = None) -> None:
        self.freq = freq
        self.prediction_length = prediction_length
        self.season_length = season_length or get_seasonality(freq)

    def _predict_one(self, entry: TimeSeriesEntry) -> SampleForecast:
        _check_entry(entry)
        target = np.asarray(entry.target, dtype=np.float32)
        n = len(target)

        if n >= self.season_length:
            idx = n - self.season_length + np.arange(self.prediction_length) % self.season_length
            path = target[idx]
            missing = np.isnan(path)
            if missing.any():
                path = np.where(missing, np.nanmean(target), path).astype(np.float32)
        else:
            path = np.full((self.prediction_length,), np.nanmean(target), dtype=np.float32)

        return SampleForecast(
            samples=path[None, :],
            start_date=_forecast_start(entry),
            freq=self.freq,
            item_id=entry.item_id,
        )

    def predict(self, entries: Iterable[TimeSeriesEntry]) -> Iterator[SampleForecast]:
        for entry in entries:
            yield self._predict_one(entry)


class NetworkPredictor:
    """Samples forecast paths from trained model functions."""

    def __init__(
        self,
        *,
        model_fns: ForecasterFns,
        params: Params,
        freq: str,
        num_samples: int = 100,
        batch_size: int = 32,
        seed: int = 0,
    ) -> None:
        if num_samples < 1:
            raise PredictionError(f"num_samples must be >= 1, got {num_samples}")
        self.model_fns = model_fns
        self.params = params
        self.freq = freq
        self.prediction_length = model_fns.prediction_length
        self.num_samples = num_samples
        self.batch_size = batch_size
        self._key = jax.random.PRNGKey(seed)
        self._splitter = InstanceSplitter(
            past_length=model_fns.past_length,
            future_length=model_fns.prediction_length,
            time_features=time_features_for(freq),
        )
        self._sample = jax.jit(partial(model_fns.sample, num_samples=num_samples))

    def predict(self, entries: Iterable[TimeSeriesEntry]) -> Iterator[SampleForecast]:
        entries = list(entries)
        for entry in entries:
            _check_entry(entry)

        loader = InferenceBatchLoader(
            entries,
            splitter=self._splitter,
            sampler=TestSplitSampler(),
            batch_size=self.batch_size,
        )
        for batch_idx, (indices, batch) in enumerate(loader):
            arrays = {k: jnp.asarray(v) for k, v in batch.as_arrays().items()}
            samples = np.asarray(self._sample(self.params, arrays, jax.random.fold_in(self._key, batch_idx)))
            for row, i in enumerate(indices):
                entry = entries[i]
                yield SampleForecast(
                    samples=samples[row],
                    start_date=_forecast_start(entry),
                    freq=self.freq,
                    item_id=entry.item_id,
                )
