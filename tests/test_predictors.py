from __future__ import annotations

import os

os.environ.setdefault("JAX_PLATFORMS", "cpu")

import jax
import numpy as np
import pandas as pd
import pytest

from jax_forecasting.adapters.right.data_loaders.synthetic import SyntheticDatasetProvider
from jax_forecasting.core.domain.entities.dataset import TimeSeriesEntry
from jax_forecasting.core.domain.entities.model import FeedForwardForecasterFns
from jax_forecasting.core.domain.errors.training import PredictionError
from jax_forecasting.core.use_cases.predictors import NetworkPredictor, SeasonalNaivePredictor


def _entry(values, freq: str = "h") -> TimeSeriesEntry:
    return TimeSeriesEntry(
        start=pd.Period("2021-01-01 00:00", freq=freq),
        target=np.asarray(values, dtype=np.float32),
        item_id="a",
    )


def test_seasonal_naive_repeats_last_season() -> None:
    predictor = SeasonalNaivePredictor(freq="H", prediction_length=5, season_length=3)
    entry = _entry([1, 2, 3, 4, 5, 6])

    (forecast,) = list(predictor.predict([entry]))
    assert forecast.samples.shape == (1, 5)
    np.testing.assert_array_equal(forecast.mean, [4, 5, 6, 4, 5])
    assert forecast.start_date == entry.start + 6
    assert forecast.item_id == "a"


def test_seasonal_naive_defaults_to_frequency_seasonality() -> None:
    predictor = SeasonalNaivePredictor(freq="H", prediction_length=2)
    assert predictor.season_length == 24


def test_seasonal_naive_short_series_uses_mean() -> None:
    predictor = SeasonalNaivePredictor(freq="H", prediction_length=3)
    (forecast,) = list(predictor.predict([_entry([1.0, np.nan, 3.0])]))
    np.testing.assert_allclose(forecast.mean, [2.0, 2.0, 2.0])


def test_seasonal_naive_fills_missing_last_season_values_with_mean() -> None:
    values = [2.0, 4.0, 6.0, np.nan, 8.0]
    predictor = SeasonalNaivePredictor(freq="H", prediction_length=3, season_length=3)

    (forecast,) = predictor.predict([_entry(values)])

    np.testing.assert_allclose(forecast.samples[0], [6.0, 5.0, 8.0])
    assert not np.isnan(forecast.samples).any()


def test_predictors_reject_empty_series() -> None:
    predictor = SeasonalNaivePredictor(freq="H", prediction_length=3)
    with pytest.raises(PredictionError):
        list(predictor.predict([_entry([])]))


def test_network_predictor_forecasts_every_series() -> None:
    dataset = SyntheticDatasetProvider(freq="H", prediction_length=4, num_series=5, length=40)
    entries = list(dataset.iter_entries(split="train"))

    model = FeedForwardForecasterFns(prediction_length=4, context_length=8, hidden_sizes=(8,))
    params = model.init(key=jax.random.PRNGKey(0))
    predictor = NetworkPredictor(model_fns=model, params=params, freq="H", num_samples=6, batch_size=2)

    forecasts = list(predictor.predict(entries))
    assert len(forecasts) == len(entries)
    for entry, forecast in zip(entries, forecasts):
        assert forecast.samples.shape == (6, 4)
        assert forecast.item_id == entry.item_id
        assert forecast.start_date == entry.start + len(entry)
        assert np.isfinite(forecast.samples).all()
        assert len(forecast.index) == 4


def test_network_predictor_rejects_zero_samples() -> None:
    model = FeedForwardForecasterFns(prediction_length=4, context_length=8)
    with pytest.raises(PredictionError):
        NetworkPredictor(model_fns=model, params=None, freq="H", num_samples=0)
