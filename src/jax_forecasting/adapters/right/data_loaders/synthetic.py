from __future__ import annotations

from collections.abc import Iterator

import numpy as np
import pandas as pd

from jax_forecasting.core.domain.entities.base import DatasetSplit
from jax_forecasting.core.domain.entities.dataset import DatasetInfo, TimeSeriesEntry
from jax_forecasting.core.domain.errors.dataset import DatasetError
from jax_forecasting.core.domain.utils.frequency import get_seasonality, to_pandas_freq
from jax_forecasting.core.ports.dataset_provider import DatasetProviderPort


class SyntheticDatasetProvider(DatasetProviderPort):
    """Seasonal toy series for tutorials and tests (no download needed).

    Each series is `level * (1 + amplitude * sin(2*pi*t / season)) + trend * t`
    plus Gaussian noise, clipped at zero. Test series extend train series by
    `prediction_length` values. Deterministic for a given seed.
    """

    def __init__(
        self,
        *,
        freq: str = "H",
        prediction_length: int = 24,
        num_series: int = 10,
        length: int = 24 * 14,
        start: str = "2021-01-01 00:00:00",
        noise: float = 0.1,
        seed: int = 0,
    ) -> None:
        if num_series < 1 or length < 1 or prediction_length < 1:
            raise DatasetError("num_series, length and prediction_length must all be >= 1")

        season = get_seasonality(freq)
        if season < 2:
            season = 7
        pandas_freq = to_pandas_freq(freq)

        rng = np.random.default_rng(seed)
        t = np.arange(length + prediction_length, dtype=np.float64)
        self._full: list[TimeSeriesEntry] = []
        for i in range(num_series):
            level = rng.uniform(5.0, 50.0)
            amplitude = rng.uniform(0.2, 0.6)
            phase = rng.uniform(0.0, 2.0 * np.pi)
            trend = rng.normal(0.0, 0.01) * level
            values = level * (1.0 + amplitude * np.sin(2.0 * np.pi * t / season + phase)) + trend * t
            values += rng.normal(0.0, noise * level, size=t.shape)
            self._full.append(
                TimeSeriesEntry(
                    start=pd.Period(start, freq=pandas_freq),
                    target=np.clip(values, 0.0, None).astype(np.float32),
                    item_id=str(i),
                )
            )

        self._info = DatasetInfo(
            freq=freq,
            prediction_length=prediction_length,
            name="synthetic",
            num_series=num_series,
            train_size=num_series,
            test_size=num_series,
        )

    @property
    def info(self) -> DatasetInfo:
        return self._info

    def iter_entries(self, *, split: DatasetSplit) -> Iterator[TimeSeriesEntry]:
        for entry in self._full:
            if split == "train":
                yield entry.truncated(self._info.prediction_length)
            else:
                yield entry
