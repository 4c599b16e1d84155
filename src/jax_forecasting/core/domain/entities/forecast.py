from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import pandas as pd

__all__ = ["SampleForecast"]


@dataclass(frozen=True)
class SampleForecast:
    """A probabilistic forecast represented by sample paths.

    `samples` has shape (num_samples, prediction_length); the first column
    corresponds to `start_date`.
    """

    samples: np.ndarray
    start_date: pd.Period
    freq: str
    item_id: str | None = None

    def __post_init__(self) -> None:
        if self.samples.ndim != 2:
            raise ValueError(f"samples must be 2-D (num_samples, prediction_length), got {self.samples.shape}")

    @property
    def num_samples(self) -> int:
        return int(self.samples.shape[0])

    @property
    def prediction_length(self) -> int:
        return int(self.samples.shape[1])

    @property
    def index(self) -> pd.PeriodIndex:
        return pd.period_range(start=self.start_date, periods=self.prediction_length, freq=self.start_date.freq)

    @property
    def mean(self) -> np.ndarray:
        return self.samples.mean(axis=0)

    @property
    def median(self) -> np.ndarray:
        return self.quantile(0.5)

    def quantile(self, q: float) -> np.ndarray:
        if not 0.0 <= q <= 1.0:
            raise ValueError(f"quantile level must be in [0, 1], got {q}")
        return np.quantile(self.samples, q, axis=0)

    def to_dict(self, quantiles: Sequence[float] = (0.1, 0.5, 0.9)) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "start": str(self.start_date),
            "freq": self.freq,
            "mean": self.mean.tolist(),
            "quantiles": {f"{q:g}": self.quantile(q).tolist() for q in quantiles},
        }
