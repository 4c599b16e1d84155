from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd

__all__ = ["DatasetInfo", "TimeSeriesEntry"]


@dataclass(frozen=True)
class DatasetInfo:
    """Metadata required by the core training loop."""

    freq: str
    prediction_length: int
    name: str | None = None
    num_series: int | None = None
    train_size: int | None = None
    test_size: int | None = None


@dataclass(frozen=True)
class TimeSeriesEntry:
    """One univariate series. Missing values are NaN in `target`."""

    start: pd.Period
    target: np.ndarray
    item_id: str | None = None

    def __len__(self) -> int:
        return int(self.target.shape[0])

    def truncated(self, n: int) -> TimeSeriesEntry:
        """Drop the last `n` values (used to hold out a backtest window)."""

        return TimeSeriesEntry(start=self.start, target=self.target[: len(self) - n], item_id=self.item_id)
