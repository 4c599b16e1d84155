from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from jax_forecasting.core.domain.entities.base import DatasetSplit
from jax_forecasting.core.domain.entities.dataset import DatasetInfo, TimeSeriesEntry


class DatasetProviderPort(Protocol):
    """Port for providing time series to the core."""

    @property
    def info(self) -> DatasetInfo: ...

    def iter_entries(self, *, split: DatasetSplit) -> Iterable[TimeSeriesEntry]: ...
