from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path

from jax_forecasting.core.domain.entities.forecast import SampleForecast


class JsonlForecastWriter:
    """Writes one JSON object per forecast: item_id, start, freq, mean and quantiles."""

    def __init__(self, *, path: str | Path, quantiles: Sequence[float] = (0.1, 0.5, 0.9)) -> None:
        self._path = Path(path)
        self._quantiles = tuple(quantiles)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, forecasts: Iterable[SampleForecast]) -> int:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        n = 0
        with self._path.open("w", encoding="utf-8") as f:
            for forecast in forecasts:
                f.write(json.dumps(forecast.to_dict(self._quantiles), ensure_ascii=False))
                f.write("\n")
                n += 1
        return n
