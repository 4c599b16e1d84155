from __future__ import annotations

from typing import Any, Protocol


class MetricsSinkPort(Protocol):
    """Port for training metrics and run events.

    Plain metric records carry keys such as `train/loss` or `valid/loss`;
    run events carry an `"event"` key (`run_start`, `early_stop`, `backtest`,
    `forecasts_written`). Values may be Python, NumPy or JAX scalars.
    """

    def log(self, *, step: int, metrics: dict[str, Any]) -> None: ...
