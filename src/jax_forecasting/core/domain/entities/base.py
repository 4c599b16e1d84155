from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Literal

import numpy as np

__all__ = ["Batch", "DatasetSplit", "StepMetrics"]

DatasetSplit = Literal["train", "test"]


@dataclass(frozen=True)
class Batch:
    """A batch of split training/inference windows.

    All fields are NumPy arrays with a leading batch axis (adapters and
    transforms yield NumPy; the core converts to JAX):

    - `past_target` / `past_observed`: (batch, past_length)
    - `future_target` / `future_observed`: (batch, future_length)
    - `past_time_feat`: (batch, past_length, num_features)
    - `future_time_feat`: (batch, future_length, num_features)

    `observed` is 1.0 where the target value is known and 0.0 for padding
    or missing values.
    """

    past_target: np.ndarray
    past_observed: np.ndarray
    past_time_feat: np.ndarray
    future_target: np.ndarray
    future_observed: np.ndarray
    future_time_feat: np.ndarray

    @property
    def size(self) -> int:
        return int(self.past_target.shape[0])

    def as_arrays(self) -> dict[str, np.ndarray]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def stack(cls, rows: list[Batch]) -> Batch:
        """Concatenate batches (typically single rows) along the batch axis."""

        return cls(
            **{
                f.name: np.concatenate([getattr(r, f.name) for r in rows], axis=0)
                for f in fields(cls)
            }
        )


@dataclass(frozen=True)
class StepMetrics:
    loss: float
    extra: dict[str, Any] | None = None
