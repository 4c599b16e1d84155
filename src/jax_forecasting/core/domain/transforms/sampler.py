from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np


class InstanceSampler(Protocol):
    """Chooses cut points in a series of length `length`.

    A cut point `t` splits the series into past `[:t]` and future `[t:]`.
    """

    def __call__(self, length: int, rng: np.random.Generator) -> np.ndarray: ...


@dataclass(frozen=True)
class ExpectedNumInstanceSampler:
    """Samples on average `num_instances` cut points per series.

    Every valid cut point in `[min_past, length - min_future]` is kept
    independently with probability `num_instances / num_valid`.
    """

    num_instances: float
    min_past: int = 0
    min_future: int = 0

    def __call__(self, length: int, rng: np.random.Generator) -> np.ndarray:
        a, b = self.min_past, length - self.min_future
        if b < a:
            return np.zeros((0,), dtype=np.int64)
        candidates = np.arange(a, b + 1)
        p = min(1.0, self.num_instances / len(candidates))
        keep = rng.random(len(candidates)) < p
        return candidates[keep]


@dataclass(frozen=True)
class ValidationSplitSampler:
    """The single cut that holds out the last `min_future` values."""

    min_past: int = 0
    min_future: int = 0

    def __call__(self, length: int, rng: np.random.Generator | None = None) -> np.ndarray:
        cut = length - self.min_future
        if cut < self.min_past or cut <= 0:
            return np.zeros((0,), dtype=np.int64)
        return np.array([cut], dtype=np.int64)


@dataclass(frozen=True)
class TestSplitSampler:
    """The cut at the end of the series, i.e. forecast beyond the last value."""

    min_past: int = 0

    def __call__(self, length: int, rng: np.random.Generator | None = None) -> np.ndarray:
        if length < max(1, self.min_past):
            return np.zeros((0,), dtype=np.int64)
        return np.array([length], dtype=np.int64)
