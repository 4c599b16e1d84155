from __future__ import annotations

from collections.abc import Iterator, Sequence

import numpy as np

from jax_forecasting.core.domain.entities.base import Batch
from jax_forecasting.core.domain.entities.dataset import TimeSeriesEntry
from jax_forecasting.core.domain.errors.dataset import DatasetError
from jax_forecasting.core.domain.transforms.sampler import InstanceSampler
from jax_forecasting.core.domain.transforms.splitter import InstanceSplitter


class TrainingBatchLoader:
    """Endless stream of training batches.

    Cycles over the series in a new random order on every pass, samples
    cut points per series, and draws rows out of a shuffle buffer so that a
    batch mixes windows from different series. Every batch has exactly
    `batch_size` rows.
    """

    def __init__(
        self,
        entries: Sequence[TimeSeriesEntry],
        *,
        splitter: InstanceSplitter,
        sampler: InstanceSampler,
        batch_size: int,
        seed: int = 0,
        shuffle_buffer_length: int | None = None,
        max_empty_passes: int = 100,
    ) -> None:
        self._entries = list(entries)
        self._splitter = splitter
        self._sampler = sampler
        self._batch_size = batch_size
        self._seed = seed
        self._buffer_length = shuffle_buffer_length or 4 * batch_size
        self._max_empty_passes = max_empty_passes

    def _has_valid_cut(self, entry: TimeSeriesEntry) -> bool:
        min_past = getattr(self._sampler, "min_past", 0)
        min_future = getattr(self._sampler, "min_future", 0)
        return len(entry) - min_future >= min_past

    def _instances(self, rng: np.random.Generator) -> Iterator[Batch]:
        produced = False
        empty_passes = 0
        while True:
            pass_count = 0
            for i in rng.permutation(len(self._entries)):
                entry = self._entries[int(i)]
                for cut in self._sampler(len(entry), rng):
                    pass_count += 1
                    yield self._splitter.split(entry, int(cut))
            if pass_count:
                produced = True
            elif not produced:
                empty_passes += 1
                if empty_passes >= self._max_empty_passes:
                    raise DatasetError(
                        f"No training instances sampled in {empty_passes} passes over the series"
                    )

    def __iter__(self) -> Iterator[Batch]:
        if not self._entries:
            raise DatasetError("No training series provided")
        if not any(self._has_valid_cut(e) for e in self._entries):
            raise DatasetError("No training instances can be sampled; all series are too short")

        rng = np.random.default_rng(self._seed)
        buffer: list[Batch] = []
        pending: list[Batch] = []
        for row in self._instances(rng):
            if len(buffer) < self._buffer_length:
                buffer.append(row)
                continue
            j = int(rng.integers(len(buffer)))
            buffer[j], row = row, buffer[j]
            pending.append(row)
            if len(pending) == self._batch_size:
                yield Batch.stack(pending)
                pending = []


class InferenceBatchLoader:
    """Splits every series once and yields `(entry_indices, batch)` in input order.

    Series for which the sampler yields no cut point are skipped; the indices
    align batch rows with the input entries. The last batch may be short.
    """

    def __init__(
        self,
        entries: Sequence[TimeSeriesEntry],
        *,
        splitter: InstanceSplitter,
        sampler: InstanceSampler,
        batch_size: int,
    ) -> None:
        self._entries = list(entries)
        self._splitter = splitter
        self._sampler = sampler
        self._batch_size = batch_size

    def __iter__(self) -> Iterator[tuple[list[int], Batch]]:
        rng = np.random.default_rng(0)
        rows: list[Batch] = []
        indices: list[int] = []
        for i, entry in enumerate(self._entries):
            cuts = self._sampler(len(entry), rng)
            if len(cuts) == 0:
                continue
            rows.append(self._splitter.split(entry, int(cuts[-1])))
            indices.append(i)
            if len(rows) == self._batch_size:
                yield indices, Batch.stack(rows)
                rows, indices = [], []
        if rows:
            yield indices, Batch.stack(rows)
