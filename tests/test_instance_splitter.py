from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from jax_forecasting.core.domain.entities.dataset import TimeSeriesEntry
from jax_forecasting.core.domain import transforms
from jax_forecasting.core.domain.errors.dataset import DatasetError
from jax_forecasting.core.domain.transforms import (
    ExpectedNumInstanceSampler,
    InferenceBatchLoader,
    InstanceSplitter,
    TrainingBatchLoader,
    ValidationSplitSampler,
)
from jax_forecasting.core.domain.utils.time_features import time_features_for


def _entry(values, item_id: str = "0") -> TimeSeriesEntry:
    return TimeSeriesEntry(
        start=pd.Period("2021-01-01", freq="D"),
        target=np.asarray(values, dtype=np.float32),
        item_id=item_id,
    )


def test_split_pads_short_history() -> None:
    splitter = InstanceSplitter(past_length=5, future_length=3, time_features=time_features_for("D"))
    row = splitter.split(_entry(np.arange(10)), cut=4)

    np.testing.assert_array_equal(row.past_target[0], [0, 0, 1, 2, 3])
    np.testing.assert_array_equal(row.past_observed[0], [0, 1, 1, 1, 1])
    np.testing.assert_array_equal(row.future_target[0], [4, 5, 6])
    np.testing.assert_array_equal(row.future_observed[0], [1, 1, 1])
    assert row.past_time_feat.shape == (1, 5, 3)
    assert row.future_time_feat.shape == (1, 3, 3)


def test_split_at_series_end_has_unobserved_future() -> None:
    splitter = InstanceSplitter(past_length=4, future_length=3, time_features=time_features_for("D"))
    row = splitter.split(_entry(np.arange(10)), cut=10)

    np.testing.assert_array_equal(row.past_target[0], [6, 7, 8, 9])
    np.testing.assert_array_equal(row.future_observed[0], [0, 0, 0])
    assert row.future_time_feat.shape == (1, 3, 3)


def test_split_masks_nans() -> None:
    splitter = InstanceSplitter(past_length=4, future_length=1)
    row = splitter.split(_entry([1.0, np.nan, 3.0, 4.0, 5.0]), cut=4)

    np.testing.assert_array_equal(row.past_target[0], [1, 0, 3, 4])
    np.testing.assert_array_equal(row.past_observed[0], [1, 0, 1, 1])
    assert row.past_time_feat.shape == (1, 4, 0)


def test_samplers() -> None:
    rng = np.random.default_rng(0)

    every_cut = ExpectedNumInstanceSampler(num_instances=1e9, min_future=3)
    np.testing.assert_array_equal(every_cut(10, rng), np.arange(0, 8))
    assert len(every_cut(2, rng)) == 0

    np.testing.assert_array_equal(ValidationSplitSampler(min_future=3)(10), [7])
    assert len(ValidationSplitSampler(min_future=3)(3)) == 0
    np.testing.assert_array_equal(transforms.TestSplitSampler()(10), [10])


def test_training_loader_yields_full_batches() -> None:
    entries = [_entry(np.arange(30) + i, item_id=str(i)) for i in range(3)]
    loader = TrainingBatchLoader(
        entries,
        splitter=InstanceSplitter(past_length=6, future_length=2),
        sampler=ExpectedNumInstanceSampler(num_instances=2, min_future=2),
        batch_size=5,
        seed=0,
    )

    it = iter(loader)
    for _ in range(4):
        batch = next(it)
        assert batch.size == 5
        assert batch.past_target.shape == (5, 6)
        assert batch.future_target.shape == (5, 2)


def test_training_loader_rejects_series_that_are_too_short() -> None:
    loader = TrainingBatchLoader(
        [_entry([1.0, 2.0])],
        splitter=InstanceSplitter(past_length=4, future_length=3),
        sampler=ExpectedNumInstanceSampler(num_instances=1, min_future=3),
        batch_size=2,
    )
    with pytest.raises(DatasetError):
        next(iter(loader))


def test_training_loader_raises_when_sampler_never_yields() -> None:
    loader = TrainingBatchLoader(
        [_entry(np.arange(50, dtype=np.float32))],
        splitter=InstanceSplitter(past_length=4, future_length=2),
        sampler=ExpectedNumInstanceSampler(num_instances=0.0, min_future=2),
        batch_size=2,
        max_empty_passes=5,
    )
    with pytest.raises(DatasetError):
        next(iter(loader))


def test_training_loader_tolerates_occasional_empty_passes() -> None:
    loader = TrainingBatchLoader(
        [_entry(np.arange(50, dtype=np.float32))],
        splitter=InstanceSplitter(past_length=4, future_length=2),
        sampler=ExpectedNumInstanceSampler(num_instances=0.5, min_future=2),
        batch_size=2,
        seed=3,
    )
    batches = iter(loader)
    for _ in range(5):
        assert next(batches).size == 2


def test_inference_loader_keeps_order_and_short_last_batch() -> None:
    entries = [_entry(np.arange(8) + i, item_id=str(i)) for i in range(5)]
    loader = InferenceBatchLoader(
        entries,
        splitter=InstanceSplitter(past_length=4, future_length=2),
        sampler=transforms.TestSplitSampler(),
        batch_size=2,
    )

    batches = list(loader)
    assert [indices for indices, _ in batches] == [[0, 1], [2, 3], [4]]
    last_indices, last = batches[-1]
    assert last.size == 1
    np.testing.assert_array_equal(last.past_target[0], [8, 9, 10, 11])
