from __future__ import annotations

import gzip
import json
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from jax_forecasting.adapters.right.data_loaders import (
    JsonLinesDatasetProvider,
    SyntheticDatasetProvider,
    write_dataset_dir,
)
from jax_forecasting.core.domain.errors.dataset import DatasetError


def _write_lines(path: Path, records: list[dict], *, compress: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = "".join(json.dumps(r) + "\n" for r in records)
    if compress:
        with gzip.open(path, "wt", encoding="utf-8") as f:
            f.write(text)
    else:
        path.write_text(text, encoding="utf-8")


def _make_dataset(root: Path) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "metadata.json").write_text(json.dumps({"freq": "D", "prediction_length": 2}), encoding="utf-8")
    _write_lines(
        root / "train" / "data.json",
        [
            {"start": "2021-01-01", "target": [1.0, 2.0, "NaN", 4.0]},
            {"start": "2021-02-01", "target": [5, 6, 7], "item_id": "b"},
        ],
    )
    _write_lines(
        root / "test" / "data.json.gz",
        [
            {"start": "2021-01-01", "target": [1.0, 2.0, None, 4.0, 5.0, 6.0]},
            {"start": "2021-02-01", "target": [5, 6, 7, 8, 9], "item_id": "b"},
        ],
        compress=True,
    )
    return root


def test_reads_metadata_and_both_splits(tmp_path: Path) -> None:
    provider = JsonLinesDatasetProvider(path=_make_dataset(tmp_path / "ds"))

    info = provider.info
    assert info.freq == "D"
    assert info.prediction_length == 2
    assert info.name == "ds"
    assert info.train_size == 2
    assert info.test_size == 2

    train = list(provider.iter_entries(split="train"))
    assert train[0].item_id == "0"
    assert train[1].item_id == "b"
    assert train[0].start == pd.Period("2021-01-01", freq="D")
    assert np.isnan(train[0].target[2])
    assert train[0].target.dtype == np.float32

    test = list(provider.iter_entries(split="test"))
    assert [len(e) for e in test] == [6, 5]
    assert np.isnan(test[0].target[2])


def test_missing_metadata_raises(tmp_path: Path) -> None:
    (tmp_path / "train").mkdir()
    with pytest.raises(DatasetError):
        JsonLinesDatasetProvider(path=tmp_path)


def test_records_without_target_raise(tmp_path: Path) -> None:
    root = _make_dataset(tmp_path / "ds")
    _write_lines(root / "train" / "data.json", [{"start": "2021-01-01"}])
    with pytest.raises(DatasetError):
        JsonLinesDatasetProvider(path=root)


def test_unsupported_frequency_raises(tmp_path: Path) -> None:
    root = _make_dataset(tmp_path / "ds")
    (root / "metadata.json").write_text(json.dumps({"freq": "fortnight", "prediction_length": 2}), encoding="utf-8")
    with pytest.raises(DatasetError):
        JsonLinesDatasetProvider(path=root)


def test_synthetic_dataset_survives_write_and_read(tmp_path: Path) -> None:
    synthetic = SyntheticDatasetProvider(freq="H", prediction_length=4, num_series=3, length=30, seed=1)
    root = write_dataset_dir(synthetic, tmp_path / "synthetic")

    provider = JsonLinesDatasetProvider(path=root)
    assert provider.info.freq == "H"
    assert provider.info.prediction_length == 4
    assert provider.info.name == "synthetic"

    for split in ("train", "test"):
        expected = list(synthetic.iter_entries(split=split))
        actual = list(provider.iter_entries(split=split))
        assert [e.item_id for e in actual] == [e.item_id for e in expected]
        for a, e in zip(actual, expected):
            assert a.start == e.start
            np.testing.assert_allclose(a.target, e.target, rtol=1e-6)
    assert [len(e) for e in provider.iter_entries(split="test")] == [34, 34, 34]
