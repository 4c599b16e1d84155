from __future__ import annotations

import gzip
import json
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from jax_forecasting.core.domain.entities.base import DatasetSplit
from jax_forecasting.core.domain.entities.dataset import DatasetInfo, TimeSeriesEntry
from jax_forecasting.core.domain.errors.base import ConfigurationError
from jax_forecasting.core.domain.errors.dataset import DatasetError
from jax_forecasting.core.domain.utils.frequency import to_pandas_freq
from jax_forecasting.core.ports.dataset_provider import DatasetProviderPort

_DATA_SUFFIXES = (".json", ".jsonl", ".json.gz", ".jsonl.gz")


def _open_text(path: Path):
    if path.name.endswith(".gz"):
        return gzip.open(path, "rt", encoding="utf-8")
    return path.open("r", encoding="utf-8")


def _to_float(v: Any) -> float:
    if v is None or (isinstance(v, str) and v.strip().lower() in {"nan", ""}):
        return float("nan")
    return float(v)


class JsonLinesDatasetProvider(DatasetProviderPort):
    """Reads a benchmark dataset directory.

    Expected layout:
      - metadata.json with `freq` and `prediction_length` (optional `name`)
      - train/ and test/ with one or more JSON-lines files; each record has
        `start`, `target` and optionally `item_id`

    By convention each test series extends its training counterpart by
    `prediction_length` values.
    """

    def __init__(self, *, path: str | Path) -> None:
        self._root = Path(path)
        meta_path = self._root / "metadata.json"
        if not meta_path.is_file():
            raise DatasetError(f"metadata.json not found in {self._root}")
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise DatasetError(f"metadata.json is not valid JSON: {e}") from e

        freq = str(meta.get("freq", "")).strip()
        try:
            self._pandas_freq = to_pandas_freq(freq)
        except ConfigurationError as e:
            raise DatasetError(str(e)) from e

        prediction_length = int(meta.get("prediction_length", 0))
        if prediction_length < 1:
            raise DatasetError(f"prediction_length must be >= 1, got {prediction_length}")

        self._cache: dict[str, list[TimeSeriesEntry]] = {}
        train = self._load("train")
        test = self._load("test")
        self._info = DatasetInfo(
            freq=freq,
            prediction_length=prediction_length,
            name=meta.get("name") or self._root.name,
            num_series=len(train),
            train_size=len(train),
            test_size=len(test),
        )

    @property
    def info(self) -> DatasetInfo:
        return self._info

    def _files(self, split: str) -> list[Path]:
        split_dir = self._root / split
        if not split_dir.is_dir():
            raise DatasetError(f"Split directory not found: {split_dir}")
        return sorted(p for p in split_dir.iterdir() if p.is_file() and p.name.endswith(_DATA_SUFFIXES))

    def _parse(self, record: Any, *, position: int, source: Path) -> TimeSeriesEntry:
        if not isinstance(record, dict) or "start" not in record or "target" not in record:
            raise DatasetError(f"{source}: record {position} must have 'start' and 'target'")
        try:
            start = pd.Period(record["start"], freq=self._pandas_freq)
        except (ValueError, TypeError) as e:
            raise DatasetError(f"{source}: record {position} has an invalid start {record['start']!r}") from e
        target = np.asarray([_to_float(v) for v in record["target"]], dtype=np.float32)
        item_id = record.get("item_id")
        return TimeSeriesEntry(
            start=start,
            target=target,
            item_id=str(item_id) if item_id is not None else str(position),
        )

    def _load(self, split: str) -> list[TimeSeriesEntry]:
        if split in self._cache:
            return self._cache[split]
        entries: list[TimeSeriesEntry] = []
        for path in self._files(split):
            with _open_text(path) as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise DatasetError(f"{path}: invalid JSON on record {len(entries)}: {e}") from e
                    entries.append(self._parse(record, position=len(entries), source=path))
        self._cache[split] = entries
        return entries

    def iter_entries(self, *, split: DatasetSplit) -> Iterator[TimeSeriesEntry]:
        yield from self._load(split)


def _entry_record(entry: TimeSeriesEntry) -> dict[str, Any]:
    return {
        "start": entry.start.start_time.strftime("%Y-%m-%d %H:%M:%S"),
        "target": [None if np.isnan(v) else float(v) for v in entry.target.tolist()],
        "item_id": entry.item_id,
    }


def _write_split(path: Path, entries: Iterable[TimeSeriesEntry]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with path.open("w", encoding="utf-8") as f:
        for entry in entries:
            f.write(json.dumps(_entry_record(entry)))
            f.write("\n")
            n += 1
    return n


def write_dataset_dir(provider: DatasetProviderPort, path: str | Path) -> Path:
    """Persist any dataset provider in the layout `JsonLinesDatasetProvider` reads."""

    root = Path(path)
    root.mkdir(parents=True, exist_ok=True)
    info = provider.info
    meta = {"freq": info.freq, "prediction_length": info.prediction_length, "name": info.name}
    (root / "metadata.json").write_text(json.dumps(meta), encoding="utf-8")
    _write_split(root / "train" / "data.json", provider.iter_entries(split="train"))
    _write_split(root / "test" / "data.json", provider.iter_entries(split="test"))
    return root
