from __future__ import annotations

from typing import Any, Protocol


class CheckpointStorePort(Protocol):
    """Port for persisting trained forecaster params.

    `state` is `{"params": pytree}`; `metadata` carries the epoch summary
    (including `best/step`) plus the model config (`"model"`) and dataset
    frequency (`"freq"`) needed to rebuild the forecaster. Loads return
    `(step, {"params": ..., "metadata": ...})` or None.
    """

    def save(self, *, step: int, state: dict[str, Any], metadata: dict[str, Any] | None = None) -> None: ...

    def load(self, *, step: int) -> tuple[int, dict[str, Any]] | None: ...

    def load_latest(self) -> tuple[int, dict[str, Any]] | None: ...

    def load_best(self) -> tuple[int, dict[str, Any]] | None: ...
