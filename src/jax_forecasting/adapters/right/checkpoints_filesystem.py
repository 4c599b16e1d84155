from __future__ import annotations

import json
import os
import re
from typing import Any

import jax
import numpy as np
from safetensors.numpy import load_file, save_file

from jax_forecasting.core.domain.entities.model import Params
from jax_forecasting.core.ports.checkpoint_store import CheckpointStorePort

_PARAMS_RE = re.compile(r"^params_step_(\d+)\.safetensors$")


def flatten_params(params: Params) -> dict[str, np.ndarray]:
    """Flatten a params pytree into `{key_path: array}` (e.g. "['mlp'][0]['w']")."""

    leaves, _ = jax.tree_util.tree_flatten_with_path(params)
    return {jax.tree_util.keystr(path): np.ascontiguousarray(np.asarray(leaf)) for path, leaf in leaves}


def restore_params(template: Params, flat: dict[str, np.ndarray]) -> Params:
    """Rebuild a params pytree shaped like `template` from `flatten_params` output."""

    leaves, treedef = jax.tree_util.tree_flatten_with_path(template)
    restored = []
    for path, leaf in leaves:
        name = jax.tree_util.keystr(path)
        if name not in flat:
            raise KeyError(f"checkpoint is missing parameter {name}")
        value = flat[name]
        if tuple(value.shape) != tuple(np.shape(leaf)):
            raise ValueError(f"parameter {name} has shape {value.shape}, expected {np.shape(leaf)}")
        restored.append(jax.numpy.asarray(value))
    return jax.tree_util.tree_unflatten(treedef, restored)


class FilesystemCheckpointStore(CheckpointStorePort):
    """Very small checkpoint adapter.

    Saves a state dict containing at least `params`. Only params (as
    safetensors, keyed by pytree path) and JSON metadata are persisted; the
    optimizer state is not.
    """

    def __init__(self, *, dir_path: str) -> None:
        self._dir = dir_path
        os.makedirs(self._dir, exist_ok=True)

    def save(self, *, step: int, state: dict[str, Any], metadata: dict[str, Any] | None = None) -> None:
        params = state.get("params") if isinstance(state, dict) else None
        if params is None:
            raise ValueError("state must be a dict containing 'params'")

        ckpt_path = os.path.join(self._dir, f"params_step_{step}.safetensors")
        save_file(flatten_params(params), ckpt_path)

        meta_path = os.path.join(self._dir, f"meta_step_{step}.json")
        with open(meta_path, "w", encoding="utf-8") as f:
            json.dump(metadata or {}, f)

    def load(self, *, step: int) -> tuple[int, dict[str, Any]] | None:
        """Return `(step, {"params": flat arrays, "metadata": dict})` for `step`, or None."""

        ckpt_path = os.path.join(self._dir, f"params_step_{step}.safetensors")
        if not os.path.exists(ckpt_path):
            return None
        flat = load_file(ckpt_path)
        metadata: dict[str, Any] = {}
        meta_path = os.path.join(self._dir, f"meta_step_{step}.json")
        if os.path.exists(meta_path):
            with open(meta_path, "r", encoding="utf-8") as f:
                metadata = json.load(f)
        return step, {"params": flat, "metadata": metadata}

    def load_latest(self) -> tuple[int, dict[str, Any]] | None:
        steps = []
        for name in os.listdir(self._dir):
            m = _PARAMS_RE.match(name)
            if m:
                steps.append(int(m.group(1)))
        if not steps:
            return None
        return self.load(step=max(steps))

    def load_best(self) -> tuple[int, dict[str, Any]] | None:
        """Checkpoint of the best validation epoch, falling back to the latest one.

        The latest metadata names the best step (`best/step`); without
        validation, or when that step was not saved, the latest checkpoint is used.
        """

        latest = self.load_latest()
        if latest is None:
            return None
        best_step = latest[1]["metadata"].get("best/step")
        if best_step is None or int(best_step) == latest[0]:
            return latest
        return self.load(step=int(best_step)) or latest
