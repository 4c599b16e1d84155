from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TrainCommand:
    """Intent to train a probabilistic forecaster."""

    epochs: int = 10
    num_batches_per_epoch: int = 50
    batch_size: int = 32
    seed: int = 0

    learning_rate: float = 1e-3
    weight_decay: float = 1e-8

    # Optimizer (Optax AdamW behind global-norm gradient clipping)
    adamw_b1: float = 0.9
    adamw_b2: float = 0.999
    adamw_eps: float = 1e-8
    clip_gradient: float = 10.0

    # Training windows drawn per series per pass over the data (on average).
    num_instances_per_series: float = 1.0

    # Logging
    log_every_steps: int = 10

    # Early stopping (optional)
    # If >0, stop when the validation loss (last window of each training
    # series) hasn't improved for this many epochs.
    early_stopping_patience: int = 0
