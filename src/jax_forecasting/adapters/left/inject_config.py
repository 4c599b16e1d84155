from __future__ import annotations

from typing import Optional

import inject

from jax_forecasting.core.domain.entities.model import ForecasterFns
from jax_forecasting.core.ports import (CheckpointStorePort, DatasetProviderPort,
                                        MetricsSinkPort)
from jax_forecasting.core.use_cases.train_forecaster import \
    TrainForecasterUseCase


# pylint: disable=invalid-name
def get_dependencies_injection_config(
    *,
    dataset_provider: DatasetProviderPort,
    metrics_sink: MetricsSinkPort,
    model_fns: ForecasterFns,
    checkpoint_store: Optional[CheckpointStorePort] = None,
):
    """Return an inject binder function for one training run.

    No imports occur inside the returned function.
    """

    def configure_dependencies_injection(binder: inject.Binder) -> None:
        binder.bind(DatasetProviderPort, dataset_provider)
        binder.bind(MetricsSinkPort, metrics_sink)
        if checkpoint_store is not None:
            binder.bind(CheckpointStorePort, checkpoint_store)

        # Bind the use case as a fully-wired object.
        binder.bind(
            TrainForecasterUseCase,
            TrainForecasterUseCase(
                dataset_provider=dataset_provider,
                model_fns=model_fns,
                checkpoint_store=checkpoint_store,
                metrics_sink=metrics_sink,
            ),
        )

    return configure_dependencies_injection


def configure_injections(
    *,
    dataset_provider: DatasetProviderPort,
    metrics_sink: MetricsSinkPort,
    model_fns: ForecasterFns,
    checkpoint_store: Optional[CheckpointStorePort] = None,
) -> None:
    """Configure inject with this app's runtime bindings.

    Safe to call multiple times (clears previous bindings).
    """

    config = get_dependencies_injection_config(
        dataset_provider=dataset_provider,
        metrics_sink=metrics_sink,
        model_fns=model_fns,
        checkpoint_store=checkpoint_store,
    )

    if inject.is_configured():
        inject.clear_and_configure(config)
    else:
        inject.configure(config)
