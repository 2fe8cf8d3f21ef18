from __future__ import annotations

from typing import Optional

import inject

from jax_vision_toolkits.core.ports.checkpoint_store import CheckpointStorePort
from jax_vision_toolkits.core.ports.compute_backend import ComputeContextFactory
from jax_vision_toolkits.core.ports.metrics_sink import MetricsSinkPort
from jax_vision_toolkits.core.ports.model_exporter import ModelExporterPort
from jax_vision_toolkits.core.use_cases.drawing_classifier import DrawingClassifierUseCase
from jax_vision_toolkits.core.use_cases.style_transfer import StyleTransferUseCase, WeightsLoader


# pylint: disable=invalid-name
def get_dependencies_injection_config(
    *,
    compute_context_factory: ComputeContextFactory,
    metrics_sink: MetricsSinkPort,
    checkpoint_store: Optional[CheckpointStorePort] = None,
    model_exporter: Optional[ModelExporterPort] = None,
    weights_loader: Optional[WeightsLoader] = None,
):
    """Return an inject binder function.

    No imports occur inside the returned function.
    """

    def configure_dependencies_injection(binder: inject.Binder) -> None:
        binder.bind(MetricsSinkPort, metrics_sink)
        if checkpoint_store is not None:
            binder.bind(CheckpointStorePort, checkpoint_store)
        if model_exporter is not None:
            binder.bind(ModelExporterPort, model_exporter)

        # Use cases are bound as fully-wired objects; each call to
        # `configure_injections` gives fresh toolkit state.
        binder.bind(
            DrawingClassifierUseCase,
            DrawingClassifierUseCase(
                compute_context_factory=compute_context_factory,
                metrics_sink=metrics_sink,
                checkpoint_store=checkpoint_store,
                model_exporter=model_exporter,
            ),
        )
        binder.bind(
            StyleTransferUseCase,
            StyleTransferUseCase(
                compute_context_factory=compute_context_factory,
                metrics_sink=metrics_sink,
                checkpoint_store=checkpoint_store,
                model_exporter=model_exporter,
                weights_loader=weights_loader,
            ),
        )

    return configure_dependencies_injection


def configure_injections(
    *,
    compute_context_factory: ComputeContextFactory,
    metrics_sink: MetricsSinkPort,
    checkpoint_store: Optional[CheckpointStorePort] = None,
    model_exporter: Optional[ModelExporterPort] = None,
    weights_loader: Optional[WeightsLoader] = None,
) -> None:
    """Configure inject with this app's runtime bindings.

    Safe to call multiple times (clears previous bindings).
    """

    config = get_dependencies_injection_config(
        compute_context_factory=compute_context_factory,
        metrics_sink=metrics_sink,
        checkpoint_store=checkpoint_store,
        model_exporter=model_exporter,
        weights_loader=weights_loader,
    )

    if inject.is_configured():
        inject.clear_and_configure(config)
    else:
        inject.configure(config)
