from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from jax_vision_toolkits.core.domain.entities.state import ModelState, TrainingPhase
from jax_vision_toolkits.core.domain.errors import (
    BackendUnavailableError,
    ConfigurationError,
    UninitializedStateError,
)
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.ports.checkpoint_store import CheckpointStorePort
from jax_vision_toolkits.core.ports.compute_backend import ComputeContextFactory, ComputeContextPort
from jax_vision_toolkits.core.ports.metrics_sink import MetricsSinkPort
from jax_vision_toolkits.core.ports.model_exporter import ModelExporterPort


@dataclass(frozen=True)
class TrainResult:
    state: dict[str, Any]
    history: list[dict[str, Any]]


class ToolkitUseCase:
    """Wiring and lifecycle shared by the toolkits.

    Subclasses own a topology spec (`_spec`) and publish a `ModelState`;
    this class handles the compute context, progress records and
    checkpointing of `{version, state, params}`.
    """

    VERSION = 1
    TOOLKIT_NAME = "toolkit"

    def __init__(
        self,
        *,
        compute_context_factory: ComputeContextFactory,
        metrics_sink: MetricsSinkPort | None = None,
        checkpoint_store: CheckpointStorePort | None = None,
        model_exporter: ModelExporterPort | None = None,
    ) -> None:
        self._compute_context_factory = compute_context_factory
        self._metrics = metrics_sink
        self._ckpt = checkpoint_store
        self._exporter = model_exporter

        self._state = ModelState()
        self._spec: TopologySpec | None = None
        self._compute_context: ComputeContextPort | None = None
        self._history: list[dict[str, Any]] = []
        self._start_time: float | None = None
        self.phase = TrainingPhase.UNINITIALIZED

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def nn_spec(self) -> TopologySpec | None:
        return self._spec

    @property
    def history(self) -> list[dict[str, Any]]:
        return list(self._history)

    # ------------------------------------------------------------------

    def _log(self, *, step: int, metrics: dict[str, Any]) -> None:
        if self._metrics:
            self._metrics.log(step=step, metrics=metrics)

    def _elapsed(self) -> float:
        if self._start_time is None:
            return 0.0
        return time.perf_counter() - self._start_time

    def _start_clock(self) -> None:
        self._start_time = time.perf_counter()

    def _create_compute_context(self) -> ComputeContextPort:
        context = self._compute_context_factory()
        if context is None:
            raise BackendUnavailableError("No neural network compute context provided")
        self._compute_context = context

        gpu_names = context.gpu_names()
        self._log(
            step=int(self._state.get("training_iterations", 0)),
            metrics={
                "event": "training_device",
                "toolkit": self.TOOLKIT_NAME,
                "device": "gpu" if gpu_names else "cpu",
                "gpus": gpu_names,
            },
        )
        return context

    def _require_exporter(self) -> ModelExporterPort:
        if self._exporter is None:
            raise ConfigurationError("no model exporter configured")
        return self._exporter

    # ------------------------------------------------------------------
    # Persistence

    def _rebuild_spec(self, state: ModelState) -> TopologySpec:
        raise NotImplementedError

    def save(self) -> None:
        if self._spec is None:
            raise UninitializedStateError(
                "model spec is not initialized, please call `init_training` before saving model"
            )
        if self._ckpt is None:
            raise ConfigurationError("no checkpoint store configured")

        self._ckpt.save(
            step=int(self._state.get("training_iterations", 0)),
            version=self.VERSION,
            state=self._state.as_dict(),
            params=self._spec.export_params_view(),
        )

    def load(self) -> None:
        """Restore the latest checkpoint: state first, then the rebuilt topology's params."""

        if self._ckpt is None:
            raise ConfigurationError("no checkpoint store configured")
        ckpt = self._ckpt.load_latest()
        if ckpt is None:
            raise UninitializedStateError("no saved model found")
        if ckpt.version > self.VERSION:
            raise ConfigurationError(
                f"saved {self.TOOLKIT_NAME} has version {ckpt.version}, "
                f"this version reads up to {self.VERSION}"
            )

        state = ModelState(ckpt.state)
        spec = self._rebuild_spec(state)
        spec.update_params(ckpt.params)

        self._state = state
        self._spec = spec
        self._reset_training_handles()
        self.phase = TrainingPhase.FINALIZED

    def _reset_training_handles(self) -> None:
        self._compute_context = None
