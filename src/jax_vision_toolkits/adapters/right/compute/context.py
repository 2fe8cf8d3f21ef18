from __future__ import annotations

import jax

from jax_vision_toolkits.adapters.right.compute.drawing_classifier import JaxDrawingClassifierBackend
from jax_vision_toolkits.adapters.right.compute.style_transfer import JaxStyleTransferBackend
from jax_vision_toolkits.core.domain.errors import BackendUnavailableError
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.ports.compute_backend import ComputeContextPort


class JaxComputeContext(ComputeContextPort):
    """Creates JAX backends on the first device of a platform."""

    def __init__(self, devices: list[jax.Device]) -> None:
        if not devices:
            raise BackendUnavailableError("no JAX devices available")
        self._devices = list(devices)

    @classmethod
    def create(cls, platform: str | None = None) -> "JaxComputeContext":
        try:
            devices = jax.devices(platform) if platform else jax.devices()
        except RuntimeError as exc:
            raise BackendUnavailableError(f"JAX runtime unavailable: {exc}") from exc
        return cls(devices)

    @property
    def device(self) -> jax.Device:
        return self._devices[0]

    def gpu_names(self) -> list[str]:
        return [d.device_kind for d in self._devices if d.platform == "gpu"]

    def create_drawing_classifier(
        self,
        spec: TopologySpec,
        *,
        batch_size: int,
        num_classes: int,
        learning_rate: float,
    ) -> JaxDrawingClassifierBackend:
        return JaxDrawingClassifierBackend(
            spec,
            batch_size=batch_size,
            num_classes=num_classes,
            learning_rate=learning_rate,
            device=self.device,
        )

    def create_style_transfer(
        self,
        transformer: TopologySpec,
        vgg: TopologySpec | None,
        *,
        num_styles: int,
        content_weight: float,
        style_weight: float,
        learning_rate: float,
    ) -> JaxStyleTransferBackend:
        return JaxStyleTransferBackend(
            transformer,
            vgg,
            num_styles=num_styles,
            content_weight=content_weight,
            style_weight=style_weight,
            learning_rate=learning_rate,
            device=self.device,
        )


def create_compute_context(platform: str | None = None) -> JaxComputeContext | None:
    """Context factory for the use cases; None when JAX has no usable device."""

    try:
        return JaxComputeContext.create(platform)
    except BackendUnavailableError:
        return None
