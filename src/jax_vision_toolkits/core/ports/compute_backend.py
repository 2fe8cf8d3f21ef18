from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Protocol

if TYPE_CHECKING:
    from jax_vision_toolkits.core.domain.topology.spec import TopologySpec

# Values are array-likes. They may be asynchronous handles (e.g. JAX arrays
# still being computed); reading them back is the synchronization point.
TensorMap = Mapping[str, Any]


class ComputeBackendPort(Protocol):
    """A trainable network living on some device."""

    def train(self, inputs: TensorMap) -> dict[str, Any]:
        """Run one optimization step. Returns at least `loss` and `accuracy`."""
        ...

    def predict(self, inputs: TensorMap) -> dict[str, Any]: ...

    def export_weights(self) -> dict[str, Any]: ...


class ComputeContextPort(Protocol):
    """Factory for backend models on one runtime (CPU, GPU, ...)."""

    def gpu_names(self) -> list[str]: ...

    def create_drawing_classifier(
        self,
        spec: "TopologySpec",
        *,
        batch_size: int,
        num_classes: int,
        learning_rate: float,
    ) -> ComputeBackendPort: ...

    def create_style_transfer(
        self,
        transformer: "TopologySpec",
        vgg: "TopologySpec | None",
        *,
        num_styles: int,
        content_weight: float,
        style_weight: float,
        learning_rate: float,
    ) -> ComputeBackendPort: ...


# Returns None when no runtime is available.
ComputeContextFactory = Callable[[], "ComputeContextPort | None"]
