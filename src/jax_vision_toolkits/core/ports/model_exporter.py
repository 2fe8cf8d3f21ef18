from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from jax_vision_toolkits.core.domain.topology.spec import TopologySpec


class ExportedModel(Protocol):
    def add_metadata(self, metadata: dict[str, Any]) -> None: ...

    def save(self, path: str) -> None: ...


class ModelExporterPort(Protocol):
    """Turns a topology spec into an interchange model file wrapper."""

    def export(
        self,
        spec: "TopologySpec",
        *,
        input_names: list[str],
        output_names: list[str],
        metadata: dict[str, Any] | None = None,
    ) -> ExportedModel: ...
