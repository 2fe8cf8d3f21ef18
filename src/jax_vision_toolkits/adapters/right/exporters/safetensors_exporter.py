from __future__ import annotations

import json
from typing import Any

import numpy as np
from safetensors.numpy import save_file

from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.domain.utils.serialization import to_jsonable
from jax_vision_toolkits.core.ports.model_exporter import ModelExporterPort


class SafetensorsExportedModel:
    """Parameters as tensors; graph, I/O names and metadata in the header."""

    def __init__(
        self,
        *,
        graph: dict[str, Any],
        params: dict[str, np.ndarray],
        input_names: list[str],
        output_names: list[str],
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.graph = graph
        self.params = params
        self.input_names = list(input_names)
        self.output_names = list(output_names)
        self.metadata: dict[str, Any] = dict(metadata or {})

    def add_metadata(self, metadata: dict[str, Any]) -> None:
        self.metadata.update(metadata)

    def header(self) -> dict[str, str]:
        # safetensors headers only hold str -> str
        return {
            "graph": json.dumps(self.graph),
            "inputs": json.dumps(self.input_names),
            "outputs": json.dumps(self.output_names),
            "metadata": json.dumps(to_jsonable(self.metadata)),
        }

    def save(self, path: str) -> None:
        tensors = {k: np.ascontiguousarray(v, dtype=np.float32) for k, v in self.params.items()}
        save_file(tensors, path, metadata=self.header())


class SafetensorsModelExporter(ModelExporterPort):
    def export(
        self,
        spec: TopologySpec,
        *,
        input_names: list[str],
        output_names: list[str],
        metadata: dict[str, Any] | None = None,
    ) -> SafetensorsExportedModel:
        return SafetensorsExportedModel(
            graph=spec.to_dict(),
            params=spec.export_params_view(),
            input_names=input_names,
            output_names=output_names,
            metadata=metadata,
        )
