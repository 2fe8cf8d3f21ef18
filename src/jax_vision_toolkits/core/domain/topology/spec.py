from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from jax_vision_toolkits.core.domain.topology.initializers import (
    WeightInitializer,
    constant_weight_initializer,
    zero_weight_initializer,
)

TOPOLOGY_FORMAT_VERSION = 1


@dataclass(frozen=True)
class LayerSpec:
    name: str
    kind: str
    inputs: tuple[str, ...]
    attrs: dict[str, Any] = field(default_factory=dict)


class TopologySpec:
    """Named acyclic layer graph plus a flat parameter map.

    Layers are kept in insertion order, which is a valid evaluation order:
    every layer input must be a graph input or an earlier layer. Parameters
    are named `<layer>_<param>` (e.g. `drawing_conv0_weight`). Convolution
    weights are HWIO, inner-product weights are (in, out), activations are
    NHWC.

    Once built, only parameter values change (`update_params`); the graph is
    never restructured.
    """

    def __init__(self) -> None:
        self._inputs: list[str] = []
        self._layers: dict[str, LayerSpec] = {}
        self._params: dict[str, np.ndarray] = {}

    # ------------------------------------------------------------------
    # Introspection

    @property
    def input_names(self) -> list[str]:
        return list(self._inputs)

    @property
    def layers(self) -> list[LayerSpec]:
        return list(self._layers.values())

    def layer(self, name: str) -> LayerSpec:
        return self._layers[name]

    def __contains__(self, name: object) -> bool:
        return name in self._layers

    @property
    def output_names(self) -> list[str]:
        """Layers that no other layer consumes."""
        consumed = {i for layer in self._layers.values() for i in layer.inputs}
        return [name for name in self._layers if name not in consumed]

    @property
    def params(self) -> Mapping[str, np.ndarray]:
        return self._params

    def export_params_view(self) -> dict[str, np.ndarray]:
        return {k: v.copy() for k, v in self._params.items()}

    def update_params(self, params: Mapping[str, Any]) -> None:
        """Overwrite existing parameters with trained values."""

        for name, value in params.items():
            if name not in self._params:
                raise ValueError(f"unknown parameter {name!r}")
            arr = np.asarray(value, dtype=np.float32)
            expected = self._params[name].shape
            if arr.shape != expected:
                raise ValueError(
                    f"parameter {name!r} has shape {arr.shape}, expected {expected}"
                )
            self._params[name] = arr.copy()

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": TOPOLOGY_FORMAT_VERSION,
            "inputs": list(self._inputs),
            "layers": [
                {
                    "name": layer.name,
                    "type": layer.kind,
                    "inputs": list(layer.inputs),
                    "attrs": dict(layer.attrs),
                }
                for layer in self._layers.values()
            ],
            "outputs": self.output_names,
        }

    # ------------------------------------------------------------------
    # Builders

    def _add(self, name: str, kind: str, inputs: Sequence[str], **attrs: Any) -> LayerSpec:
        if name in self._layers or name in self._inputs:
            raise ValueError(f"duplicate layer name {name!r}")
        for i in inputs:
            if i not in self._layers and i not in self._inputs:
                raise ValueError(f"layer {name!r} reads unknown input {i!r}")
        layer = LayerSpec(name=name, kind=kind, inputs=tuple(inputs), attrs=attrs)
        self._layers[name] = layer
        return layer

    def _declare_inputs(self, names: Iterable[str]) -> None:
        for n in names:
            if n not in self._inputs and n not in self._layers:
                self._inputs.append(n)

    def add_channel_concat(self, name: str, inputs: Sequence[str]) -> None:
        """Concatenate graph inputs (or layers) along the channel axis."""

        if not inputs:
            raise ValueError("channel concat needs at least one input")
        self._declare_inputs(inputs)
        self._add(name, "channel_concat", inputs)

    def add_convolution(
        self,
        name: str,
        input_name: str,
        *,
        num_output_channels: int,
        num_kernel_channels: int,
        kernel_height: int,
        kernel_width: int,
        stride_height: int = 1,
        stride_width: int = 1,
        padding: str = "same",
        weight_init_fn: WeightInitializer,
        bias_init_fn: WeightInitializer | None = None,
    ) -> None:
        self._add(
            name,
            "convolution",
            [input_name],
            kernel=(kernel_height, kernel_width),
            stride=(stride_height, stride_width),
            padding=padding.upper(),
            has_bias=bias_init_fn is not None,
        )
        shape = (kernel_height, kernel_width, num_kernel_channels, num_output_channels)
        self._params[f"{name}_weight"] = weight_init_fn(shape)
        if bias_init_fn is not None:
            self._params[f"{name}_bias"] = bias_init_fn((num_output_channels,))

    def add_relu(self, name: str, input_name: str) -> None:
        self._add(name, "relu", [input_name])

    def add_sigmoid(self, name: str, input_name: str) -> None:
        self._add(name, "sigmoid", [input_name])

    def add_softmax(self, name: str, input_name: str) -> None:
        self._add(name, "softmax", [input_name])

    def add_flatten(self, name: str, input_name: str) -> None:
        self._add(name, "flatten", [input_name])

    def add_pooling(
        self,
        name: str,
        input_name: str,
        *,
        kernel_height: int,
        kernel_width: int,
        stride_height: int,
        stride_width: int,
        padding: str = "valid",
    ) -> None:
        self._add(
            name,
            "max_pool",
            [input_name],
            kernel=(kernel_height, kernel_width),
            stride=(stride_height, stride_width),
            padding=padding.upper(),
        )

    def add_inner_product(
        self,
        name: str,
        input_name: str,
        *,
        num_output_channels: int,
        num_input_channels: int,
        weight_init_fn: WeightInitializer,
        bias_init_fn: WeightInitializer | None = None,
    ) -> None:
        bias_init_fn = bias_init_fn or zero_weight_initializer()
        self._add(name, "inner_product", [input_name], num_output_channels=num_output_channels)
        self._params[f"{name}_weight"] = weight_init_fn((num_input_channels, num_output_channels))
        self._params[f"{name}_bias"] = bias_init_fn((num_output_channels,))

    def add_instance_norm(
        self,
        name: str,
        input_name: str,
        *,
        num_channels: int,
        num_styles: int,
        index_name: str = "index",
        epsilon: float = 1e-5,
    ) -> None:
        """Instance norm with one (gamma, beta) pair per style."""

        self._declare_inputs([index_name])
        self._add(name, "instance_norm", [input_name, index_name], epsilon=epsilon)
        self._params[f"{name}_gamma"] = constant_weight_initializer(1.0)((num_styles, num_channels))
        self._params[f"{name}_beta"] = zero_weight_initializer()((num_styles, num_channels))

    def add_addition(self, name: str, inputs: Sequence[str]) -> None:
        self._add(name, "add", inputs)

    def add_upsampling(self, name: str, input_name: str, *, scale_height: int = 2, scale_width: int = 2) -> None:
        self._add(name, "upsample", [input_name], scale=(scale_height, scale_width))
