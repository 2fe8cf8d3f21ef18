from __future__ import annotations

from typing import Mapping

import numpy as np

from jax_vision_toolkits.core.domain.errors import ConfigurationError
from jax_vision_toolkits.core.domain.topology.initializers import (
    WeightInitializer,
    xavier_weight_initializer,
    zero_weight_initializer,
)
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.domain.utils.hashing import make_rng

TRANSFORMER_PREFIX = "transformer"
TRANSFORMER_INPUT = "image"
TRANSFORMER_OUTPUT = "stylizedImage"
STYLE_INDEX_INPUT = "index"
NUM_RESIDUAL_BLOCKS = 5

VGG_INPUT = "image"
# (block, number of convolutions)
VGG_BLOCKS = ((1, 2), (2, 2), (3, 3), (4, 3))
VGG_STYLE_LAYERS = ("vgg_relu1_2", "vgg_relu2_2", "vgg_relu3_3", "vgg_relu4_3")
VGG_CONTENT_LAYER = "vgg_relu3_3"


class _TransformerBuilder:
    def __init__(self, spec: TopologySpec, num_styles: int, rng: np.random.Generator) -> None:
        self.spec = spec
        self.num_styles = num_styles
        self.rng = rng

    def conv_norm(
        self,
        name: str,
        input_name: str,
        *,
        in_channels: int,
        out_channels: int,
        kernel: int,
        stride: int = 1,
        activation: str | None = "relu",
    ) -> str:
        conv = f"{name}_conv"
        self.spec.add_convolution(
            conv,
            input_name,
            num_output_channels=out_channels,
            num_kernel_channels=in_channels,
            kernel_height=kernel,
            kernel_width=kernel,
            stride_height=stride,
            stride_width=stride,
            padding="same",
            weight_init_fn=xavier_weight_initializer(
                in_channels * kernel * kernel, out_channels * kernel * kernel, self.rng
            ),
        )
        norm = f"{name}_instancenorm"
        self.spec.add_instance_norm(
            norm,
            conv,
            num_channels=out_channels,
            num_styles=self.num_styles,
            index_name=STYLE_INDEX_INPUT,
        )
        if activation is None:
            return norm
        out = f"{name}_{activation}"
        if activation == "relu":
            self.spec.add_relu(out, norm)
        else:
            self.spec.add_sigmoid(out, norm)
        return out


def build_transformer_spec(num_styles: int, *, random_seed: int) -> TopologySpec:
    """Residual image transformation network with 16 convolutions.

    Every convolution is followed by an instance norm whose scale and shift
    are selected per sample by the `index` input (one pair per style).
    Spatial size is preserved when height and width are multiples of 4.
    """

    if num_styles < 1:
        raise ConfigurationError(f"num_styles must be >= 1, got {num_styles}")

    spec = TopologySpec()
    spec.add_channel_concat(f"{TRANSFORMER_PREFIX}_input", [TRANSFORMER_INPUT])
    b = _TransformerBuilder(spec, num_styles, make_rng(random_seed))
    p = TRANSFORMER_PREFIX

    x = b.conv_norm(f"{p}_encode1", f"{p}_input", in_channels=3, out_channels=32, kernel=9)
    x = b.conv_norm(f"{p}_encode2", x, in_channels=32, out_channels=64, kernel=3, stride=2)
    x = b.conv_norm(f"{p}_encode3", x, in_channels=64, out_channels=128, kernel=3, stride=2)

    for r in range(1, NUM_RESIDUAL_BLOCKS + 1):
        h = b.conv_norm(f"{p}_residual{r}_1", x, in_channels=128, out_channels=128, kernel=3)
        h = b.conv_norm(f"{p}_residual{r}_2", h, in_channels=128, out_channels=128, kernel=3, activation=None)
        skip = f"{p}_residual{r}_add"
        spec.add_addition(skip, [x, h])
        x = skip

    spec.add_upsampling(f"{p}_decode1_upsample", x)
    x = b.conv_norm(f"{p}_decode1", f"{p}_decode1_upsample", in_channels=128, out_channels=64, kernel=3)
    spec.add_upsampling(f"{p}_decode2_upsample", x)
    x = b.conv_norm(f"{p}_decode2", f"{p}_decode2_upsample", in_channels=64, out_channels=32, kernel=3)
    x = b.conv_norm(f"{p}_decode3", x, in_channels=32, out_channels=3, kernel=9, activation=None)
    spec.add_sigmoid(TRANSFORMER_OUTPUT, x)

    return spec


def _given(params: Mapping[str, np.ndarray], name: str) -> WeightInitializer:
    if name not in params:
        raise ConfigurationError(f"VGG-16 weights are missing {name!r}")
    value = np.asarray(params[name], dtype=np.float32)

    def init(shape: tuple[int, ...]) -> np.ndarray:
        if value.shape != tuple(shape):
            raise ConfigurationError(f"VGG-16 weight {name!r} has shape {value.shape}, expected {shape}")
        return value.copy()

    return init


def build_vgg16_spec(params: Mapping[str, np.ndarray]) -> TopologySpec:
    """VGG-16 feature blocks 1-4 used as the style/content loss network.

    Expects HWIO weights named `vgg_block{b}_conv{i}_weight` and biases
    `vgg_block{b}_conv{i}_bias`. Channel counts are read from the weight
    shapes, so reduced-width networks load the same way.
    """

    spec = TopologySpec()
    spec.add_channel_concat("vgg_input", [VGG_INPUT])
    x = "vgg_input"
    in_channels = 3

    for block, num_convs in VGG_BLOCKS:
        for i in range(1, num_convs + 1):
            base = f"vgg_block{block}_conv{i}"
            weight_name = f"{base}_weight"
            if weight_name not in params:
                raise ConfigurationError(f"VGG-16 weights are missing {weight_name!r}")
            out_channels = int(np.shape(params[weight_name])[-1])
            spec.add_convolution(
                base,
                x,
                num_output_channels=out_channels,
                num_kernel_channels=in_channels,
                kernel_height=3,
                kernel_width=3,
                padding="same",
                weight_init_fn=_given(params, weight_name),
                bias_init_fn=(
                    _given(params, f"{base}_bias") if f"{base}_bias" in params else zero_weight_initializer()
                ),
            )
            relu = f"vgg_relu{block}_{i}"
            spec.add_relu(relu, base)
            x = relu
            in_channels = out_channels
        if block < VGG_BLOCKS[-1][0]:
            pool = f"vgg_pool{block}"
            spec.add_pooling(pool, x, kernel_height=2, kernel_width=2, stride_height=2, stride_width=2)
            x = pool

    return spec
