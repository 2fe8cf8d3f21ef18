from __future__ import annotations

from jax_vision_toolkits.core.domain.entities.dataset import DEFAULT_DRAWING_SHAPE
from jax_vision_toolkits.core.domain.entities.state import ModelState
from jax_vision_toolkits.core.domain.topology.initializers import (
    xavier_weight_initializer,
    zero_weight_initializer,
)
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.domain.utils.hashing import make_rng

# Seed of a default-constructed Mersenne Twister; used when no seed is configured.
DEFAULT_RANDOM_SEED = 5489

PREFIX = "drawing"
NUM_CONV_BLOCKS = 3
FIRST_CONV_CHANNELS = 16
DENSE_UNITS = 128


def build_drawing_classifier_spec(state: ModelState) -> TopologySpec:
    """Build the drawing classifier network from published model state.

    Reads `target`, `num_classes` and `features` (required) plus
    `random_seed` and `image_shape` (optional). Weights are drawn from one
    generator in layer order, so the same seed and shapes always give
    identical initial weights.
    """

    target = str(state.read("target"))
    num_classes = int(state.read("num_classes"))
    features = [str(f) for f in state.read("features")]

    seed = state.get("random_seed")
    rng = make_rng(DEFAULT_RANDOM_SEED if seed is None else int(seed))

    height, width, channels = (int(d) for d in state.get("image_shape", DEFAULT_DRAWING_SHAPE))

    spec = TopologySpec()
    spec.add_channel_concat("features", features)

    input_name = "features"
    channels_filter = FIRST_CONV_CHANNELS
    channels_kernel = channels * len(features)

    for ii in range(NUM_CONV_BLOCKS):
        conv = f"{PREFIX}_conv{ii}"
        spec.add_convolution(
            conv,
            input_name,
            num_output_channels=channels_filter,
            num_kernel_channels=channels_kernel,
            kernel_height=3,
            kernel_width=3,
            stride_height=1,
            stride_width=1,
            padding="same",
            weight_init_fn=xavier_weight_initializer(channels_kernel * 3 * 3, channels_filter * 3 * 3, rng),
            bias_init_fn=zero_weight_initializer(),
        )

        relu = f"{PREFIX}_relu{ii}"
        spec.add_relu(relu, conv)

        pool = f"{PREFIX}_pool{ii}"
        spec.add_pooling(
            pool,
            relu,
            kernel_height=2,
            kernel_width=2,
            stride_height=2,
            stride_width=2,
            padding="valid",
        )

        input_name = pool
        channels_kernel = channels_filter
        channels_filter *= 2
        height //= 2
        width //= 2

    flatten = f"{PREFIX}_flatten0"
    spec.add_flatten(flatten, input_name)

    # 64 * 3 * 3 for 28x28 drawings
    flat_size = channels_kernel * height * width
    dense0 = f"{PREFIX}_dense0"
    spec.add_inner_product(
        dense0,
        flatten,
        num_output_channels=DENSE_UNITS,
        num_input_channels=flat_size,
        weight_init_fn=xavier_weight_initializer(flat_size, DENSE_UNITS, rng),
        bias_init_fn=zero_weight_initializer(),
    )

    dense1 = f"{PREFIX}_dense1"
    spec.add_inner_product(
        dense1,
        dense0,
        num_output_channels=num_classes,
        num_input_channels=DENSE_UNITS,
        weight_init_fn=xavier_weight_initializer(DENSE_UNITS, num_classes, rng),
        bias_init_fn=zero_weight_initializer(),
    )

    spec.add_softmax(f"{target}Probability", dense1)
    return spec
