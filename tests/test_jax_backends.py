from __future__ import annotations

import os

# Ensure tests run on CPU-only machines even if JAX is installed with CUDA extras.
os.environ.setdefault("JAX_PLATFORMS", "cpu")

import jax.numpy as jnp
import numpy as np
import pytest

from jax_vision_toolkits.adapters.right.compute.context import JaxComputeContext, create_compute_context
from jax_vision_toolkits.adapters.right.compute.style_transfer import gram_matrix
from jax_vision_toolkits.adapters.right.compute.topology import run_topology
from jax_vision_toolkits.core.domain.entities.state import ModelState
from jax_vision_toolkits.core.domain.errors import TrainingError
from jax_vision_toolkits.core.domain.topology.drawing_classifier import build_drawing_classifier_spec
from jax_vision_toolkits.core.domain.topology.initializers import constant_weight_initializer
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.domain.topology.style_transfer import build_transformer_spec


def _drawing_spec(num_classes: int = 3) -> TopologySpec:
    return build_drawing_classifier_spec(
        ModelState({"target": "label", "num_classes": num_classes, "features": ["drawing"], "random_seed": 0})
    )


def test_cpu_context_reports_no_gpus() -> None:
    context = create_compute_context("cpu")

    assert isinstance(context, JaxComputeContext)
    assert context.gpu_names() == []


def test_run_topology_evaluates_small_graph() -> None:
    spec = TopologySpec()
    spec.add_channel_concat("x", ["image"])
    spec.add_convolution(
        "conv",
        "x",
        num_output_channels=2,
        num_kernel_channels=1,
        kernel_height=1,
        kernel_width=1,
        weight_init_fn=constant_weight_initializer(2.0),
        bias_init_fn=constant_weight_initializer(1.0),
    )
    spec.add_pooling("pool", "conv", kernel_height=2, kernel_width=2, stride_height=2, stride_width=2)
    spec.add_flatten("flat", "pool")

    image = jnp.arange(16, dtype=jnp.float32).reshape(1, 4, 4, 1)
    params = {k: jnp.asarray(v) for k, v in spec.params.items()}
    out = run_topology(spec.layers, params, {"image": image}, outputs=["flat"])["flat"]

    # max of each 2x2 window of 2 * x + 1, two identical channels
    expected = np.repeat(np.asarray([11.0, 15.0, 27.0, 31.0]), 2)
    np.testing.assert_allclose(np.asarray(out).reshape(-1), expected)


def test_drawing_backend_trains_and_pads_short_batches() -> None:
    context = create_compute_context("cpu")
    backend = context.create_drawing_classifier(_drawing_spec(), batch_size=4, num_classes=3, learning_rate=1e-2)

    rng = np.random.default_rng(0)
    x = rng.random((3, 28, 28, 1)).astype(np.float32)
    y = np.asarray([[0.0], [1.0], [2.0]], dtype=np.float32)

    result = backend.train({"input": x, "labels": y})
    loss = np.asarray(result["loss"])
    assert loss.shape == (3,)
    assert np.isfinite(loss).all()
    assert 0.0 <= float(np.asarray(result["accuracy"])) <= 1.0

    out = backend.predict({"input": x, "labels": None})
    probs = np.asarray(out["output"])
    assert probs.shape == (3, 3)
    np.testing.assert_allclose(probs.sum(axis=-1), 1.0, rtol=1e-5)
    assert "loss" not in out

    weights = backend.export_weights()
    assert weights["drawing_dense1_weight"].shape == (128, 3)


def test_drawing_backend_learns_a_separable_task() -> None:
    context = create_compute_context("cpu")
    backend = context.create_drawing_classifier(_drawing_spec(2), batch_size=8, num_classes=2, learning_rate=1e-2)

    x = np.zeros((8, 28, 28, 1), dtype=np.float32)
    x[4:] = 1.0
    y = np.asarray([0] * 4 + [1] * 4, dtype=np.float32).reshape(8, 1)

    first = float(np.asarray(backend.train({"input": x, "labels": y})["loss"]).mean())
    for _ in range(30):
        last = float(np.asarray(backend.train({"input": x, "labels": y})["loss"]).mean())

    assert last < first


def test_gram_matrix_shape_and_scale() -> None:
    features = jnp.ones((2, 3, 3, 4), dtype=jnp.float32)

    g = gram_matrix(features)

    assert g.shape == (2, 4, 4)
    np.testing.assert_allclose(np.asarray(g), 1.0 / 4)


def test_style_backend_without_loss_network_only_stylizes() -> None:
    context = create_compute_context("cpu")
    backend = context.create_style_transfer(
        build_transformer_spec(2, random_seed=0),
        None,
        num_styles=2,
        content_weight=1.0,
        style_weight=5.0,
        learning_rate=1e-3,
    )

    content = np.full((1, 8, 8, 3), 0.5, dtype=np.float32)
    out = np.asarray(backend.predict({"input": content, "index": np.asarray([1])})["output"])

    assert out.shape == (1, 8, 8, 3)
    assert ((out >= 0.0) & (out <= 1.0)).all()
    with pytest.raises(TrainingError):
        backend.train({"input": content, "labels": content, "index": np.asarray([0])})
