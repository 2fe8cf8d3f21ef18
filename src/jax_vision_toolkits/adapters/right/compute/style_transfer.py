from __future__ import annotations

from typing import Any, Mapping

import jax
import jax.numpy as jnp
import numpy as np
import optax

from jax_vision_toolkits.adapters.right.compute.topology import run_topology
from jax_vision_toolkits.core.domain.errors import TrainingError
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.domain.topology.style_transfer import (
    STYLE_INDEX_INPUT,
    TRANSFORMER_INPUT,
    TRANSFORMER_OUTPUT,
    VGG_CONTENT_LAYER,
    VGG_INPUT,
    VGG_STYLE_LAYERS,
)
from jax_vision_toolkits.core.ports.compute_backend import ComputeBackendPort

Params = dict[str, jax.Array]

# ImageNet statistics expected by VGG-16, for inputs scaled to [0, 1].
_VGG_MEAN = np.asarray([0.485, 0.456, 0.406], dtype=np.float32)
_VGG_STD = np.asarray([0.229, 0.224, 0.225], dtype=np.float32)


def gram_matrix(features: jax.Array) -> jax.Array:
    """(B, H, W, C) -> (B, C, C), normalized by H * W * C."""

    b, h, w, c = features.shape
    flat = jnp.reshape(features, (b, h * w, c))
    return jnp.einsum("bnc,bnd->bcd", flat, flat) / (h * w * c)


class JaxStyleTransferBackend(ComputeBackendPort):
    """Trains the transformer network against a frozen VGG-16 loss network.

    Inputs: `input` content images and `labels` style images, both
    (B, H, W, 3) in [0, 1], plus `index` (B,) style indices. The per-sample
    loss is `content_weight * content + style_weight * style`, where the
    content term compares relu3_3 activations and the style term compares
    Gram matrices of relu1_2 .. relu4_3.

    Without `vgg` the backend only stylizes; `train` then raises.
    """

    def __init__(
        self,
        transformer: TopologySpec,
        vgg: TopologySpec | None,
        *,
        num_styles: int,
        content_weight: float = 1.0,
        style_weight: float = 5.0,
        learning_rate: float = 1e-3,
        device: jax.Device | None = None,
    ) -> None:
        self.num_styles = int(num_styles)
        self._transformer_layers = tuple(transformer.layers)
        self._vgg_layers = tuple(vgg.layers) if vgg is not None else ()

        params = {k: jnp.asarray(v) for k, v in transformer.params.items()}
        vgg_params = {k: jnp.asarray(v) for k, v in vgg.params.items()} if vgg is not None else {}
        if device is not None:
            params = jax.device_put(params, device)
            vgg_params = jax.device_put(vgg_params, device)
        self._params: Params = params
        self._vgg_params: Params = vgg_params

        self._content_weight = float(content_weight)
        self._style_weight = float(style_weight)

        self._optimizer = optax.adam(learning_rate)
        self._opt_state = self._optimizer.init(self._params)

        self._train_step = jax.jit(self._make_train_step())
        self._stylize = jax.jit(self._transform)

    def _transform(self, params: Params, content: jax.Array, index: jax.Array) -> jax.Array:
        feeds = {TRANSFORMER_INPUT: content, STYLE_INDEX_INPUT: index}
        return run_topology(self._transformer_layers, params, feeds, outputs=[TRANSFORMER_OUTPUT])[
            TRANSFORMER_OUTPUT
        ]

    def _vgg_features(self, vgg_params: Params, images: jax.Array) -> dict[str, jax.Array]:
        normalized = (images - _VGG_MEAN) / _VGG_STD
        return run_topology(self._vgg_layers, vgg_params, {VGG_INPUT: normalized}, outputs=VGG_STYLE_LAYERS)

    def _per_sample_loss(self, params: Params, vgg_params: Params, content: jax.Array, style: jax.Array, index: jax.Array):
        stylized = self._transform(params, content, index)
        out_feats = self._vgg_features(vgg_params, stylized)
        content_feats = self._vgg_features(vgg_params, content)
        style_feats = self._vgg_features(vgg_params, style)

        content_loss = jnp.mean(
            jnp.square(out_feats[VGG_CONTENT_LAYER] - content_feats[VGG_CONTENT_LAYER]), axis=(1, 2, 3)
        )
        style_loss = 0.0
        for name in VGG_STYLE_LAYERS:
            diff = gram_matrix(out_feats[name]) - gram_matrix(style_feats[name])
            style_loss = style_loss + jnp.mean(jnp.square(diff), axis=(1, 2))

        total = self._content_weight * content_loss + self._style_weight * style_loss
        return total, (content_loss, style_loss, stylized)

    def _make_train_step(self):
        optimizer = self._optimizer

        def train_step(params: Params, opt_state: optax.OptState, vgg_params: Params, content, style, index):
            def _loss_fn(p: Params):
                per_sample, aux = self._per_sample_loss(p, vgg_params, content, style, index)
                return per_sample.mean(), (per_sample, aux)

            (_, (per_sample, aux)), grads = jax.value_and_grad(_loss_fn, has_aux=True)(params)
            updates, opt_state2 = optimizer.update(grads, opt_state, params)
            return optax.apply_updates(params, updates), opt_state2, per_sample, aux

        return train_step

    def train(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        if not self._vgg_layers:
            raise TrainingError("style transfer training needs the VGG-16 loss network")
        content = jnp.asarray(inputs["input"], dtype=jnp.float32)
        style = jnp.asarray(inputs["labels"], dtype=jnp.float32)
        index = jnp.asarray(inputs["index"], dtype=jnp.int32)
        self._params, self._opt_state, loss, (content_loss, style_loss, stylized) = self._train_step(
            self._params, self._opt_state, self._vgg_params, content, style, index
        )
        return {
            "loss": loss,
            "content_loss": content_loss,
            "style_loss": style_loss,
            "output": stylized,
        }

    def predict(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        content = jnp.asarray(inputs["input"], dtype=jnp.float32)
        index = jnp.asarray(inputs["index"], dtype=jnp.int32)
        return {"output": self._stylize(self._params, content, index)}

    def export_weights(self) -> dict[str, np.ndarray]:
        return {k: np.asarray(v) for k, v in self._params.items()}
