from __future__ import annotations

from typing import Any, Mapping

import jax
import jax.numpy as jnp
import numpy as np
import optax

from jax_vision_toolkits.adapters.right.compute.topology import run_topology
from jax_vision_toolkits.core.domain.errors import ConfigurationError
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.ports.compute_backend import ComputeBackendPort

Params = dict[str, jax.Array]


class JaxDrawingClassifierBackend(ComputeBackendPort):
    """Trains the drawing classifier topology with Adam.

    Inputs: `input` (B, H, W, C) drawings and `labels` (B, 1) class indices.
    Short batches are zero-padded to `batch_size` and masked out of the loss,
    so every step reuses the same compiled function.

    Returned values are JAX arrays produced by asynchronous dispatch; they
    are only materialized when the caller reads them.
    """

    def __init__(
        self,
        spec: TopologySpec,
        *,
        batch_size: int,
        num_classes: int,
        learning_rate: float = 1e-3,
        device: jax.Device | None = None,
    ) -> None:
        outputs = spec.output_names
        if len(outputs) != 1 or spec.layer(outputs[0]).kind != "softmax":
            raise ConfigurationError(f"expected a single softmax output, got {outputs}")

        self._layers = tuple(spec.layers)
        self._feature_names = spec.input_names
        self._output_name = outputs[0]
        self._logits_name = spec.layer(self._output_name).inputs[0]

        out_dim = spec.params[f"{self._logits_name}_weight"].shape[-1]
        if out_dim != num_classes:
            raise ConfigurationError(f"network predicts {out_dim} classes, expected {num_classes}")

        self.batch_size = int(batch_size)
        self.num_classes = int(num_classes)

        params = {k: jnp.asarray(v) for k, v in spec.params.items()}
        if device is not None:
            params = jax.device_put(params, device)
        self._params: Params = params

        self._optimizer = optax.adam(learning_rate)
        self._opt_state = self._optimizer.init(self._params)

        self._train_step = jax.jit(self._make_train_step())
        self._eval_step = jax.jit(self._make_eval_step())

    # ------------------------------------------------------------------

    def _feeds(self, x: jax.Array) -> dict[str, jax.Array]:
        if len(self._feature_names) == 1:
            return {self._feature_names[0]: x}
        parts = jnp.split(x, len(self._feature_names), axis=-1)
        return dict(zip(self._feature_names, parts))

    def _logits(self, params: Params, x: jax.Array) -> jax.Array:
        return run_topology(self._layers, params, self._feeds(x), outputs=[self._logits_name])[self._logits_name]

    def _make_train_step(self):
        optimizer = self._optimizer

        def train_step(params: Params, opt_state: optax.OptState, x: jax.Array, y: jax.Array, mask: jax.Array):
            def _loss_fn(p: Params):
                logits = self._logits(p, x)
                per_sample = optax.softmax_cross_entropy_with_integer_labels(logits, y) * mask
                return per_sample.sum() / jnp.maximum(mask.sum(), 1.0), (per_sample, logits)

            (_, (per_sample, logits)), grads = jax.value_and_grad(_loss_fn, has_aux=True)(params)
            updates, opt_state2 = optimizer.update(grads, opt_state, params)
            params2 = optax.apply_updates(params, updates)
            correct = (jnp.argmax(logits, axis=-1) == y).astype(jnp.float32) * mask
            accuracy = correct.sum() / jnp.maximum(mask.sum(), 1.0)
            return params2, opt_state2, per_sample, accuracy, jax.nn.softmax(logits, axis=-1)

        return train_step

    def _make_eval_step(self):
        def eval_step(params: Params, x: jax.Array, y: jax.Array, mask: jax.Array):
            logits = self._logits(params, x)
            per_sample = optax.softmax_cross_entropy_with_integer_labels(logits, y) * mask
            correct = (jnp.argmax(logits, axis=-1) == y).astype(jnp.float32) * mask
            accuracy = correct.sum() / jnp.maximum(mask.sum(), 1.0)
            return per_sample, accuracy, jax.nn.softmax(logits, axis=-1)

        return eval_step

    def _padded(self, inputs: Mapping[str, Any]) -> tuple[int, jax.Array, jax.Array, jax.Array]:
        x = np.asarray(inputs["input"], dtype=np.float32)
        n = x.shape[0]
        labels = inputs.get("labels")
        y = (
            np.asarray(labels, dtype=np.int32).reshape(-1)
            if labels is not None
            else np.zeros((n,), dtype=np.int32)
        )
        size = max(n, self.batch_size)
        mask = np.zeros((size,), dtype=np.float32)
        mask[:n] = 1.0
        if size > n:
            x = np.concatenate([x, np.zeros((size - n, *x.shape[1:]), dtype=np.float32)])
            y = np.concatenate([y, np.zeros((size - n,), dtype=np.int32)])
        return n, jnp.asarray(x), jnp.asarray(y), jnp.asarray(mask)

    # ------------------------------------------------------------------

    def train(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        if inputs.get("labels") is None:
            raise ConfigurationError("training requires 'labels'")
        n, x, y, mask = self._padded(inputs)
        self._params, self._opt_state, loss, accuracy, probs = self._train_step(
            self._params, self._opt_state, x, y, mask
        )
        return {"loss": loss[:n], "accuracy": accuracy, "output": probs[:n]}

    def predict(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        n, x, y, mask = self._padded(inputs)
        loss, accuracy, probs = self._eval_step(self._params, x, y, mask)
        out: dict[str, Any] = {"output": probs[:n]}
        if inputs.get("labels") is not None:
            out["loss"] = loss[:n]
            out["accuracy"] = accuracy
        return out

    def export_weights(self) -> dict[str, np.ndarray]:
        return {k: np.asarray(v) for k, v in self._params.items()}
