from __future__ import annotations

from typing import Any, Mapping, Sequence

import jax
import jax.numpy as jnp
from jax import lax

from jax_vision_toolkits.core.domain.topology.spec import LayerSpec

_NHWC = ("NHWC", "HWIO", "NHWC")


def _instance_norm(x: jax.Array, index: jax.Array, gamma: jax.Array, beta: jax.Array, eps: float) -> jax.Array:
    mean = jnp.mean(x, axis=(1, 2), keepdims=True)
    var = jnp.var(x, axis=(1, 2), keepdims=True)
    normed = (x - mean) * lax.rsqrt(var + eps)
    idx = jnp.reshape(index, (-1,)).astype(jnp.int32)
    return normed * gamma[idx][:, None, None, :] + beta[idx][:, None, None, :]


def apply_layer(layer: LayerSpec, params: Mapping[str, jax.Array], xs: Sequence[jax.Array]) -> jax.Array:
    kind = layer.kind
    a = layer.attrs

    if kind == "channel_concat":
        return xs[0] if len(xs) == 1 else jnp.concatenate(xs, axis=-1)
    if kind == "convolution":
        y = lax.conv_general_dilated(
            xs[0],
            params[f"{layer.name}_weight"],
            window_strides=tuple(a["stride"]),
            padding=a["padding"],
            dimension_numbers=_NHWC,
        )
        if a.get("has_bias"):
            y = y + params[f"{layer.name}_bias"]
        return y
    if kind == "relu":
        return jax.nn.relu(xs[0])
    if kind == "sigmoid":
        return jax.nn.sigmoid(xs[0])
    if kind == "softmax":
        return jax.nn.softmax(xs[0], axis=-1)
    if kind == "max_pool":
        kh, kw = a["kernel"]
        sh, sw = a["stride"]
        return lax.reduce_window(xs[0], -jnp.inf, lax.max, (1, kh, kw, 1), (1, sh, sw, 1), a["padding"])
    if kind == "flatten":
        return jnp.reshape(xs[0], (xs[0].shape[0], -1))
    if kind == "inner_product":
        return xs[0] @ params[f"{layer.name}_weight"] + params[f"{layer.name}_bias"]
    if kind == "instance_norm":
        return _instance_norm(
            xs[0], xs[1], params[f"{layer.name}_gamma"], params[f"{layer.name}_beta"], a["epsilon"]
        )
    if kind == "add":
        out = xs[0]
        for x in xs[1:]:
            out = out + x
        return out
    if kind == "upsample":
        sh, sw = a["scale"]
        return jnp.repeat(jnp.repeat(xs[0], sh, axis=1), sw, axis=2)

    raise ValueError(f"unsupported layer type {kind!r} ({layer.name})")


def run_topology(
    layers: Sequence[LayerSpec],
    params: Mapping[str, jax.Array],
    feeds: Mapping[str, Any],
    *,
    outputs: Sequence[str],
) -> dict[str, jax.Array]:
    """Evaluate layers in order and return the requested activations.

    Pure function of (params, feeds); callers wrap it in `jax.jit` with
    `layers` closed over as static structure.
    """

    acts: dict[str, jax.Array] = dict(feeds)
    wanted = set(outputs)
    for layer in layers:
        acts[layer.name] = apply_layer(layer, params, [acts[i] for i in layer.inputs])
        if wanted.issubset(acts):
            break
    return {name: acts[name] for name in outputs}
