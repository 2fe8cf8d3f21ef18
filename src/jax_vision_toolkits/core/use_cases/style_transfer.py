from __future__ import annotations

import random
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import jax
import jax.numpy as jnp
import numpy as np

from jax_vision_toolkits.core.domain.commands.train import INT_MAX, INT_MIN, StyleTransferCommand
from jax_vision_toolkits.core.domain.entities.base import PendingResult, StyleExample
from jax_vision_toolkits.core.domain.entities.state import ModelState, TrainingPhase
from jax_vision_toolkits.core.domain.errors import ConfigurationError, UninitializedStateError
from jax_vision_toolkits.core.domain.iterators.style import StyleTransferDataIterator
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.domain.topology.style_transfer import (
    STYLE_INDEX_INPUT,
    TRANSFORMER_INPUT,
    TRANSFORMER_OUTPUT,
    build_transformer_spec,
    build_vgg16_spec,
)
from jax_vision_toolkits.core.domain.utils.pending_queue import PendingResultQueue
from jax_vision_toolkits.core.ports.compute_backend import ComputeBackendPort
from jax_vision_toolkits.core.ports.model_exporter import ExportedModel
from jax_vision_toolkits.core.use_cases.base import ToolkitUseCase, TrainResult

DEFAULT_WIDTH = 256
DEFAULT_HEIGHT = 256
DEFAULT_BATCH_SIZE = 1
MODEL_NAME = "resnet-16"

WeightsLoader = Callable[[str], Mapping[str, np.ndarray]]


def estimate_max_iterations(num_styles: int, batch_size: int) -> int:
    return int(num_styles * 10000.0 / batch_size)


def _resize(image: Any, width: int, height: int) -> jax.Array:
    arr = jnp.asarray(image, dtype=jnp.float32)
    if arr.ndim == 2:
        arr = arr[..., None]
    if arr.shape[-1] == 1:
        arr = jnp.repeat(arr, 3, axis=-1)
    elif arr.shape[-1] == 4:
        arr = arr[..., :3]
    if arr.ndim != 3 or arr.shape[-1] != 3:
        raise ConfigurationError(f"expected an (H, W, 3) image, got shape {tuple(arr.shape)}")
    if arr.shape[:2] != (height, width):
        arr = jax.image.resize(arr, (height, width, 3), method="bilinear")
    return arr / 255.0


def prepare_batch(examples: Sequence[StyleExample], width: int, height: int) -> dict[str, jax.Array]:
    """Resize content and style images to (height, width, 3) and scale pixels to [0, 1].

    Images are expected as 0-255 pixel arrays, grayscale or RGB(A).
    Returns `input` (content), `labels` (style) and `index` (style indices).
    """

    if not examples:
        raise ConfigurationError("cannot prepare an empty batch")

    content = jnp.stack([_resize(ex.content_image, width, height) for ex in examples])
    style = jnp.stack([_resize(ex.style_image, width, height) for ex in examples])
    index = jnp.asarray([ex.style_index for ex in examples], dtype=jnp.int32)
    return {"input": content, "labels": style, "index": index}


class StyleTransferUseCase(ToolkitUseCase):
    """Trains the conditional instance norm transformer network.

    One `iterate_training` call runs one batch; `max_iterations` counts
    batches, not epochs. Network weights are read from files through
    `weights_loader` (path -> name/array map).
    """

    VERSION = 1
    TOOLKIT_NAME = "style_transfer"

    def __init__(self, *, weights_loader: WeightsLoader | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._weights_loader = weights_loader
        self._training_iterator: StyleTransferDataIterator | None = None
        self._training_model: ComputeBackendPort | None = None
        self._vgg_spec: TopologySpec | None = None
        self._pending: PendingResultQueue[PendingResult] = PendingResultQueue(capacity=2)

    def _load_weights(self, path: str) -> Mapping[str, np.ndarray]:
        if self._weights_loader is None:
            raise ConfigurationError("no weights loader configured")
        return self._weights_loader(path)

    def _rebuild_spec(self, state: ModelState) -> TopologySpec:
        return build_transformer_spec(int(state.read("num_styles")), random_seed=int(state.read("random_seed")))

    def _reset_training_handles(self) -> None:
        super()._reset_training_handles()
        self._training_iterator = None
        self._training_model = None
        self._vgg_spec = None
        self._pending = PendingResultQueue(capacity=2)

    def _infer_derived_options(self) -> None:
        num_styles = int(self._state.read("num_styles"))
        if self._state.get("batch_size") is None:
            self._state.update({"batch_size": DEFAULT_BATCH_SIZE})
        if self._state.get("max_iterations") is None:
            batch_size = int(self._state.read("batch_size"))
            self._state.update({"max_iterations": estimate_max_iterations(num_styles, batch_size)})
        if self._state.get("image_width") is None:
            self._state.update({"image_width": DEFAULT_WIDTH})
        if self._state.get("image_height") is None:
            self._state.update({"image_height": DEFAULT_HEIGHT})
        self._state.update({"training_iterations": 0})

    def init_training(
        self,
        command: StyleTransferCommand,
        *,
        style: Sequence[Any],
        content: Sequence[Any],
    ) -> None:
        self.phase = TrainingPhase.INITIALIZING
        self._reset_training_handles()
        self._history = []
        self._state = ModelState(command.options())

        num_styles = int(self._state.read("num_styles"))
        if len(style) != num_styles:
            raise ConfigurationError(f"num_styles is {num_styles} but {len(style)} style images were given")

        if self._state.get("random_seed") is None:
            self._state.update({"random_seed": random.SystemRandom().randint(INT_MIN, INT_MAX)})
        seed = int(self._state.read("random_seed"))

        self._training_iterator = StyleTransferDataIterator(
            style=style, content=content, repeat=True, shuffle=True, random_seed=seed
        )

        self._start_clock()
        context = self._create_compute_context()
        self._infer_derived_options()
        self._state.update({"model": MODEL_NAME, "num_content_images": len(content)})

        self._log(step=0, metrics={"event": "run_start", "toolkit": self.TOOLKIT_NAME, **self._state.as_dict()})

        self._spec = build_transformer_spec(num_styles, random_seed=seed)
        if command.transformer_weights_path:
            self._spec.update_params(self._load_weights(command.transformer_weights_path))
        self._vgg_spec = build_vgg16_spec(self._load_weights(command.vgg_weights_path))

        self._training_model = context.create_style_transfer(
            self._spec,
            self._vgg_spec,
            num_styles=num_styles,
            content_weight=float(self._state.read("content_weight")),
            style_weight=float(self._state.read("style_weight")),
            learning_rate=float(self._state.read("learning_rate")),
        )
        self.phase = TrainingPhase.ITERATING

    def _record(self, result: PendingResult) -> None:
        """Read back one batch's loss (this blocks on the backend) and publish a progress row."""

        loss = np.asarray(result.loss, dtype=np.float32).reshape(-1)
        iteration = result.step
        row = {
            "iteration": iteration,
            "train/loss": float(loss.mean()) if loss.size else 0.0,
            "elapsed_s": self._elapsed(),
        }
        self._state.update({"training_loss": row["train/loss"]})
        self._history.append(row)
        self._log(step=iteration, metrics=row)

    def iterate_training(self) -> None:
        """Submit one batch; the previous batch's loss is read while this one runs."""

        if self._training_iterator is None or self._training_model is None:
            raise UninitializedStateError("training must be initialized with `init_training` first")
        if self.phase is not TrainingPhase.ITERATING:
            raise UninitializedStateError(f"cannot iterate in phase {self.phase.value}; call `init_training` again")

        iteration_idx = int(self._state.read("training_iterations"))
        batch = self._training_iterator.next_batch(int(self._state.read("batch_size")))

        self._pending.drain_until(1, self._record)
        inputs = prepare_batch(batch, int(self._state.read("image_width")), int(self._state.read("image_height")))
        results = self._training_model.train(inputs)

        self._state.update({"training_iterations": iteration_idx + 1})
        self._pending.push(PendingResult(num_samples=len(batch), loss=results["loss"], step=iteration_idx + 1))

    def finalize_training(self) -> None:
        if self._training_model is None or self._spec is None:
            raise UninitializedStateError("training must be initialized with `init_training` first")

        self._pending.drain_until(0, self._record)
        self._spec.update_params(self._training_model.export_weights())
        self.phase = TrainingPhase.FINALIZED
        self._log(
            step=int(self._state.read("training_iterations")),
            metrics={
                "event": "run_end",
                "toolkit": self.TOOLKIT_NAME,
                "training_loss": self._state.get("training_loss"),
                "elapsed_s": self._elapsed(),
            },
        )

    def train(self, command: StyleTransferCommand, *, style: Sequence[Any], content: Sequence[Any]) -> TrainResult:
        self.init_training(command, style=style, content=content)

        max_iterations = int(self._state.read("max_iterations"))
        while int(self._state.read("training_iterations")) < max_iterations:
            self.iterate_training()

        self.finalize_training()
        return TrainResult(state=self._state.as_dict(), history=self.history)

    def run(self, command: StyleTransferCommand, *, style: Sequence[Any], content: Sequence[Any]) -> TrainResult:
        return self.train(command, style=style, content=content)

    # ------------------------------------------------------------------

    def _ensure_model(self) -> ComputeBackendPort:
        if self._spec is None:
            raise UninitializedStateError("model is not initialized; please call train or load first")
        if self._training_model is None:
            context = self._compute_context or self._create_compute_context()
            self._training_model = context.create_style_transfer(
                self._spec,
                self._vgg_spec,
                num_styles=int(self._state.read("num_styles")),
                content_weight=float(self._state.get("content_weight", 1.0)),
                style_weight=float(self._state.get("style_weight", 5.0)),
                learning_rate=float(self._state.get("learning_rate", 1e-3)),
            )
        return self._training_model

    def stylize(self, content: Sequence[Any], style_index: int | Sequence[int] = 0) -> np.ndarray:
        """Apply one style (or one style per image) to content images.

        Returns float32 (N, image_height, image_width, 3) images in [0, 1].
        """

        model = self._ensure_model()
        num_styles = int(self._state.read("num_styles"))
        indices = [int(style_index)] * len(content) if isinstance(style_index, int) else [int(i) for i in style_index]
        if len(indices) != len(content):
            raise ConfigurationError(f"got {len(indices)} style indices for {len(content)} images")
        for i in indices:
            if not 0 <= i < num_styles:
                raise ConfigurationError(f"style index {i} out of range [0, {num_styles})")
        if not content:
            return np.zeros((0, int(self._state.read("image_height")), int(self._state.read("image_width")), 3), np.float32)

        width = int(self._state.read("image_width"))
        height = int(self._state.read("image_height"))
        batch_size = int(self._state.read("batch_size"))

        outputs: list[np.ndarray] = []
        pending: PendingResultQueue[PendingResult] = PendingResultQueue(capacity=2)

        def consume(result: PendingResult) -> None:
            outputs.append(np.asarray(result.output, dtype=np.float32))

        for start in range(0, len(content), batch_size):
            pending.drain_until(1, consume)
            examples = [
                StyleExample(content_image=c, style_image=c, style_index=i)
                for c, i in zip(content[start : start + batch_size], indices[start : start + batch_size])
            ]
            inputs = prepare_batch(examples, width, height)
            results = model.predict({"input": inputs["input"], "index": inputs["index"]})
            pending.push(PendingResult(num_samples=len(examples), loss=None, output=results["output"]))
        pending.drain_until(0, consume)
        return np.concatenate(outputs)

    def export_model(self, filename: str = "") -> ExportedModel:
        if self._spec is None:
            raise UninitializedStateError("model is not initialized; please call train before export")
        exporter = self._require_exporter()

        model = exporter.export(
            self._spec,
            input_names=[TRANSFORMER_INPUT, STYLE_INDEX_INPUT],
            output_names=[TRANSFORMER_OUTPUT],
            metadata={
                "image_width": int(self._state.read("image_width")),
                "image_height": int(self._state.read("image_height")),
            },
        )
        model.add_metadata(
            {
                "user_defined": {
                    "model": str(self._state.get("model", MODEL_NAME)),
                    "max_iterations": int(self._state.read("max_iterations")),
                    "training_iterations": int(self._state.read("training_iterations")),
                    "type": "StyleTransfer",
                    "content_feature": "image",
                    "style_feature": "image",
                    "num_styles": str(self._state.read("num_styles")),
                    "version": self.VERSION,
                }
            }
        )
        if filename:
            model.save(filename)
        self.phase = TrainingPhase.EXPORTED
        return model
