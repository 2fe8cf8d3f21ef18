from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from jax_vision_toolkits.core.domain.commands.train import DrawingClassifierCommand
from jax_vision_toolkits.core.domain.entities.base import PendingResult
from jax_vision_toolkits.core.domain.entities.dataset import IteratorParams
from jax_vision_toolkits.core.domain.entities.state import ModelState, TrainingPhase
from jax_vision_toolkits.core.domain.errors import ConfigurationError, UninitializedStateError
from jax_vision_toolkits.core.domain.iterators.drawing import SimpleDataIterator
from jax_vision_toolkits.core.domain.topology.drawing_classifier import (
    DEFAULT_RANDOM_SEED,
    build_drawing_classifier_spec,
)
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.domain.utils.metrics import compute_classifier_metrics
from jax_vision_toolkits.core.domain.utils.pending_queue import PendingResultQueue
from jax_vision_toolkits.core.domain.utils.validation import create_validation_data
from jax_vision_toolkits.core.ports.compute_backend import ComputeBackendPort
from jax_vision_toolkits.core.ports.dataset_table import TabularDataPort
from jax_vision_toolkits.core.ports.model_exporter import ExportedModel
from jax_vision_toolkits.core.use_cases.base import ToolkitUseCase, TrainResult

EXPORT_VERSION = 2
PREDICT_OUTPUT_TYPES = ("class", "probability", "probability_vector")
TOPK_OUTPUT_TYPES = ("probability", "rank")


@dataclass
class EpochTotals:
    """Running sums for one pass; filled as pending results are drained."""

    loss_sum: float = 0.0
    num_correct: int = 0
    num_samples: int = 0
    num_batches: int = 0

    def add(self, result: PendingResult, *, loss_per_sample: bool) -> None:
        n = result.num_samples
        batch_loss = float(np.sum(np.asarray(result.loss)))
        self.num_correct += int(round(float(np.asarray(result.accuracy)) * n))
        self.num_samples += n
        self.loss_sum += batch_loss / n if loss_per_sample else batch_loss


class DrawingClassifierUseCase(ToolkitUseCase):
    """Trains, evaluates and exports the drawing classifier.

    Lifecycle: `init_training` (iterators, backend, topology) ->
    `iterate_training` once per epoch -> `finalize_training` (weights synced
    back, classification metrics) -> `export_model`. `train` runs all of it.
    """

    VERSION = 1
    TOOLKIT_NAME = "drawing_classifier"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._training_data: TabularDataPort | None = None
        self._validation_data: TabularDataPort | None = None
        self._training_iterator: SimpleDataIterator | None = None
        self._validation_iterator: SimpleDataIterator | None = None
        self._training_model: ComputeBackendPort | None = None
        self.last_queue_peak = 0

    # ------------------------------------------------------------------
    # Setup

    def _create_iterator(
        self,
        data: TabularDataPort,
        *,
        is_train: bool,
        class_labels: list[str] | tuple[str, ...] = (),
        target_column_name: str | None = None,
    ) -> SimpleDataIterator:
        seed = self._state.get("random_seed")
        return SimpleDataIterator(
            IteratorParams(
                data=data,
                target_column_name=target_column_name,
                feature_column_name=str(self._state.read("feature")),
                class_labels=() if is_train else tuple(class_labels),
                repeat=False,
                shuffle=is_train,
                random_seed=DEFAULT_RANDOM_SEED if seed is None else int(seed),
                image_shape=tuple(int(d) for d in self._state.read("image_shape")),
            )
        )

    def _rebuild_spec(self, state: ModelState) -> TopologySpec:
        return build_drawing_classifier_spec(state)

    def _reset_training_handles(self) -> None:
        super()._reset_training_handles()
        self._training_iterator = None
        self._validation_iterator = None
        self._training_model = None
        self._training_data = None
        self._validation_data = None

    def init_training(
        self,
        command: DrawingClassifierCommand,
        *,
        data: TabularDataPort,
        validation_data: Any = "auto",
    ) -> None:
        self.phase = TrainingPhase.INITIALIZING
        self._reset_training_handles()
        self._history = []
        self._state = ModelState(command.options())

        if len(data) == 0:
            raise ConfigurationError("training data must contain at least one row")

        seed = command.random_seed if command.random_seed is not None else DEFAULT_RANDOM_SEED
        self._training_data, self._validation_data = create_validation_data(data, validation_data, seed=seed)

        self._start_clock()
        self._log(
            step=0,
            metrics={
                "event": "run_start",
                "toolkit": self.TOOLKIT_NAME,
                "num_examples": len(self._training_data),
                "num_validation_examples": len(self._validation_data) if self._validation_data is not None else 0,
                **command.options(),
            },
        )

        self._state.update(
            {"target": command.target, "feature": command.feature, "features": [command.feature]}
        )

        self._training_iterator = self._create_iterator(
            self._training_data, is_train=True, target_column_name=command.target
        )
        classes = self._training_iterator.class_labels()
        self._state.update({"classes": classes})

        if self._validation_data is not None:
            self._validation_iterator = self._create_iterator(
                self._validation_data,
                is_train=False,
                class_labels=classes,
                target_column_name=command.target,
            )

        context = self._create_compute_context()

        self._state.update(
            {
                "num_classes": len(classes),
                "num_examples": len(self._training_data),
                "training_iterations": 0,
            }
        )

        # The topology depends on the class count found by the iterator.
        self._spec = build_drawing_classifier_spec(self._state)
        self._training_model = context.create_drawing_classifier(
            self._spec,
            batch_size=int(self._state.read("batch_size")),
            num_classes=int(self._state.read("num_classes")),
            learning_rate=float(self._state.read("learning_rate")),
        )
        self.phase = TrainingPhase.ITERATING

    # ------------------------------------------------------------------
    # Training loop

    def _run_epoch(self, iterator: SimpleDataIterator, *, training: bool) -> EpochTotals:
        """One pass over `iterator` with at most one backend call in flight while the next batch is prepared."""

        assert self._training_model is not None
        batch_size = int(self._state.read("batch_size"))
        totals = EpochTotals()
        pending: PendingResultQueue[PendingResult] = PendingResultQueue(capacity=2)

        def consume(result: PendingResult) -> None:
            totals.add(result, loss_per_sample=training)

        while iterator.has_next_batch():
            # Reading results blocks on the backend; keep one batch outstanding.
            pending.drain_until(1, consume)

            batch = iterator.next_batch(batch_size)
            inputs = {"input": batch.images, "labels": batch.targets}
            results = self._training_model.train(inputs) if training else self._training_model.predict(inputs)

            totals.num_batches += 1
            pending.push(
                PendingResult(
                    num_samples=batch.num_samples,
                    loss=results["loss"],
                    accuracy=results["accuracy"],
                )
            )

        pending.drain_until(0, consume)
        self.last_queue_peak = max(self.last_queue_peak, pending.peak)
        return totals

    def compute_validation_metrics(self) -> tuple[float, float]:
        """Returns (validation accuracy, validation loss)."""

        if self._validation_iterator is None:
            raise UninitializedStateError("no validation data")
        self._validation_iterator.reset()
        totals = self._run_epoch(self._validation_iterator, training=False)
        return totals.num_correct / totals.num_samples, totals.loss_sum / totals.num_samples

    def iterate_training(self) -> dict[str, Any]:
        """Run one epoch over the training data and publish its metrics."""

        if self._training_iterator is None or self._training_model is None:
            raise UninitializedStateError("training must be initialized with `init_training` first")
        if self.phase is not TrainingPhase.ITERATING:
            raise UninitializedStateError(f"cannot iterate in phase {self.phase.value}; call `init_training` again")

        iteration_idx = int(self._state.read("training_iterations"))

        totals = self._run_epoch(self._training_iterator, training=True)
        train_loss = totals.loss_sum / totals.num_batches
        train_accuracy = totals.num_correct / totals.num_samples

        update: dict[str, Any] = {
            "training_iterations": iteration_idx + 1,
            "training_accuracy": train_accuracy,
            "training_log_loss": train_loss,
        }
        row: dict[str, Any] = {
            "iteration": iteration_idx + 1,
            "train/accuracy": train_accuracy,
            "train/loss": train_loss,
        }

        if self._validation_iterator is not None:
            val_accuracy, val_loss = self.compute_validation_metrics()
            update.update({"validation_accuracy": val_accuracy, "validation_log_loss": val_loss})
            row.update({"valid/accuracy": val_accuracy, "valid/loss": val_loss})

        self._state.update(update)
        row["elapsed_s"] = self._elapsed()
        self._history.append(row)
        self._log(step=iteration_idx + 1, metrics=row)

        self._training_iterator.reset()
        return row

    def finalize_training(self) -> None:
        """Sync trained weights into the network topology and compute classification reports."""

        if self._training_model is None or self._spec is None or self._training_data is None:
            raise UninitializedStateError("training must be initialized with `init_training` first")

        self._spec.update_params(self._training_model.export_weights())

        update: dict[str, Any] = {}
        for prefix, data in (("training", self._training_data), ("validation", self._validation_data)):
            if data is None:
                continue
            for key, value in self.evaluate(data).items():
                update[f"{prefix}_{key}"] = value
        self._state.update(update)
        self.phase = TrainingPhase.FINALIZED

        self._log(
            step=int(self._state.read("training_iterations")),
            metrics={
                "event": "run_end",
                "toolkit": self.TOOLKIT_NAME,
                "training_accuracy": update.get("training_accuracy"),
                "validation_accuracy": update.get("validation_accuracy"),
                "elapsed_s": self._elapsed(),
            },
        )

    def train(
        self,
        command: DrawingClassifierCommand,
        *,
        data: TabularDataPort,
        validation_data: Any = "auto",
    ) -> TrainResult:
        self.init_training(command, data=data, validation_data=validation_data)

        max_iterations = int(self._state.read("max_iterations"))
        while int(self._state.read("training_iterations")) < max_iterations:
            self.iterate_training()

        self.finalize_training()
        return TrainResult(state=self._state.as_dict(), history=self.history)

    def run(self, command: DrawingClassifierCommand, *, data: TabularDataPort, validation_data: Any = "auto") -> TrainResult:
        return self.train(command, data=data, validation_data=validation_data)

    # ------------------------------------------------------------------
    # Inference

    def _ensure_model(self) -> ComputeBackendPort:
        if self._spec is None:
            raise UninitializedStateError("model is not initialized; please call train or load first")
        if self._training_model is None:
            context = self._compute_context or self._create_compute_context()
            self._training_model = context.create_drawing_classifier(
                self._spec,
                batch_size=int(self._state.read("batch_size")),
                num_classes=int(self._state.read("num_classes")),
                learning_rate=float(self._state.get("learning_rate", 1e-3)),
            )
        return self._training_model

    def _predict_probabilities(self, data: TabularDataPort, *, require_target: bool = False) -> tuple[np.ndarray, np.ndarray | None]:
        """Class probabilities (n, num_classes) in row order, plus target indices when labeled."""

        model = self._ensure_model()
        classes = [str(c) for c in self._state.read("classes")]
        target = str(self._state.read("target"))
        # Labels are only read (and checked against the trained classes) when scoring.
        has_target = require_target

        iterator = self._create_iterator(
            data,
            is_train=False,
            class_labels=classes,
            target_column_name=target if has_target else None,
        )
        batch_size = int(self._state.read("batch_size"))

        outputs: list[np.ndarray] = []
        targets: list[np.ndarray] = []
        pending: PendingResultQueue[PendingResult] = PendingResultQueue(capacity=2)

        def consume(result: PendingResult) -> None:
            outputs.append(np.asarray(result.output, dtype=np.float32))

        while iterator.has_next_batch():
            pending.drain_until(1, consume)
            batch = iterator.next_batch(batch_size)
            results = model.predict({"input": batch.images, "labels": batch.targets})
            if batch.targets is not None:
                targets.append(batch.targets.reshape(-1))
            pending.push(PendingResult(num_samples=batch.num_samples, loss=None, output=results["output"]))
        pending.drain_until(0, consume)

        probs = np.concatenate(outputs) if outputs else np.zeros((0, len(classes)), dtype=np.float32)
        y = np.concatenate(targets).astype(np.int64) if has_target and targets else None
        return probs, y

    def predict(self, data: TabularDataPort, output_type: str = "class") -> np.ndarray:
        """Per-row predictions: class labels, probability vectors, or (binary) positive-class probability."""

        if output_type not in PREDICT_OUTPUT_TYPES:
            raise ConfigurationError(f"output_type must be one of {PREDICT_OUTPUT_TYPES}, got {output_type!r}")

        probs, _ = self._predict_probabilities(data)
        if output_type == "probability_vector":
            return probs
        if output_type == "probability":
            if probs.shape[-1] != 2:
                raise ConfigurationError("output_type 'probability' is only defined for binary classifiers")
            return probs[:, 1]

        classes = np.asarray([str(c) for c in self._state.read("classes")])
        return classes[np.argmax(probs, axis=-1)] if len(probs) else classes[:0]

    def predict_topk(self, data: TabularDataPort, output_type: str = "probability", k: int = 3) -> list[dict[str, Any]]:
        """Top-k classes per row as records `{id, class, probability|rank}`."""

        if output_type not in TOPK_OUTPUT_TYPES:
            raise ConfigurationError(f"output_type must be one of {TOPK_OUTPUT_TYPES}, got {output_type!r}")
        if k < 1:
            raise ConfigurationError(f"k must be >= 1, got {k}")

        probs, _ = self._predict_probabilities(data)
        classes = [str(c) for c in self._state.read("classes")]
        k = min(k, len(classes))

        rows: list[dict[str, Any]] = []
        for row_id, p in enumerate(probs):
            order = np.argsort(-p, kind="stable")[:k]
            for rank, idx in enumerate(order):
                value = float(p[idx]) if output_type == "probability" else rank
                rows.append({"id": row_id, "class": classes[idx], output_type: value})
        return rows

    def evaluate(self, data: TabularDataPort, metric: str = "auto") -> dict[str, Any]:
        """Classification report (accuracy, precision, recall, f1_score, confusion_matrix, auc for binary)."""

        probs, y = self._predict_probabilities(data, require_target=True)
        assert y is not None
        report = compute_classifier_metrics(y, probs, [str(c) for c in self._state.read("classes")])
        if metric in ("auto", "report"):
            return report
        if metric not in report:
            raise ConfigurationError(f"unknown metric {metric!r}; choose from {sorted(report)}")
        return {metric: report[metric]}

    # ------------------------------------------------------------------
    # Export

    def export_model(self, filename: str = "") -> ExportedModel:
        if self._spec is None:
            raise UninitializedStateError("model is not initialized; please call train before export")
        exporter = self._require_exporter()

        target = str(self._state.read("target"))
        features = [str(f) for f in self._state.read("features")]
        classes = [str(c) for c in self._state.read("classes")]

        model = exporter.export(
            self._spec,
            input_names=features,
            output_names=[f"{target}Probability"],
            metadata={"classes": classes, "target": target},
        )
        model.add_metadata(
            {
                "user_defined": {
                    "target": target,
                    "features": ",".join(features),
                    "max_iterations": int(self._state.read("max_iterations")),
                    "type": self.TOOLKIT_NAME,
                    "version": EXPORT_VERSION,
                }
            }
        )
        if filename:
            model.save(filename)
        self.phase = TrainingPhase.EXPORTED
        return model
