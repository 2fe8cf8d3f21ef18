from __future__ import annotations

import numpy as np
import pytest

from jax_vision_toolkits.adapters.right.checkpoints_filesystem import FilesystemCheckpointStore
from jax_vision_toolkits.adapters.right.tables.columnar import ColumnarTable
from jax_vision_toolkits.core.domain.commands.train import DrawingClassifierCommand
from jax_vision_toolkits.core.domain.entities.state import TrainingPhase
from jax_vision_toolkits.core.domain.errors import (
    BackendUnavailableError,
    ConfigurationError,
    UninitializedStateError,
)
from jax_vision_toolkits.core.domain.topology.spec import TopologySpec
from jax_vision_toolkits.core.use_cases.drawing_classifier import DrawingClassifierUseCase


class _Lazy:
    """Stands in for an asynchronous device array; reading it is logged."""

    def __init__(self, value, events: list, tag: int) -> None:
        self._value = np.asarray(value)
        self._events = events
        self._tag = tag

    def __array__(self, dtype=None, copy=None):
        self._events.append(("read", self._tag))
        return self._value if dtype is None else self._value.astype(dtype)


class _FakeBackend:
    def __init__(self, spec: TopologySpec, num_classes: int, events: list) -> None:
        self._spec = spec
        self._num_classes = num_classes
        self._events = events
        self.train_calls = 0
        self.predict_calls = 0

    def train(self, inputs):
        tag = self.train_calls
        self.train_calls += 1
        self._events.append(("train", tag))
        n = len(inputs["input"])
        return {
            "loss": _Lazy(np.full((n,), 0.25, dtype=np.float32), self._events, tag),
            "accuracy": _Lazy(np.float32(1.0), self._events, tag),
        }

    def predict(self, inputs):
        self.predict_calls += 1
        n = len(inputs["input"])
        # Always predicts class 0.
        out = {"output": np.tile(np.eye(self._num_classes, dtype=np.float32)[0], (n, 1))}
        if inputs.get("labels") is not None:
            out["loss"] = np.full((n,), 0.75, dtype=np.float32)
            out["accuracy"] = np.float32(0.0)
        return out

    def export_weights(self):
        return {k: v + 1.0 for k, v in self._spec.params.items()}


class _FakeContext:
    def __init__(self) -> None:
        self.events: list = []
        self.backends: list[_FakeBackend] = []

    def gpu_names(self) -> list[str]:
        return []

    def create_drawing_classifier(self, spec, *, batch_size, num_classes, learning_rate):
        backend = _FakeBackend(spec, num_classes, self.events)
        self.backends.append(backend)
        return backend

    def create_style_transfer(self, *args, **kwargs):
        raise AssertionError("not used")


class _ListSink:
    def __init__(self) -> None:
        self.records: list[tuple[int, dict]] = []

    def log(self, *, step: int, metrics: dict) -> None:
        self.records.append((step, dict(metrics)))


def _table(labels: list[str]) -> ColumnarTable:
    rng = np.random.default_rng(0)
    drawings = rng.integers(0, 256, size=(len(labels), 28, 28)).astype(np.float32)
    return ColumnarTable({"drawing": drawings, "label": np.asarray(labels)})


def _use_case(context: _FakeContext, **kwargs) -> DrawingClassifierUseCase:
    return DrawingClassifierUseCase(compute_context_factory=lambda: context, **kwargs)


def _command(**overrides) -> DrawingClassifierCommand:
    values = dict(target="label", feature="drawing", batch_size=4, max_iterations=2, random_seed=1)
    values.update(overrides)
    return DrawingClassifierCommand(**values)


LABELS = ["cat", "dog", "cat", "dog", "cat", "cat", "dog", "cat", "cat", "dog"]


def test_train_runs_epochs_and_publishes_metrics() -> None:
    context = _FakeContext()
    sink = _ListSink()
    use_case = _use_case(context, metrics_sink=sink)

    result = use_case.train(_command(), data=_table(LABELS), validation_data=None)

    backend = context.backends[0]
    # 10 rows at batch size 4 -> 3 batches per epoch.
    assert backend.train_calls == 6
    assert use_case.phase == TrainingPhase.FINALIZED

    state = result.state
    assert state["classes"] == ["cat", "dog"]
    assert state["num_classes"] == 2
    assert state["training_iterations"] == 2
    assert state["training_log_loss"] == pytest.approx(0.25)
    # Final report comes from predictions (always "cat").
    assert state["training_accuracy"] == pytest.approx(0.6)
    assert state["training_recall"] == pytest.approx(0.5)
    assert {"target_label": "dog", "predicted_label": "cat", "count": 4} in state["training_confusion_matrix"]
    assert "training_auc" in state
    assert "validation_accuracy" not in state

    assert [row["iteration"] for row in result.history] == [1, 2]
    assert result.history[0]["train/accuracy"] == pytest.approx(1.0)
    assert result.history[0]["train/loss"] == pytest.approx(0.25)

    events = [m.get("event") for _, m in sink.records if "event" in m]
    assert events == ["run_start", "training_device", "run_end"]


def test_pipeline_keeps_one_batch_in_flight() -> None:
    context = _FakeContext()
    use_case = _use_case(context)

    use_case.train(_command(max_iterations=1), data=_table(LABELS), validation_data=None)

    events = context.events

    def first(kind: str, tag: int) -> int:
        return events.index((kind, tag))

    # Batch k is read back only after batch k + 1 was submitted.
    assert first("read", 0) > first("train", 1)
    assert first("read", 1) > first("train", 2)
    assert use_case.last_queue_peak == 2


def test_validation_pass_uses_training_classes() -> None:
    context = _FakeContext()
    use_case = _use_case(context)

    result = use_case.train(
        _command(max_iterations=1),
        data=_table(LABELS),
        validation_data=_table(["dog", "dog", "cat"]),
    )

    row = result.history[-1]
    assert row["valid/accuracy"] == pytest.approx(0.0)
    assert row["valid/loss"] == pytest.approx(0.75)
    assert result.state["validation_accuracy"] == pytest.approx(1 / 3)
    assert "validation_f1_score" in result.state


def test_unexpected_validation_label_is_rejected() -> None:
    use_case = _use_case(_FakeContext())

    with pytest.raises(ConfigurationError, match="bird"):
        use_case.init_training(_command(), data=_table(LABELS), validation_data=_table(["bird"]))


def test_empty_training_data_is_rejected() -> None:
    use_case = _use_case(_FakeContext())

    with pytest.raises(ConfigurationError):
        use_case.init_training(_command(), data=_table([]))


def test_missing_backend_raises() -> None:
    use_case = DrawingClassifierUseCase(compute_context_factory=lambda: None)

    with pytest.raises(BackendUnavailableError):
        use_case.init_training(_command(), data=_table(LABELS), validation_data=None)


def test_iterate_before_init_raises() -> None:
    use_case = _use_case(_FakeContext())

    with pytest.raises(UninitializedStateError):
        use_case.iterate_training()


def test_save_before_init_raises(tmp_path) -> None:
    use_case = _use_case(_FakeContext(), checkpoint_store=FilesystemCheckpointStore(dir_path=str(tmp_path)))

    with pytest.raises(UninitializedStateError):
        use_case.save()


def test_final_weights_are_synced_into_spec() -> None:
    context = _FakeContext()
    use_case = _use_case(context)

    use_case.init_training(_command(max_iterations=1), data=_table(LABELS), validation_data=None)
    before = use_case.nn_spec.export_params_view()
    use_case.iterate_training()
    use_case.finalize_training()

    after = use_case.nn_spec.params
    np.testing.assert_allclose(after["drawing_dense1_weight"], before["drawing_dense1_weight"] + 1.0)


def test_predict_and_topk() -> None:
    context = _FakeContext()
    use_case = _use_case(context)
    use_case.train(_command(max_iterations=1), data=_table(LABELS), validation_data=None)

    unlabeled = ColumnarTable({"drawing": _table(["cat", "dog", "cat"]).column("drawing")})

    assert use_case.predict(unlabeled).tolist() == ["cat", "cat", "cat"]
    assert use_case.predict(unlabeled, output_type="probability").tolist() == [0.0, 0.0, 0.0]
    assert use_case.predict(unlabeled, output_type="probability_vector").shape == (3, 2)

    topk = use_case.predict_topk(unlabeled, output_type="rank", k=2)
    assert topk[:2] == [{"id": 0, "class": "cat", "rank": 0}, {"id": 0, "class": "dog", "rank": 1}]
    assert len(topk) == 6

    with pytest.raises(ConfigurationError):
        use_case.predict(unlabeled, output_type="nope")


def test_predict_ignores_labels_of_unseen_classes() -> None:
    use_case = _use_case(_FakeContext())
    use_case.train(_command(max_iterations=1), data=_table(LABELS), validation_data=None)

    labeled = _table(["cat", "bird"])

    assert use_case.predict(labeled).tolist() == ["cat", "cat"]
    assert len(use_case.predict_topk(labeled, k=1)) == 2
    with pytest.raises(ConfigurationError, match="bird"):
        use_case.evaluate(labeled)


def test_iterate_after_finalize_raises() -> None:
    context = _FakeContext()
    use_case = _use_case(context)
    use_case.train(_command(max_iterations=1), data=_table(LABELS), validation_data=None)
    calls = context.backends[0].train_calls

    with pytest.raises(UninitializedStateError, match="finalized"):
        use_case.iterate_training()

    assert context.backends[0].train_calls == calls
    assert use_case.state.read("training_iterations") == 1

    # A fresh init_training re-enters the loop.
    use_case.init_training(_command(max_iterations=1), data=_table(LABELS), validation_data=None)
    use_case.iterate_training()
    assert use_case.phase == TrainingPhase.ITERATING


def test_iterate_after_load_raises(tmp_path) -> None:
    store = FilesystemCheckpointStore(dir_path=str(tmp_path))
    use_case = _use_case(_FakeContext(), checkpoint_store=store)
    use_case.train(_command(max_iterations=1), data=_table(LABELS), validation_data=None)
    use_case.save()

    restored = _use_case(_FakeContext(), checkpoint_store=store)
    restored.load()

    with pytest.raises(UninitializedStateError):
        restored.iterate_training()


def test_evaluate_single_metric() -> None:
    use_case = _use_case(_FakeContext())
    use_case.train(_command(max_iterations=1), data=_table(LABELS), validation_data=None)

    assert use_case.evaluate(_table(["cat", "dog"]), metric="accuracy") == {"accuracy": 0.5}
    with pytest.raises(ConfigurationError):
        use_case.evaluate(_table(["cat"]), metric="bogus")


def test_save_and_load_round_trip(tmp_path) -> None:
    store = FilesystemCheckpointStore(dir_path=str(tmp_path))
    use_case = _use_case(_FakeContext(), checkpoint_store=store)
    use_case.train(_command(max_iterations=1), data=_table(LABELS), validation_data=None)
    use_case.save()

    restored = _use_case(_FakeContext(), checkpoint_store=store)
    restored.load()

    assert restored.phase == TrainingPhase.FINALIZED
    assert restored.state.read("classes") == ["cat", "dog"]
    for name, value in use_case.nn_spec.params.items():
        np.testing.assert_array_equal(restored.nn_spec.params[name], value)
    assert restored.predict(_table(["cat"])).tolist() == ["cat"]


def test_export_without_exporter_raises() -> None:
    use_case = _use_case(_FakeContext())
    use_case.train(_command(max_iterations=1), data=_table(LABELS), validation_data=None)

    with pytest.raises(ConfigurationError, match="exporter"):
        use_case.export_model()
