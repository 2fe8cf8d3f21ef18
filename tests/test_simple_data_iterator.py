from __future__ import annotations

import numpy as np
import pytest

from jax_vision_toolkits.adapters.right.tables.columnar import ColumnarTable
from jax_vision_toolkits.core.domain.entities.dataset import IteratorParams
from jax_vision_toolkits.core.domain.errors import ConfigurationError
from jax_vision_toolkits.core.domain.iterators.drawing import SimpleDataIterator


def _table(labels: list[str], *, shape: tuple[int, int] = (28, 28)) -> ColumnarTable:
    # Every pixel of drawing i holds i, so batches reveal which rows they came from.
    drawings = np.stack([np.full(shape, i, dtype=np.float32) for i in range(len(labels))])
    return ColumnarTable({"drawing": drawings, "label": np.asarray(labels)})


def _iterator(table: ColumnarTable, **overrides) -> SimpleDataIterator:
    params = dict(
        data=table,
        target_column_name="label",
        feature_column_name="drawing",
        repeat=False,
        shuffle=False,
        random_seed=0,
    )
    params.update(overrides)
    return SimpleDataIterator(IteratorParams(**params))


def _row_ids(batch) -> list[int]:
    return [int(v) for v in batch.images[:, 0, 0, 0]]


def test_inferred_class_labels_are_sorted_unique_targets() -> None:
    it = _iterator(_table(["foo", "bar", "baz", "foo", "bar"]))

    assert it.class_labels() == ["bar", "baz", "foo"]
    assert dict(it.class_to_index_map()) == {"bar": 0, "baz": 1, "foo": 2}


def test_batches_have_channel_last_images_and_indexed_targets() -> None:
    it = _iterator(_table(["foo", "bar", "baz", "foo", "bar"]))

    batch = it.next_batch(3)

    assert batch.num_samples == 3
    assert batch.images.shape == (3, 28, 28, 1)
    assert batch.images.dtype == np.float32
    assert batch.targets.shape == (3, 1)
    assert batch.targets.reshape(-1).tolist() == [2.0, 0.0, 1.0]
    assert batch.predictions is None
    assert _row_ids(batch) == [0, 1, 2]


def test_non_repeating_iterator_returns_short_final_batch() -> None:
    it = _iterator(_table(["foo", "bar", "baz", "foo", "bar"]))

    sizes = []
    while it.has_next_batch():
        sizes.append(it.next_batch(2).num_samples)

    assert sizes == [2, 2, 1]
    assert not it.has_next_batch()


def test_repeating_batch_straddles_epoch_boundary() -> None:
    it = _iterator(_table(["foo", "bar", "baz"]), repeat=True)

    batch = it.next_batch(5)

    assert batch.num_samples == 5
    assert _row_ids(batch) == [0, 1, 2, 0, 1]
    assert batch.targets.reshape(-1).tolist() == [2.0, 0.0, 1.0, 2.0, 0.0]
    assert it.has_next_batch()


def test_repeating_shuffled_epochs_visit_every_row_once() -> None:
    n = 20
    it = _iterator(_table(["foo", "bar"] * (n // 2)), repeat=True, shuffle=True, random_seed=3)

    first = _row_ids(it.next_batch(n))
    second = _row_ids(it.next_batch(n))

    assert first == list(range(n))
    assert sorted(second) == list(range(n))
    assert second != first


def test_shuffle_is_reproducible_for_a_seed_and_leaves_table_untouched() -> None:
    n = 16
    labels = ["foo", "bar", "baz", "qux"] * (n // 4)
    table = _table(labels)
    before = table.column("label").copy()

    def epochs(seed: int) -> list[list[int]]:
        it = _iterator(table, repeat=True, shuffle=True, random_seed=seed)
        return [_row_ids(it.next_batch(n)) for _ in range(3)]

    assert epochs(11) == epochs(11)
    assert epochs(11)[1:] != epochs(12)[1:]
    np.testing.assert_array_equal(table.column("label"), before)


def test_reset_restarts_at_current_order() -> None:
    it = _iterator(_table(["foo", "bar", "baz", "foo"]), repeat=True, shuffle=True, random_seed=5)

    it.next_batch(5)  # crosses into the shuffled second epoch
    order = it.row_order.tolist()
    it.reset()

    assert _row_ids(it.next_batch(4)) == order


def test_expected_class_labels_keep_list_order() -> None:
    it = _iterator(_table(["bar", "foo", "foo"]), class_labels=("foo", "bar"))

    assert it.class_labels() == ["foo", "bar"]
    assert it.next_batch(3).targets.reshape(-1).tolist() == [1.0, 0.0, 0.0]


def test_expected_class_label_missing_from_data_is_kept() -> None:
    it = _iterator(_table(["foo", "foo"]), class_labels=("bar", "foo"))

    assert it.class_labels() == ["bar", "foo"]
    assert it.next_batch(2).targets.reshape(-1).tolist() == [1.0, 1.0]


def test_unexpected_class_label_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="bad_class"):
        _iterator(_table(["foo", "bad_class"]), class_labels=("foo", "bar"))


def test_missing_column_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="missing"):
        _iterator(_table(["foo"]), feature_column_name="missing")


def test_predictions_column_is_mapped_like_targets() -> None:
    table = _table(["foo", "bar", "foo"])
    table.add_column(np.asarray(["bar", "bar", "foo"]), "predicted")
    it = _iterator(table, predictions_column_name="predicted")

    batch = it.next_batch(3)

    assert batch.predictions.reshape(-1).tolist() == [0.0, 0.0, 1.0]


def test_unlabeled_data_has_no_targets() -> None:
    it = _iterator(_table(["foo", "bar"]), target_column_name=None, class_labels=("bar", "foo"))

    batch = it.next_batch(2)

    assert batch.targets is None
    assert batch.num_samples == 2


def test_drawing_with_wrong_shape_is_rejected() -> None:
    it = _iterator(_table(["foo", "bar"], shape=(14, 14)))

    with pytest.raises(ConfigurationError, match="shape"):
        it.next_batch(1)
