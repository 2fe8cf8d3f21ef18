from __future__ import annotations

from typing import Any, Mapping

import numpy as np

from jax_vision_toolkits.core.domain.entities.base import Batch
from jax_vision_toolkits.core.domain.entities.dataset import IteratorParams, TargetProperties
from jax_vision_toolkits.core.domain.errors import ConfigurationError
from jax_vision_toolkits.core.domain.iterators.base import EpochCursor
from jax_vision_toolkits.core.ports.dataset_table import TabularDataPort


def compute_properties(
    data: TabularDataPort,
    target_column_name: str | None,
    expected_class_labels: tuple[str, ...] | list[str] = (),
) -> TargetProperties:
    """Build the label -> index mapping for a target column.

    With no expected labels the classes are the sorted unique targets. With
    expected labels the index is the position in that list, and every label
    present in the data must be one of them.
    """

    if not expected_class_labels:
        if target_column_name is None:
            return TargetProperties.from_classes(())
        return TargetProperties.from_classes([str(v) for v in data.unique(target_column_name)])

    result = TargetProperties.from_classes(list(expected_class_labels))
    if target_column_name is not None:
        for label in data.unique(target_column_name):
            if str(label) not in result.class_to_index_map:
                raise ConfigurationError(f"Targets contained unexpected class label {label}")
    return result


def to_drawing(value: Any, shape: tuple[int, int, int]) -> np.ndarray:
    """Convert one feature value to a float32 (H, W, C) bitmap; pixel values are not rescaled."""

    arr = np.asarray(value, dtype=np.float32)
    if arr.ndim == 2:
        arr = arr[..., np.newaxis]
    if arr.shape != tuple(shape):
        raise ConfigurationError(f"expected a drawing of shape {tuple(shape)}, got {arr.shape}")
    return arr


class SimpleDataIterator:
    """Streams a drawing table into fixed-shape batches.

    Rows are visited in table order. Without `repeat` the iterator stops at
    the end of the table (the last batch may be short); with `repeat` it
    wraps around, optionally reshuffling, and keeps filling the current
    batch across the epoch boundary.
    """

    def __init__(self, params: IteratorParams) -> None:
        data = params.data
        available = set(data.column_names)
        for name in (params.target_column_name, params.feature_column_name, params.predictions_column_name):
            if name is not None and name not in available:
                raise ConfigurationError(
                    f"Column {name!r} not found in the data; available columns: {sorted(available)}"
                )

        self._data = data
        self._image_shape = tuple(int(d) for d in params.image_shape)
        self._features = data.column(params.feature_column_name)
        self._targets = (
            data.column(params.target_column_name) if params.target_column_name is not None else None
        )
        self._predictions = (
            data.column(params.predictions_column_name)
            if params.predictions_column_name is not None
            else None
        )

        self._target_properties = compute_properties(
            data, params.target_column_name, params.class_labels
        )

        self._cursor = EpochCursor(
            len(data), repeat=params.repeat, shuffle=params.shuffle, random_seed=params.random_seed
        )

    @property
    def target_properties(self) -> TargetProperties:
        return self._target_properties

    def class_labels(self) -> list[str]:
        return list(self._target_properties.classes)

    def class_to_index_map(self) -> Mapping[str, int]:
        return self._target_properties.class_to_index_map

    @property
    def image_shape(self) -> tuple[int, ...]:
        return self._image_shape

    @property
    def num_rows(self) -> int:
        return len(self._data)

    @property
    def row_order(self) -> np.ndarray:
        """Current row order (a permutation of the table positions)."""
        return self._cursor.order

    def has_next_batch(self) -> bool:
        return not self._cursor.at_end

    def reset(self) -> None:
        self._cursor.reset()

    def _index_of(self, label: Any) -> int:
        try:
            return self._target_properties.class_to_index_map[str(label)]
        except KeyError:
            raise ConfigurationError(f"unexpected class label {label}") from None

    def next_batch(self, batch_size: int) -> Batch:
        if batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {batch_size}")

        images = np.zeros((batch_size, *self._image_shape), dtype=np.float32)
        targets: list[float] = []
        predictions: list[float] = []
        n = 0

        while n < batch_size and not self._cursor.at_end:
            row = self._cursor.current_row()

            if self._predictions is not None:
                predictions.append(float(self._index_of(self._predictions[row])))

            images[n] = to_drawing(self._features[row], self._image_shape)

            if self._targets is not None:
                targets.append(float(self._index_of(self._targets[row])))

            n += 1
            self._cursor.advance()

        return Batch(
            images=images[:n],
            targets=(np.asarray(targets, dtype=np.float32).reshape(n, 1) if self._targets is not None else None),
            num_samples=n,
            predictions=(
                np.asarray(predictions, dtype=np.float32).reshape(n, 1)
                if self._predictions is not None
                else None
            ),
        )
