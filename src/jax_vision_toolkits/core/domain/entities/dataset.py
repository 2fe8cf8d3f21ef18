from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

DEFAULT_DRAWING_SHAPE: tuple[int, int, int] = (28, 28, 1)


@dataclass(frozen=True)
class TargetProperties:
    """Label <-> dense index mapping derived once per iterator.

    `classes[i]` is the label whose index is `i`.
    """

    classes: tuple[str, ...]
    class_to_index_map: Mapping[str, int]

    @classmethod
    def from_classes(cls, classes: tuple[str, ...] | list[str]) -> "TargetProperties":
        ordered = tuple(str(c) for c in classes)
        mapping = {label: i for i, label in enumerate(ordered)}
        return cls(classes=ordered, class_to_index_map=MappingProxyType(mapping))

    @property
    def num_classes(self) -> int:
        return len(self.classes)


@dataclass(frozen=True)
class IteratorParams:
    """Everything needed to open a drawing iterator over a table."""

    data: Any
    target_column_name: str | None
    feature_column_name: str
    predictions_column_name: str | None = None
    # Empty means "infer from the data".
    class_labels: tuple[str, ...] = ()
    repeat: bool = False
    shuffle: bool = True
    random_seed: int = 0
    image_shape: tuple[int, int, int] = DEFAULT_DRAWING_SHAPE
