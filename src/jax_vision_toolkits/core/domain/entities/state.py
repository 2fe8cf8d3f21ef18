from __future__ import annotations

import enum
from typing import Any, Iterator, Mapping

from jax_vision_toolkits.core.domain.errors import UninitializedStateError


class TrainingPhase(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    FINALIZED = "finalized"
    EXPORTED = "exported"


class ModelState:
    """Mutable key-value record published by a toolkit.

    Holds options, derived fields (classes, num_classes) and running
    training metrics. It is persisted next to the topology parameters.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})

    def read(self, key: str) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise UninitializedStateError(f"model field {key!r} has not been set") from None

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def update(self, values: Mapping[str, Any]) -> None:
        self._values.update(values)

    def as_dict(self) -> dict[str, Any]:
        return dict(self._values)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ModelState({self._values!r})"
