from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import numpy as np


class TabularDataPort(Protocol):
    """Port for the column-indexed, row-ordered table the iterators read.

    Column values are returned as NumPy arrays (object dtype for images and
    strings). Implementations must not mutate themselves in `take` or `random_split`;
    both return new tables.
    """

    @property
    def column_names(self) -> list[str]: ...

    @property
    def num_rows(self) -> int: ...

    def __len__(self) -> int: ...

    def column(self, name: str) -> np.ndarray: ...

    def unique(self, name: str) -> list[Any]: ...

    def take(self, indices: Sequence[int] | np.ndarray) -> "TabularDataPort": ...

    def random_split(self, fraction: float, *, seed: int) -> tuple["TabularDataPort", "TabularDataPort"]: ...
