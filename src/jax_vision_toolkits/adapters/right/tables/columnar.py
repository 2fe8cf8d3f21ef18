from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import numpy as np

from jax_vision_toolkits.core.ports.dataset_table import TabularDataPort


def _as_column(values: Any) -> np.ndarray:
    if isinstance(values, np.ndarray):
        return values

    values = list(values)
    if all(isinstance(v, (str, bool, int, float, np.generic)) for v in values):
        return np.asarray(values)

    # Images and other nested values: keep one Python object per row.
    col = np.empty(len(values), dtype=object)
    for i, v in enumerate(values):
        col[i] = v
    return col


class ColumnarTable(TabularDataPort):
    """In-memory table of equal-length NumPy columns.

    Image columns may be stored either as one stacked array (N, H, W[, C]) or
    as an object array holding one array per row.
    """

    def __init__(self, columns: Mapping[str, Any] | None = None) -> None:
        self._columns: dict[str, np.ndarray] = {}
        self._num_rows: int | None = None
        for name, values in (columns or {}).items():
            self.add_column(values, name)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "ColumnarTable":
        records = list(records)
        if not records:
            return cls()
        names = list(records[0].keys())
        return cls({name: [r[name] for r in records] for name in names})

    @classmethod
    def from_npz(cls, path: str, *, allow_pickle: bool = False) -> "ColumnarTable":
        """One column per array stored in the .npz file."""

        with np.load(path, allow_pickle=allow_pickle) as data:
            return cls({name: np.asarray(data[name]) for name in data.files})

    @property
    def column_names(self) -> list[str]:
        return list(self._columns)

    @property
    def num_rows(self) -> int:
        return self._num_rows or 0

    def __len__(self) -> int:
        return self.num_rows

    def __getitem__(self, name: str) -> np.ndarray:
        return self.column(name)

    def column(self, name: str) -> np.ndarray:
        try:
            return self._columns[name]
        except KeyError:
            raise KeyError(f"no column named {name!r}; columns are {self.column_names}") from None

    def unique(self, name: str) -> list[Any]:
        col = self.column(name)
        if col.dtype == object:
            return sorted(set(col.tolist()))
        return np.unique(col).tolist()

    def take(self, indices: Sequence[int] | np.ndarray) -> "ColumnarTable":
        idx = np.asarray(indices, dtype=np.int64)
        return ColumnarTable({name: col[idx] for name, col in self._columns.items()})

    def add_column(self, values: Iterable[Any], name: str) -> None:
        if name in self._columns:
            raise ValueError(f"column {name!r} already exists")
        col = _as_column(values)
        if self._num_rows is not None and self._columns and len(col) != self._num_rows:
            raise ValueError(f"column {name!r} has {len(col)} rows, table has {self._num_rows}")
        self._columns[name] = col
        self._num_rows = len(col)

    def random_split(self, fraction: float, *, seed: int) -> tuple["ColumnarTable", "ColumnarTable"]:
        """Bernoulli split: each row goes to the first table with probability `fraction`."""

        rng = np.random.default_rng(seed)
        keep = rng.random(self.num_rows) < fraction
        return self.take(np.flatnonzero(keep)), self.take(np.flatnonzero(~keep))

    def __repr__(self) -> str:
        return f"ColumnarTable(num_rows={self.num_rows}, columns={self.column_names})"
