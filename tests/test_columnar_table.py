from __future__ import annotations

import numpy as np
import pytest

from jax_vision_toolkits.adapters.right.tables.columnar import ColumnarTable


def test_from_records_builds_columns() -> None:
    table = ColumnarTable.from_records(
        [
            {"label": "foo", "drawing": np.zeros((2, 2))},
            {"label": "bar", "drawing": np.ones((2, 2))},
        ]
    )

    assert table.column_names == ["label", "drawing"]
    assert len(table) == 2
    assert table["label"].tolist() == ["foo", "bar"]
    # Per-row arrays are stored as objects.
    assert table["drawing"].dtype == object
    assert table.unique("label") == ["bar", "foo"]


def test_take_returns_a_new_table() -> None:
    table = ColumnarTable({"label": ["b", "c", "a"], "x": [1, 2, 3]})

    assert table.take([2, 0]).column("x").tolist() == [3, 1]
    assert table.column("x").tolist() == [1, 2, 3]


def test_add_column_checks_rows_and_names() -> None:
    table = ColumnarTable({"x": [1, 2, 3]})

    table.add_column([4, 5, 6], "y")
    assert table.column_names == ["x", "y"]

    with pytest.raises(ValueError, match="rows"):
        table.add_column([1], "z")
    with pytest.raises(ValueError, match="exists"):
        table.add_column([1, 2, 3], "x")

    with pytest.raises(KeyError):
        table.column("z")


def test_random_split_partitions_rows() -> None:
    table = ColumnarTable({"i": np.arange(200)})

    first, second = table.random_split(0.9, seed=0)
    again, _ = table.random_split(0.9, seed=0)

    assert len(first) + len(second) == 200
    assert sorted(first["i"].tolist() + second["i"].tolist()) == list(range(200))
    assert first["i"].tolist() == again["i"].tolist()
    assert 0 < len(second) < 60


def test_from_npz_reads_one_column_per_array(tmp_path) -> None:
    path = tmp_path / "drawings.npz"
    np.savez(path, drawing=np.zeros((3, 28, 28), dtype=np.float32), label=np.asarray(["a", "b", "a"]))

    table = ColumnarTable.from_npz(str(path))

    assert sorted(table.column_names) == ["drawing", "label"]
    assert table["drawing"].shape == (3, 28, 28)
    assert table.unique("label") == ["a", "b"]
