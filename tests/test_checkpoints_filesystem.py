from __future__ import annotations

import numpy as np
import pytest

from jax_vision_toolkits.adapters.right.checkpoints_filesystem import (
    FilesystemCheckpointStore,
    load_params_file,
    save_params_file,
)


def test_load_latest_returns_none_for_empty_dir(tmp_path) -> None:
    store = FilesystemCheckpointStore(dir_path=str(tmp_path / "ckpt"))

    assert store.load_latest() is None
    assert store.steps() == []


def test_save_then_load_latest_picks_highest_step(tmp_path) -> None:
    store = FilesystemCheckpointStore(dir_path=str(tmp_path))
    params = {"layer_weight": np.arange(6, dtype=np.float32).reshape(2, 3)}

    store.save(step=2, version=1, state={"classes": ["a", "b"]}, params=params)
    store.save(
        step=10,
        version=1,
        state={"classes": ["a", "b"], "training_accuracy": np.float32(0.5)},
        params={"layer_weight": params["layer_weight"] * 2},
    )

    ckpt = store.load_latest()

    assert store.steps() == [2, 10]
    assert ckpt.step == 10
    assert ckpt.version == 1
    assert ckpt.state == {"classes": ["a", "b"], "training_accuracy": 0.5}
    np.testing.assert_array_equal(ckpt.params["layer_weight"], params["layer_weight"] * 2)


def test_params_file_round_trip(tmp_path) -> None:
    path = str(tmp_path / "vgg.safetensors")
    save_params_file(path, {"vgg_block1_conv1_bias": np.ones((4,))})

    loaded = load_params_file(path)

    assert loaded["vgg_block1_conv1_bias"].dtype == np.float32
    np.testing.assert_array_equal(loaded["vgg_block1_conv1_bias"], np.ones((4,), dtype=np.float32))


def test_missing_params_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_params_file(str(tmp_path / "nope.safetensors"))
