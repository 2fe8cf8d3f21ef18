from __future__ import annotations

import json
import os

# Ensure tests run on CPU-only machines even if JAX is installed with CUDA extras.
os.environ.setdefault("JAX_PLATFORMS", "cpu")

import numpy as np
from typer.testing import CliRunner

from jax_vision_toolkits.adapters.left.cli import app


def _write_drawings(path, n: int = 12) -> None:
    rng = np.random.default_rng(0)
    np.savez(
        path,
        drawing=rng.integers(0, 256, size=(n, 28, 28)).astype(np.float32),
        label=np.asarray(["circle", "square"] * (n // 2)),
    )


def test_drawing_classifier_command_trains_saves_and_exports(tmp_path) -> None:
    npz_path = tmp_path / "drawings.npz"
    _write_drawings(npz_path)
    ckpt_dir = tmp_path / "ckpt"
    export_path = tmp_path / "model.safetensors"
    log_path = tmp_path / "logs" / "run.jsonl"

    result = CliRunner().invoke(
        app,
        [
            "drawing-classifier",
            "--npz-path", str(npz_path),
            "--batch-size", "4",
            "--max-iterations", "1",
            "--seed", "3",
            "--ckpt-dir", str(ckpt_dir),
            "--export-path", str(export_path),
            "--log-path", str(log_path),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Training complete" in result.output
    assert export_path.exists()
    assert any(p.name.startswith("state_step_1") for p in ckpt_dir.iterdir())

    records = [json.loads(ln) for ln in log_path.read_text(encoding="utf-8").splitlines() if ln.strip()]
    events = [r["metrics"].get("event") for r in records]
    assert all(r["run"] == "drawing-classifier" for r in records)
    assert events[0] == "run_start"
    assert "run_end" in events
    assert any(r["metrics"].get("iteration") == 1 for r in records)


def test_drawing_classifier_command_rejects_bad_option(tmp_path) -> None:
    npz_path = tmp_path / "drawings.npz"
    _write_drawings(npz_path)

    result = CliRunner().invoke(app, ["drawing-classifier", "--npz-path", str(npz_path), "--target", ""])

    assert result.exit_code != 0


def test_style_transfer_command_requires_arrays(tmp_path) -> None:
    npz_path = tmp_path / "images.npz"
    np.savez(npz_path, style=np.zeros((1, 8, 8, 3), dtype=np.uint8))

    result = CliRunner().invoke(
        app,
        ["style-transfer", "--npz-path", str(npz_path), "--vgg-weights", str(tmp_path / "vgg.safetensors")],
    )

    assert result.exit_code != 0
