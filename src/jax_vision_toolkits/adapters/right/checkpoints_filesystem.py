from __future__ import annotations

import json
import os
import re
from typing import Any

import numpy as np
from safetensors.numpy import load_file, save_file

from jax_vision_toolkits.core.domain.utils.serialization import to_jsonable
from jax_vision_toolkits.core.ports.checkpoint_store import Checkpoint, CheckpointStorePort

_STATE_RE = re.compile(r"^state_step_(\d+)\.json$")


class FilesystemCheckpointStore(CheckpointStorePort):
    """Directory of versioned checkpoints.

    Each save writes two files:
      - params_step_{step}.safetensors: flat parameter map
      - state_step_{step}.json: {"version": ..., "step": ..., "state": {...}}
    The state file is written last, so a listed step always has its params.
    """

    def __init__(self, *, dir_path: str) -> None:
        self._dir = dir_path
        os.makedirs(self._dir, exist_ok=True)

    @property
    def dir_path(self) -> str:
        return self._dir

    def save(
        self,
        *,
        step: int,
        version: int,
        state: dict[str, Any],
        params: dict[str, np.ndarray],
    ) -> None:
        flat = {name: np.ascontiguousarray(value, dtype=np.float32) for name, value in params.items()}
        ckpt_path = os.path.join(self._dir, f"params_step_{step}.safetensors")
        save_file(flat, ckpt_path, metadata={"version": str(version), "step": str(step)})

        state_path = os.path.join(self._dir, f"state_step_{step}.json")
        with open(state_path, "w", encoding="utf-8") as f:
            json.dump({"version": int(version), "step": int(step), "state": to_jsonable(state)}, f)

    def steps(self) -> list[int]:
        found = []
        for name in os.listdir(self._dir):
            m = _STATE_RE.match(name)
            if m:
                found.append(int(m.group(1)))
        return sorted(found)

    def load_latest(self) -> Checkpoint | None:
        steps = self.steps()
        if not steps:
            return None
        step = steps[-1]

        with open(os.path.join(self._dir, f"state_step_{step}.json"), encoding="utf-8") as f:
            record = json.load(f)
        params = load_file(os.path.join(self._dir, f"params_step_{step}.safetensors"))
        return Checkpoint(
            step=int(record["step"]),
            version=int(record["version"]),
            state=dict(record["state"]),
            params=dict(params),
        )


def load_params_file(path: str) -> dict[str, np.ndarray]:
    """Flat name -> array map from a safetensors file (pretrained network weights)."""

    if not os.path.isfile(path):
        raise FileNotFoundError(f"weights file not found: {path}")
    return dict(load_file(path))


def save_params_file(path: str, params: dict[str, np.ndarray]) -> None:
    save_file({name: np.ascontiguousarray(value, dtype=np.float32) for name, value in params.items()}, path)
