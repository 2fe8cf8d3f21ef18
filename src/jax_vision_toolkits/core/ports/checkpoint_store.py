from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np


@dataclass(frozen=True)
class Checkpoint:
    step: int
    version: int
    state: dict[str, Any]
    params: dict[str, np.ndarray]


class CheckpointStorePort(Protocol):
    """Port for saving/loading model state.

    Keep I/O out of core; adapters implement this (filesystem, S3, etc.).
    """

    def save(
        self,
        *,
        step: int,
        version: int,
        state: dict[str, Any],
        params: dict[str, np.ndarray],
    ) -> None: ...

    def load_latest(self) -> Checkpoint | None: ...
