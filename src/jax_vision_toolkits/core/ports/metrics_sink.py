from __future__ import annotations

from typing import Any, Protocol


class MetricsSinkPort(Protocol):
    """Receives progress rows and lifecycle events from the toolkits.

    Events carry an `event` key (`run_start`, `training_device`, `run_end`);
    progress rows carry `iteration` plus `train/...` and `valid/...` values.
    """

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        ...
