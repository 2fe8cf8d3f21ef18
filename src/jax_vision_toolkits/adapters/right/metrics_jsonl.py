from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any

from jax_vision_toolkits.core.domain.utils.serialization import to_jsonable
from jax_vision_toolkits.core.ports.metrics_sink import MetricsSinkPort


class JsonlFileMetricsSink(MetricsSinkPort):
    """Append-only JSONL log of training progress.

    One line per call:
      {"ts": "...", "step": 3, "run": "drawing-classifier", "metrics": {...}}
    `run` is only written when a run name is given. Array values (class
    lists, device scalars) are converted to plain JSON.
    """

    def __init__(self, *, path: str | Path, run_name: str = "") -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._run_name = run_name
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _record(self, step: int, metrics: dict[str, Any]) -> dict[str, Any]:
        record: dict[str, Any] = {"ts": datetime.now(timezone.utc).isoformat(), "step": int(step)}
        if self._run_name:
            record["run"] = self._run_name
        record["metrics"] = to_jsonable(metrics)
        return record

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        line = json.dumps(self._record(step, metrics), ensure_ascii=False)

        with self._lock:
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")


class CompositeMetricsSink(MetricsSinkPort):
    """Tee records to several sinks, in order."""

    def __init__(self, *sinks: MetricsSinkPort | None) -> None:
        self._sinks = [s for s in sinks if s is not None]

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        for sink in self._sinks:
            sink.log(step=step, metrics=metrics)
