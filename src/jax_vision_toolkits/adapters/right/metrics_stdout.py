from __future__ import annotations

from typing import Any

from jax_vision_toolkits.core.ports.metrics_sink import MetricsSinkPort

# Longer lists (class labels, confusion rows) are summarized on the console.
_MAX_LIST_ITEMS = 8


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    if isinstance(value, (list, tuple)) and len(value) > _MAX_LIST_ITEMS:
        return f"<{len(value)} items>"
    return str(value)


class StdoutMetricsSink(MetricsSinkPort):
    """Console progress.

    Progress rows print as `[step=N] k=v, ...`; lifecycle events as
    `[event] k=v, ...` with the event name in the brackets.
    """

    def log(self, *, step: int, metrics: dict[str, Any]) -> None:
        event = metrics.get("event")
        fields = {k: v for k, v in metrics.items() if k != "event"}
        items = ", ".join(f"{k}={_fmt(v)}" for k, v in fields.items())
        prefix = f"[{event}]" if event is not None else f"[step={step}]"
        print(f"{prefix} {items}")
