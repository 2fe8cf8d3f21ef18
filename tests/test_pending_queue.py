from __future__ import annotations

import pytest

from jax_vision_toolkits.core.domain.utils.pending_queue import PendingResultQueue


def test_drain_until_pops_oldest_first() -> None:
    q: PendingResultQueue[int] = PendingResultQueue(capacity=2)
    seen: list[int] = []

    q.push(1)
    assert q.drain_until(1, seen.append) == 0
    q.push(2)
    assert q.drain_until(1, seen.append) == 1
    q.push(3)
    assert q.drain_until(0, seen.append) == 2

    assert seen == [1, 2, 3]
    assert len(q) == 0
    assert q.peak == 2


def test_push_beyond_capacity_raises() -> None:
    q: PendingResultQueue[str] = PendingResultQueue(capacity=2)
    q.push("a")
    q.push("b")

    with pytest.raises(RuntimeError, match="full"):
        q.push("c")


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PendingResultQueue(capacity=0)
