from __future__ import annotations

from collections import deque
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class PendingResultQueue(Generic[T]):
    """Bounded FIFO of submitted batches whose results are not read yet.

    The training loop drains down to one entry before each submission, so at
    most one backend computation overlaps with the next batch's preparation.
    Reading an entry inside `consume` is where the caller blocks on the
    backend.
    """

    def __init__(self, capacity: int = 2) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._items: deque[T] = deque()
        self._peak = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def peak(self) -> int:
        """Largest queue length observed so far."""
        return self._peak

    def __len__(self) -> int:
        return len(self._items)

    def push(self, item: T) -> None:
        if len(self._items) >= self._capacity:
            raise RuntimeError(
                f"pending queue is full ({self._capacity}); drain before submitting"
            )
        self._items.append(item)
        self._peak = max(self._peak, len(self._items))

    def drain_until(self, remaining: int, consume: Callable[[T], None]) -> int:
        """Pop oldest entries into `consume` until at most `remaining` are left.

        Returns the number of entries drained.
        """

        drained = 0
        while len(self._items) > remaining:
            consume(self._items.popleft())
            drained += 1
        return drained
