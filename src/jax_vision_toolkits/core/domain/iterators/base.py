from __future__ import annotations

import numpy as np

from jax_vision_toolkits.core.domain.utils.hashing import make_rng, shuffled_order


class EpochCursor:
    """Position within one pass over `num_rows` rows.

    Owns the row order as an index array. Reshuffling swaps in a new array,
    so the underlying table is never reordered and no reader can observe a
    half-permuted order.
    """

    def __init__(self, num_rows: int, *, repeat: bool, shuffle: bool, random_seed: int) -> None:
        self._order = np.arange(num_rows, dtype=np.int64)
        self._position = 0
        self._repeat = repeat
        self._shuffle = shuffle
        self.rng = make_rng(random_seed)
        self.epoch = 0

    @property
    def order(self) -> np.ndarray:
        return self._order.copy()

    @property
    def at_end(self) -> bool:
        return self._position >= len(self._order)

    def current_row(self) -> int:
        return int(self._order[self._position])

    def advance(self) -> None:
        """Move past the current row, starting a new epoch at the end when repeating."""

        self._position += 1
        if self.at_end and self._repeat:
            if self._shuffle:
                self._order = shuffled_order(self._order, self.rng)
            self._position = 0
            self.epoch += 1

    def reset(self) -> None:
        self._position = 0
