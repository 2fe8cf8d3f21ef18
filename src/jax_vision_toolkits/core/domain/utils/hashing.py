from __future__ import annotations

import numpy as np

_UINT64_MAX = np.iinfo(np.uint64).max


def make_rng(seed: int) -> np.random.Generator:
    # Generators reject negative seeds; option ranges allow any int.
    return np.random.default_rng(int(seed) % (1 << 63))


def hash64(values: np.ndarray) -> np.ndarray:
    """Mix 64-bit integers into well-distributed 64-bit hashes.

    Vectorized splitmix64 finalizer; uint64 arithmetic wraps modulo 2**64.
    """

    x = np.asarray(values, dtype=np.uint64).copy()
    x ^= x >> np.uint64(30)
    x *= np.uint64(0xBF58476D1CE4E5B9)
    x ^= x >> np.uint64(27)
    x *= np.uint64(0x94D049BB133111EB)
    x ^= x >> np.uint64(31)
    return x


def random_mask64(rng: np.random.Generator) -> np.uint64:
    """Draw a uniformly random 64-bit mask."""

    return np.uint64(rng.integers(0, _UINT64_MAX, dtype=np.uint64, endpoint=True))


def shuffled_order(order: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    """Reorder `order` by hashing each position XOR-ed with a fresh random mask.

    Sorting positions by `hash64(mask ^ position)` gives a seeded total
    reordering. Cost is O(n log n) over the whole table on every call.
    """

    mask = random_mask64(rng)
    positions = np.arange(len(order), dtype=np.uint64)
    keys = hash64(positions ^ mask)
    return order[np.argsort(keys, kind="stable")]
