from __future__ import annotations

import math
from typing import Callable

import numpy as np

WeightInitializer = Callable[[tuple[int, ...]], np.ndarray]


def zero_weight_initializer() -> WeightInitializer:
    def init(shape: tuple[int, ...]) -> np.ndarray:
        return np.zeros(shape, dtype=np.float32)

    return init


def constant_weight_initializer(value: float) -> WeightInitializer:
    def init(shape: tuple[int, ...]) -> np.ndarray:
        return np.full(shape, value, dtype=np.float32)

    return init


def xavier_weight_initializer(fan_in: int, fan_out: int, rng: np.random.Generator) -> WeightInitializer:
    """Uniform in [-m, m] with m = sqrt(3 / mean(fan_in, fan_out)).

    Values are drawn from `rng` at call time, so builders that share one
    generator get weights fixed by the seed and the order of layers.
    """

    magnitude = math.sqrt(3.0 / ((fan_in + fan_out) / 2.0))

    def init(shape: tuple[int, ...]) -> np.ndarray:
        return rng.uniform(-magnitude, magnitude, size=shape).astype(np.float32)

    return init
