from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class Batch:
    """A fixed-shape group of drawings ready for one backend call.

    `images` is float32 with shape (num_samples, H, W, C), channel-last.
    `targets` holds class indices as floats with shape (num_samples, 1), or is
    None when the iterator reads unlabeled data.
    `predictions` has the same layout as `targets` and is only set when a
    precomputed-predictions column is configured.
    """

    images: np.ndarray
    targets: np.ndarray | None
    num_samples: int
    predictions: np.ndarray | None = None


@dataclass(frozen=True)
class StyleExample:
    content_image: np.ndarray
    style_image: np.ndarray
    style_index: int


@dataclass
class PendingResult:
    """A submitted batch whose backend outputs may still be computing."""

    num_samples: int
    loss: Any
    accuracy: Any | None = None
    output: Any | None = None
    # Iteration that produced the result, for loops that report per batch.
    step: int = 0
