from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np


def to_jsonable(value: Any) -> Any:
    """Convert state and metric values to JSON types.

    Handles numpy/JAX scalars and arrays, mappings (including read-only
    views such as a class-to-index map) and sequences. Anything else is
    stored as its string form.
    """

    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    if isinstance(value, np.generic):
        return value.item()

    # numpy and JAX arrays
    if hasattr(value, "shape") and hasattr(value, "dtype"):
        arr = np.asarray(value)
        return arr.item() if arr.shape == () else arr.tolist()

    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}

    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]

    return str(value)
