from __future__ import annotations

from typing import Any

from jax_vision_toolkits.core.domain.errors import ConfigurationError
from jax_vision_toolkits.core.ports.dataset_table import TabularDataPort

AUTO_VALIDATION_MIN_ROWS = 100
AUTO_VALIDATION_FRACTION = 0.05


def create_validation_data(
    data: TabularDataPort,
    validation_data: Any,
    *,
    seed: int = 0,
) -> tuple[TabularDataPort, TabularDataPort | None]:
    """Split off validation rows.

    - "auto": hold out 5% of `data` when it has at least 100 rows, else none.
    - None: no validation.
    - a table: used as given (an empty table means no validation).
    """

    if validation_data is None:
        return data, None

    if isinstance(validation_data, str):
        if validation_data != "auto":
            raise ConfigurationError(
                f"validation_data must be 'auto', None or a table, got {validation_data!r}"
            )
        if len(data) < AUTO_VALIDATION_MIN_ROWS:
            return data, None
        train, valid = data.random_split(1.0 - AUTO_VALIDATION_FRACTION, seed=seed)
        return train, (valid if len(valid) > 0 else None)

    if len(validation_data) == 0:
        return data, None
    return data, validation_data
