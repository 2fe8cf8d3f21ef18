from .training import (
    BackendUnavailableError,
    ConfigurationError,
    ToolkitError,
    TrainingError,
    UninitializedStateError,
)

__all__ = [
    "BackendUnavailableError",
    "ConfigurationError",
    "ToolkitError",
    "TrainingError",
    "UninitializedStateError",
]
