from __future__ import annotations


class ToolkitError(Exception):
    """Base class for every error raised by the toolkits."""


class ConfigurationError(ToolkitError):
    """Invalid columns, options or labels. Raised at construction time."""


class UninitializedStateError(ToolkitError):
    """An operation needs state (topology, trained model, state key) that does not exist yet."""


class BackendUnavailableError(ToolkitError):
    """No compute backend could be created."""


class TrainingError(ToolkitError):
    pass
