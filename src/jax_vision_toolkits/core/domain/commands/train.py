from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from jax_vision_toolkits.core.domain.entities.dataset import DEFAULT_DRAWING_SHAPE
from jax_vision_toolkits.core.domain.errors import ConfigurationError

INT_MAX = 2**31 - 1
INT_MIN = -(2**31)


def _check_int(name: str, value: Any, low: int, high: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"option {name!r} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ConfigurationError(f"option {name!r} must be in [{low}, {high}], got {value}")


def _check_positive_float(name: str, value: Any, *, allow_zero: bool = False) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"option {name!r} must be a number, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigurationError(f"option {name!r} must be positive, got {value}")


@dataclass(frozen=True)
class DrawingClassifierCommand:
    """Intent to train a drawing classifier."""

    target: str
    feature: str

    # Number of training examples used per training step
    batch_size: int = 256
    # Maximum number of iterations/epochs made over the data
    max_iterations: int = 500
    # Weight initialization seed; None uses a fixed default
    random_seed: int | None = None

    learning_rate: float = 1e-3
    image_shape: tuple[int, int, int] = DEFAULT_DRAWING_SHAPE

    def __post_init__(self) -> None:
        if not self.target:
            raise ConfigurationError("a target column name is required")
        if not self.feature:
            raise ConfigurationError("a feature column name is required")
        _check_int("batch_size", self.batch_size, 1, INT_MAX)
        _check_int("max_iterations", self.max_iterations, 1, INT_MAX)
        if self.random_seed is not None:
            _check_int("random_seed", self.random_seed, INT_MIN, INT_MAX)
        _check_positive_float("learning_rate", self.learning_rate, allow_zero=True)
        if len(self.image_shape) != 3 or any(int(d) < 1 for d in self.image_shape):
            raise ConfigurationError(f"image_shape must be (height, width, channels), got {self.image_shape}")

    def options(self) -> dict[str, Any]:
        """Option values as published in the model state."""
        values = asdict(self)
        values["image_shape"] = [int(d) for d in self.image_shape]
        return values


@dataclass(frozen=True)
class StyleTransferCommand:
    """Intent to train a style transfer model.

    Unset options are derived at training start: batch_size 1, 256x256
    images, max_iterations = num_styles * 10000 / batch_size and a random
    seed from OS entropy.
    """

    num_styles: int | None = None
    # safetensors file with the VGG-16 loss network weights
    vgg_weights_path: str = ""
    # Optional safetensors file to warm start the transformer network
    transformer_weights_path: str = ""

    batch_size: int | None = None
    max_iterations: int | None = None
    image_width: int | None = None
    image_height: int | None = None
    random_seed: int | None = None

    content_weight: float = 1.0
    style_weight: float = 5.0
    learning_rate: float = 1e-3

    def __post_init__(self) -> None:
        if self.num_styles is None:
            raise ConfigurationError('Expected option "num_styles" not found.')
        if not self.vgg_weights_path:
            raise ConfigurationError('Expected option "vgg_weights_path" not found.')
        _check_int("num_styles", self.num_styles, 1, INT_MAX)
        for name in ("batch_size", "max_iterations", "image_width", "image_height"):
            value = getattr(self, name)
            if value is not None:
                _check_int(name, value, 1, INT_MAX)
        if self.random_seed is not None:
            _check_int("random_seed", self.random_seed, INT_MIN, INT_MAX)
        _check_positive_float("content_weight", self.content_weight, allow_zero=True)
        _check_positive_float("style_weight", self.style_weight, allow_zero=True)
        _check_positive_float("learning_rate", self.learning_rate, allow_zero=True)

    def options(self) -> dict[str, Any]:
        values = asdict(self)
        del values["vgg_weights_path"]
        del values["transformer_weights_path"]
        return values
