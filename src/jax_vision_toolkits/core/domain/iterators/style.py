from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from jax_vision_toolkits.core.domain.entities.base import StyleExample
from jax_vision_toolkits.core.domain.errors import ConfigurationError
from jax_vision_toolkits.core.domain.iterators.base import EpochCursor


class StyleTransferDataIterator:
    """Pairs each content image with a randomly chosen style image.

    The cursor walks the content images; the style index of every example is
    drawn uniformly from the styles by the iterator's own generator, so a
    given seed reproduces the same (content, style) sequence.
    """

    def __init__(
        self,
        *,
        style: Sequence[Any],
        content: Sequence[Any],
        repeat: bool = True,
        shuffle: bool = True,
        random_seed: int = 0,
    ) -> None:
        if len(style) == 0:
            raise ConfigurationError("style data must contain at least one image")
        if len(content) == 0:
            raise ConfigurationError("content data must contain at least one image")

        self._style = style
        self._content = content
        self._cursor = EpochCursor(len(content), repeat=repeat, shuffle=shuffle, random_seed=random_seed)

    @property
    def num_styles(self) -> int:
        return len(self._style)

    def has_next_batch(self) -> bool:
        return not self._cursor.at_end

    def reset(self) -> None:
        self._cursor.reset()

    def next_batch(self, batch_size: int) -> list[StyleExample]:
        if batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {batch_size}")

        batch: list[StyleExample] = []
        while len(batch) < batch_size and not self._cursor.at_end:
            row = self._cursor.current_row()
            style_index = int(self._cursor.rng.integers(0, len(self._style)))
            batch.append(
                StyleExample(
                    content_image=self._content[row],
                    style_image=self._style[style_index],
                    style_index=style_index,
                )
            )
            self._cursor.advance()
        return batch
