from .base import EpochCursor
from .drawing import SimpleDataIterator, compute_properties
from .style import StyleTransferDataIterator

__all__ = [
    "EpochCursor",
    "SimpleDataIterator",
    "StyleTransferDataIterator",
    "compute_properties",
]
