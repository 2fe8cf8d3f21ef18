"""Domain entities: batches, iterator parameters and the published model state.

No I/O here; tables, files and devices are reached through ports.
"""

from .base import *
from .dataset import *
from .state import *
